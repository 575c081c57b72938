"""Identifier types and the xxHash32 hash used for terms and keys."""

from __future__ import annotations

import enum
import struct

__all__ = ["MetaKey", "xxhash32", "term_hash"]

_MASK = 0xFFFFFFFF
_PRIME1 = 2654435761
_PRIME2 = 2246822519
_PRIME3 = 3266489917
_PRIME4 = 668265263
_PRIME5 = 374761393


class MetaKey(enum.IntEnum):
    """Keys of per-bucket metadata values."""

    IID_INCR = 0


def _rotl(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _PRIME2) & _MASK
    return (_rotl(acc, 13) * _PRIME1) & _MASK


def xxhash32(data: bytes, seed: int = 0) -> int:
    """Return the 32-bit xxHash of ``data`` with the given seed."""
    data = bytes(data)
    length = len(data)
    seed &= _MASK
    offset = 0

    if length >= 16:
        v1 = (seed + _PRIME1 + _PRIME2) & _MASK
        v2 = (seed + _PRIME2) & _MASK
        v3 = seed
        v4 = (seed - _PRIME1) & _MASK
        offset = length // 16 * 16
        for a, b, c, d in struct.iter_unpack("<4I", data[:offset]):
            v1 = _round(v1, a)
            v2 = _round(v2, b)
            v3 = _round(v3, c)
            v4 = _round(v4, d)
        acc = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
    else:
        acc = (seed + _PRIME5) & _MASK

    acc = (acc + length) & _MASK

    tail = data[offset:]
    words_end = len(tail) // 4 * 4
    for (word,) in struct.iter_unpack("<I", tail[:words_end]):
        acc = (acc + word * _PRIME3) & _MASK
        acc = (_rotl(acc, 17) * _PRIME4) & _MASK
    for byte in tail[words_end:]:
        acc = (acc + byte * _PRIME5) & _MASK
        acc = (_rotl(acc, 11) * _PRIME1) & _MASK

    acc ^= acc >> 15
    acc = (acc * _PRIME2) & _MASK
    acc ^= acc >> 13
    acc = (acc * _PRIME3) & _MASK
    acc ^= acc >> 16
    return acc


def term_hash(term: str) -> int:
    """Hash a term to its 32-bit stored form."""
    return xxhash32(term.encode("utf-8"), 0)