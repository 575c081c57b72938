"""Binary key layout for the key-value store."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .identifiers import MetaKey, xxhash32

__all__ = ["KeyIndex", "StoreKeyer", "to_compact"]

_KEY_FORMAT = struct.Struct("<BII")


class KeyIndex(enum.IntEnum):
    """Leading byte of a key, naming which mapping it belongs to."""

    META_TO_VALUE = 0
    TERM_TO_IIDS = 1
    OID_TO_IID = 2
    IID_TO_OID = 3
    IID_TO_TERMS = 4


def to_compact(part: str) -> int:
    """Hash a name to a 32-bit atom."""
    return xxhash32(part.encode("utf-8"), 0)


@dataclass(frozen=True)
class StoreKeyer:
    """A 9-byte key: index (1 byte), bucket hash (4 bytes), route (4 bytes)."""

    key: bytes

    @classmethod
    def _make(cls, index: KeyIndex, bucket: str, route: int) -> StoreKeyer:
        return cls(_KEY_FORMAT.pack(int(index), to_compact(bucket), route))

    @classmethod
    def meta_to_value(cls, bucket: str, meta: MetaKey) -> StoreKeyer:
        return cls._make(KeyIndex.META_TO_VALUE, bucket, int(meta))

    @classmethod
    def term_to_iids(cls, bucket: str, term_hash: int) -> StoreKeyer:
        return cls._make(KeyIndex.TERM_TO_IIDS, bucket, term_hash)

    @classmethod
    def oid_to_iid(cls, bucket: str, oid: str) -> StoreKeyer:
        return cls._make(KeyIndex.OID_TO_IID, bucket, to_compact(oid))

    @classmethod
    def iid_to_oid(cls, bucket: str, iid: int) -> StoreKeyer:
        return cls._make(KeyIndex.IID_TO_OID, bucket, iid)

    @classmethod
    def iid_to_terms(cls, bucket: str, iid: int) -> StoreKeyer:
        return cls._make(KeyIndex.IID_TO_TERMS, bucket, iid)

    def as_bytes(self) -> bytes:
        return self.key

    def as_prefix(self) -> bytes:
        """Return the index and bucket part of the key."""
        return self.key[:5]

    def __str__(self) -> str:
        index, bucket, route = _KEY_FORMAT.unpack(self.key)
        return f"'{index}:{bucket:x}:{route:x}' {list(self.key)}"