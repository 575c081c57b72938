"""Ordered on-disk word sets with prefix and typo-tolerant lookups."""

from __future__ import annotations

import struct
from bisect import bisect_left
from pathlib import Path
from typing import Iterable, Iterator

__all__ = [
    "GraphError",
    "WordGraph",
    "GraphBuilder",
    "typo_factor",
    "within_distance",
]

_MAGIC = b"SWG\x01"
_LENGTH = struct.Struct("<I")
_TRAILER_MARK = 0xFFFFFFFF
_COUNT = struct.Struct("<Q")
_TRAILER_SIZE = _LENGTH.size + _COUNT.size


class GraphError(OSError):
    """A word graph could not be built or read."""


def _to_bytes(word: str | bytes) -> bytes:
    if isinstance(word, str):
        return word.encode("utf-8")
    return bytes(word)


def typo_factor(word: str, max_factor: int | None = None) -> int:
    """Number of typos tolerated for ``word``, growing with its byte length."""
    length = len(word.encode("utf-8"))
    if 1 <= length <= 3:
        factor = 0
    elif 4 <= length <= 6:
        factor = 1
    elif 7 <= length <= 9:
        factor = 2
    else:
        factor = 3
    if max_factor is not None and factor > max_factor:
        factor = max_factor
    return factor


def within_distance(word: str, candidate: str, limit: int) -> bool:
    """Return whether the Levenshtein distance between the two strings is at most ``limit``."""
    if limit < 0:
        return False
    if abs(len(word) - len(candidate)) > limit:
        return False
    previous = list(range(len(candidate) + 1))
    for row, char in enumerate(word, start=1):
        current = [row]
        for column, other in enumerate(candidate, start=1):
            cost = 0 if char == other else 1
            current.append(
                min(previous[column] + 1, current[column - 1] + 1, previous[column - 1] + cost)
            )
        if min(current) > limit:
            return False
        previous = current
    return previous[-1] <= limit


class WordGraph:
    """An immutable, ordered set of words stored as UTF-8 bytes."""

    def __init__(self, words: Iterable[str | bytes] = ()) -> None:
        self._words: list[bytes] = sorted({_to_bytes(word) for word in words})

    @classmethod
    def from_path(cls, path: Path | str) -> WordGraph:
        """Load a graph written by :class:`GraphBuilder`."""
        try:
            data = Path(path).read_bytes()
        except OSError as err:
            raise GraphError(f"cannot read word graph: {path}") from err
        if not data.startswith(_MAGIC):
            raise GraphError(f"not a word graph: {path}")

        words: list[bytes] = []
        offset = len(_MAGIC)
        while True:
            if offset + _LENGTH.size > len(data):
                raise GraphError(f"truncated word graph: {path}")
            (length,) = _LENGTH.unpack_from(data, offset)
            offset += _LENGTH.size
            if length == _TRAILER_MARK:
                break
            end = offset + length
            if end > len(data):
                raise GraphError(f"truncated word graph: {path}")
            word = data[offset:end]
            if words and word <= words[-1]:
                raise GraphError(f"unordered word graph: {path}")
            words.append(word)
            offset = end

        if offset + _COUNT.size != len(data):
            raise GraphError(f"corrupted word graph trailer: {path}")
        (count,) = _COUNT.unpack_from(data, offset)
        if count != len(words):
            raise GraphError(f"word graph count mismatch: {path}")

        graph = cls()
        graph._words = words
        return graph

    def __len__(self) -> int:
        return len(self._words)

    def __contains__(self, word: object) -> bool:
        if not isinstance(word, (str, bytes, bytearray)):
            return False
        key = _to_bytes(word)
        index = bisect_left(self._words, key)
        return index < len(self._words) and self._words[index] == key

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._words)

    def size(self) -> int:
        """Size in bytes of the graph in its on-disk form."""
        return (
            len(_MAGIC)
            + sum(_LENGTH.size + len(word) for word in self._words)
            + _TRAILER_SIZE
        )

    def begins(self, prefix: str | bytes) -> Iterator[bytes]:
        """Yield, in order, every word starting with ``prefix`` (the prefix included)."""
        key = _to_bytes(prefix)
        for word in self._words[bisect_left(self._words, key):]:
            if not word.startswith(key):
                break
            yield word

    def typos(self, word: str, max_distance: int) -> Iterator[bytes]:
        """Yield, in order, every word within ``max_distance`` edits of ``word``."""
        if max_distance < 0:
            raise GraphError(f"invalid typo distance: {max_distance}")
        for candidate in self._words:
            try:
                text = candidate.decode("utf-8")
            except UnicodeDecodeError:
                continue
            if within_distance(word, text, max_distance):
                yield candidate


class GraphBuilder:
    """Streams words, in strictly increasing order, into a graph file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            self._file = open(self.path, "wb")
        except OSError as err:
            raise GraphError(f"cannot create word graph: {path}") from err
        self._file.write(_MAGIC)
        self._written = len(_MAGIC)
        self._last: bytes | None = None
        self._count = 0
        self._finished = False

    def __enter__(self) -> GraphBuilder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self._file.closed:
            self._file.close()

    def insert(self, word: str | bytes) -> None:
        """Append a word; it must sort strictly after the previous one."""
        if self._finished:
            raise GraphError("word graph builder already finished")
        key = _to_bytes(word)
        if len(key) >= _TRAILER_MARK:
            raise GraphError("word too long for word graph")
        if self._last is not None and key <= self._last:
            raise GraphError(f"word inserted out of order: {key!r}")
        self._file.write(_LENGTH.pack(len(key)))
        self._file.write(key)
        self._written += _LENGTH.size + len(key)
        self._last = key
        self._count += 1

    def bytes_written(self) -> int:
        """Bytes written to the file so far."""
        return self._written

    def finish(self) -> int:
        """Complete and close the file; return the number of words written."""
        if self._finished:
            raise GraphError("word graph builder already finished")
        self._file.write(_LENGTH.pack(_TRAILER_MARK))
        self._file.write(_COUNT.pack(self._count))
        self._written += _TRAILER_SIZE
        self._file.close()
        self._finished = True
        return self._count