"""Validated collection / bucket / object identifiers."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "StoreItemError",
    "InvalidCollection",
    "InvalidBucket",
    "InvalidObject",
    "StoreItem",
    "is_valid_part",
    "from_depth_1",
    "from_depth_2",
    "from_depth_3",
]

_PART_LEN_MIN = 0
_PART_LEN_MAX = 128


class StoreItemError(ValueError):
    """A store item part failed validation."""


class InvalidCollection(StoreItemError):
    """The collection name is invalid."""


class InvalidBucket(StoreItemError):
    """The bucket name is invalid."""


class InvalidObject(StoreItemError):
    """The object name is invalid."""


@dataclass(frozen=True)
class StoreItem:
    """A collection, optionally narrowed to a bucket and an object."""

    collection: str
    bucket: str | None = None
    obj: str | None = None


def is_valid_part(part: str) -> bool:
    """Return whether ``part`` is a non-empty ASCII name of at most 128 bytes."""
    return part.isascii() and _PART_LEN_MIN < len(part) <= _PART_LEN_MAX


def from_depth_1(collection: str) -> StoreItem:
    if not is_valid_part(collection):
        raise InvalidCollection(collection)
    return StoreItem(collection)


def from_depth_2(collection: str, bucket: str) -> StoreItem:
    if not is_valid_part(collection):
        raise InvalidCollection(collection)
    if not is_valid_part(bucket):
        raise InvalidBucket(bucket)
    return StoreItem(collection, bucket)


def from_depth_3(collection: str, bucket: str, obj: str) -> StoreItem:
    if not is_valid_part(collection):
        raise InvalidCollection(collection)
    if not is_valid_part(bucket):
        raise InvalidBucket(bucket)
    if not is_valid_part(obj):
        raise InvalidObject(obj)
    return StoreItem(collection, bucket, obj)