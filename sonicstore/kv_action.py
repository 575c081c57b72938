"""Bucket-level mappings stored in a collection's key-value database."""

from __future__ import annotations

import logging
import re
import struct
from typing import Iterable, Sequence

from .identifiers import MetaKey
from .item import InvalidBucket, is_valid_part
from .keyer import StoreKeyer
from .kv import KVStore

__all__ = [
    "KVAction",
    "encode_u32",
    "decode_u32",
    "encode_u32_list",
    "decode_u32_list",
]

logger = logging.getLogger(__name__)

_U32 = struct.Struct("<I")
_U32_MAX = 0xFFFFFFFF
_UNSIGNED_DECIMAL = re.compile(r"\+?[0-9]+")


def encode_u32(value: int) -> bytes:
    """Encode an unsigned 32-bit integer as 4 little-endian bytes."""
    return _U32.pack(value)


def decode_u32(encoded: bytes) -> int:
    """Decode the first 4 little-endian bytes as an unsigned 32-bit integer."""
    if len(encoded) < _U32.size:
        raise ValueError(f"need 4 bytes to decode a u32, got {len(encoded)}")
    return _U32.unpack_from(bytes(encoded))[0]


def encode_u32_list(values: Iterable[int]) -> bytes:
    """Encode a sequence of unsigned 32-bit integers back to back."""
    return b"".join(_U32.pack(value) for value in values)


def decode_u32_list(encoded: bytes) -> list[int]:
    """Decode a concatenation of 4-byte little-endian integers."""
    encoded = bytes(encoded)
    if len(encoded) % _U32.size:
        raise ValueError("encoded u32 list length is not a multiple of 4")
    return [value for (value,) in _U32.iter_unpack(encoded)]


def _parse_u32(text: str) -> int | None:
    if not _UNSIGNED_DECIMAL.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _U32_MAX else None


class KVAction:
    """Reads and writes the mappings of one bucket in a collection store.

    When no store is given, reads return ``None`` and writes raise
    ``RuntimeError``.
    """

    def __init__(self, bucket: str, store: KVStore | None) -> None:
        if not is_valid_part(bucket):
            raise InvalidBucket(bucket)
        self.bucket = bucket
        self.store = store

    def _require_store(self) -> KVStore:
        if self.store is None:
            raise RuntimeError(f"no kv store available for bucket: {self.bucket}")
        return self.store

    # Meta-to-Value: [IDX=0] ((meta)) ~> ((value))

    def get_meta_to_value(self, meta: MetaKey) -> int | None:
        if self.store is None:
            return None
        key = StoreKeyer.meta_to_value(self.bucket, meta)
        logger.debug("store get meta-to-value: %s", key)
        value = self.store.get(key.as_bytes())
        if value is None:
            return None
        try:
            text = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
        return _parse_u32(text)

    def set_meta_to_value(self, meta: MetaKey, value: int) -> None:
        store = self._require_store()
        key = StoreKeyer.meta_to_value(self.bucket, meta)
        logger.debug("store set meta-to-value: %s", key)
        store.put(key.as_bytes(), str(int(value)).encode("ascii"))

    # Term-to-IIDs: [IDX=1] ((term)) ~> [((iid))]

    def get_term_to_iids(self, term_hashed: int) -> list[int] | None:
        if self.store is None:
            return None
        key = StoreKeyer.term_to_iids(self.bucket, term_hashed)
        logger.debug("store get term-to-iids: %s", key)
        value = self.store.get(key.as_bytes())
        if value is None:
            return None
        return decode_u32_list(value)

    def set_term_to_iids(self, term_hashed: int, iids: Sequence[int]) -> None:
        store = self._require_store()
        key = StoreKeyer.term_to_iids(self.bucket, term_hashed)
        logger.debug("store set term-to-iids: %s", key)
        store.put(key.as_bytes(), encode_u32_list(iids))

    def delete_term_to_iids(self, term_hashed: int) -> None:
        store = self._require_store()
        key = StoreKeyer.term_to_iids(self.bucket, term_hashed)
        logger.debug("store delete term-to-iids: %s", key)
        store.delete(key.as_bytes())

    # OID-to-IID: [IDX=2] ((oid)) ~> ((iid))

    def get_oid_to_iid(self, oid: str) -> int | None:
        if self.store is None:
            return None
        key = StoreKeyer.oid_to_iid(self.bucket, oid)
        logger.debug("store get oid-to-iid: %s", key)
        value = self.store.get(key.as_bytes())
        if value is None:
            return None
        return decode_u32(value)

    def set_oid_to_iid(self, oid: str, iid: int) -> None:
        store = self._require_store()
        key = StoreKeyer.oid_to_iid(self.bucket, oid)
        logger.debug("store set oid-to-iid: %s", key)
        store.put(key.as_bytes(), encode_u32(iid))

    def delete_oid_to_iid(self, oid: str) -> None:
        store = self._require_store()
        key = StoreKeyer.oid_to_iid(self.bucket, oid)
        logger.debug("store delete oid-to-iid: %s", key)
        store.delete(key.as_bytes())

    # IID-to-OID: [IDX=3] ((iid)) ~> ((oid))

    def get_iid_to_oid(self, iid: int) -> str | None:
        if self.store is None:
            return None
        key = StoreKeyer.iid_to_oid(self.bucket, iid)
        logger.debug("store get iid-to-oid: %s", key)
        value = self.store.get(key.as_bytes())
        if value is None:
            return None
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def set_iid_to_oid(self, iid: int, oid: str) -> None:
        store = self._require_store()
        key = StoreKeyer.iid_to_oid(self.bucket, iid)
        logger.debug("store set iid-to-oid: %s", key)
        store.put(key.as_bytes(), oid.encode("utf-8"))

    def delete_iid_to_oid(self, iid: int) -> None:
        store = self._require_store()
        key = StoreKeyer.iid_to_oid(self.bucket, iid)
        logger.debug("store delete iid-to-oid: %s", key)
        store.delete(key.as_bytes())

    # IID-to-Terms: [IDX=4] ((iid)) ~> [((term))]

    def get_iid_to_terms(self, iid: int) -> list[int] | None:
        if self.store is None:
            return None
        key = StoreKeyer.iid_to_terms(self.bucket, iid)
        logger.debug("store get iid-to-terms: %s", key)
        value = self.store.get(key.as_bytes())
        if value is None:
            return None
        return decode_u32_list(value) or None

    def set_iid_to_terms(self, iid: int, terms_hashed: Sequence[int]) -> None:
        store = self._require_store()
        key = StoreKeyer.iid_to_terms(self.bucket, iid)
        logger.debug("store set iid-to-terms: %s", key)
        store.put(key.as_bytes(), encode_u32_list(terms_hashed))

    def delete_iid_to_terms(self, iid: int) -> None:
        store = self._require_store()
        key = StoreKeyer.iid_to_terms(self.bucket, iid)
        logger.debug("store delete iid-to-terms: %s", key)
        store.delete(key.as_bytes())

    # Batch operations

    def batch_flush_bucket(self, iid: int, oid: str, iid_terms_hashed: Iterable[int]) -> int:
        """Remove an object and unlink it from its terms; return how many terms held it."""
        logger.debug("store batch flush bucket: %s", iid)
        self.delete_oid_to_iid(oid)
        self.delete_iid_to_oid(iid)
        self.delete_iid_to_terms(iid)

        count = 0
        for term in iid_terms_hashed:
            try:
                term_iids = self.get_term_to_iids(term)
            except ValueError:
                continue
            if term_iids is None:
                continue
            if iid in term_iids:
                count += 1
                term_iids = [current for current in term_iids if current != iid]
            if term_iids:
                self.set_term_to_iids(term, term_iids)
            else:
                self.delete_term_to_iids(term)
        return count

    def batch_truncate_object(self, term_hashed: int, term_iids: Iterable[int]) -> int:
        """Unlink a term from each given object, flushing objects left with no term."""
        count = 0
        for iid in term_iids:
            logger.debug("store batch truncate object iid: %s", iid)
            try:
                terms = self.get_iid_to_terms(iid)
            except ValueError:
                continue
            if terms is None:
                continue
            count += 1
            terms = [current for current in terms if current != term_hashed]

            if not terms:
                oid = self.get_iid_to_oid(iid)
                if oid is None:
                    logger.error("failed getting store batch truncate object iid-to-oid")
                    continue
                try:
                    self.batch_flush_bucket(iid, oid, [])
                except (OSError, RuntimeError):
                    logger.error(
                        "failed executing store batch truncate object batch-flush-bucket"
                    )
            else:
                try:
                    self.set_iid_to_terms(iid, terms)
                except (OSError, RuntimeError):
                    logger.error("failed setting store batch truncate object iid-to-terms")
        return count

    def batch_erase_bucket(self) -> int:
        """Delete every key of this bucket in all five mappings."""
        store = self._require_store()
        keys = (
            StoreKeyer.meta_to_value(self.bucket, MetaKey.IID_INCR),
            StoreKeyer.term_to_iids(self.bucket, 0),
            StoreKeyer.oid_to_iid(self.bucket, ""),
            StoreKeyer.iid_to_oid(self.bucket, 0),
            StoreKeyer.iid_to_terms(self.bucket, 0),
        )
        for keyer in keys:
            prefix = keyer.as_prefix()
            start = prefix + b"\x00" * 4
            end = prefix + b"\xff" * 4
            try:
                store.delete_range(start, end)
            except OSError as err:
                logger.error(
                    "failed in store batch erase bucket: %s with error: %s", self.bucket, err
                )
            else:
                # The range end is exclusive, so remove the last key explicitly.
                try:
                    store.delete(end)
                except OSError:
                    pass
        logger.info("done processing store batch erase bucket: %s", self.bucket)
        return 1