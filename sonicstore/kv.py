"""Per-collection key-value databases and the pool that manages them."""

from __future__ import annotations

import enum
import logging
import os
import shutil
import struct
import threading
import time
from pathlib import Path
from typing import Callable, Iterator

from .generic import GenericStore, StorePool, StoreSettings, dispatch_erase
from .keyer import to_compact

__all__ = ["AcquireMode", "KVStore", "KVPool"]

logger = logging.getLogger(__name__)

_ATOM_MASK = 0xFFFFFFFF
_SNAPSHOT_NAME = "store.kv"
_WAL_NAME = "store.wal"
_BACKUP_NAME = "latest.kv"

_RECORD = struct.Struct("<BII")
_OP_PUT = 0
_OP_DELETE = 1
_OP_DELETE_RANGE = 2


class AcquireMode(enum.Enum):
    """Whether acquiring a store may create it on disk."""

    ANY = "any"
    OPEN_ONLY = "open_only"


def _encode_record(op: int, key: bytes, value: bytes = b"") -> bytes:
    return _RECORD.pack(op, len(key), len(value)) + key + value


def _iter_records(data: bytes, strict: bool) -> Iterator[tuple[int, bytes, bytes]]:
    offset = 0
    while offset < len(data):
        if offset + _RECORD.size > len(data):
            break
        op, key_len, value_len = _RECORD.unpack_from(data, offset)
        start = offset + _RECORD.size
        end = start + key_len + value_len
        if end > len(data) or op not in (_OP_PUT, _OP_DELETE, _OP_DELETE_RANGE):
            break
        yield op, data[start:start + key_len], data[start + key_len:end]
        offset = end
    else:
        return
    if strict:
        raise OSError("corrupted key-value snapshot")
    logger.warning("ignoring truncated tail of key-value write-ahead log")


def _write_snapshot(path: Path, items: dict[bytes, bytes]) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    payload = b"".join(_encode_record(_OP_PUT, key, items[key]) for key in sorted(items))
    tmp_path.write_bytes(payload)
    os.replace(tmp_path, path)


class KVStore(GenericStore):
    """A small on-disk key-value database: a snapshot plus an optional write-ahead log."""

    def __init__(self, path: Path | str, write_ahead_log: bool = True) -> None:
        super().__init__()
        self.path = Path(path)
        self.write_ahead_log = write_ahead_log
        self.last_flushed = time.monotonic()
        self.lock = threading.RLock()
        self._mutex = threading.Lock()
        self._data: dict[bytes, bytes] = {}
        self._wal = None

        self.path.mkdir(parents=True, exist_ok=True)

        snapshot_path = self.path / _SNAPSHOT_NAME
        if snapshot_path.is_file():
            for op, key, value in _iter_records(snapshot_path.read_bytes(), strict=True):
                self._apply(op, key, value)

        wal_path = self.path / _WAL_NAME
        if wal_path.is_file():
            for op, key, value in _iter_records(wal_path.read_bytes(), strict=False):
                self._apply(op, key, value)

    def __enter__(self) -> KVStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _apply(self, op: int, key: bytes, value: bytes) -> None:
        if op == _OP_PUT:
            self._data[key] = value
        elif op == _OP_DELETE:
            self._data.pop(key, None)
        else:
            for existing in [k for k in self._data if key <= k < value]:
                del self._data[existing]

    def _log(self, record: bytes) -> None:
        if not self.write_ahead_log:
            return
        if self._wal is None:
            self._wal = open(self.path / _WAL_NAME, "ab")
        self._wal.write(record)
        self._wal.flush()

    def _write(self, op: int, key: bytes, value: bytes = b"") -> None:
        key, value = bytes(key), bytes(value)
        with self._mutex:
            self._log(_encode_record(op, key, value))
            self._apply(op, key, value)

    def get(self, key: bytes) -> bytes | None:
        with self._mutex:
            return self._data.get(bytes(key))

    def put(self, key: bytes, data: bytes) -> None:
        self._write(_OP_PUT, key, data)

    def delete(self, key: bytes) -> None:
        self._write(_OP_DELETE, key)

    def delete_range(self, start: bytes, end: bytes) -> None:
        """Delete every key ``k`` with ``start <= k < end``."""
        self._write(_OP_DELETE_RANGE, start, end)

    def flush(self) -> None:
        """Write all data to the snapshot and clear the write-ahead log."""
        with self._mutex:
            _write_snapshot(self.path / _SNAPSHOT_NAME, self._data)
            if self._wal is not None:
                self._wal.close()
                self._wal = None
            wal_path = self.path / _WAL_NAME
            if wal_path.exists():
                wal_path.write_bytes(b"")
            self.last_flushed = time.monotonic()

    def close(self) -> None:
        """Flush pending data and release the log file."""
        self.flush()

    def _export(self, target: Path) -> None:
        with self._mutex:
            _write_snapshot(target, self._data)


class KVPool:
    """Opens, caches, flushes, backs up and erases collection databases."""

    def __init__(self, settings: StoreSettings) -> None:
        self.settings = settings
        self._pool: StorePool[int, KVStore] = StorePool(
            "kv", self._build, settings.kv_inactive_after
        )
        self._flush_lock = threading.Lock()

    @property
    def access_lock(self) -> threading.RLock:
        return self._pool.access_lock

    def _build(self, collection_hash: int) -> KVStore:
        logger.debug("opening key-value database for collection: <%x>", collection_hash)
        return KVStore(self.path_for(collection_hash), self.settings.kv_write_ahead_log)

    def count(self) -> int:
        return len(self._pool)

    def path_for(self, collection_hash: int) -> Path:
        return Path(self.settings.kv_path) / f"{collection_hash:x}"

    def acquire(self, mode: AcquireMode, collection: str) -> KVStore | None:
        """Return the collection's store; ``None`` if OPEN_ONLY and it does not exist."""
        key = to_compact(collection)
        if key not in self._pool:
            logger.info(
                "kv store not in pool for collection: %s <%x>, opening it", collection, key
            )
            if mode is AcquireMode.OPEN_ONLY and not self.path_for(key).exists():
                return None
        return self._pool.acquire(key, collection)

    def close(self, collection_hash: int) -> None:
        logger.debug("closing key-value database for collection: <%x>", collection_hash)
        store = self._pool.remove(collection_hash)
        if store is not None:
            store.close()

    def janitor(self) -> int:
        """Evict idle stores, flushing them to disk; return how many were evicted."""
        with self._pool.access_lock:
            before = {key: self._pool.get(key) for key in self._pool.keys()}
            evicted = self._pool.janitor()
            for key, store in before.items():
                if store is not None and key not in self._pool:
                    store.close()
        return evicted

    def flush(self, force: bool = False) -> int:
        """Flush stores not flushed for long enough (or all if ``force``)."""
        logger.debug("scanning for kv store pool items to flush to disk")
        with self._flush_lock:
            with self._pool.access_lock:
                now = time.monotonic()
                keys = []
                for key in self._pool.keys():
                    store = self._pool.get(key)
                    if store is None:
                        continue
                    not_flushed_for = int(max(0.0, now - store.last_flushed))
                    if force or not_flushed_for >= self.settings.kv_flush_after:
                        keys.append(key)

            if not keys:
                logger.info("no kv store pool items need to be flushed at the moment")
                return 0

            count_flushed = 0
            for key in keys:
                with self._pool.access_lock:
                    store = self._pool.get(key)
                    if store is None:
                        continue
                    try:
                        store.flush()
                    except OSError as err:
                        logger.error("kv key: <%x> flush failed: %s", key, err)
                    else:
                        count_flushed += 1
                    store.last_flushed = time.monotonic()
                time.sleep(0)

        logger.info(
            "done scanning for kv store pool items to flush to disk (flushed: %d)",
            count_flushed,
        )
        return count_flushed

    def _dump_action(
        self,
        action: str,
        read_path: Path,
        write_path: Path,
        fn_item: Callable[[Path, Path, str], None],
    ) -> None:
        for entry in sorted(Path(read_path).iterdir()):
            if entry.is_dir():
                logger.debug("kv collection ongoing %s: %s", action, entry.name)
                fn_item(Path(write_path), entry, entry.name)

    def backup(self, path: Path | str) -> None:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        self._dump_action("backup", Path(self.settings.kv_path), path, self._backup_item)

    def restore(self, path: Path | str) -> None:
        self._dump_action("restore", Path(path), Path(self.settings.kv_path), self._restore_item)

    def _backup_item(self, backup_path: Path, origin_path: Path, collection_name: str) -> None:
        with self._pool.access_lock:
            target = backup_path / collection_name
            if target.exists():
                shutil.rmtree(target)
            target.mkdir(parents=True, exist_ok=True)

            try:
                collection_hash = int(collection_name, 16) & _ATOM_MASK
            except ValueError:
                return

            store = self._pool.get(collection_hash)
            if store is None:
                try:
                    store = self._build(collection_hash)
                except OSError as err:
                    raise OSError("database open failure") from err
            store._export(target / _BACKUP_NAME)
            logger.info("kv collection: %s backed up to path: %s", collection_name, target)

    def _restore_item(self, _kv_root: Path, origin_path: Path, collection_name: str) -> None:
        with self._pool.access_lock:
            try:
                collection_hash = int(collection_name, 16) & _ATOM_MASK
            except ValueError:
                return

            self.close(collection_hash)
            kv_path = self.path_for(collection_hash)
            if kv_path.exists():
                shutil.rmtree(kv_path)
            kv_path.mkdir(parents=True, exist_ok=True)

            backup_file = origin_path / _BACKUP_NAME
            if not backup_file.is_file():
                raise FileNotFoundError(f"database restore failure: {backup_file}")
            shutil.copyfile(backup_file, kv_path / _SNAPSHOT_NAME)
            logger.info(
                "kv collection: %s restored to path: %s from backup: %s",
                collection_name, kv_path, origin_path,
            )

    def erase(self, collection: str, bucket: str | None = None) -> int:
        return dispatch_erase(
            "kv", collection, bucket, self._erase_collection, self._erase_bucket
        )

    def _erase_collection(self, collection: str) -> int:
        collection_hash = to_compact(collection)
        collection_path = self.path_for(collection_hash)
        self.close(collection_hash)
        if collection_path.exists():
            shutil.rmtree(collection_path)
            logger.debug("done with kv collection erasure")
            return 1
        logger.debug("kv collection store does not exist, consider already erased: %s", collection)
        return 0

    def _erase_bucket(self, collection: str, bucket: str) -> int:
        # Erasing a bucket needs the collection acquired, which would dead-lock here.
        raise ValueError("kv bucket erasure is not supported at the pool level")