"""Shared settings, store base class and keyed store pool."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generic, Hashable, TypeVar

__all__ = [
    "StoreSettings",
    "StoreOpenError",
    "GenericStore",
    "StorePool",
    "dispatch_erase",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSettings:
    """Configuration of the key-value and word-graph stores."""

    kv_path: Path = field(default_factory=lambda: Path("./data/store/kv"))
    kv_inactive_after: int = 1800
    kv_flush_after: int = 900
    kv_write_ahead_log: bool = True
    fst_path: Path = field(default_factory=lambda: Path("./data/store/fst"))
    fst_inactive_after: int = 300
    fst_consolidate_after: int = 180
    fst_max_size: int = 2048
    fst_max_words: int = 250000


class StoreOpenError(OSError):
    """A store could not be opened or built."""


class GenericStore:
    """Base for pooled stores; tracks when the store was last used."""

    def __init__(self) -> None:
        self.last_used = time.monotonic()

    def touch(self) -> None:
        """Mark the store as used now."""
        self.last_used = time.monotonic()

    def idle_seconds(self) -> int:
        """Whole seconds since the store was last used."""
        return int(max(0.0, time.monotonic() - self.last_used))


K = TypeVar("K", bound=Hashable)
S = TypeVar("S", bound=GenericStore)


class StorePool(Generic[K, S]):
    """Thread-safe cache of open stores, keyed by their pool key."""

    def __init__(self, kind: str, builder: Callable[[K], S], inactive_after: int) -> None:
        self.kind = kind
        self.builder = builder
        self.inactive_after = inactive_after
        self.access_lock = threading.RLock()
        self._acquire_lock = threading.Lock()
        self._lock = threading.RLock()
        self._stores: dict[K, S] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._stores

    def get(self, key: K) -> S | None:
        with self._lock:
            return self._stores.get(key)

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._stores)

    def acquire(self, key: K, collection: str) -> S:
        """Return the cached store for ``key``, opening it if needed."""
        with self._acquire_lock:
            store = self.get(key)
            if store is not None:
                logger.debug(
                    "%s store acquired from pool for collection: %s (pool key: %s)",
                    self.kind, collection, key,
                )
                store.touch()
                return store
            try:
                store = self.builder(key)
            except OSError as err:
                logger.error(
                    "failed opening %s store for collection: %s (pool key: %s)",
                    self.kind, collection, key,
                )
                raise StoreOpenError(
                    f"failed opening {self.kind} store for collection: {collection}"
                ) from err
            with self._lock:
                self._stores[key] = store
            logger.debug(
                "opened and cached %s store in pool for collection: %s (pool key: %s)",
                self.kind, collection, key,
            )
            return store

    def remove(self, key: K) -> S | None:
        """Drop a store from the pool, returning it if it was there."""
        with self._lock:
            return self._stores.pop(key, None)

    def janitor(self) -> int:
        """Evict stores idle for at least ``inactive_after`` seconds."""
        logger.debug("scanning for %s store pool items to janitor", self.kind)
        with self.access_lock, self._lock:
            expired = [
                key
                for key, store in self._stores.items()
                if store.idle_seconds() >= self.inactive_after
            ]
            for key in expired:
                del self._stores[key]
            remaining = len(self._stores)
        logger.info(
            "done scanning for %s store pool items to janitor, expired %d items, now has %d items",
            self.kind, len(expired), remaining,
        )
        return len(expired)


def dispatch_erase(
    kind: str,
    collection: str,
    bucket: str | None,
    erase_collection: Callable[[str], int],
    erase_bucket: Callable[[str, str], int],
) -> int:
    """Erase a whole collection, or one bucket of it when ``bucket`` is given."""
    logger.info("%s erase requested on collection: %s", kind, collection)
    if bucket is not None:
        return erase_bucket(collection, bucket)
    return erase_collection(collection)