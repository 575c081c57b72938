import time

import pytest

from sonicstore.generic import (
    GenericStore,
    StoreOpenError,
    StorePool,
    StoreSettings,
    dispatch_erase,
)


class _Store(GenericStore):
    def __init__(self, key):
        super().__init__()
        self.key = key


def _make_pool(inactive_after=60):
    built = []

    def builder(key):
        built.append(key)
        return _Store(key)

    return StorePool("test", builder, inactive_after), built


def test_acquire_caches_store():
    pool, built = _make_pool()
    first = pool.acquire("k1", "c:test:1")
    second = pool.acquire("k1", "c:test:1")
    assert first is second
    assert built == ["k1"]
    assert len(pool) == 1
    assert "k1" in pool
    assert pool.keys() == ["k1"]


def test_acquire_failure_raises_and_leaves_pool_empty():
    def builder(key):
        raise OSError("cannot open")

    pool = StorePool("test", builder, 60)
    with pytest.raises(StoreOpenError):
        pool.acquire("k1", "c:test:1")
    assert len(pool) == 0
    assert pool.get("k1") is None


def test_touch_resets_idle_time():
    store = GenericStore()
    store.last_used = time.monotonic() - 50
    assert store.idle_seconds() >= 50
    store.touch()
    assert store.idle_seconds() < 50


def test_acquire_from_cache_touches_store():
    pool, _ = _make_pool()
    store = pool.acquire("k1", "c")
    store.last_used = time.monotonic() - 500
    pool.acquire("k1", "c")
    assert store.idle_seconds() < 500


def test_janitor_evicts_only_idle_stores():
    pool, _ = _make_pool(inactive_after=60)
    idle = pool.acquire("idle", "c")
    pool.acquire("fresh", "c")
    idle.last_used = time.monotonic() - 120
    assert pool.janitor() == 1
    assert "idle" not in pool
    assert "fresh" in pool


def test_remove_returns_store_once():
    pool, _ = _make_pool()
    store = pool.acquire("k1", "c")
    assert pool.remove("k1") is store
    assert pool.remove("k1") is None
    assert len(pool) == 0


def test_dispatch_erase_routes_by_bucket():
    calls = []

    def erase_collection(collection):
        calls.append(("collection", collection))
        return 7

    def erase_bucket(collection, bucket):
        calls.append(("bucket", collection, bucket))
        return 3

    assert dispatch_erase("kv", "c:1", None, erase_collection, erase_bucket) == 7
    assert dispatch_erase("kv", "c:1", "b:1", erase_collection, erase_bucket) == 3
    assert calls == [("collection", "c:1"), ("bucket", "c:1", "b:1")]


def test_settings_override(tmp_path):
    settings = StoreSettings(kv_path=tmp_path / "kv", fst_path=tmp_path / "fst")
    assert settings.kv_path == tmp_path / "kv"
    assert settings.fst_path == tmp_path / "fst"
    assert settings.fst_max_words == StoreSettings().fst_max_words