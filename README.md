# sonicstore

The storage layer of a small, schema-less search backend, written in pure
Python with no dependencies outside the standard library. It keeps two kinds
of on-disk stores, grouped by *collection* and *bucket*:

- **Key-value stores**, one per collection. They map object identifiers to
  internal identifiers, search terms to the objects that contain them, and
  each object back to its terms. Each store is a directory holding a
  snapshot file and, when enabled, a write-ahead log.
- **Word graphs**, one per collection and bucket. Each holds the sorted set
  of words seen in that bucket. It answers prefix completions and
  typo-tolerant suggestions.

Both kinds of store are kept in pools that open them on demand. Stores that
have been idle for a while are closed. Pending changes are written out on a
regular tick.

## Modules

| Module | What it provides |
| --- | --- |
| `sonicstore.identifiers` | `MetaKey`, `xxhash32`, `term_hash` |
| `sonicstore.item` | validated collection / bucket / object names: `is_valid_part`, `from_depth_1`, `from_depth_2`, `from_depth_3`, `StoreItem`, and the `StoreItemError` family |
| `sonicstore.keyer` | `StoreKeyer`: 9-byte binary keys (`[index | bucket hash | route]`), `KeyIndex`, and `to_compact` |
| `sonicstore.generic` | `StoreSettings`, `StorePool`, `GenericStore`, `StoreOpenError`, `dispatch_erase` |
| `sonicstore.kv` | `KVStore`, `KVPool`, `AcquireMode` |
| `sonicstore.kv_action` | `KVAction` (the per-bucket mappings) and the little-endian `u32` codecs |
| `sonicstore.fst_graph` | `WordGraph`, `GraphBuilder`, `GraphError`, `typo_factor`, `within_distance` |
| `sonicstore.fst` | `FSTPool`, `FSTStore`, `FSTKey`, `PathMode` |
| `sonicstore.fst_action` | `FSTAction` (push, pop, suggest and count words) and `word_over_limit` |
| `sonicstore.tasker` | `Tasker`, which runs the periodic janitor / flush / consolidate tick, and `ShutdownSignal` |

## Hashing and keys

Names and terms are reduced to 32-bit xxHash32 values (seed 0):

```python
from sonicstore.identifiers import term_hash
from sonicstore.keyer import StoreKeyer, to_compact

term_hash("hash:1")   # 3637660813
to_compact("key:1")   # 3370353088

key = StoreKeyer.term_to_iids("bucket:2", 772137347)
list(key.as_bytes())  # [1, 50, 220, 166, 65, 131, 225, 5, 46]
key.as_prefix()       # the first 5 bytes: index + bucket hash
```

## Validating names

Collection, bucket and object names must be non-empty, ASCII, and at most
128 characters long. An invalid name raises the matching subclass of
`StoreItemError` (itself a `ValueError`):

```python
from sonicstore.item import InvalidBucket, from_depth_2

item = from_depth_2("c:test:2", "b:test:2")

try:
    from_depth_2("c:test:2", "")
except InvalidBucket:
    ...
```

## Settings

`StoreSettings` is a frozen dataclass holding the store paths and limits:
`kv_path`, `kv_inactive_after`, `kv_flush_after`, `kv_write_ahead_log`,
`fst_path`, `fst_inactive_after`, `fst_consolidate_after`, `fst_max_size`
(in KiB) and `fst_max_words`. Both pools take one.

## Key-value store

```python
from pathlib import Path

from sonicstore.generic import StoreSettings
from sonicstore.kv import AcquireMode, KVPool
from sonicstore.kv_action import KVAction

settings = StoreSettings(kv_path=Path("data/kv"), fst_path=Path("data/fst"))
kv_pool = KVPool(settings)

kv_store = kv_pool.acquire(AcquireMode.ANY, "messages")
action = KVAction("user:1", kv_store)
action.set_oid_to_iid("conversation:1", 1)
action.get_oid_to_iid("conversation:1")   # 1

kv_pool.flush(force=True)                 # write snapshots to disk
```

With `AcquireMode.OPEN_ONLY`, `acquire` returns `None` when the collection
does not exist on disk yet. A `KVAction` built without a store returns
`None` from every read and raises `RuntimeError` on every write.

`KVPool.erase(collection)` deletes a whole collection. Erasing one bucket
at the pool level is not supported and raises `ValueError`; use
`KVAction.batch_erase_bucket()` on an acquired store instead.

Identifier lists are stored as packed little-endian 32-bit integers:

```python
from sonicstore.kv_action import decode_u32_list, encode_u32, encode_u32_list

encode_u32(45402)                             # b"\x5a\xb1\x00\x00"
decode_u32_list(encode_u32_list([0, 2, 3]))   # [0, 2, 3]
```

## Word suggestions

An `FSTAction` works on one bucket's word graph. `push_word` queues a new
word and `pop_word` queues a removal. The queued changes are merged into
the on-disk graph when the pool consolidates it. A consolidated graph is
closed, and opened again from disk on its next `acquire`.

```python
from sonicstore.fst import FSTPool
from sonicstore.fst_action import FSTAction

fst_pool = FSTPool(settings)
FSTAction(fst_pool, fst_pool.acquire("messages", "user:1")).push_word("hello")
fst_pool.consolidate(force=True)   # (moved, pushed, popped) == (0, 1, 0)

action = FSTAction(fst_pool, fst_pool.acquire("messages", "user:1"))
action.suggest_words("hel", 5)     # ["hello"]
action.count_words()               # 1
```

`suggest_words` first completes the given prefix. If that yields fewer
words than the limit, it adds words within a typo distance that grows with
the word's length in bytes (and can be capped with `max_typo_factor`):

| Word length | Typos allowed |
| --- | --- |
| 1–3 | 0 |
| 4–6 | 1 |
| 7–9 | 2 |
| 10 or more | 3 |

Words longer than 40 bytes are ignored: `push_word` and `pop_word` return
`False` and `suggest_words` returns `None`. A graph stops taking new words
once it reaches `fst_max_size` or `fst_max_words`.

`FSTPool.backup(path)` writes each graph as a newline-separated word list;
`FSTPool.restore(path)` rebuilds the graphs from such lists. `KVPool` has
the same pair of methods for its snapshots.

## Background work

`Tasker.tick()` does the following, in order:

1. Closes idle key-value stores (flushing them) and idle word graphs.
2. Flushes key-value stores that are due.
3. Consolidates word graphs that are due.

`Tasker.run(stop_event)` repeats the tick every `interval` seconds (10 by
default) until the event is set, and returns the number of ticks run.
`ShutdownSignal`, created in the main thread, catches interrupt, quit and
terminate signals; `at_exit(handler)` blocks until one arrives, then calls
the handler with the signal number.

## What this package does not do

It is a storage library only. It has no network server, no command-line
program, no query language and no search ranking: it stores and looks up
terms, objects and words, and leaves reading requests and combining
results to the code that uses it.