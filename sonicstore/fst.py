"""Per-bucket word graphs, their pending changes, and the pool that manages them."""

from __future__ import annotations

import enum
import logging
import os
import re
import shutil
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from .fst_graph import GraphBuilder, GraphError, WordGraph, typo_factor
from .generic import GenericStore, StorePool, StoreSettings, dispatch_erase
from .keyer import to_compact

__all__ = ["PathMode", "FSTKey", "FSTStore", "FSTPool"]

logger = logging.getLogger(__name__)

_ATOM_MASK = 0xFFFFFFFF
_HEX_NAME = re.compile(r"[0-9a-fA-F]+")


class PathMode(enum.Enum):
    """Kinds of graph files on disk, told apart by their extension."""

    PERMANENT = ".fst"
    TEMPORARY = ".fst.tmp"
    BACKUP = ".fst.bck"

    @property
    def extension(self) -> str:
        return self.value


def _parse_atom(name: str) -> int | None:
    if not _HEX_NAME.fullmatch(name):
        return None
    return int(name, 16) & _ATOM_MASK


@dataclass(frozen=True)
class FSTKey:
    """Pool key of a word graph: hashed collection and bucket names."""

    collection_hash: int
    bucket_hash: int

    @classmethod
    def from_names(cls, collection: str, bucket: str) -> FSTKey:
        return cls(to_compact(collection), to_compact(bucket))

    def __str__(self) -> str:
        return f"<{self.collection_hash:x}>/<{self.bucket_hash:x}>"


@dataclass(eq=False)
class FSTStore(GenericStore):
    """An opened word graph plus the words waiting to be added or removed."""

    graph: WordGraph
    target: FSTKey
    pending_push: set[bytes] = field(default_factory=set)
    pending_pop: set[bytes] = field(default_factory=set)
    last_consolidated: float = field(default_factory=time.monotonic)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self) -> None:
        GenericStore.__init__(self)

    def cardinality(self) -> int:
        """Number of words in the opened graph."""
        return len(self.graph)

    def lookup_begins(self, word: str) -> Iterator[bytes]:
        """Yield the graph words that start with ``word``."""
        logger.debug("looking-up word in fst via 'begins': %s", word)
        return self.graph.begins(word)

    def lookup_typos(self, word: str, max_factor: int | None = None) -> Iterator[bytes]:
        """Yield the graph words close to ``word``, tolerating more typos for longer words."""
        factor = typo_factor(word, max_factor)
        logger.debug(
            "looking-up word in fst via 'typos': %s with typo factor: %s", word, factor
        )
        return self.graph.typos(word, factor)


class FSTPool:
    """Opens, caches, consolidates, backs up and erases bucket word graphs."""

    def __init__(self, settings: StoreSettings) -> None:
        self.settings = settings
        self._pool: StorePool[FSTKey, FSTStore] = StorePool(
            "fst", self._build, settings.fst_inactive_after
        )
        self._consolidate: set[FSTKey] = set()
        self._consolidate_lock = threading.Lock()
        self._rebuild_lock = threading.Lock()

    @property
    def access_lock(self) -> threading.RLock:
        return self._pool.access_lock

    def _build(self, key: FSTKey) -> FSTStore:
        try:
            graph = self.open_graph(key.collection_hash, key.bucket_hash)
        except GraphError as err:
            logger.error("failed opening fst: %s", err)
            raise
        return FSTStore(graph, key)

    def count(self) -> tuple[int, int]:
        """Return (open graphs, graphs scheduled for consolidation)."""
        with self._consolidate_lock:
            scheduled = len(self._consolidate)
        return len(self._pool), scheduled

    def path_for(
        self, mode: PathMode, collection_hash: int, bucket_hash: int | None = None
    ) -> Path:
        path = Path(self.settings.fst_path) / f"{collection_hash:x}"
        if bucket_hash is not None:
            path = path / f"{bucket_hash:x}{mode.extension}"
        return path

    def open_graph(self, collection_hash: int, bucket_hash: int) -> WordGraph:
        """Load the bucket's graph from disk, or an empty graph if none exists yet."""
        logger.debug(
            "opening finite-state transducer graph for collection: <%x> and bucket: <%x>",
            collection_hash, bucket_hash,
        )
        path = self.path_for(PathMode.PERMANENT, collection_hash, bucket_hash)
        if path.exists():
            return WordGraph.from_path(path)
        return WordGraph()

    def acquire(self, collection: str, bucket: str) -> FSTStore:
        key = FSTKey.from_names(collection, bucket)
        if key not in self._pool:
            logger.info(
                "fst store not in pool for collection: %s <%x> / bucket: %s <%x>, opening it",
                collection, key.collection_hash, bucket, key.bucket_hash,
            )
        return self._pool.acquire(key, collection)

    def close(self, collection_hash: int, bucket_hash: int) -> None:
        logger.debug(
            "closing finite-state transducer graph for collection: <%x> and bucket: <%x>",
            collection_hash, bucket_hash,
        )
        key = FSTKey(collection_hash, bucket_hash)
        self._pool.remove(key)
        with self._consolidate_lock:
            self._consolidate.discard(key)

    def schedule_consolidate(self, store: FSTStore) -> bool:
        """Register the store for the next consolidation; False if already registered."""
        with self._consolidate_lock:
            if store.target in self._consolidate:
                logger.debug(
                    "graph consolidation already scheduled on pool key: %s", store.target
                )
                return False
            self._consolidate.add(store.target)
            store.last_consolidated = time.monotonic()
        logger.info("graph consolidation scheduled on pool key: %s", store.target)
        return True

    def janitor(self) -> int:
        return self._pool.janitor()

    def consolidate(self, force: bool = False) -> tuple[int, int, int]:
        """Write pending changes to disk; return counts of (moved, pushed, popped) words."""
        logger.debug("scanning for fst store pool items to consolidate")
        with self._rebuild_lock:
            with self._consolidate_lock:
                if not self._consolidate:
                    logger.info("no fst store pool items to consolidate in register")
                    return 0, 0, 0
                registered = list(self._consolidate)

            keys: list[FSTKey] = []
            with self.access_lock:
                now = time.monotonic()
                for key in registered:
                    store = self._pool.get(key)
                    if store is None:
                        continue
                    not_consolidated_for = int(max(0.0, now - store.last_consolidated))
                    if force or not_consolidated_for >= self.settings.fst_consolidate_after:
                        logger.info(
                            "fst key: %s not consolidated for: %d seconds, may consolidate",
                            key, not_consolidated_for,
                        )
                        keys.append(key)

            if not keys:
                logger.info("no fst store pool items need to consolidate at the moment")
                return 0, 0, 0

            with self.access_lock, self._consolidate_lock:
                for key in keys:
                    self._consolidate.discard(key)

            moved = pushed = popped = 0
            for key in keys:
                with self.access_lock:
                    store = self._pool.get(key)
                    if store is not None:
                        close, item_moved, item_pushed, item_popped = self._consolidate_item(
                            store
                        )
                        moved += item_moved
                        pushed += item_pushed
                        popped += item_popped
                        if close:
                            self._pool.remove(key)
                time.sleep(0)

        logger.info(
            "done scanning for fst store pool items to consolidate "
            "(move: %d, push: %d, pop: %d)",
            moved, pushed, popped,
        )
        return moved, pushed, popped

    def _consolidate_item(self, store: FSTStore) -> tuple[bool, int, int, int]:
        should_close = False
        moved = pushed = popped = 0
        with store.lock:
            if not store.pending_push and not store.pending_pop:
                return should_close, moved, pushed, popped
            target = store.target
            try:
                old_graph = self.open_graph(target.collection_hash, target.bucket_hash)
            except GraphError:
                logger.error("error opening old fst")
            else:
                tmp_path = self.path_for(
                    PathMode.TEMPORARY, target.collection_hash, target.bucket_hash
                )
                try:
                    tmp_path.parent.mkdir(parents=True, exist_ok=True)
                except OSError:
                    logger.error(
                        "error initializing temporary fst directory at path: %s",
                        tmp_path.parent,
                    )
                else:
                    try:
                        tmp_path.unlink()
                    except OSError:
                        pass
                    try:
                        builder = GraphBuilder(tmp_path)
                    except GraphError:
                        logger.error("error initializing temporary fst at path: %s", tmp_path)
                    else:
                        with builder:
                            moved, pushed, popped = self._merge(
                                builder, old_graph, store.pending_push, store.pending_pop
                            )
                            try:
                                builder.finish()
                            except OSError:
                                logger.error(
                                    "error finishing building temporary fst at path: %s",
                                    tmp_path,
                                )
                            else:
                                should_close = True
                                final_path = self.path_for(
                                    PathMode.PERMANENT,
                                    target.collection_hash,
                                    target.bucket_hash,
                                )
                                try:
                                    os.replace(tmp_path, final_path)
                                except OSError:
                                    logger.error(
                                        "error consolidating fst at path: %s", final_path
                                    )
                                else:
                                    logger.info("done consolidate fst at path: %s", final_path)
            store.pending_push = set()
            store.pending_pop = set()
        return should_close, moved, pushed, popped

    def _merge(
        self,
        builder: GraphBuilder,
        old_graph: WordGraph,
        pending_push: set[bytes],
        pending_pop: set[bytes],
    ) -> tuple[int, int, int]:
        moved = pushed = popped = 0
        ordered_push = deque(sorted(pending_push))
        stopped = False

        for old_word in old_graph:
            while ordered_push and ordered_push[0] <= old_word:
                push_word = ordered_push.popleft()
                if self.over_limits(builder.bytes_written(), pushed + moved):
                    logger.warning("limit reached on new from old in fst")
                    stopped = True
                    break
                try:
                    builder.insert(push_word)
                except GraphError as err:
                    logger.error("failed inserting new from old in fst: %s", err)
                else:
                    pushed += 1
            if stopped:
                break

            if old_word in pending_pop:
                popped += 1
                continue
            if self.over_limits(builder.bytes_written(), pushed + moved):
                logger.warning("limit reached on old word in fst")
                break
            try:
                builder.insert(old_word)
            except GraphError as err:
                logger.error("failed inserting old word in fst: %s", err)
            else:
                moved += 1

        while ordered_push:
            push_word = ordered_push.popleft()
            if self.over_limits(builder.bytes_written(), pushed + moved):
                logger.warning("limit reached on new word from complete in fst")
                break
            try:
                builder.insert(push_word)
            except GraphError as err:
                logger.error("failed inserting new word from complete in fst: %s", err)
            else:
                pushed += 1

        return moved, pushed, popped

    def _dump_action(
        self,
        action: str,
        mode: PathMode,
        read_path: Path,
        write_path: Path,
        fn_item: Callable[[Path, Path, str, str], None],
    ) -> None:
        extension = mode.extension
        for collection in sorted(Path(read_path).iterdir()):
            if not collection.is_dir():
                continue
            logger.debug("fst collection ongoing %s: %s", action, collection.name)
            (Path(write_path) / collection.name).mkdir(parents=True, exist_ok=True)
            for bucket in sorted(collection.iterdir()):
                name = bucket.name
                if bucket.is_file() and len(name) > len(extension) and name.endswith(extension):
                    bucket_name = name[: -len(extension)]
                    logger.debug(
                        "fst bucket ongoing %s: %s/%s", action, collection.name, bucket_name
                    )
                    fn_item(Path(write_path), bucket, collection.name, bucket_name)

    def backup(self, path: Path | str) -> None:
        path = Path(path)
        logger.debug("backing up all fst stores to path: %s", path)
        path.mkdir(parents=True, exist_ok=True)
        self._dump_action(
            "backup", PathMode.PERMANENT, Path(self.settings.fst_path), path, self._backup_item
        )

    def restore(self, path: Path | str) -> None:
        path = Path(path)
        logger.debug("restoring all fst stores from path: %s", path)
        self._dump_action(
            "restore", PathMode.BACKUP, path, Path(self.settings.fst_path), self._restore_item
        )

    def _backup_item(
        self, backup_path: Path, _origin_path: Path, collection_name: str, bucket_name: str
    ) -> None:
        with self.access_lock:
            target = backup_path / collection_name / f"{bucket_name}{PathMode.BACKUP.extension}"
            logger.debug(
                "fst bucket: %s/%s backing up to path: %s", collection_name, bucket_name, target
            )
            with open(target, "wb") as backup_file:
                collection_hash = _parse_atom(collection_name)
                bucket_hash = _parse_atom(bucket_name)
                if collection_hash is None or bucket_hash is None:
                    return
                try:
                    graph = self.open_graph(collection_hash, bucket_hash)
                except GraphError as err:
                    raise OSError("graph open failure") from err
                count_words = 0
                for word in graph:
                    backup_file.write(word)
                    backup_file.write(b"\n")
                    count_words += 1
            logger.info(
                "fst bucket: %s/%s backed up to path: %s (%d words)",
                collection_name, bucket_name, target, count_words,
            )

    def _restore_item(
        self, _fst_root: Path, origin_path: Path, collection_name: str, bucket_name: str
    ) -> None:
        with self.access_lock:
            logger.debug(
                "fst bucket: %s/%s restoring from path: %s",
                collection_name, bucket_name, origin_path,
            )
            collection_hash = _parse_atom(collection_name)
            bucket_hash = _parse_atom(bucket_name)
            if collection_hash is None or bucket_hash is None:
                return

            self.close(collection_hash, bucket_hash)
            fst_path = self.path_for(PathMode.PERMANENT, collection_hash, bucket_hash)
            if fst_path.exists():
                fst_path.unlink()
            fst_path.parent.mkdir(parents=True, exist_ok=True)

            lines = origin_path.read_bytes().split(b"\n")
            if lines and lines[-1] == b"":
                lines.pop()
            with GraphBuilder(fst_path) as builder:
                for line in lines:
                    if line.endswith(b"\r"):
                        line = line[:-1]
                    try:
                        word = line.decode("utf-8")
                    except UnicodeDecodeError as err:
                        raise OSError("graph restore word decode failure") from err
                    try:
                        builder.insert(word)
                    except GraphError as err:
                        raise OSError("graph restore word insert failure") from err
                builder.finish()
            logger.info(
                "fst bucket: %s/%s restored to path: %s from backup: %s",
                collection_name, bucket_name, fst_path, origin_path,
            )

    def erase(self, collection: str, bucket: str | None = None) -> int:
        return dispatch_erase(
            "fst", collection, bucket, self._erase_collection, self._erase_bucket
        )

    def _erase_collection(self, collection: str) -> int:
        collection_hash = to_compact(collection)
        collection_path = self.path_for(PathMode.PERMANENT, collection_hash)

        # Graphs may be open in memory without having been written to disk yet.
        open_keys = [key for key in self._pool.keys() if key.collection_hash == collection_hash]
        if open_keys:
            logger.debug(
                "will force-close %d fst buckets for collection: %s", len(open_keys), collection
            )
            with self._consolidate_lock:
                for key in open_keys:
                    self._pool.remove(key)
                    self._consolidate.discard(key)

        if collection_path.exists():
            shutil.rmtree(collection_path)
            logger.debug("done with fst collection erasure")
            return 1
        logger.debug(
            "fst collection store does not exist, consider already erased: %s", collection
        )
        return 0

    def _erase_bucket(self, collection: str, bucket: str) -> int:
        logger.debug("sub-erase on fst bucket: %s for collection: %s", bucket, collection)
        collection_hash, bucket_hash = to_compact(collection), to_compact(bucket)
        bucket_path = self.path_for(PathMode.PERMANENT, collection_hash, bucket_hash)
        self.close(collection_hash, bucket_hash)
        if bucket_path.exists():
            bucket_path.unlink()
            logger.debug("done with fst bucket erasure")
            return 1
        logger.debug(
            "fst bucket graph does not exist, consider already erased: %s/%s",
            collection, bucket,
        )
        return 0

    def count_collection_buckets(self, collection: str) -> int:
        """Number of bucket graphs stored on disk for the collection."""
        extension = PathMode.PERMANENT.extension
        collection_path = self.path_for(PathMode.PERMANENT, to_compact(collection))
        if not collection_path.exists():
            return 0
        try:
            entries = list(collection_path.iterdir())
        except OSError:
            logger.error("failed reading directory for count: %s", collection_path)
            raise
        return sum(
            1
            for entry in entries
            if len(entry.name) > len(extension) and entry.name.endswith(extension)
        )

    def over_limits(self, bytes_count: int, words_count: int) -> bool:
        """Whether a graph of this size may not grow any further."""
        max_size = self.settings.fst_max_size * 1024
        if bytes_count >= max_size:
            logger.info(
                "fst has exceeded maximum allowed bytes: %d over limit: %d",
                bytes_count, max_size,
            )
            return True
        if words_count >= self.settings.fst_max_words:
            logger.info(
                "fst has exceeded maximum allowed words: %d over limit: %d",
                words_count, self.settings.fst_max_words,
            )
            return True
        return False