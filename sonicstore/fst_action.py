"""Word-level operations on a bucket's word graph: push, pop, suggest, count."""

from __future__ import annotations

import logging
from typing import Iterable

from .fst import FSTPool, FSTStore
from .fst_graph import GraphError

__all__ = ["FSTAction", "word_over_limit"]

logger = logging.getLogger(__name__)

WORD_LIMIT_LENGTH = 40


def word_over_limit(word: str) -> bool:
    """Whether ``word`` is too long (in UTF-8 bytes) to be stored in a graph."""
    if len(word.encode("utf-8")) > WORD_LIMIT_LENGTH:
        logger.debug("got over-limit fst word: %s", word)
        return True
    return False


def _collect(words: Iterable[bytes], found: list[str], limit: int) -> None:
    for raw in words:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            continue
        if text in found:
            continue
        found.append(text)
        if len(found) >= limit:
            break


class FSTAction:
    """Queues word changes on an opened graph and answers suggestion lookups."""

    def __init__(self, pool: FSTPool, store: FSTStore) -> None:
        self.pool = pool
        self.store = store

    def push_word(self, word: str) -> bool:
        """Queue ``word`` for addition; return whether it was queued."""
        if word_over_limit(word):
            return False
        word_bytes = word.encode("utf-8")
        store = self.store
        with store.lock:
            # A push voids an earlier, not yet consolidated pop of the same word.
            store.pending_pop.discard(word_bytes)

            graph = store.graph
            pushed = (
                word_bytes not in graph
                and word_bytes not in store.pending_push
                and len(store.pending_push) < self.pool.settings.fst_max_words
                and not self.pool.over_limits(graph.size(), len(graph))
            )
            if pushed:
                store.pending_push.add(word_bytes)
        if pushed:
            self.pool.schedule_consolidate(store)
        return pushed

    def pop_word(self, word: str) -> bool:
        """Queue ``word`` for removal; return whether it was queued."""
        if word_over_limit(word):
            return False
        word_bytes = word.encode("utf-8")
        store = self.store
        with store.lock:
            # A pop voids an earlier, not yet consolidated push of the same word.
            store.pending_push.discard(word_bytes)

            popped = word_bytes in store.graph and word_bytes not in store.pending_pop
            if popped:
                store.pending_pop.add(word_bytes)
        if popped:
            self.pool.schedule_consolidate(store)
        return popped

    def suggest_words(
        self, from_word: str, limit: int, max_typo_factor: int | None = None
    ) -> list[str] | None:
        """Complete ``from_word``, then add close matches, up to ``limit`` words."""
        if word_over_limit(from_word):
            return None

        found: list[str] = []
        logger.debug("looking up for word: %s in 'begins' fst stream", from_word)
        _collect(self.store.lookup_begins(from_word), found, limit)

        if len(found) < limit:
            logger.debug("looking up for word: %s in 'typos' fst stream", from_word)
            try:
                _collect(self.store.lookup_typos(from_word, max_typo_factor), found, limit)
            except GraphError as err:
                logger.debug("typo lookup failed for word: %s: %s", from_word, err)

        return found or None

    def count_words(self) -> int:
        """Number of words in the opened graph."""
        return self.store.cardinality()