from types import SimpleNamespace

import pytest

from sonicstore.fst import FSTPool
from sonicstore.fst_action import FSTAction, word_over_limit


def make_settings(tmp_path, **overrides):
    values = dict(
        kv_path=str(tmp_path / "kv"),
        fst_path=str(tmp_path / "fst"),
        kv_inactive_after=3600,
        kv_write_ahead_log=True,
        kv_flush_after=0,
        fst_inactive_after=3600,
        fst_consolidate_after=0,
        fst_max_size=2048,
        fst_max_words=250000,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def pool(tmp_path):
    return FSTPool(make_settings(tmp_path))


def action_for(pool):
    return FSTAction(pool, pool.acquire("c:test:1", "b:test:1"))


def fill(pool, words):
    action = action_for(pool)
    for word in words:
        assert action.push_word(word) is True
    pool.consolidate(True)
    return action_for(pool)


def test_word_over_limit_boundary():
    assert word_over_limit("a" * 40) is False
    assert word_over_limit("a" * 41) is True


def test_push_then_duplicate_push(pool):
    action = action_for(pool)
    assert action.push_word("hello") is True
    assert action.push_word("hello") is False
    assert pool.count() == (1, 1)


def test_push_over_limit_word_rejected(pool):
    action = action_for(pool)
    assert action.push_word("a" * 41) is False
    assert pool.count() == (1, 0)


def test_consolidate_makes_pushed_word_visible(pool):
    action = action_for(pool)
    action.push_word("hello")
    assert action.count_words() == 0
    assert pool.consolidate(True) == (0, 1, 0)
    reopened = action_for(pool)
    assert reopened.count_words() == 1
    assert reopened.push_word("hello") is False


def test_pop_unknown_word_is_refused(pool):
    action = action_for(pool)
    assert action.pop_word("missing") is False


def test_pop_existing_word(pool):
    action = fill(pool, ["hello", "world"])
    assert action.pop_word("hello") is True
    assert action.pop_word("hello") is False
    assert pool.consolidate(True) == (1, 0, 1)
    assert list(pool.open_graph(action.store.target.collection_hash,
                                action.store.target.bucket_hash)) == [b"world"]


def test_push_then_pop_cancels_out(pool):
    action = action_for(pool)
    assert action.push_word("ephemeral") is True
    assert action.pop_word("ephemeral") is False
    assert pool.consolidate(True) == (0, 0, 0)
    target = action.store.target
    assert len(pool.open_graph(target.collection_hash, target.bucket_hash)) == 0


def test_max_words_limits_pending_pushes(tmp_path):
    pool = FSTPool(make_settings(tmp_path, fst_max_words=2))
    action = action_for(pool)
    assert action.push_word("a") is True
    assert action.push_word("b") is True
    assert action.push_word("c") is False


def test_suggest_completes_prefix(pool):
    action = fill(pool, ["hello", "world"])
    assert action.suggest_words("hel", 5) == ["hello"]


def test_suggest_respects_limit_and_order(pool):
    action = fill(pool, ["alpine", "alphabet", "alpha"])
    assert action.suggest_words("alp", 2) == ["alpha", "alphabet"]


def test_suggest_corrects_typo(pool):
    action = fill(pool, ["hello"])
    assert action.suggest_words("helo", 5) == ["hello"]


def test_suggest_typo_factor_capped(pool):
    action = fill(pool, ["hello"])
    assert action.suggest_words("helo", 5, 0) is None


def test_suggest_no_match_and_over_limit(pool):
    action = fill(pool, ["hello"])
    assert action.suggest_words("zzz", 5) is None
    assert action.suggest_words("h" * 41, 5) is None


def test_suggest_results_are_unique(pool):
    action = fill(pool, ["hello", "help"])
    result = action.suggest_words("hel", 10)
    assert len(result) == len(set(result))
    assert set(result) == {"hello", "help"}