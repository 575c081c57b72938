import pytest

from sonicstore.fst_graph import (
    GraphBuilder,
    GraphError,
    WordGraph,
    typo_factor,
    within_distance,
)


@pytest.mark.parametrize(
    "word, expected",
    [("abc", 0), ("abcd", 1), ("abcdef", 1), ("abcdefg", 2), ("abcdefghi", 2), ("abcdefghij", 3)],
)
def test_typo_factor_grows_with_length(word, expected):
    assert typo_factor(word) == expected


def test_typo_factor_is_capped():
    assert typo_factor("abcdefghijkl", 1) == 1
    assert typo_factor("abcd", 5) == 1


def test_within_distance():
    assert within_distance("valerian", "valerien", 1)
    assert not within_distance("valerian", "valerien", 0)
    assert within_distance("same", "same", 0)
    assert not within_distance("a", "abcd", 2)


def test_builder_round_trip(tmp_path):
    path = tmp_path / "words.fst"
    words = ["apple", "banana", "cherry", "été"]
    with GraphBuilder(path) as builder:
        for word in sorted(w.encode("utf-8") for w in words):
            builder.insert(word)
        assert builder.finish() == len(words)
    graph = WordGraph.from_path(path)
    assert len(graph) == len(words)
    assert list(graph) == sorted(w.encode("utf-8") for w in words)
    assert "été" in graph
    assert "durian" not in graph


def test_size_matches_file_and_bytes_written(tmp_path):
    path = tmp_path / "words.fst"
    builder = GraphBuilder(path)
    before = builder.bytes_written()
    builder.insert("alpha")
    builder.insert("beta")
    assert builder.bytes_written() > before
    builder.finish()
    graph = WordGraph.from_path(path)
    assert builder.bytes_written() == path.stat().st_size
    assert graph.size() == path.stat().st_size
    assert WordGraph(["alpha", "beta"]).size() == graph.size()


def test_builder_rejects_out_of_order_and_duplicates(tmp_path):
    with GraphBuilder(tmp_path / "g.fst") as builder:
        builder.insert("bravo")
        with pytest.raises(GraphError):
            builder.insert("alpha")
        with pytest.raises(GraphError):
            builder.insert("bravo")


def test_builder_rejects_insert_after_finish(tmp_path):
    builder = GraphBuilder(tmp_path / "g.fst")
    builder.finish()
    with pytest.raises(GraphError):
        builder.insert("late")


def test_from_path_rejects_garbage(tmp_path):
    path = tmp_path / "bad.fst"
    path.write_bytes(b"not a graph")
    with pytest.raises(GraphError):
        WordGraph.from_path(path)


def test_from_path_rejects_truncated(tmp_path):
    path = tmp_path / "g.fst"
    builder = GraphBuilder(path)
    builder.insert("word")
    builder.finish()
    path.write_bytes(path.read_bytes()[:-3])
    with pytest.raises(GraphError):
        WordGraph.from_path(path)


def test_from_path_missing_file(tmp_path):
    with pytest.raises(GraphError):
        WordGraph.from_path(tmp_path / "missing.fst")


def test_graph_sorts_and_dedupes():
    graph = WordGraph(["b", "a", "b", "c"])
    assert list(graph) == [b"a", b"b", b"c"]
    assert len(graph) == 3


def test_begins_returns_prefixed_words_in_order():
    graph = WordGraph(["car", "card", "care", "cat", "bar"])
    assert list(graph.begins("car")) == [b"car", b"card", b"care"]
    assert list(graph.begins("z")) == []


def test_typos_finds_close_words():
    graph = WordGraph(["valerian", "valerien", "vanilla"])
    assert list(graph.typos("valerien", 1)) == [b"valerian", b"valerien"]
    assert list(graph.typos("valerien", 0)) == [b"valerien"]


def test_typos_rejects_negative_distance():
    with pytest.raises(GraphError):
        list(WordGraph(["a"]).typos("a", -1))


def test_empty_graph():
    graph = WordGraph()
    assert len(graph) == 0
    assert list(graph.begins("a")) == []
    assert "a" not in graph