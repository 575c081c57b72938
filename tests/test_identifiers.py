import pytest

from sonicstore.identifiers import MetaKey, term_hash, xxhash32


def test_meta_key_converts_to_u32():
    key = MetaKey(0)
    assert key is MetaKey.IID_INCR
    assert int(key) == 0


def test_hashes_term():
    assert term_hash("hash:1") == 3637660813
    assert term_hash("hash:2") == 3577985381


def test_xxhash32_empty_input_reference_value():
    assert xxhash32(b"", 0) == 0x02CC5D05


def test_term_hash_matches_raw_hash_of_utf8():
    assert term_hash("hash:1") == xxhash32("hash:1".encode("utf-8"))


@pytest.mark.parametrize("text", ["a", "abcd", "x" * 15, "y" * 16, "z" * 37])
def test_xxhash32_stays_in_u32_range_and_is_deterministic(text):
    first = xxhash32(text.encode())
    assert 0 <= first <= 0xFFFFFFFF
    assert first == xxhash32(text.encode())


def test_seed_changes_hash():
    assert xxhash32(b"hash:1", 1) != xxhash32(b"hash:1", 0)
    assert xxhash32(b"hash:1", 0) == term_hash("hash:1")