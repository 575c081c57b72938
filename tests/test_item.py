import pytest

from sonicstore.item import (
    InvalidBucket,
    InvalidCollection,
    InvalidObject,
    StoreItem,
    StoreItemError,
    from_depth_1,
    from_depth_2,
    from_depth_3,
    is_valid_part,
)


def test_builds_store_item_depth_1():
    assert from_depth_1("c:test:1") == StoreItem("c:test:1", None, None)
    with pytest.raises(InvalidCollection):
        from_depth_1("")


def test_builds_store_item_depth_2():
    assert from_depth_2("c:test:2", "b:test:2") == StoreItem("c:test:2", "b:test:2", None)
    with pytest.raises(InvalidCollection):
        from_depth_2("", "b:test:2")
    with pytest.raises(InvalidBucket):
        from_depth_2("c:test:2", "")


def test_builds_store_item_depth_3():
    assert from_depth_3("c:test:3", "b:test:3", "o:test:3") == StoreItem(
        "c:test:3", "b:test:3", "o:test:3"
    )
    with pytest.raises(InvalidCollection):
        from_depth_3("", "b:test:3", "o:test:3")
    with pytest.raises(InvalidBucket):
        from_depth_3("c:test:3", "", "o:test:3")
    with pytest.raises(InvalidObject):
        from_depth_3("c:test:3", "b:test:3", "")


def test_collection_error_takes_precedence():
    with pytest.raises(InvalidCollection):
        from_depth_3("", "", "")


def test_part_length_limits():
    assert is_valid_part("a" * 128) is True
    assert is_valid_part("a" * 129) is False
    assert is_valid_part("") is False


def test_non_ascii_part_rejected():
    assert is_valid_part("café") is False
    with pytest.raises(StoreItemError):
        from_depth_1("café")