from sonicstore.identifiers import MetaKey
from sonicstore.keyer import KeyIndex, StoreKeyer, to_compact


def test_keys_meta_to_value():
    key = StoreKeyer.meta_to_value("bucket:1", MetaKey.IID_INCR)
    assert list(key.as_bytes()) == [0, 108, 244, 29, 93, 0, 0, 0, 0]


def test_keys_term_to_iids():
    assert list(StoreKeyer.term_to_iids("bucket:2", 772137347).as_bytes()) == [
        1, 50, 220, 166, 65, 131, 225, 5, 46
    ]
    assert list(StoreKeyer.term_to_iids("bucket:2", 3582484684).as_bytes()) == [
        1, 50, 220, 166, 65, 204, 96, 136, 213
    ]


def test_keys_oid_to_iid():
    key = StoreKeyer.oid_to_iid("bucket:3", "conversation:6501e83a")
    assert list(key.as_bytes()) == [2, 171, 194, 213, 57, 31, 156, 118, 213]


def test_keys_iid_to_oid():
    key = StoreKeyer.iid_to_oid("bucket:4", 10292198)
    assert list(key.as_bytes()) == [3, 105, 12, 54, 147, 230, 11, 157, 0]


def test_keys_iid_to_terms():
    assert list(StoreKeyer.iid_to_terms("bucket:5", 1).as_bytes()) == [
        4, 137, 142, 73, 67, 1, 0, 0, 0
    ]
    assert list(StoreKeyer.iid_to_terms("bucket:5", 20).as_bytes()) == [
        4, 137, 142, 73, 67, 20, 0, 0, 0
    ]


def test_hashes_compact():
    assert to_compact("key:1") == 3370353088
    assert to_compact("key:2") == 1042559698


def test_formats_key():
    assert (
        str(StoreKeyer.term_to_iids("bucket:6", 72137347))
        == "'1:71198b49:44cba83' [1, 73, 139, 25, 113, 131, 186, 76, 4]"
    )
    assert (
        str(StoreKeyer.meta_to_value("bucket:6", MetaKey.IID_INCR))
        == "'0:71198b49:0' [0, 73, 139, 25, 113, 0, 0, 0, 0]"
    )


def test_prefix_is_index_and_bucket():
    a = StoreKeyer.iid_to_terms("bucket:5", 1)
    b = StoreKeyer.iid_to_terms("bucket:5", 20)
    assert a.as_prefix() == b.as_prefix()
    assert a.as_prefix() == a.as_bytes()[:5]
    assert a.as_prefix()[0] == KeyIndex.IID_TO_TERMS


def test_route_max_u32_encodes_little_endian():
    key = StoreKeyer.iid_to_oid("bucket:4", 0xFFFFFFFF)
    assert list(key.as_bytes())[5:] == [255, 255, 255, 255]
    assert list(key.as_bytes())[:5] == [3, 105, 12, 54, 147]