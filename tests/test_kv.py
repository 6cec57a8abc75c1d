import io
import json

import pytest

from metawatch.framing import KeyDataPair, PartHeader, PartType, read_frame
from metawatch.kv import KeyNotFoundError, KeyValue, MemoryKV, split_instance


@pytest.fixture
def kv():
    return MemoryKV()


def test_save_and_load(kv):
    cases = [
        ("test1", "value1"),
        ("test2", "value2"),
        ("test1/a", "value_a"),
        ("test1/b", "value_b"),
    ]
    for key, value in cases:
        kv.save(key, value)
        assert kv.load(key) == value

    for invalid in ["t", "a", "test1a"]:
        with pytest.raises(KeyNotFoundError):
            kv.load(invalid)


@pytest.mark.parametrize(
    "prefix,keys,values",
    [
        ("test", ["test1", "test2", "test1/a", "test1/b"], ["value1", "value2", "value_a", "value_b"]),
        ("test1", ["test1", "test1/a", "test1/b"], ["value1", "value_a", "value_b"]),
        ("test2", ["test2"], ["value2"]),
        ("", ["test1", "test2", "test1/a", "test1/b"], ["value1", "value2", "value_a", "value_b"]),
        ("test1/a", ["test1/a"], ["value_a"]),
        ("a", [], []),
        ("root", [], []),
        ("/tikv/test/root", [], []),
    ],
)
def test_load_with_prefix(kv, prefix, keys, values):
    for key, value in [
        ("test1", "value1"),
        ("test2", "value2"),
        ("test1/a", "value_a"),
        ("test1/b", "value_b"),
    ]:
        kv.save(key, value)
    actual_keys, actual_values = kv.load_with_prefix(prefix)
    assert sorted(actual_keys) == sorted(keys)
    assert sorted(actual_values) == sorted(values)


def test_load_with_prefix_is_sorted(kv):
    for key in ["b", "a/x", "a", "c"]:
        kv.save(key, key)
    keys, _ = kv.load_with_prefix("")
    assert keys == sorted(keys)


def test_remove(kv):
    for key, value in [
        ("test1", "value1"),
        ("test2", "value2"),
        ("test1/a", "value_a"),
        ("test1/b", "value_b"),
    ]:
        kv.save(key, value)
    for valid, invalid in [
        ("test1", "abc"),
        ("test1/a", "test1/lskfjal"),
        ("test1/b", "test1/b"),
        ("test2", "-"),
    ]:
        kv.remove(valid)
        with pytest.raises(KeyNotFoundError):
            kv.load(valid)
        kv.remove(valid)
        kv.remove(invalid)
    assert kv.load_with_prefix("") == ([], [])


def test_remove_with_prefix(kv):
    for key, value in [
        ("testr1", "value1"),
        ("testr2", "value2"),
        ("testr1/a", "value_a"),
        ("testr1/b", "value_b"),
        ("testr2/c", "value3"),
    ]:
        kv.save(key, value)
    kv.remove_with_prefix("testr1")
    keys, vals = kv.load_with_prefix("testr")
    assert sorted(keys) == sorted(["testr2", "testr2/c"])
    assert sorted(vals) == sorted(["value2", "value3"])
    kv.remove_with_prefix("testnoexist")
    assert len(kv.load_with_prefix("testr")[0]) == 2


def test_get_all_root_paths(kv):
    for key, value in [
        ("testr1", "value1"),
        ("testr2", "value2"),
        ("testr1/a", "value_a"),
        ("testr1/a/a2", "value_a"),
        ("testr1/b", "value_b"),
        ("testr2/c", "value3"),
        ("testr3", "value3"),
    ]:
        kv.save(key, value)
    roots = kv.get_all_root_paths()
    assert len(roots) == 3
    assert sorted(roots) == ["testr1", "testr2", "testr3"]


def _fill_prev(kv):
    for key, value in [
        ("testr1", "value1"),
        ("testr2", "value2"),
        ("testr1/a", "value_a"),
        ("testr1/b", "value_b"),
        ("testr2/c", "value3"),
    ]:
        kv.save(key, value)


def test_remove_with_prefix_and_prev_kv(kv):
    _fill_prev(kv)
    kvs = kv.remove_with_prefix_and_prev_kv("testr1")
    assert len(kvs) == 3
    assert sorted(item.key for item in kvs) == ["testr1", "testr1/a", "testr1/b"]
    assert sorted(item.value for item in kvs) == ["value1", "value_a", "value_b"]
    keys, vals = kv.load_with_prefix("testr")
    assert sorted(keys) == ["testr2", "testr2/c"]
    assert sorted(vals) == ["value2", "value3"]


def test_remove_with_prev_kv(kv):
    _fill_prev(kv)
    assert kv.remove_with_prev_kv("not_exist_key") is None
    assert kv.remove_with_prev_kv("testr1") == KeyValue("testr1", "value1")
    keys, vals = kv.load_with_prefix("testr")
    assert sorted(keys) == sorted(["testr2", "testr1/a", "testr1/b", "testr2/c"])
    assert sorted(vals) == sorted(["value2", "value_a", "value_b", "value3"])
    assert kv.remove_with_prev_kv("testr1") is None


def test_empty_value(kv):
    kv.save("key", "")
    assert kv.load("key") == ""
    _, vals = kv.load_with_prefix("key")
    assert vals[0] == ""


def test_scan_size(kv):
    scan_size = 100
    for i in range(1, scan_size + 101):
        kv.save(str(i), str(i))
    keys, _ = kv.load_with_prefix("")
    assert len(keys) == scan_size + 100
    kv.remove_with_prefix("")
    assert kv.load_with_prefix("") == ([], [])


def test_backup_kv(kv):
    for key, value in [
        ("r1/testr1", "value1"),
        ("r1/testr2", "value2"),
        ("r1/testr1/a", "value3"),
        ("r1/testr1/a/a2", "value4"),
        ("r1/testr1/b", "value5"),
        ("r1/testr2/c", "value6"),
        ("r1/testr3", "value7"),
        ("r1/testr4", "value7"),
        ("r2/testr1/a/a2", "value8"),
        ("r2/testr1/a/a3", "value9"),
    ]:
        kv.save(key, value)
    stream = io.BytesIO()
    count = kv.backup_kv("r1", "testr1", stream, False, 100)
    assert count == 4

    stream.seek(0)
    header = PartHeader.decode(read_frame(stream))
    assert header.part_type == PartType.ETCD_BACKUP
    assert header.part_len == -1
    meta = json.loads(header.extra)
    assert meta["cnt"] == "4"
    assert meta["instance"] == "r1"
    assert meta["metaPath"] == ""
    assert meta["rev"] == str(kv.revision)

    pairs = []
    while True:
        frame = read_frame(stream)
        if not frame:
            break
        pairs.append(KeyDataPair.decode(frame))
    assert frame == b""
    assert [p.key for p in pairs] == ["r1/testr1", "r1/testr1/a", "r1/testr1/a/a2", "r1/testr1/b"]
    assert [p.data for p in pairs] == [b"value1", b"value3", b"value4", b"value5"]
    assert read_frame(stream) is None


def test_backup_kv_small_batches_gives_same_output(kv):
    for i in range(7):
        kv.save(f"by-dev/meta/k{i}", f"v{i}")
    big = io.BytesIO()
    small = io.BytesIO()
    kv.backup_kv("by-dev/meta", "", big, False, 100)
    kv.backup_kv("by-dev/meta", "", small, True, 2)
    assert big.getvalue() == small.getvalue()


def test_backup_kv_rejects_bad_batch(kv):
    with pytest.raises(ValueError):
        kv.backup_kv("r1", "", io.BytesIO(), False, 0)


def test_walk_with_prefix(kv):
    for key in ["p/a", "p/b", "p/c", "q/a"]:
        kv.save(key, key.upper())
    seen = []
    kv.walk_with_prefix("p", 2, lambda k, v: seen.append((k, v)))
    assert seen == [(b"p/a", b"P/A"), (b"p/b", b"P/B"), (b"p/c", b"P/C")]


def test_walk_with_prefix_propagates_error(kv):
    kv.save("p/a", "1")

    def fail(key, value):
        raise RuntimeError("stop")

    with pytest.raises(RuntimeError, match="stop"):
        kv.walk_with_prefix("p", 10, fail)


def test_root_path_is_applied():
    kv = MemoryKV(root_path="root")
    kv.save("a", "1")
    assert kv.load_with_prefix("") == (["root/a"], ["1"])
    assert kv.load("a") == "1"


def test_close_blocks_operations():
    kv = MemoryKV({"a": "1"})
    with kv:
        assert kv.load("a") == "1"
    with pytest.raises(RuntimeError):
        kv.load("a")


def test_split_instance():
    assert split_instance("by-dev/meta") == ("by-dev", "meta")
    assert split_instance("r1") == ("r1", "")