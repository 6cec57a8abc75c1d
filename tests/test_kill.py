import json

import pytest

from metawatch.kill import Component, SessionMismatchError, kill_component, kill_session
from metawatch.kv import KeyNotFoundError, MemoryKV

BASE = "by-dev/meta"


def _session(server_id, name):
    return json.dumps({"ServerID": server_id, "ServerName": name, "Address": "localhost:19530"})


def test_parse_is_case_insensitive():
    assert Component.parse("QueryCoord") is Component.QUERYCOORD
    assert Component.parse("querynode") is Component.QUERYNODE
    assert Component.parse("ALL") is Component.ALL


def test_parse_rejects_unknown():
    with pytest.raises(ValueError, match="must be one of"):
        Component.parse("proxy")


def test_kill_coordinator_session():
    kv = MemoryKV({f"{BASE}/session/querycoord": _session(5, "querycoord"), "other": "x"})
    kill_component(kv, BASE, Component.QUERYCOORD, 5)
    with pytest.raises(KeyNotFoundError):
        kv.load("by-dev/meta/session/querycoord")
    assert kv.load("other") == "x"


def test_kill_querynode_session_uses_id_in_key():
    kv = MemoryKV({f"{BASE}/session/querynode-7": _session(7, "querynode")})
    kill_component(kv, BASE, "QueryNode", 7)
    assert kv.load_with_prefix(BASE) == ([], [])


def test_kill_with_wrong_id_keeps_session():
    key = f"{BASE}/session/datacoord"
    kv = MemoryKV({key: _session(3, "datacoord")})
    with pytest.raises(SessionMismatchError, match="session id no match"):
        kill_component(kv, BASE, Component.DATACOORD, 4)
    assert json.loads(kv.load(key))["ServerID"] == 3


def test_kill_all_is_rejected():
    kv = MemoryKV()
    with pytest.raises(ValueError, match="need to specify component type"):
        kill_component(kv, BASE, Component.ALL, 1)


def test_kill_missing_session():
    with pytest.raises(KeyNotFoundError):
        kill_component(MemoryKV(), BASE, Component.ROOTCOORD, 1)


def test_kill_session_with_bad_json():
    kv = MemoryKV({"k": "not json"})
    with pytest.raises(ValueError, match="faild to parse session for key k"):
        kill_session(kv, "k", 1)
    assert kv.load("k") == "not json"


def test_kill_session_field_name_case_insensitive():
    kv = MemoryKV({"k": json.dumps({"serverid": 9})})
    kill_session(kv, "k", 9)
    assert kv.load_with_prefix("k") == ([], [])