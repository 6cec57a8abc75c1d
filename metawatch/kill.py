"""Removing the session of a component from the metadata store."""

from __future__ import annotations

import enum
import json

from metawatch.kv import MetaKV
from metawatch.paths import join_path


class SessionMismatchError(ValueError):
    """Raised when the stored session belongs to a different server id."""


class Component(str, enum.Enum):
    """Milvus components that can be selected on the command line."""

    ALL = "ALL"
    QUERYCOORD = "QUERYCOORD"
    ROOTCOORD = "ROOTCOORD"
    DATACOORD = "DATACOORD"
    INDEXCOORD = "INDEXCOORD"
    QUERYNODE = "QUERYNODE"

    @classmethod
    def parse(cls, value: str) -> Component:
        """Parse a component name case-insensitively."""
        try:
            return cls(value.upper())
        except ValueError:
            raise ValueError(
                'must be one of "ALL", "QueryCoord", "DataCoord", "IndexCoord" or "RootCoord"'
            ) from None

    def __str__(self) -> str:
        return self.value


_COORDINATORS = {
    Component.QUERYCOORD,
    Component.DATACOORD,
    Component.INDEXCOORD,
    Component.ROOTCOORD,
}


def _server_id(session: object) -> int:
    if not isinstance(session, dict):
        raise ValueError("session is not a JSON object")
    for name, value in session.items():
        if name.lower() == "serverid":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError("session server id is not an integer")
            return value
    return 0


def kill_session(kv: MetaKV, key: str, server_id: int) -> None:
    """Remove the session stored at ``key`` if it belongs to ``server_id``."""
    raw = kv.load(key)
    try:
        stored_id = _server_id(json.loads(raw))
    except ValueError as exc:
        raise ValueError(f"faild to parse session for key {key}, error: {exc}") from exc
    if stored_id != server_id:
        raise SessionMismatchError("session id no match")
    kv.remove(key)


def kill_component(
    kv: MetaKV, base_path: str, component: Component | str, server_id: int
) -> None:
    """Remove the session of ``component`` with ``server_id`` under ``base_path``."""
    if not isinstance(component, Component):
        component = Component.parse(component)
    name = component.value.lower()
    if component in _COORDINATORS:
        key = join_path(base_path, "session", name)
    elif component is Component.QUERYNODE:
        key = join_path(base_path, "session", f"{name}-{server_id}")
    else:
        raise ValueError("need to specify component type for killing")
    kill_session(kv, key, server_id)