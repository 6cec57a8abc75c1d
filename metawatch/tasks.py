"""Legacy query coordinator task states stored in the metadata store."""

from __future__ import annotations

import enum
import posixpath
from collections.abc import Iterable, Mapping

from metawatch.analysis import _parse_int64
from metawatch.kv import MetaKV
from metawatch.paths import join_path

TASK_INFO_PREFIX = "queryCoord-taskInfo"
TRIGGER_TASK_PREFIX = "queryCoord-triggerTask"
ACTIVE_TASK_PREFIX = "queryCoord-activeTask"


class TaskStateMismatchError(ValueError):
    """Raised when a task has no recorded state."""


class TaskState(enum.IntEnum):
    """State of a legacy query coordinator task."""

    UNDO = 0
    DOING = 1
    DONE = 3
    EXPIRED = 4
    FAILED = 5

    @classmethod
    def _missing_(cls, value: object) -> TaskState | None:
        if isinstance(value, int) and not isinstance(value, bool):
            member = int.__new__(cls, value)
            member._name_ = f"UNKNOWN_{value}"
            member._value_ = value
            return member
        return None

    def label(self) -> str:
        """Return the display name of the state, ``"None"`` when unknown."""
        return _LABELS.get(int(self), "None")


_LABELS = {
    0: "taskUndo",
    1: "taskDoing",
    3: "taskDone",
    4: "taskExpired",
    5: "taskFailed",
}


def list_task_states(kv: MetaKV, base_path: str) -> dict[int, TaskState]:
    """Return the recorded state of every task under ``base_path``, by task id."""
    prefix = join_path(base_path, TASK_INFO_PREFIX)
    keys, values = kv.load_with_prefix(prefix)
    if len(keys) != len(values):
        raise ValueError(
            f"unmatched kv sizes for {prefix}: len(keys): {len(keys)}, len(vals): {len(values)}"
        )
    states: dict[int, TaskState] = {}
    for key, value in zip(keys, values):
        task_id = _parse_int64(posixpath.basename(key.rstrip("/")) or "/")
        states[task_id] = TaskState(_parse_int64(value))
    return states


def check_task_states(
    task_ids: Iterable[int], states: Mapping[int, TaskState]
) -> dict[int, TaskState]:
    """Return the state of each task id; every task must have one."""
    result: dict[int, TaskState] = {}
    for task_id in task_ids:
        try:
            result[task_id] = states[task_id]
        except KeyError:
            raise TaskStateMismatchError(
                "taskStateInfo and taskInfo are inconsistent"
            ) from None
    return result