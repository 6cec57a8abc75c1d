"""Checks on stored binlog paths and on primary keys read from binlogs."""

from __future__ import annotations

import re
from collections.abc import Iterable, MutableMapping

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

# A binlog path below the root is "<log kind>/collID/partID/segID/fieldID/fileName".
_BINLOG_PATH_PARTS = 6


def _parse_int64(text: str) -> int:
    """Parse a signed base-10 integer that must fit in 64 bits."""
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r} is not a base-10 integer")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def parse_segment_id_by_binlog(root_path: str, path: str) -> int:
    """Return the segment id encoded in a binlog ``path`` stored under ``root_path``.

    Raises ValueError when the path is not under the root or does not have
    the expected number of elements.
    """
    if not path.startswith(root_path):
        raise ValueError(f'path:"{path}" does not contains rootPath:"{root_path}"')
    relative = path[len(root_path):].lstrip("/")
    parts = relative.split("/")
    if len(parts) != _BINLOG_PATH_PARTS:
        raise ValueError(f"{relative} is not a valid binlog path")
    return _parse_int64(parts[-3])


def count_duplicates(ids: Iterable[int]) -> int:
    """Return how many ids repeat one seen earlier in ``ids``."""
    seen: set[int] = set()
    duplicates = 0
    for value in ids:
        if value in seen:
            duplicates += 1
        seen.add(value)
    return duplicates


def global_duplicates(
    segment_id: int, ids: Iterable[int], seen: MutableMapping[int, int]
) -> tuple[dict[int, int], int]:
    """Find ids of ``segment_id`` already recorded in ``seen`` by another read.

    ``seen`` maps each id to the segment it was first found in and is
    updated with the new ids. Returns how many duplicates came from each
    earlier segment, and the total number of duplicates.
    """
    distribution: dict[int, int] = {}
    total = 0
    for value in ids:
        origin = seen.get(value)
        if origin is not None:
            distribution[origin] = distribution.get(origin, 0) + 1
            total += 1
        else:
            seen[value] = segment_id
    return distribution, total