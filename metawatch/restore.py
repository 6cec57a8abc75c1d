"""Writing whole-instance backups and restoring them into a key-value store."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import BinaryIO

from metawatch.framing import (
    BackupFormatError,
    KeyDataPair,
    PartHeader,
    PartType,
    iter_part_frames,
    read_frame,
    write_backup_header,
    write_frame,
)
from metawatch.kill import Component
from metawatch.kv import MetaKV

_log = logging.getLogger(__name__)

_BACKUP_VERSION = 2

_COMPONENT_PREFIXES = {
    Component.ALL: "",
    Component.QUERYCOORD: "queryCoord-",
}


@dataclass
class RestoreResult:
    """What a version 2 restore found besides the key-values it saved."""

    instance: str | None = None
    metrics: dict[str, bytes] = field(default_factory=dict)
    default_metrics: dict[str, bytes] = field(default_factory=dict)
    configurations: list[tuple[str, bytes]] = field(default_factory=list)
    app_metrics: list[tuple[str, bytes]] = field(default_factory=list)


def _report_progress(done: int, total: int) -> None:
    percent = done * 100 // total if total > 0 else 100
    _log.debug("Restoring backup ... %d%%(%d/%d)", percent, done, total)


def _decode_entry(frame: bytes) -> tuple[str, str] | None:
    try:
        pair = KeyDataPair.decode(frame)
        return pair.key, pair.data.decode("utf-8")
    except (BackupFormatError, UnicodeDecodeError) as exc:
        _log.warning("fail to parse line: %s, skip for now", exc)
        return None


def _require_frame(stream: BinaryIO) -> bytes:
    frame = read_frame(stream)
    if frame is None:
        raise BackupFormatError("backup ended inside a part entry")
    return frame


def _parse_session(data: bytes) -> dict:
    try:
        session = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BackupFormatError(f"invalid session label: {exc}") from exc
    if not isinstance(session, dict):
        raise BackupFormatError("session label is not a JSON object")
    return session


def _session_field(session: dict, name: str) -> object:
    for key, value in session.items():
        if key.lower() == name:
            return value
    return None


def _session_label(session: dict) -> str:
    server_name = _session_field(session, "servername") or ""
    server_id = _session_field(session, "serverid") or 0
    return f"{server_name}-{server_id}"


def restore_v1(kv: MetaKV, stream: BinaryIO, entries: int) -> int:
    """Save every key-value of a version 1 backup body; return how many were saved.

    ``entries`` is the count recorded in the file header and only drives
    progress reporting. Entries that cannot be parsed are skipped.
    """
    restored = 0
    _report_progress(0, entries)
    while True:
        frame = read_frame(stream)
        if frame is None:
            return restored
        entry = _decode_entry(frame)
        if entry is None:
            continue
        kv.save(*entry)
        restored += 1
        _report_progress(restored, entries)


def restore_kv_part(kv: MetaKV, stream: BinaryIO, header: PartHeader) -> str:
    """Save the key-values of a key-value backup part; return its instance name.

    Reading stops at the part's stopper frame or at the end of the stream.
    """
    try:
        meta = json.loads(header.extra.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BackupFormatError(f"invalid part metadata: {exc}") from exc
    if not isinstance(meta, dict):
        raise BackupFormatError("part metadata is not a JSON object")
    try:
        total = int(meta.get("cnt", ""))
    except (TypeError, ValueError) as exc:
        raise BackupFormatError(f"invalid entry count in part metadata: {exc}") from exc

    restored = 0
    _report_progress(0, total)
    for frame in iter_part_frames(stream):
        entry = _decode_entry(frame)
        if entry is None:
            continue
        try:
            kv.save(*entry)
        except (ValueError, RuntimeError, OSError) as exc:
            _log.error("failed save kv into store, %s", exc)
            continue
        restored += 1
        _report_progress(restored, total)
    return str(meta.get("instance", ""))


def _iter_metrics(stream: BinaryIO) -> Iterator[tuple[dict, bytes, bytes]]:
    while True:
        label = read_frame(stream)
        if not label:
            return
        session = _parse_session(label)
        metrics = _require_frame(stream)
        default_metrics = _require_frame(stream)
        yield session, metrics, default_metrics


def _iter_labelled(stream: BinaryIO) -> Iterator[tuple[str, bytes]]:
    while True:
        label = read_frame(stream)
        if not label:
            return
        data = _require_frame(stream)
        yield label.decode("utf-8", errors="replace"), data


def read_metrics_part(stream: BinaryIO) -> list[tuple[dict, bytes, bytes]]:
    """Read a metrics part as (session, metrics, default metrics) triples."""
    return list(_iter_metrics(stream))


def read_labelled_part(stream: BinaryIO) -> list[tuple[str, bytes]]:
    """Read a configurations or app-metrics part as (label, data) pairs."""
    return list(_iter_labelled(stream))


def restore_v2(kv: MetaKV, stream: BinaryIO) -> RestoreResult:
    """Restore the parts of a version 2 backup positioned after its file header.

    Key-value parts are saved into ``kv``; metrics, configurations and app
    metrics are collected in the result. Reading ends quietly when no
    further part header can be read.
    """
    result = RestoreResult()
    while True:
        try:
            frame = read_frame(stream)
            if frame is None:
                return result
            header = PartHeader.decode(frame)
        except BackupFormatError:
            return result

        if header.part_type == PartType.ETCD_BACKUP:
            result.instance = restore_kv_part(kv, stream, header)
        elif header.part_type == PartType.METRICS_BACKUP:
            try:
                for session, metrics, default_metrics in _iter_metrics(stream):
                    label = _session_label(session)
                    result.metrics[label] = metrics
                    result.default_metrics[label] = default_metrics
            except BackupFormatError as exc:
                _log.warning("failed to read metrics part: %s", exc)
        elif header.part_type in (PartType.CONFIGURATIONS, PartType.APP_METRICS):
            target = (
                result.configurations
                if header.part_type == PartType.CONFIGURATIONS
                else result.app_metrics
            )
            try:
                target.extend(_iter_labelled(stream))
            except BackupFormatError as exc:
                _log.warning("failed to read labelled part: %s", exc)


def backup_instance(
    kv: MetaKV,
    base_path: str,
    component: Component | str,
    stream: BinaryIO,
    ignore_revision: bool,
    batch_size: int,
) -> int:
    """Write a version 2 backup of ``base_path`` to ``stream``; return the key count.

    Only ``ALL`` and ``QUERYCOORD`` may be backed up. The metrics,
    configuration and app-metrics parts follow the key-values; no component
    metrics source is attached here, so they are written without entries.
    """
    if not isinstance(component, Component):
        component = Component.parse(component)
    try:
        prefix = _COMPONENT_PREFIXES[component]
    except KeyError:
        raise ValueError(
            f"component {component} not supported for separate backup, use ALL instead"
        ) from None

    write_backup_header(stream, _BACKUP_VERSION)
    try:
        count = kv.backup_kv(base_path, prefix, stream, ignore_revision, batch_size)
    except (ValueError, RuntimeError, OSError) as exc:
        _log.error("backup etcd failed, error: %s", exc)
        count = 0

    for part_type in (PartType.METRICS_BACKUP, PartType.CONFIGURATIONS, PartType.APP_METRICS):
        write_frame(stream, PartHeader(part_type=part_type, part_len=-1).encode())
        write_frame(stream, None)
    return count