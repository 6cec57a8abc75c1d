"""A key-value wrapper that records every change in an audit log."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import BinaryIO

from metawatch.framing import (
    BackupFormatError,
    _bytes_field,
    _iter_fields,
    _signed,
    _varint_field,
    read_frame,
    write_frame,
)
from metawatch.kv import KeyValue, MetaKV

_log = logging.getLogger(__name__)

_AUDIT_VERSION = 1


class AuditOp(enum.IntEnum):
    """Kinds of audit log records."""

    DEL = 1
    PUT = 2
    PUT_BEFORE = 3
    PUT_AFTER = 4


@dataclass
class AuditRecord:
    """One audit header and the key-values written after it."""

    op: AuditOp | int
    entries_num: int
    version: int = _AUDIT_VERSION
    entries: list[KeyValue] = field(default_factory=list)


def _encode_header(op: AuditOp, entries_num: int) -> bytes:
    out = bytearray(_varint_field(1, _AUDIT_VERSION))
    out += _varint_field(2, int(op))
    if entries_num:
        out += _varint_field(3, entries_num)
    return bytes(out)


def _encode_key_value(item: KeyValue) -> bytes:
    out = bytearray()
    if item.key:
        out += _bytes_field(1, item.key.encode("utf-8"))
    if item.value:
        out += _bytes_field(5, item.value.encode("utf-8"))
    return bytes(out)


def _decode_frame(frame: bytes) -> AuditRecord | KeyValue:
    fields = list(_iter_fields(frame))
    if fields and all(isinstance(value, int) for _, value in fields):
        version, op, entries = 0, 0, 0
        for number, value in fields:
            if number == 1:
                version = _signed(value)
            elif number == 2:
                op = _signed(value)
            elif number == 3:
                entries = _signed(value)
        try:
            op = AuditOp(op)
        except ValueError:
            pass
        return AuditRecord(op=op, entries_num=entries, version=version)
    key, value = "", ""
    try:
        for number, raw in fields:
            if number == 1 and isinstance(raw, bytes):
                key = raw.decode("utf-8")
            elif number == 5 and isinstance(raw, bytes):
                value = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BackupFormatError("audit entry is not valid UTF-8") from exc
    return KeyValue(key, value)


def read_audit_log(stream: BinaryIO) -> Iterator[AuditRecord]:
    """Yield the records of an audit log in the order they were written."""
    current: AuditRecord | None = None
    while True:
        frame = read_frame(stream)
        if frame is None:
            break
        item = _decode_frame(frame)
        if isinstance(item, AuditRecord):
            if current is not None:
                yield current
            current = item
        else:
            if current is None:
                raise BackupFormatError("audit entry found before any header")
            current.entries.append(item)
    if current is not None:
        yield current


class AuditKV(MetaKV):
    """Delegates to another store and logs saves and removals to ``stream``."""

    def __init__(self, kv: MetaKV, stream: BinaryIO) -> None:
        self._kv = kv
        self._stream = stream

    def _write(self, data: bytes) -> None:
        try:
            write_frame(self._stream, data)
        except OSError as exc:
            _log.error("failed to write audit log: %s", exc)

    def _write_header(self, op: AuditOp, entries_num: int) -> None:
        self._write(_encode_header(op, entries_num))

    def _write_key_value(self, key: str, value: str) -> None:
        self._write(_encode_key_value(KeyValue(key, value)))

    def load(self, key: str) -> str:
        return self._kv.load(key)

    def load_with_prefix(self, prefix: str) -> tuple[list[str], list[str]]:
        return self._kv.load_with_prefix(prefix)

    def save(self, key: str, value: str) -> None:
        self._write_header(AuditOp.PUT, 2)
        try:
            self._kv.save(key, value)
            self._write_header(AuditOp.PUT_BEFORE, 1)
            self._write_key_value(key, value)
        finally:
            self._write_header(AuditOp.PUT_AFTER, 1)

    def remove(self, key: str) -> None:
        _log.info("audit delete %s", key)
        value = self._kv.load(key)
        self._kv.remove(key)
        self._write_header(AuditOp.DEL, 1)
        self._write_key_value(key, value)

    def remove_with_prefix(self, prefix: str) -> None:
        _log.info("audit delete with prefix %s", prefix)
        value = self._kv.load(prefix)
        self._kv.remove_with_prefix(prefix)
        self._write_header(AuditOp.DEL, 1)
        self._write_key_value(prefix, value)

    def remove_with_prev_kv(self, key: str) -> KeyValue | None:
        return self._kv.remove_with_prev_kv(key)

    def remove_with_prefix_and_prev_kv(self, prefix: str) -> list[KeyValue]:
        return self._kv.remove_with_prefix_and_prev_kv(prefix)

    def get_all_root_paths(self) -> list[str]:
        return self._kv.get_all_root_paths()

    def backup_kv(
        self,
        base: str,
        prefix: str,
        stream: BinaryIO,
        ignore_revision: bool,
        batch_size: int,
    ) -> int:
        return self._kv.backup_kv(base, prefix, stream, ignore_revision, batch_size)

    def walk_with_prefix(
        self,
        prefix: str,
        page_size: int,
        fn: Callable[[bytes, bytes], object],
    ) -> None:
        self._kv.walk_with_prefix(prefix, page_size, fn)

    def close(self) -> None:
        self._kv.close()