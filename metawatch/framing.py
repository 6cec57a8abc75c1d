"""Length-prefixed framing and the small messages of the backup file format."""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO

_LENGTH = struct.Struct("<Q")


class BackupFormatError(ValueError):
    """Raised when a backup stream does not follow the expected layout."""


class PartType(enum.IntEnum):
    """Kinds of parts that follow the backup header."""

    ETCD_BACKUP = 1
    METRICS_BACKUP = 2
    CONFIGURATIONS = 3
    APP_METRICS = 4


# --- protobuf wire helpers -------------------------------------------------


def _encode_varint(value: int) -> bytes:
    if value < 0:
        value += 1 << 64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise BackupFormatError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
    raise BackupFormatError("varint too long")


def _signed(value: int) -> int:
    value &= (1 << 64) - 1
    return value - (1 << 64) if value >= 1 << 63 else value


def _varint_field(number: int, value: int) -> bytes:
    return _encode_varint(number << 3) + _encode_varint(value)


def _bytes_field(number: int, value: bytes) -> bytes:
    return _encode_varint((number << 3) | 2) + _encode_varint(len(value)) + value


def _iter_fields(data: bytes) -> Iterator[tuple[int, int | bytes]]:
    pos = 0
    while pos < len(data):
        tag, pos = _decode_varint(data, pos)
        number, wire_type = tag >> 3, tag & 7
        if number == 0:
            raise BackupFormatError("invalid field number 0")
        if wire_type == 0:
            value, pos = _decode_varint(data, pos)
            yield number, value
        elif wire_type == 2:
            length, pos = _decode_varint(data, pos)
            if pos + length > len(data):
                raise BackupFormatError("truncated length-delimited field")
            yield number, data[pos:pos + length]
            pos += length
        elif wire_type in (1, 5):
            width = 8 if wire_type == 1 else 4
            if pos + width > len(data):
                raise BackupFormatError("truncated fixed-width field")
            yield number, int.from_bytes(data[pos:pos + width], "little")
            pos += width
        else:
            raise BackupFormatError(f"unsupported wire type {wire_type}")


def _expect_int(value: int | bytes) -> int:
    if isinstance(value, bytes):
        raise BackupFormatError("expected a numeric field")
    return value


def _expect_bytes(value: int | bytes) -> bytes:
    if not isinstance(value, bytes):
        raise BackupFormatError("expected a length-delimited field")
    return value


# --- messages --------------------------------------------------------------


@dataclass
class PartHeader:
    """Header that opens each part of a version 2 backup."""

    part_type: PartType | int
    part_len: int = -1
    extra: bytes = b""

    def encode(self) -> bytes:
        out = bytearray()
        if self.part_type:
            out += _varint_field(1, int(self.part_type))
        if self.part_len:
            out += _varint_field(2, self.part_len)
        if self.extra:
            out += _bytes_field(3, self.extra)
        return bytes(out)

    @classmethod
    def decode(cls, data: bytes) -> PartHeader:
        part_type: PartType | int = 0
        part_len = 0
        extra = b""
        for number, value in _iter_fields(data):
            if number == 1:
                raw = _signed(_expect_int(value))
                try:
                    part_type = PartType(raw)
                except ValueError:
                    part_type = raw
            elif number == 2:
                part_len = _signed(_expect_int(value))
            elif number == 3:
                extra = _expect_bytes(value)
        return cls(part_type=part_type, part_len=part_len, extra=extra)


@dataclass
class KeyDataPair:
    """A single key and its raw value as stored in a backup."""

    key: str
    data: bytes = b""

    def encode(self) -> bytes:
        out = bytearray()
        if self.key:
            out += _bytes_field(1, self.key.encode("utf-8"))
        if self.data:
            out += _bytes_field(2, self.data)
        return bytes(out)

    @classmethod
    def decode(cls, data: bytes) -> KeyDataPair:
        key = ""
        value = b""
        for number, field in _iter_fields(data):
            if number == 1:
                try:
                    key = _expect_bytes(field).decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise BackupFormatError("key is not valid UTF-8") from exc
            elif number == 2:
                value = _expect_bytes(field)
        return cls(key=key, data=value)


# --- framing ---------------------------------------------------------------


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = stream.read(size - len(chunks))
        if not chunk:
            break
        chunks += chunk
    return bytes(chunks)


def write_frame(stream: BinaryIO, data: bytes | None) -> None:
    """Write ``data`` preceded by its length as 8 little-endian bytes.

    Writing ``None`` or empty data produces a zero-length stopper frame.
    """
    payload = data or b""
    stream.write(_LENGTH.pack(len(payload)))
    if payload:
        stream.write(payload)


def read_frame(stream: BinaryIO) -> bytes | None:
    """Read one frame.

    Returns ``None`` at a clean end of stream and ``b""`` for a stopper.
    Raises BackupFormatError when the stream ends inside a frame.
    """
    length_bytes = _read_exact(stream, _LENGTH.size)
    if not length_bytes:
        return None
    if len(length_bytes) < _LENGTH.size:
        raise BackupFormatError(
            f"fail to read next length {len(length_bytes)} instead of {_LENGTH.size} read"
        )
    (length,) = _LENGTH.unpack(length_bytes)
    data = _read_exact(stream, length)
    if len(data) != length:
        raise BackupFormatError(f"bytes read({len(data)}) is not equal to next bytes({length})")
    return data


def iter_part_frames(stream: BinaryIO) -> Iterator[bytes]:
    """Yield the frames of one part, stopping at a stopper or end of stream."""
    while True:
        frame = read_frame(stream)
        if not frame:
            return
        yield frame


def write_backup_header(stream: BinaryIO, version: int) -> None:
    """Write the file header that records the backup format version."""
    body = _varint_field(1, version) if version else b""
    write_frame(stream, body)


def read_backup_header(stream: BinaryIO) -> int:
    """Read the file header and return the backup format version."""
    frame = read_frame(stream)
    if frame is None:
        raise BackupFormatError("missing backup header")
    version = 0
    for number, value in _iter_fields(frame):
        if number == 1:
            version = _signed(_expect_int(value))
    return version


def backup_file_name(component: str, now: datetime) -> str:
    """Return the file name used for a backup of ``component`` taken at ``now``."""
    return f"bw_etcd_{component}.{now:%y%m%d-%H%M%S}.bak.gz"