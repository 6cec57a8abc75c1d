"""Store semantics of a TiKV-backed metadata store, which cannot hold empty values."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from metawatch.kv import KeyValue, MemoryKV

# TiKV refuses empty values, so an empty string is stored as this reserved word.
EMPTY_VALUE_STRING = "__milvus_reserved_empty_tikv_value_DO_NOT_USE"
EMPTY_VALUE_BYTES = EMPTY_VALUE_STRING.encode("utf-8")

# Default number of keys fetched per scan batch.
SNAPSHOT_SCAN_SIZE = 100


class ReservedValueError(ValueError):
    """Raised when a value equal to the empty-value placeholder is stored."""


def encode_value(value: str) -> bytes:
    """Return the stored form of ``value``, replacing an empty string by the placeholder."""
    if not value:
        return EMPTY_VALUE_BYTES
    if value == EMPTY_VALUE_STRING:
        raise ReservedValueError(
            f"Value for key is reserved by EmptyValue: {EMPTY_VALUE_STRING}"
        )
    return value.encode("utf-8")


def _is_empty(data: bytes) -> bool:
    return not data or data == EMPTY_VALUE_BYTES


def decode_value(data: bytes) -> str:
    """Return the value held by stored ``data``; the placeholder reads as empty."""
    if _is_empty(data):
        return ""
    return data.decode("utf-8")


class PlaceholderKV(MemoryKV):
    """In-memory store that keeps empty values as the reserved placeholder.

    Reads translate the placeholder back to an empty value; backups write
    the stored bytes unchanged, placeholder included.
    """

    def __init__(
        self,
        items: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        root_path: str = "",
    ) -> None:
        super().__init__(items, root_path)

    def load(self, key: str) -> str:
        return decode_value(super().load(key).encode("utf-8"))

    def load_with_prefix(self, prefix: str) -> tuple[list[str], list[str]]:
        keys, values = super().load_with_prefix(prefix)
        return keys, [decode_value(value.encode("utf-8")) for value in values]

    def save(self, key: str, value: str) -> None:
        stored = encode_value(value)
        super().save(key, stored.decode("utf-8"))

    def remove_with_prev_kv(self, key: str) -> KeyValue | None:
        previous = super().remove_with_prev_kv(key)
        if previous is None:
            return None
        return KeyValue(previous.key, decode_value(previous.value.encode("utf-8")))

    def remove_with_prefix_and_prev_kv(self, prefix: str) -> list[KeyValue]:
        return [
            KeyValue(item.key, decode_value(item.value.encode("utf-8")))
            for item in super().remove_with_prefix_and_prev_kv(prefix)
        ]

    def walk_with_prefix(
        self,
        prefix: str,
        page_size: int,
        fn: Callable[[bytes, bytes], object],
    ) -> None:
        def visit(key: bytes, value: bytes) -> object:
            return fn(key, b"" if _is_empty(value) else value)

        super().walk_with_prefix(prefix, page_size, visit)