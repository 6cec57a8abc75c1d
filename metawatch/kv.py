"""Key-value access to the metadata store and an in-memory implementation."""

from __future__ import annotations

import abc
import json
import logging
from bisect import bisect_left, insort
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import BinaryIO

from metawatch.framing import KeyDataPair, PartHeader, PartType, write_frame
from metawatch.paths import join_path

_log = logging.getLogger(__name__)


class KeyNotFoundError(LookupError):
    """Raised when a key that must exist is missing from the store."""


@dataclass(frozen=True)
class KeyValue:
    """A key and the value it held."""

    key: str
    value: str


def split_instance(base: str) -> tuple[str, str]:
    """Split a base path into its instance name and meta path.

    ``"by-dev/meta"`` gives ``("by-dev", "meta")``; a base without a slash
    is all instance and has an empty meta path.
    """
    parts = base.split("/")
    if len(parts) > 1:
        return join_path(*parts[:-1]), parts[-1]
    return base, ""


class MetaKV(abc.ABC):
    """Operations offered by a metadata key-value store."""

    @abc.abstractmethod
    def load(self, key: str) -> str:
        """Return the value of ``key``; raise KeyNotFoundError if missing."""

    @abc.abstractmethod
    def load_with_prefix(self, prefix: str) -> tuple[list[str], list[str]]:
        """Return keys and values under ``prefix`` in ascending key order."""

    @abc.abstractmethod
    def save(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abc.abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``; removing a missing key is not an error."""

    @abc.abstractmethod
    def remove_with_prefix(self, prefix: str) -> None:
        """Remove every key under ``prefix``."""

    @abc.abstractmethod
    def remove_with_prev_kv(self, key: str) -> KeyValue | None:
        """Remove ``key`` and return what it held, or None if it was absent."""

    @abc.abstractmethod
    def remove_with_prefix_and_prev_kv(self, prefix: str) -> list[KeyValue]:
        """Remove every key under ``prefix`` and return what they held."""

    @abc.abstractmethod
    def get_all_root_paths(self) -> list[str]:
        """Return the distinct first path elements of all keys."""

    @abc.abstractmethod
    def backup_kv(
        self,
        base: str,
        prefix: str,
        stream: BinaryIO,
        ignore_revision: bool,
        batch_size: int,
    ) -> int:
        """Write a backup part of the keys under ``base``/``prefix``; return their count."""

    @abc.abstractmethod
    def walk_with_prefix(
        self,
        prefix: str,
        page_size: int,
        fn: Callable[[bytes, bytes], object],
    ) -> None:
        """Call ``fn(key, value)`` for every key under ``prefix`` in key order."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the connection to the store."""

    def __enter__(self) -> MetaKV:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MemoryKV(MetaKV):
    """A revisioned, ordered key-value store held in memory."""

    def __init__(
        self,
        items: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        root_path: str = "",
    ) -> None:
        self._data: dict[str, str] = {}
        self._keys: list[str] = []
        self._root = root_path
        self._revision = 0
        self._closed = False
        if items is not None:
            pairs = items.items() if isinstance(items, Mapping) else items
            for key, value in pairs:
                self.save(key, value)

    @property
    def revision(self) -> int:
        """Revision of the store, increased by every change."""
        return self._revision

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("key-value store is closed")

    def _full(self, key: str) -> str:
        return join_path(self._root, key)

    def _keys_under(self, prefix: str) -> list[str]:
        start = bisect_left(self._keys, prefix)
        result = []
        for key in self._keys[start:]:
            if not key.startswith(prefix):
                break
            result.append(key)
        return result

    def _delete(self, keys: Iterable[str]) -> list[KeyValue]:
        removed = []
        for key in list(keys):
            value = self._data.pop(key, None)
            if value is None:
                continue
            del self._keys[bisect_left(self._keys, key)]
            removed.append(KeyValue(key, value))
        if removed:
            self._revision += 1
        return removed

    def load(self, key: str) -> str:
        self._check_open()
        full = self._full(key)
        try:
            return self._data[full]
        except KeyError:
            raise KeyNotFoundError(f"key not found: {full}") from None

    def load_with_prefix(self, prefix: str) -> tuple[list[str], list[str]]:
        self._check_open()
        keys = self._keys_under(self._full(prefix))
        return keys, [self._data[key] for key in keys]

    def save(self, key: str, value: str) -> None:
        self._check_open()
        full = self._full(key)
        if full not in self._data:
            insort(self._keys, full)
        self._data[full] = value
        self._revision += 1

    def remove(self, key: str) -> None:
        self._check_open()
        self._delete([self._full(key)])

    def remove_with_prefix(self, prefix: str) -> None:
        self._check_open()
        self._delete(self._keys_under(self._full(prefix)))

    def remove_with_prev_kv(self, key: str) -> KeyValue | None:
        self._check_open()
        removed = self._delete([self._full(key)])
        return removed[0] if removed else None

    def remove_with_prefix_and_prev_kv(self, prefix: str) -> list[KeyValue]:
        self._check_open()
        return self._delete(self._keys_under(self._full(prefix)))

    def get_all_root_paths(self) -> list[str]:
        self._check_open()
        apps: list[str] = []
        current = ""
        while True:
            position = bisect_left(self._keys, current)
            if position >= len(self._keys):
                break
            first = self._keys[position].split("/")[0]
            if first:
                apps.append(first)
            # '0' is the character right after '/', so this skips the whole subtree
            current = first + "0"
        return apps

    def backup_kv(
        self,
        base: str,
        prefix: str,
        stream: BinaryIO,
        ignore_revision: bool,
        batch_size: int,
    ) -> int:
        self._check_open()
        if batch_size <= 0:
            raise ValueError("batch size must be positive")
        if ignore_revision:
            _log.warning(
                "doing backup ignoring revision, make sure no instance of milvus is online"
            )
        key_prefix = join_path(base, prefix)
        keys = self._keys_under(key_prefix)
        snapshot = [(key, self._data[key]) for key in keys]

        instance, meta_path = split_instance(base)
        meta = {
            "cnt": str(len(snapshot)),
            "rev": str(self._revision),
            "instance": instance,
            "metaPath": meta_path,
        }
        extra = json.dumps(meta, sort_keys=True, separators=(",", ":")).encode("utf-8")
        header = PartHeader(part_type=PartType.ETCD_BACKUP, part_len=-1, extra=extra)
        write_frame(stream, header.encode())

        for start in range(0, len(snapshot), batch_size):
            for key, value in snapshot[start:start + batch_size]:
                pair = KeyDataPair(key=key, data=value.encode("utf-8"))
                write_frame(stream, pair.encode())

        write_frame(stream, None)
        return len(snapshot)

    def walk_with_prefix(
        self,
        prefix: str,
        page_size: int,
        fn: Callable[[bytes, bytes], object],
    ) -> None:
        self._check_open()
        if page_size <= 0:
            raise ValueError("page size must be positive")
        full = join_path(self._root, prefix)
        if len(full) > 1:
            full = full.rstrip("/")
        keys = self._keys_under(full)
        for start in range(0, len(keys), page_size):
            for key in keys[start:start + page_size]:
                value = self._data.get(key)
                if value is None:
                    continue
                fn(key.encode("utf-8"), value.encode("utf-8"))

    def close(self) -> None:
        self._closed = True