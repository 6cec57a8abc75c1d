"""Slash-separated key path helpers for the metadata store."""

from __future__ import annotations


def _clean(path: str) -> str:
    """Return the shortest equivalent slash path, resolving '.' and '..'."""
    rooted = path.startswith("/")
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(segment)
    body = "/".join(parts)
    if rooted:
        return "/" + body
    return body or "."


def join_path(*args: str) -> str:
    """Join key path elements, keeping a trailing slash of the last element.

    Empty elements are ignored; if every element is empty the result is
    the empty string.
    """
    non_empty = [part for part in args if part]
    joined = _clean("/".join(non_empty)) if non_empty else ""
    if args and args[-1].endswith("/"):
        joined += "/"
    return joined


def prefix_range_end(prefix: str | bytes) -> bytes:
    """Return the exclusive upper bound of all keys starting with ``prefix``.

    The last byte that can be incremented is incremented and everything
    after it dropped. When no byte can be incremented, ``b"\\x00"`` is
    returned, meaning the range extends to the end of the key space.
    """
    raw = prefix.encode("utf-8") if isinstance(prefix, str) else bytes(prefix)
    for position in range(len(raw) - 1, -1, -1):
        if raw[position] < 0xFF:
            return raw[:position] + bytes([raw[position] + 1])
    return b"\x00"