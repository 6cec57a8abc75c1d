"""Process-wide record of the metadata layout version in use."""

from __future__ import annotations

_current_version = ""


def set_version(ver: str) -> None:
    """Set the current metadata version."""
    global _current_version
    _current_version = ver


def get_version() -> str:
    """Return the current metadata version, empty when none was set."""
    return _current_version