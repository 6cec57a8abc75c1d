"""Human readable byte sizes."""

from __future__ import annotations

_UNITS = ("Bytes", "KB", "MB", "GB")


def human_size(size: int) -> str:
    """Format ``size`` bytes using the largest unit up to GB that keeps it above 1024."""
    value = float(size)
    index = 0
    while value > 1024.0 and index < len(_UNITS) - 1:
        value /= 1024.0
        index += 1
    return f"{value:f} {_UNITS[index]}"