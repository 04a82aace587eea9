from __future__ import annotations

import os

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def get_str(name: str, default: str = "") -> str:
    """Return env var as a string with a sensible default."""
    value = os.getenv(name)
    return value if value not in (None, "") else default


def get_int(name: str, default: int) -> int:
    """Coerce env var into int, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default


__all__ = ["get_str", "get_int"]
