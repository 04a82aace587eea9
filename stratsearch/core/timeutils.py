from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

import pandas as pd
from loguru import logger

# Epoch values above this are taken as milliseconds rather than seconds.
_EPOCH_MS_CUTOFF = 1e11


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """
    Best-effort conversion of a raw bar timestamp into a ``datetime``.

    Aware values are converted to UTC, naive values are kept as-is, numbers are
    read as epoch seconds (or milliseconds when large). Anything unparseable
    yields ``None``.
    """
    if value is None or isinstance(value, bool) or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value
    if isinstance(value, (int, float)):
        if not math.isfinite(float(value)):
            return None
        seconds = float(value) / 1000.0 if abs(value) > _EPOCH_MS_CUTOFF else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = pd.Timestamp(text.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            logger.debug("[time] unparseable timestamp {!r}", value)
            return None
        return coerce_timestamp(parsed)
    return None


def hour_of_day(ts: Optional[datetime]) -> Optional[int]:
    """Hour bucket (0-23) for a timestamp, or ``None`` when missing."""
    if ts is None:
        return None
    return int(ts.hour)


__all__ = ["now_utc", "coerce_timestamp", "hour_of_day"]
