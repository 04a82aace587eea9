from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from stratsearch.core.timeutils import coerce_timestamp

PRICE_FIELDS: Tuple[str, ...] = ("open", "high", "low", "close")
_TIME_KEYS: Tuple[str, ...] = ("timestamp", "time", "datetime", "date")


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


def coerce_price(value: Any) -> float:
    """Numeric coercion used at the ingestion boundary: bad input becomes 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    return out if math.isfinite(out) else 0.0


def _lookup(payload: Mapping[str, Any], key: str) -> Any:
    for candidate in (key, key.capitalize(), key.upper()):
        if candidate in payload:
            return payload[candidate]
    return None


@dataclass(frozen=True, slots=True)
class PriceBar:
    """Normalized OHLC bar."""

    timestamp: Optional[datetime]
    open: float
    high: float
    low: float
    close: float

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PriceBar":
        ts = None
        for key in _TIME_KEYS:
            raw = _lookup(payload, key)
            if raw is not None:
                ts = coerce_timestamp(raw)
                break
        return cls(
            timestamp=ts,
            open=coerce_price(_lookup(payload, "open")),
            high=coerce_price(_lookup(payload, "high")),
            low=coerce_price(_lookup(payload, "low")),
            close=coerce_price(_lookup(payload, "close")),
        )

    def as_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }


def _frozen(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    arr.setflags(write=False)
    return arr


class PriceSeries:
    """
    Immutable, index-addressable sequence of ``PriceBar``.

    Columns are also held as read-only float arrays so the backtester can read
    them without touching the bar objects. ``value`` reads a field ``index``
    positions into the series and returns 0.0 outside its bounds.
    """

    __slots__ = ("_bars", "open", "high", "low", "close", "timestamps")

    def __init__(self, bars: Iterable[PriceBar]):
        self._bars: Tuple[PriceBar, ...] = tuple(bars)
        self.open = _frozen([b.open for b in self._bars])
        self.high = _frozen([b.high for b in self._bars])
        self.low = _frozen([b.low for b in self._bars])
        self.close = _frozen([b.close for b in self._bars])
        self.timestamps: Tuple[Optional[datetime], ...] = tuple(
            b.timestamp for b in self._bars
        )

    # -------- Construction --------
    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "PriceSeries":
        """Build a series from ``{timestamp, open, high, low, close}`` mappings."""
        return cls(PriceBar.from_mapping(rec) for rec in records)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "PriceSeries":
        """
        Build a series from a DataFrame with OHLC columns (any case).

        A time-like column is used for timestamps when present, otherwise a
        ``DatetimeIndex`` is.
        """
        frame = df.copy()
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        if not any(k in frame.columns for k in _TIME_KEYS) and isinstance(
            frame.index, pd.DatetimeIndex
        ):
            frame = frame.assign(timestamp=frame.index)
        return cls.from_records(frame.to_dict(orient="records"))

    # -------- Sequence protocol --------
    def __len__(self) -> int:
        return len(self._bars)

    def __getitem__(self, index: int) -> PriceBar:
        return self._bars[index]

    def __iter__(self):
        return iter(self._bars)

    def __repr__(self) -> str:
        return f"PriceSeries(n={len(self)})"

    @property
    def bars(self) -> Tuple[PriceBar, ...]:
        return self._bars

    # -------- Access helpers --------
    def column(self, field: str) -> np.ndarray:
        if field not in PRICE_FIELDS:
            raise ValueError(f"unknown price field: {field!r}")
        return getattr(self, field)

    def value(self, field: str, index: int) -> float:
        """Field value at ``index``; 0.0 when ``index`` is out of range."""
        if index < 0 or index >= len(self._bars):
            return 0.0
        return float(self.column(field)[index])

    def slice(self, start: int | None = None, stop: int | None = None) -> "PriceSeries":
        """Contiguous sub-series, order preserved."""
        return PriceSeries(self._bars[start:stop])

    def tail(self, n: int) -> "PriceSeries":
        """Keep only the last ``n`` bars (no-op when ``n`` <= 0 or >= len)."""
        if n <= 0 or n >= len(self._bars):
            return self
        return PriceSeries(self._bars[-n:])

    def to_frame(self) -> pd.DataFrame:
        rows: List[dict] = [
            {
                "timestamp": b.timestamp,
                "open": b.open,
                "high": b.high,
                "low": b.low,
                "close": b.close,
            }
            for b in self._bars
        ]
        return pd.DataFrame(rows, columns=["timestamp", *PRICE_FIELDS])


__all__ = ["PRICE_FIELDS", "Direction", "PriceBar", "PriceSeries", "coerce_price"]
