from __future__ import annotations

from pathlib import Path
from typing import Union

import pandas as pd
from loguru import logger

from stratsearch.core.exceptions import DataValidationError
from stratsearch.core.models import PRICE_FIELDS, PriceSeries

_TIME_COLUMNS = ("timestamp", "time", "date", "datetime")


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out.columns = [str(c).strip().lower() for c in out.columns]
    return out


def frame_to_series(df: pd.DataFrame, *, limit: int | None = None) -> PriceSeries:
    """
    Validate an OHLC frame and convert it to a ``PriceSeries``.

    Column names are matched case-insensitively. Rows keep their file order;
    non-numeric prices become 0 rather than failing. ``limit`` keeps only the
    most recent ``limit`` rows.
    """
    frame = _normalize_columns(df)
    missing = [c for c in PRICE_FIELDS if c not in frame.columns]
    if missing:
        raise DataValidationError(f"price data missing columns: {', '.join(missing)}")
    if frame.empty:
        raise DataValidationError("price data has no rows")

    time_col = next((c for c in _TIME_COLUMNS if c in frame.columns), None)
    cols = ([time_col] if time_col else []) + list(PRICE_FIELDS)
    frame = frame[cols]
    if time_col and time_col != "timestamp":
        frame = frame.rename(columns={time_col: "timestamp"})
    if limit is not None and limit > 0:
        frame = frame.tail(int(limit))
    return PriceSeries.from_frame(frame.reset_index(drop=True))


def load_price_csv(path: Union[str, Path], *, limit: int | None = None) -> PriceSeries:
    """Read an OHLC CSV (``timestamp,open,high,low,close``) into a ``PriceSeries``."""
    p = Path(path)
    if not p.exists():
        raise DataValidationError(f"price file not found: {p}")
    try:
        df = pd.read_csv(p)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise DataValidationError(f"unreadable price file {p}: {exc}") from exc
    series = frame_to_series(df, limit=limit)
    logger.info("[data] loaded {} bars from {}", len(series), p)
    return series


__all__ = ["frame_to_series", "load_price_csv"]
