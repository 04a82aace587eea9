"""
Feature engineering: volatility indicators used by the backtester.

Vectorized calculations built on pandas/numpy.
"""

from __future__ import annotations

import numpy as np
import pandas as pd


def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """
    Per-bar True Range.

    TR[i] = max(high-low, |high-prevClose|, |low-prevClose|). The first bar has
    no previous close and is left at 0.
    """
    n = len(close)
    out = np.zeros(n, dtype=float)
    if n < 2:
        return out
    h = pd.Series(high, dtype=float)
    lo = pd.Series(low, dtype=float)
    prev_c = pd.Series(close, dtype=float).shift(1)
    tr = pd.concat(
        [(h - lo), (h - prev_c).abs(), (lo - prev_c).abs()],
        axis=1,
    ).max(axis=1)
    out[1:] = tr.to_numpy()[1:]
    return out


def atr_sma(
    high: np.ndarray, low: np.ndarray, close: np.ndarray, period: int
) -> np.ndarray:
    """
    Average True Range as a simple moving average of True Range.

    ``atr[i]`` averages TR over bars ``i-period+1 .. i`` for ``i >= period``;
    earlier bars hold 0.
    """
    n = len(close)
    out = np.zeros(n, dtype=float)
    period = int(period)
    if period <= 0 or n <= period:
        return out
    tr = true_range(high, low, close)
    # Window k covers tr[k .. k+period-1]; bar i uses window i-period+1.
    windows = np.lib.stride_tricks.sliding_window_view(tr, period)
    out[period:] = windows[1 : n - period + 1].sum(axis=1) / period
    return out


__all__ = ["true_range", "atr_sma"]
