"""Descriptive statistics shared by the robustness analyses."""

from __future__ import annotations

from typing import Dict, Iterable, Sequence

import numpy as np


def _array(data: Iterable[float]) -> np.ndarray:
    arr = np.asarray(list(data), dtype=float)
    if arr.size == 0:
        raise ValueError("statistics of an empty sample are undefined")
    return arr


def mean(data: Sequence[float]) -> float:
    return float(_array(data).mean())


def percentile(data: Sequence[float], q: float) -> float:
    """Linear interpolation between order statistics at rank ``q/100 * (n-1)``."""
    return float(np.percentile(_array(data), q, method="linear"))


def median(data: Sequence[float]) -> float:
    return percentile(data, 50)


def std(data: Sequence[float]) -> float:
    """Population standard deviation."""
    return float(_array(data).std(ddof=0))


def describe(
    data: Sequence[float], percentiles: Sequence[int] = (5, 25, 50, 75, 95)
) -> Dict[str, float]:
    arr = _array(data)
    out: Dict[str, float] = {
        "mean": float(arr.mean()),
        "median": percentile(arr, 50),
        "std": float(arr.std(ddof=0)),
        "min": float(arr.min()),
        "max": float(arr.max()),
    }
    for q in percentiles:
        out[f"p{q}"] = percentile(arr, q)
    return out


__all__ = ["mean", "median", "percentile", "std", "describe"]
