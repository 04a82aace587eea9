from __future__ import annotations

import os
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from stratsearch.core.models import PriceSeries
from stratsearch.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging(Path("stratsearch-logs/"))
    yield


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(seed=1234)


def make_ohlc(n: int = 400, seed: int = 42) -> pd.DataFrame:
    """
    Deterministic hourly OHLC frame with three regimes:
    - slow drift up
    - stronger trend
    - choppy fade
    """
    gen = np.random.default_rng(seed=seed)
    idx = pd.date_range("2024-01-01", periods=n, freq="h", tz="UTC")
    thirds = n // 3
    drift = np.r_[
        np.full(thirds, 0.0002),
        np.full(thirds, 0.0012),
        np.full(n - 2 * thirds, -0.0004),
    ]
    close = 100.0 * np.cumprod(1 + drift + gen.normal(0.0, 0.004, n))
    open_ = pd.Series(close).shift(1).fillna(close[0]).to_numpy()
    high = np.maximum(open_, close) * (1 + np.abs(gen.normal(0.0, 0.002, n)))
    low = np.minimum(open_, close) * (1 - np.abs(gen.normal(0.0, 0.002, n)))
    return pd.DataFrame(
        {"open": open_, "high": high, "low": low, "close": close}, index=idx
    )


@pytest.fixture(scope="module")
def toy_ohlc() -> pd.DataFrame:
    return make_ohlc()


@pytest.fixture(scope="module")
def toy_series(toy_ohlc) -> PriceSeries:
    return PriceSeries.from_frame(toy_ohlc)


def _flat_series(n: int = 80, price: float = 100.0) -> PriceSeries:
    idx = pd.date_range("2024-01-01", periods=n, freq="h", tz="UTC")
    return PriceSeries.from_records(
        {"timestamp": ts, "open": price, "high": price, "low": price, "close": price}
        for ts in idx
    )


@pytest.fixture
def make_flat_series():
    """Factory for constant-price series (zero true range)."""
    return _flat_series
