# stratsearch/backtest/metrics.py
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
from loguru import logger

from stratsearch.backtest.model import Trade
from stratsearch.core.models import Direction
from stratsearch.core.timeutils import hour_of_day

INITIAL_BALANCE = 10_000.0
PROFIT_FACTOR_CAP = 10.0
HOURS_PER_DAY = 24


# -------- Data classes --------
@dataclass
class HourlyBucket:
    trades: int = 0
    wins: int = 0
    losses: int = 0
    profit: float = 0.0


@dataclass(frozen=True)
class HourStat:
    hour: int
    profit: float


@dataclass
class PerformanceMetrics:
    total_trades: int = 0
    buy_trades: int = 0
    sell_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    max_drawdown: float = 0.0
    initial_balance: float = INITIAL_BALANCE
    final_balance: float = INITIAL_BALANCE
    total_profit: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    hourly: List[HourlyBucket] = field(
        default_factory=lambda: [HourlyBucket() for _ in range(HOURS_PER_DAY)]
    )
    best_hour: Optional[HourStat] = None
    worst_hour: Optional[HourStat] = None

    @property
    def net_profit(self) -> float:
        return self.total_profit

    @property
    def buy_ratio(self) -> float:
        """Share of long trades in percent (0 without trades)."""
        if not self.total_trades:
            return 0.0
        return self.buy_trades / self.total_trades * 100.0

    @property
    def sell_ratio(self) -> float:
        if not self.total_trades:
            return 0.0
        return self.sell_trades / self.total_trades * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PerformanceMetrics":
        data = {k: v for k, v in payload.items() if k in cls.__dataclass_fields__}
        if "hourly" in data:
            data["hourly"] = [HourlyBucket(**b) for b in data["hourly"] or []]
        for key in ("best_hour", "worst_hour"):
            if data.get(key) is not None:
                data[key] = HourStat(**data[key])
        return cls(**data)


# -------- Internals --------
def _as_array(equity: Sequence[float]) -> np.ndarray:
    return np.asarray(equity, dtype=float)


def running_peak(equity: Sequence[float]) -> np.ndarray:
    """Non-decreasing running maximum of an equity curve."""
    arr = _as_array(equity)
    if arr.size == 0:
        return arr
    return np.maximum.accumulate(arr)


def drawdown_series(equity: Sequence[float]) -> np.ndarray:
    """Percent decline from the running peak at each point of the curve."""
    arr = _as_array(equity)
    if arr.size == 0:
        return arr
    peak = running_peak(arr)
    safe_peak = np.where(peak > 0, peak, 1.0)
    return np.where(peak > 0, (peak - arr) / safe_peak * 100.0, 0.0)


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest ``(peak - value) / peak * 100`` over the curve; never negative."""
    dd = drawdown_series(equity)
    if dd.size == 0:
        return 0.0
    return max(0.0, float(dd.max()))


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit over gross loss, 10 when there are no losses, 0 when flat."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    return PROFIT_FACTOR_CAP if gross_profit > 0 else 0.0


def hourly_breakdown(trades: Sequence[Trade]) -> List[HourlyBucket]:
    """Per hour-of-day buckets keyed by each trade's open timestamp."""
    buckets = [HourlyBucket() for _ in range(HOURS_PER_DAY)]
    for trade in trades:
        hour = hour_of_day(trade.open_timestamp)
        if hour is None:
            continue
        bucket = buckets[hour]
        bucket.trades += 1
        if trade.is_win:
            bucket.wins += 1
        else:
            bucket.losses += 1
        bucket.profit += trade.profit
    return buckets


def best_and_worst_hour(
    buckets: Sequence[HourlyBucket],
) -> tuple[Optional[HourStat], Optional[HourStat]]:
    best: Optional[HourStat] = None
    worst: Optional[HourStat] = None
    for hour, bucket in enumerate(buckets):
        if bucket.trades == 0:
            continue
        if best is None or bucket.profit > best.profit:
            best = HourStat(hour, bucket.profit)
        if worst is None or bucket.profit < worst.profit:
            worst = HourStat(hour, bucket.profit)
    return best, worst


# -------- Public API --------
def compute_metrics(
    trades: Sequence[Trade],
    equity: Sequence[float],
    *,
    initial_balance: float = INITIAL_BALANCE,
) -> PerformanceMetrics:
    """
    Aggregate performance from a closed-trade list and its equity curve.

    A trade with profit <= 0 counts as a loss. Without trades every derived
    ratio is 0.
    """
    if not trades:
        final_balance = float(equity[-1]) if len(equity) else float(initial_balance)
        return PerformanceMetrics(
            initial_balance=float(initial_balance),
            final_balance=final_balance,
            total_profit=final_balance - float(initial_balance),
        )

    # exact sum: matches every reordering of the same trades
    final_balance = math.fsum([float(initial_balance), *(t.profit for t in trades)])
    winners = [t.profit for t in trades if t.profit > 0]
    losers = [t.profit for t in trades if t.profit <= 0]
    n = len(trades)

    gross_profit = float(sum(winners))
    gross_loss = abs(float(sum(losers)))
    buckets = hourly_breakdown(trades)
    best, worst = best_and_worst_hour(buckets)

    metrics = PerformanceMetrics(
        total_trades=n,
        buy_trades=sum(1 for t in trades if t.direction is Direction.LONG),
        sell_trades=sum(1 for t in trades if t.direction is Direction.SHORT),
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=len(winners) / n * 100.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        max_drawdown=max_drawdown(equity),
        initial_balance=float(initial_balance),
        final_balance=final_balance,
        total_profit=final_balance - float(initial_balance),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        avg_win=gross_profit / len(winners) if winners else 0.0,
        avg_loss=gross_loss / len(losers) if losers else 0.0,
        largest_win=float(max(winners)) if winners else 0.0,
        largest_loss=float(min(losers)) if losers else 0.0,
        hourly=buckets,
        best_hour=best,
        worst_hour=worst,
    )
    logger.debug(
        "[metrics] trades={} buy={} sell={} wr={:.2f} pf={:.3f} maxDD={:.2f} net={:.5f}",
        metrics.total_trades,
        metrics.buy_trades,
        metrics.sell_trades,
        metrics.win_rate,
        metrics.profit_factor,
        metrics.max_drawdown,
        metrics.total_profit,
    )
    return metrics


__all__ = [
    "INITIAL_BALANCE",
    "PROFIT_FACTOR_CAP",
    "HourlyBucket",
    "HourStat",
    "PerformanceMetrics",
    "running_peak",
    "drawdown_series",
    "max_drawdown",
    "profit_factor",
    "hourly_breakdown",
    "best_and_worst_hour",
    "compute_metrics",
]
