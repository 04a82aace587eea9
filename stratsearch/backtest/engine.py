from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
from loguru import logger

from stratsearch.backtest.metrics import INITIAL_BALANCE, PerformanceMetrics, compute_metrics
from stratsearch.backtest.model import ExitReason, Position, Trade
from stratsearch.core.models import Direction, PriceSeries
from stratsearch.features.indicators import atr_sma
from stratsearch.strats.genome import StrategyGenome
from stratsearch.strats.rules import RuleEvaluator

# Extra bars skipped after the ATR window before the first signal is read.
WARMUP_BARS = 10


@dataclass
class BacktestResult:
    """
    Output of one simulation.

    Attributes:
        trades (List[Trade]): Closed trades in close order.
        equity (List[float]): Initial balance followed by one value per closed trade.
        metrics (PerformanceMetrics): Aggregates derived from trades and equity.
        atr (np.ndarray): ATR series used for bracket sizing.
    """

    trades: List[Trade]
    equity: List[float]
    metrics: PerformanceMetrics
    atr: np.ndarray = field(repr=False, default_factory=lambda: np.zeros(0))

    @property
    def profits(self) -> List[float]:
        return [t.profit for t in self.trades]

    def to_dict(self) -> Dict[str, Any]:
        out = self.metrics.to_dict()
        out["equity"] = list(self.equity)
        out["trades"] = [t.as_dict() for t in self.trades]
        return out


class Backtester:
    """
    Single-position long/short simulator for one genome over one series.

    States are FLAT, IN_LONG and IN_SHORT (``position`` is ``None`` or carries the
    direction). Entries fill at the bar close with ATR-sized brackets; exits fill
    at the touched threshold, take-profit checked before stop-loss.
    """

    def __init__(
        self,
        series: PriceSeries,
        genome: StrategyGenome,
        *,
        initial_balance: float = INITIAL_BALANCE,
    ):
        self.series = series
        self.genome = genome
        self.initial_balance = float(initial_balance)
        self.evaluator = RuleEvaluator(series)
        self._n = len(series)
        self._high = series.high.tolist()
        self._low = series.low.tolist()
        self._close = series.close.tolist()
        self._ts = series.timestamps

    @property
    def start_index(self) -> int:
        return int(self.genome.atr_period) + WARMUP_BARS

    # -------- Signals --------
    def signal(self, direction: Direction, index: int) -> bool:
        return self.evaluator.signal(self.genome.rules, index, direction)

    def long_signal(self, index: int) -> bool:
        return self.signal(Direction.LONG, index)

    def short_signal(self, index: int) -> bool:
        return self.signal(Direction.SHORT, index)

    # -------- Position handling --------
    def open_position(self, direction: Direction, index: int, atr: float) -> Position:
        entry = self._close[index]
        stop_dist = atr * self.genome.stop_loss_multiplier
        take_dist = atr * self.genome.take_profit_multiplier
        if direction is Direction.LONG:
            stop, take = entry - stop_dist, entry + take_dist
        else:
            stop, take = entry + stop_dist, entry - take_dist
        return Position(
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=take,
            open_index=index,
            open_timestamp=self._ts[index],
        )

    def check_exit(self, position: Position, index: int) -> Optional[Trade]:
        """Bracket exit for ``position`` on bar ``index``; take-profit wins ties."""
        high = self._high[index]
        low = self._low[index]
        ts = self._ts[index]
        if position.direction is Direction.LONG:
            if high >= position.take_profit:
                return Trade.close(position, position.take_profit, ExitReason.TAKE_PROFIT, ts)
            if low <= position.stop_loss:
                return Trade.close(position, position.stop_loss, ExitReason.STOP_LOSS, ts)
        else:
            if low <= position.take_profit:
                return Trade.close(position, position.take_profit, ExitReason.TAKE_PROFIT, ts)
            if high >= position.stop_loss:
                return Trade.close(position, position.stop_loss, ExitReason.STOP_LOSS, ts)
        return None

    # -------- Simulation --------
    def run(self) -> BacktestResult:
        genome = self.genome
        atr = atr_sma(self.series.high, self.series.low, self.series.close, genome.atr_period)
        start = self.start_index
        if self._n <= start:
            logger.debug(
                "[backtest] series too short for warm-up (n={} start={})", self._n, start
            )

        balance = self.initial_balance
        position: Optional[Position] = None
        trades: List[Trade] = []
        equity: List[float] = [balance]

        def _book(trade: Trade) -> None:
            nonlocal balance
            balance += trade.profit
            trades.append(trade)
            equity.append(balance)

        for i in range(start, self._n):
            if position is not None and genome.close_on_opposite:
                reverse = position.direction.opposite
                if self.signal(reverse, i):
                    _book(
                        Trade.close(
                            position, self._close[i], ExitReason.OPPOSITE_SIGNAL, self._ts[i]
                        )
                    )
                    position = self.open_position(reverse, i, float(atr[i]))
                    continue

            if position is not None:
                exit_trade = self.check_exit(position, i)
                if exit_trade is not None:
                    _book(exit_trade)
                    position = None

            if position is None:
                if self.long_signal(i):
                    position = self.open_position(Direction.LONG, i, float(atr[i]))
                elif self.short_signal(i):
                    position = self.open_position(Direction.SHORT, i, float(atr[i]))

        if position is not None:
            last = self._n - 1
            _book(
                Trade.close(
                    position, self._close[last], ExitReason.END_OF_DATA, self._ts[last]
                )
            )

        metrics = compute_metrics(trades, equity, initial_balance=self.initial_balance)
        return BacktestResult(trades=trades, equity=equity, metrics=metrics, atr=atr)


def run_backtest(
    series: PriceSeries,
    genome: StrategyGenome,
    *,
    initial_balance: float = INITIAL_BALANCE,
) -> BacktestResult:
    """Convenience wrapper: simulate ``genome`` over ``series``."""
    return Backtester(series, genome, initial_balance=initial_balance).run()


__all__ = ["WARMUP_BARS", "BacktestResult", "Backtester", "run_backtest"]
