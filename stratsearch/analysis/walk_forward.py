from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

from loguru import logger

from stratsearch.backtest.engine import BacktestResult, run_backtest
from stratsearch.backtest.metrics import PerformanceMetrics
from stratsearch.core.exceptions import AnalysisError
from stratsearch.core.models import PriceSeries
from stratsearch.strats.genome import StrategyGenome

DEFAULT_TRAINING_RATIO = 0.7
PASS_SCORE = 60

PF_WEIGHT = 0.4
WR_WEIGHT = 0.3
DD_WEIGHT = 0.3


def percent_degradation(train_value: float, test_value: float) -> float:
    """``(train - test) / train * 100``; 0 when the training value is 0."""
    if train_value == 0:
        return 0.0
    return (train_value - test_value) / train_value * 100.0


def degradation_level(value: float, inverse: bool = False) -> str:
    """
    Severity label for one degradation figure.

    ``inverse`` is for drawdown increase, where any improvement is good.
    """
    magnitude = abs(value)
    if inverse:
        if value < 0 or magnitude < 5:
            return "good"
        if magnitude < 10:
            return "warning"
        return "bad"
    if magnitude < 10:
        return "good"
    if magnitude < 20:
        return "warning"
    return "bad"


@dataclass(frozen=True)
class Degradation:
    profit_factor: float
    win_rate: float
    max_drawdown: float
    net_profit: float
    total_trades: int
    avg_win: float
    avg_loss: float

    @classmethod
    def between(
        cls, train: PerformanceMetrics, test: PerformanceMetrics
    ) -> "Degradation":
        return cls(
            profit_factor=percent_degradation(train.profit_factor, test.profit_factor),
            win_rate=train.win_rate - test.win_rate,
            max_drawdown=test.max_drawdown - train.max_drawdown,
            net_profit=percent_degradation(train.net_profit, test.net_profit),
            total_trades=test.total_trades,
            avg_win=percent_degradation(train.avg_win, test.avg_win),
            avg_loss=percent_degradation(train.avg_loss, test.avg_loss),
        )

    def levels(self) -> Dict[str, str]:
        return {
            "profit_factor": degradation_level(self.profit_factor),
            "win_rate": degradation_level(self.win_rate),
            "max_drawdown": degradation_level(self.max_drawdown, inverse=True),
            "net_profit": degradation_level(self.net_profit),
        }


# -------- Score bands --------
def profit_factor_band(pf_degradation: float) -> int:
    d = abs(pf_degradation)
    if d > 50:
        return 0
    if d > 30:
        return 30
    if d > 15:
        return 60
    return 100


def win_rate_band(wr_difference: float) -> int:
    d = abs(wr_difference)
    if d > 20:
        return 0
    if d > 10:
        return 40
    if d > 5:
        return 70
    return 100


def drawdown_band(dd_increase: float) -> int:
    if dd_increase > 15:
        return 0
    if dd_increase > 10:
        return 40
    if dd_increase > 5:
        return 70
    if dd_increase < -5:
        return 85
    return 100


def trade_penalty(test_trades: int) -> int:
    if test_trades < 20:
        return 20
    if test_trades < 30:
        return 10
    return 0


def robustness_score(
    degradation: Degradation, train: PerformanceMetrics, test: PerformanceMetrics
) -> int:
    """Weighted band score minus the trade penalty plus the outperformance bonus, in [0, 100]."""
    score = (
        profit_factor_band(degradation.profit_factor) * PF_WEIGHT
        + win_rate_band(degradation.win_rate) * WR_WEIGHT
        + drawdown_band(degradation.max_drawdown) * DD_WEIGHT
    )
    score -= trade_penalty(test.total_trades)
    if test.profit_factor > train.profit_factor and test.win_rate > train.win_rate:
        score += 10
    # round half up
    return int(max(0, min(100, math.floor(score + 0.5))))


@dataclass
class WalkForwardResult:
    training: BacktestResult
    testing: BacktestResult
    degradation: Degradation
    robustness: int
    passed: bool
    training_bars: int
    testing_bars: int
    training_ratio: float

    @property
    def verdict(self) -> str:
        if self.passed:
            if self.robustness >= 80:
                return "excellent"
            if self.robustness >= 70:
                return "good"
            return "acceptable"
        if self.robustness < 40:
            return "high_overfitting_risk"
        return "caution"

    def summary(self) -> str:
        return {
            "excellent": "Excellent! Strategy shows strong robustness with minimal overfitting.",
            "good": "Good! Strategy performs well on out-of-sample data.",
            "acceptable": "Acceptable. Strategy shows reasonable robustness but monitor performance.",
            "high_overfitting_risk": (
                "Warning! High overfitting risk. Strategy may not perform well in live trading."
            ),
            "caution": (
                "Caution. Strategy shows some overfitting. Consider re-optimization or more data."
            ),
        }[self.verdict]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "training": self.training.metrics.to_dict(),
            "testing": self.testing.metrics.to_dict(),
            "degradation": asdict(self.degradation),
            "levels": self.degradation.levels(),
            "robustness": self.robustness,
            "passed": self.passed,
            "verdict": self.verdict,
            "split": {
                "training_bars": self.training_bars,
                "testing_bars": self.testing_bars,
                "training_ratio": self.training_ratio,
            },
        }


class WalkForwardValidator:
    """Chronological train/test split with an independent backtest per half."""

    def __init__(self, series: PriceSeries, training_ratio: float = DEFAULT_TRAINING_RATIO):
        if not 0.0 < float(training_ratio) < 1.0:
            raise AnalysisError(f"training_ratio must be in (0, 1), got {training_ratio}")
        self.series = series
        self.training_ratio = float(training_ratio)
        self.split_index = int(math.floor(len(series) * self.training_ratio))

    def split(self) -> Tuple[PriceSeries, PriceSeries]:
        return (
            self.series.slice(0, self.split_index),
            self.series.slice(self.split_index, None),
        )

    def analyze(self, genome: StrategyGenome) -> WalkForwardResult:
        training, testing = self.split()
        train_run = run_backtest(training, genome)
        test_run = run_backtest(testing, genome)
        degradation = Degradation.between(train_run.metrics, test_run.metrics)
        score = robustness_score(degradation, train_run.metrics, test_run.metrics)
        result = WalkForwardResult(
            training=train_run,
            testing=test_run,
            degradation=degradation,
            robustness=score,
            passed=score >= PASS_SCORE,
            training_bars=len(training),
            testing_bars=len(testing),
            training_ratio=self.training_ratio,
        )
        logger.info(
            "[walk_forward] id={} train_bars={} test_bars={} pf_deg={:.1f}% wr_diff={:.1f} dd_inc={:.1f} score={} passed={}",
            genome.id,
            result.training_bars,
            result.testing_bars,
            degradation.profit_factor,
            degradation.win_rate,
            degradation.max_drawdown,
            score,
            result.passed,
        )
        return result


__all__ = [
    "DEFAULT_TRAINING_RATIO",
    "PASS_SCORE",
    "Degradation",
    "WalkForwardResult",
    "WalkForwardValidator",
    "degradation_level",
    "drawdown_band",
    "percent_degradation",
    "profit_factor_band",
    "robustness_score",
    "trade_penalty",
    "win_rate_band",
]
