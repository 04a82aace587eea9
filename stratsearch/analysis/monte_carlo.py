from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from stratsearch.analysis.stats import describe
from stratsearch.backtest.engine import BacktestResult
from stratsearch.backtest.metrics import INITIAL_BALANCE, max_drawdown
from stratsearch.backtest.model import Trade
from stratsearch.core.exceptions import AnalysisError
from stratsearch.strats.genome import StrategyGenome

DEFAULT_ITERATIONS = 1000
DEFAULT_RUIN_THRESHOLD = 0.2


def extract_profits(
    source: Union[StrategyGenome, BacktestResult, Sequence[Trade]],
) -> List[float]:
    """Profit list from an evaluated genome, a backtest result or raw trades."""
    if isinstance(source, StrategyGenome):
        if source.metrics is None:
            raise AnalysisError(
                f"genome {source.id} has no backtest results with trades"
            )
        if not source.trades and source.metrics.total_trades > 0:
            raise AnalysisError(
                f"genome {source.id} reports {source.metrics.total_trades} trades "
                "but carries no trade list; re-run the backtest first"
            )
        trades: Sequence[Trade] = source.trades
    elif isinstance(source, BacktestResult):
        trades = source.trades
    elif source is None:
        raise AnalysisError("no trade list available")
    else:
        trades = source
    return [float(t.profit) for t in trades]


@dataclass
class MonteCarloResult:
    """
    Distribution summary of reshuffled trade sequences.

    ``equity`` and ``drawdown`` hold mean/median/std/min/max and the
    5/25/50/75/95 percentiles of final equity and max drawdown (%).
    """

    iterations: int
    starting_balance: float
    ruin_threshold: float
    equity: Dict[str, float]
    drawdown: Dict[str, float]
    risk_of_ruin: float
    range90: Tuple[float, float]
    range50: Tuple[float, float]
    execution_time: float
    final_equities: List[float] = field(default_factory=list, repr=False)
    drawdowns: List[float] = field(default_factory=list, repr=False)

    @property
    def risk_of_ruin_pct(self) -> float:
        return self.risk_of_ruin * 100.0

    @property
    def expected_return_pct(self) -> float:
        return (self.equity["mean"] - self.starting_balance) / self.starting_balance * 100.0

    @property
    def verdict(self) -> str:
        ror = self.risk_of_ruin_pct
        if ror < 5:
            return "low"
        if ror < 15:
            return "moderate"
        return "high"

    def summary(self) -> str:
        lines = [
            f"Monte Carlo Analysis ({self.iterations} iterations):",
            "",
            f"Expected Return: {self.expected_return_pct:.2f}%",
            f"90% Confidence Range: ${self.range90[0]:.2f} - ${self.range90[1]:.2f}",
            f"Risk of Ruin ({self.ruin_threshold * 100:g}%): {self.risk_of_ruin_pct:.2f}%",
            "",
        ]
        verdict = {
            "low": "Low risk - strategy shows good robustness",
            "moderate": "Moderate risk - acceptable but monitor closely",
            "high": "High risk - consider reducing position size or avoiding",
        }[self.verdict]
        lines.append(verdict)
        return "\n".join(lines)

    def to_dict(self, *, include_distributions: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "iterations": self.iterations,
            "starting_balance": self.starting_balance,
            "ruin_threshold": self.ruin_threshold,
            "equity": dict(self.equity),
            "drawdown": dict(self.drawdown),
            "risk_of_ruin": self.risk_of_ruin,
            "risk_of_ruin_pct": self.risk_of_ruin_pct,
            "range90": list(self.range90),
            "range50": list(self.range50),
            "expected_return_pct": self.expected_return_pct,
            "verdict": self.verdict,
            "execution_time": self.execution_time,
        }
        if include_distributions:
            out["distribution"] = list(self.final_equities)
            out["drawdown_distribution"] = list(self.drawdowns)
        return out


class MonteCarloAnalyzer:
    """
    Order-randomization of a fixed trade set.

    Each iteration replays a uniform permutation of the profits from the same
    starting balance. The multiset of profits never changes, so final equity is
    the same on every path; only the path's minimum and drawdown vary.
    """

    def __init__(
        self,
        iterations: int = DEFAULT_ITERATIONS,
        ruin_threshold: float = DEFAULT_RUIN_THRESHOLD,
        *,
        starting_balance: float = INITIAL_BALANCE,
        rng: np.random.Generator | None = None,
    ):
        if int(iterations) < 1:
            raise AnalysisError(f"iterations must be >= 1, got {iterations}")
        self.iterations = int(iterations)
        self.ruin_threshold = float(ruin_threshold)
        self.starting_balance = float(starting_balance)
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def ruin_level(self) -> float:
        return self.starting_balance * (1.0 - self.ruin_threshold)

    def shuffle(self, profits: Sequence[float]) -> np.ndarray:
        """Uniform random permutation of ``profits`` (a new array)."""
        return self.rng.permutation(np.asarray(profits, dtype=float))

    def equity_curve(self, profits: Sequence[float]) -> np.ndarray:
        curve = np.empty(len(profits) + 1, dtype=float)
        curve[0] = self.starting_balance
        if len(profits):
            curve[1:] = self.starting_balance + np.cumsum(profits)
        return curve

    def run(self, profits: Sequence[float]) -> MonteCarloResult:
        base = np.asarray(profits, dtype=float)

        started = time.perf_counter()
        finals: List[float] = []
        drawdowns: List[float] = []
        ruined = 0
        for _ in range(self.iterations):
            shuffled = self.shuffle(base)
            curve = self.equity_curve(shuffled)
            # exact sum: identical on every permutation
            finals.append(math.fsum([self.starting_balance, *shuffled.tolist()]))
            drawdowns.append(max_drawdown(curve))
            if float(curve.min()) <= self.ruin_level:
                ruined += 1
        elapsed = time.perf_counter() - started

        equity_stats = describe(finals)
        result = MonteCarloResult(
            iterations=self.iterations,
            starting_balance=self.starting_balance,
            ruin_threshold=self.ruin_threshold,
            equity=equity_stats,
            drawdown=describe(drawdowns),
            risk_of_ruin=ruined / self.iterations,
            range90=(equity_stats["p5"], equity_stats["p95"]),
            range50=(equity_stats["p25"], equity_stats["p75"]),
            execution_time=elapsed,
            final_equities=finals,
            drawdowns=drawdowns,
        )
        logger.info(
            "[monte_carlo] iterations={} trades={} ror={:.2f}% dd_p95={:.2f} in {:.0f}ms",
            self.iterations,
            len(base),
            result.risk_of_ruin_pct,
            result.drawdown["p95"],
            elapsed * 1000.0,
        )
        return result

    def analyze(
        self, source: Union[StrategyGenome, BacktestResult, Sequence[Trade]]
    ) -> MonteCarloResult:
        return self.run(extract_profits(source))


__all__ = [
    "DEFAULT_ITERATIONS",
    "DEFAULT_RUIN_THRESHOLD",
    "MonteCarloAnalyzer",
    "MonteCarloResult",
    "extract_profits",
]
