from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from stratsearch.strats.params import GenomeBounds
from stratsearch.strats.rules import Rule, random_rule, rule_from_dict, rules_key, rules_text

if TYPE_CHECKING:  # pragma: no cover
    from stratsearch.backtest.metrics import PerformanceMetrics
    from stratsearch.backtest.model import Trade


def new_genome_id(rng: np.random.Generator) -> str:
    return f"strategy_{int(rng.integers(0, 2**62)):x}"


@dataclass(frozen=True, eq=False)
class StrategyGenome:
    """
    A candidate strategy: an AND-combined rule list plus ATR risk parameters.

    Genomes are immutable. Variation operators and evaluation return new
    instances, so population slots never share mutable state.

    Attributes:
        rules (Tuple[Rule, ...]): Entry rules, all of which must hold.
        atr_period (int): ATR lookback used for bracket sizing.
        stop_loss_multiplier (float): Stop distance in ATRs.
        take_profit_multiplier (float): Target distance in ATRs.
        close_on_opposite (bool): Reverse the position on an opposite signal.
        fitness (float): Cached fitness from the last evaluation.
        metrics (PerformanceMetrics | None): Cached backtest metrics.
        trades (Tuple[Trade, ...]): Cached closed trades from the last backtest.
        id (str): Identifier carried into exports.
    """

    rules: Tuple[Rule, ...]
    atr_period: int = 20
    stop_loss_multiplier: float = 2.0
    take_profit_multiplier: float = 3.0
    close_on_opposite: bool = False
    fitness: float = 0.0
    metrics: Optional["PerformanceMetrics"] = None
    trades: Tuple["Trade", ...] = field(default_factory=tuple)
    id: str = "strategy_0"

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    # -------- Operators --------
    def clone(self) -> "StrategyGenome":
        """Independent copy carrying the same identity and cached evaluation."""
        return replace(self)

    def with_rules(self, rules: Sequence[Rule]) -> "StrategyGenome":
        return replace(self, rules=tuple(rules), fitness=0.0, metrics=None, trades=())

    def with_parameters(self, **params: Any) -> "StrategyGenome":
        """Copy with new risk parameters; any cached evaluation is dropped."""
        return replace(self, fitness=0.0, metrics=None, trades=(), **params)

    def with_evaluation(
        self,
        metrics: "PerformanceMetrics",
        fitness: float,
        trades: Sequence["Trade"] = (),
    ) -> "StrategyGenome":
        return replace(self, metrics=metrics, fitness=float(fitness), trades=tuple(trades))

    # -------- Views --------
    @property
    def key(self) -> str:
        """Duplicate-detection key: the serialized rule list only."""
        return rules_key(self.rules)

    @property
    def rules_text(self) -> str:
        return rules_text(self.rules)

    def to_dict(self) -> Dict[str, Any]:
        """Genome exchange record consumed by code emitters and persistence."""
        return {
            "id": self.id,
            "rules": [r.to_dict() for r in self.rules],
            "parameters": {
                "atr_period": self.atr_period,
                "sl_multiplier": self.stop_loss_multiplier,
                "tp_multiplier": self.take_profit_multiplier,
                "close_at_opposite": self.close_on_opposite,
            },
            "performance": self.metrics.to_dict() if self.metrics is not None else {},
            "fitness": self.fitness,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StrategyGenome":
        from stratsearch.backtest.metrics import PerformanceMetrics

        params = payload.get("parameters") or {}
        performance = payload.get("performance") or {}
        return cls(
            rules=tuple(rule_from_dict(r) for r in payload.get("rules") or ()),
            atr_period=int(params.get("atr_period", 20)),
            stop_loss_multiplier=float(params.get("sl_multiplier", 2.0)),
            take_profit_multiplier=float(params.get("tp_multiplier", 3.0)),
            close_on_opposite=bool(params.get("close_at_opposite", False)),
            fitness=float(payload.get("fitness") or 0.0),
            metrics=PerformanceMetrics.from_dict(performance) if performance else None,
            id=str(payload.get("id") or "strategy_0"),
        )


# -------- Random construction --------
def random_parameters(
    rng: np.random.Generator, bounds: GenomeBounds
) -> Dict[str, Any]:
    """ATR period uniform in its range; take = stop + offset."""
    lo, hi = bounds.atr_period_range
    stop = bounds.stop_range[0] + rng.random() * (
        bounds.stop_range[1] - bounds.stop_range[0]
    )
    take = stop + bounds.take_offset_range[0] + rng.random() * (
        bounds.take_offset_range[1] - bounds.take_offset_range[0]
    )
    return {
        "atr_period": int(rng.integers(int(lo), int(hi) + 1)),
        "stop_loss_multiplier": float(stop),
        "take_profit_multiplier": float(take),
    }


def random_genome(
    rng: np.random.Generator,
    bounds: GenomeBounds,
    *,
    close_on_opposite: bool = False,
) -> StrategyGenome:
    count = int(rng.integers(bounds.min_rules, bounds.max_rules + 1))
    rules = tuple(random_rule(rng, bounds.shift_range) for _ in range(count))
    return StrategyGenome(
        rules=rules,
        close_on_opposite=close_on_opposite,
        id=new_genome_id(rng),
        **random_parameters(rng, bounds),
    )


__all__ = [
    "StrategyGenome",
    "new_genome_id",
    "random_parameters",
    "random_genome",
]
