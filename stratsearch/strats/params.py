from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class GenomeBounds:
    """
    Sampling bounds for random genomes and their mutations.

    Attributes:
        rule_count_range (Tuple[int, int]): Inclusive min/max rules per genome.
        shift_range (Tuple[int, int]): Inclusive min/max lookback shift.
        atr_period_range (Tuple[int, int]): Inclusive min/max ATR period.
        stop_range (Tuple[float, float]): Half-open range for the stop multiplier.
        take_offset_range (Tuple[float, float]): Half-open range added to the stop
            multiplier to obtain the take-profit multiplier.
    """

    rule_count_range: Tuple[int, int] = (3, 8)
    shift_range: Tuple[int, int] = (1, 10)
    atr_period_range: Tuple[int, int] = (10, 40)
    stop_range: Tuple[float, float] = (1.0, 4.0)
    take_offset_range: Tuple[float, float] = (0.5, 5.5)

    @property
    def min_rules(self) -> int:
        return int(self.rule_count_range[0])

    @property
    def max_rules(self) -> int:
        return int(self.rule_count_range[1])


@dataclass(frozen=True)
class MutationWeights:
    """Cumulative probability bands for the five mutation kinds (sum to 1)."""

    replace_rule: float = 0.40
    add_rule: float = 0.15
    remove_rule: float = 0.15
    atr_period: float = 0.15
    stop_take: float = 0.15


__all__ = ["GenomeBounds", "MutationWeights"]
