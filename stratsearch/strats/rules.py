"""
Comparison rules over shifted OHLC values and their evaluator.

Two rule shapes exist, tagged by ``kind``:

* ``simple``:      ``CLOSE[1] > OPEN[2]``
* ``arithmetic``:  ``(HIGH[1] + LOW[1]) > (CLOSE[2] * 1.01)``

A rule is written from the long side. Evaluating it for the short side mirrors
the comparison operator (``>`` becomes ``<=``, ``<`` becomes ``>=``) instead of
negating the whole rule.
"""

from __future__ import annotations

import json
import operator as op
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Sequence, Tuple, Union

import numpy as np

from stratsearch.core.models import PRICE_FIELDS, Direction, PriceSeries

COMPARISON_OPERATORS: Tuple[str, ...] = (">", "<", ">=", "<=")
COMBINE_OPERATORS: Tuple[str, ...] = ("+", "-", "*")
MULTIPLIERS: Tuple[float, ...] = (0.99, 1.01, 1.02, 0.98)
SIMPLE_RULE_PROBABILITY = 0.7

_COMPARE: Dict[str, Callable[[float, float], bool]] = {
    ">": op.gt,
    "<": op.lt,
    ">=": op.ge,
    "<=": op.le,
}
_MIRROR: Dict[str, str] = {">": "<=", "<": ">=", ">=": "<", "<=": ">"}
_COMBINE: Dict[str, Callable[[float, float], float]] = {
    "+": op.add,
    "-": op.sub,
    "*": op.mul,
}


def mirror_operator(symbol: str) -> str:
    """Short-side counterpart of a comparison operator."""
    return _MIRROR[symbol]


# -------- Rule AST --------
@dataclass(frozen=True, slots=True)
class RuleAtom:
    """A price field read ``shift`` bars before the evaluation index."""

    field: str
    shift: int

    def __post_init__(self) -> None:
        if self.field not in PRICE_FIELDS:
            raise ValueError(f"unknown price field: {self.field!r}")
        if int(self.shift) < 0:
            raise ValueError(f"lookback shift must be >= 0, got {self.shift}")

    @property
    def text(self) -> str:
        return f"{self.field.upper()}[{self.shift}]"


@dataclass(frozen=True, slots=True)
class SimpleRule:
    left: RuleAtom
    operator: str
    right: RuleAtom

    kind: ClassVar[str] = "simple"

    def __post_init__(self) -> None:
        _check_comparison(self.operator)

    @property
    def text(self) -> str:
        return f"{self.left.text} {self.operator} {self.right.text}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "left": {"price": self.left.field, "shift": self.left.shift},
            "operator": self.operator,
            "right": {"price": self.right.field, "shift": self.right.shift},
        }


@dataclass(frozen=True, slots=True)
class ArithmeticRule:
    left_a: RuleAtom
    combine: str
    left_b: RuleAtom
    operator: str
    right: RuleAtom
    multiplier: float

    kind: ClassVar[str] = "arithmetic"

    def __post_init__(self) -> None:
        _check_comparison(self.operator)
        if self.combine not in _COMBINE:
            raise ValueError(f"unknown combine operator: {self.combine!r}")

    @property
    def text(self) -> str:
        return (
            f"({self.left_a.text} {self.combine} {self.left_b.text}) "
            f"{self.operator} ({self.right.text} * {self.multiplier})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "left": {
                "price1": self.left_a.field,
                "shift1": self.left_a.shift,
                "op": self.combine,
                "price2": self.left_b.field,
                "shift2": self.left_b.shift,
            },
            "operator": self.operator,
            "right": {
                "price": self.right.field,
                "shift": self.right.shift,
                "multiplier": self.multiplier,
            },
        }


Rule = Union[SimpleRule, ArithmeticRule]


def _check_comparison(symbol: str) -> None:
    if symbol not in _COMPARE:
        raise ValueError(f"unknown comparison operator: {symbol!r}")


# -------- Serialization --------
def _simple_from_dict(payload: Mapping[str, Any]) -> SimpleRule:
    left, right = payload["left"], payload["right"]
    return SimpleRule(
        left=RuleAtom(str(left["price"]), int(left["shift"])),
        operator=str(payload["operator"]),
        right=RuleAtom(str(right["price"]), int(right["shift"])),
    )


def _arithmetic_from_dict(payload: Mapping[str, Any]) -> ArithmeticRule:
    left, right = payload["left"], payload["right"]
    return ArithmeticRule(
        left_a=RuleAtom(str(left["price1"]), int(left["shift1"])),
        combine=str(left["op"]),
        left_b=RuleAtom(str(left["price2"]), int(left["shift2"])),
        operator=str(payload["operator"]),
        right=RuleAtom(str(right["price"]), int(right["shift"])),
        multiplier=float(right["multiplier"]),
    )


_PARSERS: Dict[str, Callable[[Mapping[str, Any]], Rule]] = {
    SimpleRule.kind: _simple_from_dict,
    ArithmeticRule.kind: _arithmetic_from_dict,
}


def rule_from_dict(payload: Mapping[str, Any]) -> Rule:
    """Parse one rule from the exchange format; unknown shapes raise ``ValueError``."""
    kind = payload.get("type")
    parser = _PARSERS.get(kind)  # type: ignore[arg-type]
    if parser is None:
        raise ValueError(f"unknown rule type: {kind!r}")
    return parser(payload)


def rules_key(rules: Sequence[Rule]) -> str:
    """Canonical serialized form of a rule list, used for duplicate detection."""
    return json.dumps([r.to_dict() for r in rules], sort_keys=True)


def rules_text(rules: Sequence[Rule]) -> str:
    """Numbered, human-readable rule listing (one rule per line)."""
    return "\n".join(f"{i}. {r.text}" for i, r in enumerate(rules, start=1))


# -------- Evaluation --------
class RuleEvaluator:
    """
    Evaluates rules against one ``PriceSeries``.

    Columns are cached as plain lists; reads outside the series return 0.0.
    """

    def __init__(self, series: PriceSeries):
        self._n = len(series)
        self._cols: Dict[str, List[float]] = {
            f: series.column(f).tolist() for f in PRICE_FIELDS
        }
        self._operands = {
            SimpleRule.kind: self._simple_operands,
            ArithmeticRule.kind: self._arithmetic_operands,
        }

    def value(self, atom: RuleAtom, index: int) -> float:
        i = index - atom.shift
        if i < 0 or i >= self._n:
            return 0.0
        return self._cols[atom.field][i]

    def _simple_operands(self, rule: SimpleRule, index: int) -> Tuple[float, float]:
        return self.value(rule.left, index), self.value(rule.right, index)

    def _arithmetic_operands(
        self, rule: ArithmeticRule, index: int
    ) -> Tuple[float, float]:
        lhs = _COMBINE[rule.combine](
            self.value(rule.left_a, index), self.value(rule.left_b, index)
        )
        return lhs, self.value(rule.right, index) * rule.multiplier

    def evaluate(
        self, rule: Rule, index: int, direction: Direction = Direction.LONG
    ) -> bool:
        lhs, rhs = self._operands[rule.kind](rule, index)
        symbol = rule.operator if direction is Direction.LONG else _MIRROR[rule.operator]
        return _COMPARE[symbol](lhs, rhs)

    def signal(self, rules: Sequence[Rule], index: int, direction: Direction) -> bool:
        """True when every rule holds for ``direction`` at ``index``."""
        for rule in rules:
            if not self.evaluate(rule, index, direction):
                return False
        return True


# -------- Random generation --------
def _pick(rng: np.random.Generator, options: Sequence[Any]) -> Any:
    return options[int(rng.integers(len(options)))]


def _shift(rng: np.random.Generator, shift_range: Tuple[int, int]) -> int:
    lo, hi = int(shift_range[0]), int(shift_range[1])
    return int(rng.integers(lo, hi + 1))


def random_atom(rng: np.random.Generator, shift_range: Tuple[int, int]) -> RuleAtom:
    return RuleAtom(_pick(rng, PRICE_FIELDS), _shift(rng, shift_range))


def random_rule(rng: np.random.Generator, shift_range: Tuple[int, int]) -> Rule:
    """Draw one rule: 70% simple, 30% arithmetic."""
    if rng.random() < SIMPLE_RULE_PROBABILITY:
        return SimpleRule(
            left=random_atom(rng, shift_range),
            operator=_pick(rng, COMPARISON_OPERATORS),
            right=random_atom(rng, shift_range),
        )
    return ArithmeticRule(
        left_a=random_atom(rng, shift_range),
        combine=_pick(rng, COMBINE_OPERATORS),
        left_b=random_atom(rng, shift_range),
        operator=_pick(rng, COMPARISON_OPERATORS),
        right=random_atom(rng, shift_range),
        multiplier=_pick(rng, MULTIPLIERS),
    )


__all__ = [
    "COMPARISON_OPERATORS",
    "COMBINE_OPERATORS",
    "MULTIPLIERS",
    "RuleAtom",
    "SimpleRule",
    "ArithmeticRule",
    "Rule",
    "RuleEvaluator",
    "mirror_operator",
    "rule_from_dict",
    "rules_key",
    "rules_text",
    "random_atom",
    "random_rule",
]
