"""
Variation operators for strategy genomes.

Every operator returns a fresh genome; parents are never modified, so a
tournament winner can safely be reused as several parents.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from stratsearch.strats.genome import (
    StrategyGenome,
    new_genome_id,
    random_parameters,
)
from stratsearch.strats.params import GenomeBounds, MutationWeights
from stratsearch.strats.rules import Rule, random_rule

TOURNAMENT_SIZE = 3
MUTATION_RATE = 0.2
PARENT_INHERIT_PROBABILITY = 0.5


def tournament_select(
    population: Sequence[StrategyGenome],
    rng: np.random.Generator,
    size: int = TOURNAMENT_SIZE,
) -> StrategyGenome:
    """Uniform draws with replacement; the strictly fitter draw wins. Returns a clone."""
    if not population:
        raise ValueError("tournament over an empty population")
    best = population[int(rng.integers(len(population)))]
    for _ in range(size - 1):
        contender = population[int(rng.integers(len(population)))]
        if contender.fitness > best.fitness:
            best = contender
    return best.clone()


def repair_length(
    rules: List[Rule], rng: np.random.Generator, bounds: GenomeBounds
) -> List[Rule]:
    """Append random rules while short, drop random rules while long."""
    out = list(rules)
    while len(out) < bounds.min_rules:
        out.append(random_rule(rng, bounds.shift_range))
    while len(out) > bounds.max_rules:
        out.pop(int(rng.integers(len(out))))
    return out


def crossover(
    parent_a: StrategyGenome,
    parent_b: StrategyGenome,
    rng: np.random.Generator,
    bounds: GenomeBounds,
    *,
    close_on_opposite: bool = False,
) -> StrategyGenome:
    """Single-point crossover of rule lists plus per-parameter coin flips."""
    shorter = min(len(parent_a.rules), len(parent_b.rules))
    split = int(rng.integers(shorter)) if shorter > 0 else 0
    rules = list(parent_a.rules[:split]) + list(parent_b.rules[split:])
    rules = repair_length(rules, rng, bounds)

    def _inherit(name: str):
        donor = parent_a if rng.random() < PARENT_INHERIT_PROBABILITY else parent_b
        return getattr(donor, name)

    return StrategyGenome(
        rules=tuple(rules),
        atr_period=_inherit("atr_period"),
        stop_loss_multiplier=_inherit("stop_loss_multiplier"),
        take_profit_multiplier=_inherit("take_profit_multiplier"),
        close_on_opposite=close_on_opposite,
        id=new_genome_id(rng),
    )


def mutate(
    genome: StrategyGenome,
    rng: np.random.Generator,
    bounds: GenomeBounds,
    weights: MutationWeights = MutationWeights(),
) -> StrategyGenome:
    """Apply exactly one mutation chosen by cumulative weight bands."""
    roll = rng.random()
    rules = list(genome.rules)

    band = weights.replace_rule
    if roll < band:
        if rules:
            rules[int(rng.integers(len(rules)))] = random_rule(rng, bounds.shift_range)
        return genome.with_rules(rules)

    band += weights.add_rule
    if roll < band:
        if len(rules) < bounds.max_rules:
            rules.append(random_rule(rng, bounds.shift_range))
        return genome.with_rules(rules)

    band += weights.remove_rule
    if roll < band:
        if len(rules) > bounds.min_rules:
            rules.pop(int(rng.integers(len(rules))))
        return genome.with_rules(rules)

    fresh = random_parameters(rng, bounds)
    band += weights.atr_period
    if roll < band:
        return genome.with_parameters(atr_period=fresh["atr_period"])
    return genome.with_parameters(
        stop_loss_multiplier=fresh["stop_loss_multiplier"],
        take_profit_multiplier=fresh["take_profit_multiplier"],
    )


def maybe_mutate(
    genome: StrategyGenome,
    rng: np.random.Generator,
    bounds: GenomeBounds,
    rate: float = MUTATION_RATE,
) -> StrategyGenome:
    if rng.random() < rate:
        return mutate(genome, rng, bounds)
    return genome


__all__ = [
    "TOURNAMENT_SIZE",
    "MUTATION_RATE",
    "tournament_select",
    "repair_length",
    "crossover",
    "mutate",
    "maybe_mutate",
]
