from __future__ import annotations

from dataclasses import replace

import pytest

from stratsearch.optimize.operators import crossover, mutate, repair_length, tournament_select
from stratsearch.strats.genome import StrategyGenome, random_genome
from stratsearch.strats.params import GenomeBounds, MutationWeights
from stratsearch.strats.rules import random_rule

BOUNDS = GenomeBounds(rule_count_range=(3, 6), shift_range=(1, 5))


def _population(rng, n=10):
    return [
        replace(random_genome(rng, BOUNDS), fitness=float(i)) for i in range(n)
    ]


def test_tournament_returns_fitter_clone(rng):
    pop = _population(rng)
    for _ in range(50):
        winner = tournament_select(pop, rng)
        assert all(winner is not g for g in pop)
        assert winner.fitness in {g.fitness for g in pop}

    # with one genome the clone of it always wins
    only = pop[3]
    picked = tournament_select([only], rng)
    assert picked is not only
    assert picked.key == only.key


def test_tournament_prefers_high_fitness(rng):
    pop = _population(rng)
    picks = [tournament_select(pop, rng).fitness for _ in range(400)]
    # best-of-3 mean is well above the uniform mean of 4.5
    assert sum(picks) / len(picks) > 5.5


def test_tournament_on_empty_population_raises(rng):
    with pytest.raises(ValueError):
        tournament_select([], rng)


def test_repair_length_pads_and_trims(rng):
    short = [random_rule(rng, BOUNDS.shift_range)]
    long = [random_rule(rng, BOUNDS.shift_range) for _ in range(10)]

    assert len(repair_length(short, rng, BOUNDS)) == 3
    trimmed = repair_length(long, rng, BOUNDS)
    assert len(trimmed) == 6
    assert all(r in long for r in trimmed)


def test_crossover_child_is_new_and_within_bounds(rng):
    a = random_genome(rng, BOUNDS)
    b = random_genome(rng, BOUNDS)
    a_key, b_key = a.key, b.key

    for _ in range(100):
        child = crossover(a, b, rng, BOUNDS)
        assert 3 <= len(child.rules) <= 6
        assert child.id not in (a.id, b.id)
        assert child.atr_period in (a.atr_period, b.atr_period)
        assert child.stop_loss_multiplier in (a.stop_loss_multiplier, b.stop_loss_multiplier)
        assert child.take_profit_multiplier in (
            a.take_profit_multiplier,
            b.take_profit_multiplier,
        )
        assert child.metrics is None

    assert a.key == a_key
    assert b.key == b_key


def test_mutate_keeps_rule_count_in_bounds_and_parent_intact(rng):
    g = random_genome(rng, BOUNDS)
    key = g.key
    current = g
    for _ in range(300):
        current = mutate(current, rng, BOUNDS)
        assert 3 <= len(current.rules) <= 6
        assert 10 <= current.atr_period <= 40
    assert g.key == key


def test_mutate_atr_band_only_touches_period(rng):
    g = StrategyGenome(rules=tuple(random_rule(rng, (1, 3)) for _ in range(3)), atr_period=99)
    out = mutate(g, rng, BOUNDS, MutationWeights(0.0, 0.0, 0.0, 1.0, 0.0))

    assert out.key == g.key
    assert 10 <= out.atr_period <= 40
    assert out.stop_loss_multiplier == g.stop_loss_multiplier


def test_mutate_stop_take_band(rng):
    g = StrategyGenome(rules=tuple(random_rule(rng, (1, 3)) for _ in range(3)))
    out = mutate(g, rng, BOUNDS, MutationWeights(0.0, 0.0, 0.0, 0.0, 1.0))

    assert out.atr_period == g.atr_period
    assert 1.0 <= out.stop_loss_multiplier < 4.0
    assert out.take_profit_multiplier - out.stop_loss_multiplier >= 0.5


def test_mutate_replace_band_keeps_length(rng):
    g = StrategyGenome(rules=tuple(random_rule(rng, (1, 3)) for _ in range(4)))
    out = mutate(g, rng, BOUNDS, MutationWeights(1.0, 0.0, 0.0, 0.0, 0.0))
    assert len(out.rules) == 4


def test_crossover_close_on_opposite_comes_from_caller(rng):
    a = random_genome(rng, BOUNDS, close_on_opposite=False)
    b = random_genome(rng, BOUNDS, close_on_opposite=False)

    assert crossover(a, b, rng, BOUNDS, close_on_opposite=True).close_on_opposite is True
    assert crossover(a, b, rng, BOUNDS).close_on_opposite is False
