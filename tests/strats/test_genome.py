from __future__ import annotations

import json

import numpy as np

from stratsearch.backtest.metrics import PerformanceMetrics
from stratsearch.strats.genome import StrategyGenome, random_genome, random_parameters
from stratsearch.strats.params import GenomeBounds
from stratsearch.strats.rules import RuleAtom, SimpleRule

RULE = SimpleRule(RuleAtom("close", 1), ">", RuleAtom("open", 2))


def test_random_parameters_within_bounds(rng):
    bounds = GenomeBounds()
    for _ in range(200):
        p = random_parameters(rng, bounds)
        assert 10 <= p["atr_period"] <= 40
        assert 1.0 <= p["stop_loss_multiplier"] < 4.0
        offset = p["take_profit_multiplier"] - p["stop_loss_multiplier"]
        assert 0.5 <= offset < 5.5 + 1e-12


def test_random_genome_rule_count_and_shifts(rng):
    bounds = GenomeBounds(rule_count_range=(2, 4), shift_range=(1, 3))
    for _ in range(50):
        g = random_genome(rng, bounds, close_on_opposite=True)
        assert 2 <= len(g.rules) <= 4
        assert g.close_on_opposite is True
        assert g.id.startswith("strategy_")


def test_random_genome_is_reproducible_with_seed():
    a = random_genome(np.random.default_rng(7), GenomeBounds())
    b = random_genome(np.random.default_rng(7), GenomeBounds())
    assert a.key == b.key
    assert a.atr_period == b.atr_period
    assert a.id == b.id


def test_with_rules_and_parameters_drop_cached_evaluation():
    g = StrategyGenome(rules=(RULE,)).with_evaluation(PerformanceMetrics(total_trades=3), 4.2)
    assert g.fitness == 4.2

    changed = g.with_parameters(atr_period=30)
    assert changed.atr_period == 30
    assert changed.fitness == 0.0
    assert changed.metrics is None
    # original untouched
    assert g.atr_period == 20
    assert g.fitness == 4.2

    assert g.with_rules([RULE, RULE]).metrics is None


def test_clone_is_equal_in_content_but_distinct():
    g = StrategyGenome(rules=[RULE], id="strategy_a")
    c = g.clone()
    assert c is not g
    assert c.key == g.key
    assert c.id == g.id
    assert isinstance(c.rules, tuple)


def test_key_ignores_parameters():
    a = StrategyGenome(rules=(RULE,), atr_period=12)
    b = StrategyGenome(rules=(RULE,), atr_period=33, stop_loss_multiplier=3.5)
    assert a.key == b.key


def test_exchange_record_round_trip():
    metrics = PerformanceMetrics(total_trades=2, buy_trades=1, sell_trades=1, win_rate=50.0)
    g = StrategyGenome(
        rules=(RULE,),
        atr_period=14,
        stop_loss_multiplier=1.5,
        take_profit_multiplier=2.5,
        close_on_opposite=True,
        id="strategy_x",
    ).with_evaluation(metrics, 1.25)

    record = g.to_dict()
    assert record["parameters"] == {
        "atr_period": 14,
        "sl_multiplier": 1.5,
        "tp_multiplier": 2.5,
        "close_at_opposite": True,
    }
    json.dumps(record)  # serializable

    restored = StrategyGenome.from_dict(record)
    assert restored.key == g.key
    assert restored.atr_period == 14
    assert restored.close_on_opposite is True
    assert restored.fitness == 1.25
    assert restored.metrics.total_trades == 2
    assert restored.id == "strategy_x"
