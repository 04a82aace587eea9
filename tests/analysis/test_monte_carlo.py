from __future__ import annotations

import math

import numpy as np
import pytest

from stratsearch.analysis import stats
from stratsearch.analysis.monte_carlo import MonteCarloAnalyzer, extract_profits
from stratsearch.backtest.engine import run_backtest
from stratsearch.core.exceptions import AnalysisError
from stratsearch.strats.genome import StrategyGenome, random_genome
from stratsearch.strats.params import GenomeBounds
from stratsearch.strats.rules import RuleAtom, SimpleRule


# -------- stats --------
def test_percentile_linear_interpolation():
    assert stats.percentile([1.0, 2.0, 3.0, 4.0], 25) == pytest.approx(1.75)
    assert stats.percentile([4.0, 1.0, 3.0, 2.0], 100) == 4.0
    assert stats.percentile([7.0], 95) == 7.0


def test_median_equals_fiftieth_percentile(rng):
    for size in (1, 2, 5, 50, 51):
        data = rng.normal(0.0, 1.0, size).tolist()
        assert stats.median(data) == stats.percentile(data, 50)


def test_population_std():
    assert stats.std([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
    assert stats.std([3.0]) == 0.0


def test_stats_reject_empty_sample():
    with pytest.raises(ValueError):
        stats.mean([])


# -------- simulation --------
def test_shuffle_preserves_profit_multiset(rng):
    profits = rng.normal(5.0, 40.0, 60).tolist()
    mc = MonteCarloAnalyzer(rng=rng)
    for _ in range(20):
        shuffled = mc.shuffle(profits)
        assert sorted(shuffled.tolist()) == sorted(profits)


def test_final_equity_identical_on_every_path(rng):
    profits = rng.normal(3.0, 25.0, 80).tolist()
    result = MonteCarloAnalyzer(200, rng=rng).run(profits)

    expected = math.fsum([10_000.0, *profits])
    assert set(result.final_equities) == {expected}
    assert result.equity["std"] == pytest.approx(0.0, abs=1e-9)
    assert result.equity["min"] == result.equity["max"] == expected
    assert len(result.drawdowns) == 200
    assert min(result.drawdowns) >= 0.0
    assert result.drawdown["p5"] <= result.drawdown["p95"]
    assert result.range90 == (result.equity["p5"], result.equity["p95"])
    assert result.range50 == (result.equity["p25"], result.equity["p75"])


def test_risk_of_ruin_fraction_and_verdict():
    certain = MonteCarloAnalyzer(50, rng=np.random.default_rng(1)).run([-2_500.0])
    assert certain.risk_of_ruin == 1.0
    assert certain.risk_of_ruin_pct == 100.0
    assert certain.verdict == "high"

    safe = MonteCarloAnalyzer(50, rng=np.random.default_rng(1)).run([100.0, -100.0])
    assert safe.risk_of_ruin == 0.0
    assert safe.verdict == "low"


def test_ruin_boundary_is_inclusive():
    # min equity lands exactly on 10000 * (1 - 0.25)
    result = MonteCarloAnalyzer(10, 0.25, rng=np.random.default_rng(0)).run([-2_500.0])
    assert result.risk_of_ruin == 1.0


def test_empty_trade_list_is_flat():
    result = MonteCarloAnalyzer(25, rng=np.random.default_rng(0)).run([])
    assert result.equity["mean"] == 10_000.0
    assert result.drawdown["max"] == 0.0
    assert result.risk_of_ruin == 0.0
    assert result.expected_return_pct == 0.0


def test_seeded_runs_are_reproducible():
    profits = [120.0, -80.0, 45.0, -300.0, 260.0, -15.0, 90.0]
    a = MonteCarloAnalyzer(100, rng=np.random.default_rng(42)).run(profits)
    b = MonteCarloAnalyzer(100, rng=np.random.default_rng(42)).run(profits)
    assert a.drawdowns == b.drawdowns


def test_summary_text():
    result = MonteCarloAnalyzer(30, rng=np.random.default_rng(3)).run([50.0, -20.0, 80.0])
    text = result.summary()
    assert text.startswith("Monte Carlo Analysis (30 iterations):")
    assert "Expected Return: 1.10%" in text
    assert "Risk of Ruin (20%): 0.00%" in text
    assert "Low risk" in text
    assert result.to_dict()["verdict"] == "low"
    assert "distribution" in result.to_dict(include_distributions=True)


def test_invalid_iterations():
    with pytest.raises(AnalysisError):
        MonteCarloAnalyzer(0)


# -------- trade extraction --------
def test_extract_profits_requires_evaluated_genome():
    rule = SimpleRule(RuleAtom("close", 1), ">", RuleAtom("open", 1))
    with pytest.raises(AnalysisError):
        extract_profits(StrategyGenome(rules=(rule,)))
    with pytest.raises(AnalysisError):
        extract_profits(None)


def test_analyze_backtest_result(toy_series, rng):
    genome = random_genome(rng, GenomeBounds(rule_count_range=(1, 2)))
    bt = run_backtest(toy_series, genome)
    evaluated = genome.with_evaluation(bt.metrics, 1.0, bt.trades)

    assert extract_profits(bt) == [t.profit for t in bt.trades]
    assert extract_profits(evaluated) == extract_profits(bt)

    result = MonteCarloAnalyzer(20, rng=rng).analyze(evaluated)
    assert result.equity["mean"] == pytest.approx(bt.metrics.final_balance)


def test_restored_genome_without_trades_is_rejected(toy_series, rng):
    genome = random_genome(rng, GenomeBounds(rule_count_range=(1, 2)))
    bt = run_backtest(toy_series, genome)
    evaluated = genome.with_evaluation(bt.metrics, 1.0, bt.trades)
    restored = StrategyGenome.from_dict(evaluated.to_dict())

    assert restored.trades == ()
    if bt.metrics.total_trades:
        with pytest.raises(AnalysisError, match="no trade list"):
            MonteCarloAnalyzer(20, rng=rng).analyze(restored)
    else:
        assert extract_profits(restored) == []


def test_restored_genome_with_trades_reported_raises():
    rule = SimpleRule(RuleAtom("close", 1), ">", RuleAtom("open", 1))
    payload = StrategyGenome(rules=(rule,)).to_dict()
    payload["performance"] = {"total_trades": 23, "final_balance": 10_014.77}

    restored = StrategyGenome.from_dict(payload)

    with pytest.raises(AnalysisError):
        MonteCarloAnalyzer(50, rng=np.random.default_rng(0)).analyze(restored)


def test_final_equity_matches_backtest_balance_exactly(toy_series, rng):
    genome = random_genome(rng, GenomeBounds(rule_count_range=(1, 2)))
    bt = run_backtest(toy_series, genome)

    result = MonteCarloAnalyzer(30, rng=rng).analyze(bt)

    assert set(result.final_equities) == {bt.metrics.final_balance}
