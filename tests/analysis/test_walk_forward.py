from __future__ import annotations

import pytest

from stratsearch.analysis import walk_forward as wf
from stratsearch.backtest.metrics import PerformanceMetrics
from stratsearch.core.exceptions import AnalysisError
from stratsearch.strats.genome import random_genome
from stratsearch.strats.params import GenomeBounds


def _metrics(**kw) -> PerformanceMetrics:
    base = dict(
        total_trades=40,
        buy_trades=20,
        sell_trades=20,
        win_rate=50.0,
        profit_factor=2.0,
        max_drawdown=10.0,
        total_profit=500.0,
        avg_win=40.0,
        avg_loss=20.0,
    )
    base.update(kw)
    return PerformanceMetrics(**base)


def _score(train, test) -> int:
    return wf.robustness_score(wf.Degradation.between(train, test), train, test)


def test_identical_performance_scores_full_marks():
    m = _metrics()
    deg = wf.Degradation.between(m, m)

    assert deg.profit_factor == 0.0
    assert deg.win_rate == 0.0
    assert deg.max_drawdown == 0.0
    assert deg.net_profit == 0.0
    assert _score(m, m) == 100


def test_percent_degradation_zero_train():
    assert wf.percent_degradation(0.0, 3.0) == 0.0
    assert wf.percent_degradation(2.0, 1.0) == pytest.approx(50.0)
    assert wf.percent_degradation(2.0, 3.0) == pytest.approx(-50.0)


@pytest.mark.parametrize(
    "deg, band", [(0, 100), (15, 100), (15.1, 60), (-20, 60), (31, 30), (-51, 0)]
)
def test_profit_factor_band(deg, band):
    assert wf.profit_factor_band(deg) == band


@pytest.mark.parametrize("diff, band", [(5, 100), (-6, 70), (11, 40), (21, 0)])
def test_win_rate_band(diff, band):
    assert wf.win_rate_band(diff) == band


@pytest.mark.parametrize(
    "inc, band", [(16, 0), (11, 40), (6, 70), (0, 100), (-5, 100), (-6, 85)]
)
def test_drawdown_band(inc, band):
    assert wf.drawdown_band(inc) == band


def test_outperformance_bonus_needs_both_strictly_better():
    train = _metrics()
    # pf +20% -> band 60; win rate and drawdown unchanged
    better_pf = _metrics(profit_factor=2.4)
    assert _score(train, better_pf) == 84
    assert _score(train, _metrics(profit_factor=2.4, win_rate=52.0)) == 94


def test_trade_penalty_applies_to_test_half():
    train = _metrics()
    assert _score(train, _metrics(total_trades=25)) == 90
    assert _score(train, _metrics(total_trades=19)) == 80
    assert wf.trade_penalty(30) == 0


def test_score_is_clamped_at_zero():
    train = _metrics()
    test = _metrics(profit_factor=0.5, win_rate=20.0, max_drawdown=40.0, total_trades=5)
    assert _score(train, test) == 0


def test_degradation_levels():
    assert wf.degradation_level(5.0) == "good"
    assert wf.degradation_level(-15.0) == "warning"
    assert wf.degradation_level(25.0) == "bad"
    assert wf.degradation_level(-8.0, inverse=True) == "good"
    assert wf.degradation_level(7.0, inverse=True) == "warning"
    assert wf.degradation_level(12.0, inverse=True) == "bad"


def test_split_is_contiguous_and_ordered(toy_series):
    validator = wf.WalkForwardValidator(toy_series, 0.7)
    train, test = validator.split()

    assert len(train) == int(len(toy_series) * 0.7)
    assert len(train) + len(test) == len(toy_series)
    assert train[len(train) - 1].timestamp < test[0].timestamp
    assert test[0] == toy_series[len(train)]


def test_analyze_runs_both_halves(toy_series, rng):
    genome = random_genome(rng, GenomeBounds(rule_count_range=(1, 2)))
    result = wf.WalkForwardValidator(toy_series).analyze(genome)

    assert result.training_bars == 280
    assert result.testing_bars == 120
    assert 0 <= result.robustness <= 100
    assert result.passed == (result.robustness >= wf.PASS_SCORE)
    payload = result.to_dict()
    assert payload["split"]["training_ratio"] == 0.7
    assert set(payload["levels"]) == {"profit_factor", "win_rate", "max_drawdown", "net_profit"}
    assert isinstance(result.summary(), str)


@pytest.mark.parametrize("score, verdict", [(85, "excellent"), (72, "good"), (60, "acceptable"), (50, "caution"), (20, "high_overfitting_risk")])
def test_verdicts(toy_series, rng, score, verdict):
    genome = random_genome(rng, GenomeBounds(rule_count_range=(1, 2)))
    result = wf.WalkForwardValidator(toy_series).analyze(genome)
    result.robustness = score
    result.passed = score >= wf.PASS_SCORE
    assert result.verdict == verdict


@pytest.mark.parametrize("ratio", [0.0, 1.0, 1.5])
def test_invalid_ratio(toy_series, ratio):
    with pytest.raises(AnalysisError):
        wf.WalkForwardValidator(toy_series, ratio)
