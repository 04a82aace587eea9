from __future__ import annotations

import json

import pytest
import yaml

from stratsearch import search
from stratsearch.core.exceptions import ConfigError
from stratsearch.optimize import genetic


@pytest.fixture
def price_csv(tmp_path, toy_ohlc):
    path = tmp_path / "prices.csv"
    toy_ohlc.reset_index(names="timestamp").to_csv(path, index=False)
    return path


@pytest.fixture
def small_config(tmp_path):
    path = tmp_path / "search.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "population_size": 6,
                "generations": 2,
                "target_strategies": 1,
                "rule_count_range": [1, 3],
                "shift_range": [1, 4],
                "max_restarts": 1,
                "monte_carlo_iterations": 25,
                "walk_forward_training_ratio": 0.6,
            }
        )
    )
    return path


def test_build_configs_applies_yaml_over_env(monkeypatch):
    monkeypatch.setenv("STRATSEARCH_POPULATION_SIZE", "30")
    monkeypatch.setenv("STRATSEARCH_GENERATIONS", "9")

    g, a = search.build_configs({"generations": 4, "shift_range": [2, 6], "ruin_threshold": 0.3})

    assert g.population_size == 30
    assert g.generations == 4
    assert g.shift_range == (2, 6)
    assert a.ruin_threshold == 0.3


def test_build_configs_rejects_unknown_and_bad_ranges():
    with pytest.raises(ConfigError, match="unknown"):
        search.build_configs({"populaton_size": 5})
    with pytest.raises(ConfigError):
        search.build_configs({"rule_count_range": [5, 2]})
    with pytest.raises(ConfigError):
        search.build_configs({"rule_count_range": 3})


def test_build_configs_rejects_malformed_values():
    with pytest.raises(ConfigError, match="rule_count_range"):
        search.build_configs({"rule_count_range": [1, "x"]})
    with pytest.raises(ConfigError, match="population_size"):
        search.build_configs({"population_size": "lots"})
    with pytest.raises(ConfigError, match="generations"):
        search.build_configs({"generations": 2.5})
    with pytest.raises(ConfigError, match="min_profit_factor"):
        search.build_configs({"min_profit_factor": [1]})
    with pytest.raises(ConfigError, match="close_on_opposite"):
        search.build_configs({"close_on_opposite": "sometimes"})


def test_build_configs_coerces_numeric_strings():
    g, a = search.build_configs(
        {
            "min_trades": "12",
            "max_drawdown": 30,
            "max_restarts": None,
            "monte_carlo_iterations": 50.0,
        }
    )
    assert g.min_trades == 12 and isinstance(g.min_trades, int)
    assert g.max_drawdown == 30.0 and isinstance(g.max_drawdown, float)
    assert g.max_restarts is None
    assert a.monte_carlo_iterations == 50 and isinstance(a.monte_carlo_iterations, int)


def test_main_returns_error_on_malformed_config(tmp_path, price_csv):
    config = tmp_path / "bad.yml"
    config.write_text(yaml.safe_dump({"population_size": "lots"}))

    code = search.main(
        ["--data", str(price_csv), "--config", str(config), "--out", str(tmp_path / "out")]
    )

    assert code == 1
    assert not (tmp_path / "out" / "strategies.json").exists()


def test_main_writes_artifacts(tmp_path, price_csv, small_config, monkeypatch):
    monkeypatch.setattr(genetic, "meets_criteria", lambda m, cfg: m is not None)
    out = tmp_path / "out"

    code = search.main(
        [
            "--data", str(price_csv),
            "--config", str(small_config),
            "--seed", "5",
            "--out", str(out),
            "--log-level", "WARNING",
        ]
    )

    assert code == 0
    strategies = json.loads((out / "strategies.json").read_text())
    summary = json.loads((out / "summary.json").read_text())
    assert len(strategies) == 1
    record = strategies[0]
    assert set(record["parameters"]) == {
        "atr_period",
        "sl_multiplier",
        "tp_multiplier",
        "close_at_opposite",
    }
    assert record["monte_carlo"]["iterations"] == 25
    assert record["walk_forward"]["split"]["training_ratio"] == 0.6
    assert "summary" in record["walk_forward"]
    assert summary["status"] == "completed"
    assert summary["accepted"] == 1
    assert summary["seed"] == 5
    assert summary["bars"] == 400


def test_run_with_restart_cap_still_writes_outputs(tmp_path, price_csv, small_config, monkeypatch):
    monkeypatch.setattr(genetic, "meets_criteria", lambda m, cfg: False)

    summary = search.run(price_csv, config_path=small_config, seed=1, out_dir=tmp_path)

    assert summary["status"] == "exhausted"
    assert json.loads((tmp_path / "strategies.json").read_text()) == []


def test_main_reports_missing_data(tmp_path):
    code = search.main(["--data", str(tmp_path / "missing.csv"), "--out", str(tmp_path)])
    assert code == 1
