"""
Command-line entry point: run a genetic strategy search over an OHLC CSV and
validate every accepted strategy with Monte Carlo and walk-forward analysis.

    python -m stratsearch.search --data prices.csv --config search.yml --seed 7

Settings come from the environment first, then the YAML file, then CLI flags.
"""

from __future__ import annotations

import argparse
import json
import signal
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import yaml
from loguru import logger

from stratsearch.analysis.monte_carlo import MonteCarloAnalyzer
from stratsearch.analysis.walk_forward import WalkForwardValidator
from stratsearch.config import settings as app_settings
from stratsearch.core.exceptions import ConfigError, StratSearchError
from stratsearch.core.models import PriceSeries
from stratsearch.data.loader import load_price_csv
from stratsearch.logging_utils import logging_context, setup_logging
from stratsearch.optimize.genetic import GeneticConfig, GeneticOptimizer
from stratsearch.optimize.session import (
    CancellationToken,
    ProgressEvent,
    SearchEvent,
    SearchSession,
    StrategyAcceptedEvent,
)
from stratsearch.settings import get_settings

_RANGE_KEYS = ("rule_count_range", "shift_range")
_OPTIONAL_INT_KEYS = ("max_restarts",)


@dataclass(frozen=True)
class AnalysisConfig:
    monte_carlo_iterations: int = 1000
    ruin_threshold: float = 0.2
    walk_forward_training_ratio: float = 0.7


def _load_config(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("search config must be a mapping")
    return data


def _as_range(key: str, value: Any) -> tuple[int, int]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ConfigError(f"{key} must be a [min, max] pair, got {value!r}")
    lo, hi = (_as_int(key, v) for v in value)
    if lo > hi:
        raise ConfigError(f"{key} min must not exceed max, got {value!r}")
    return lo, hi


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc
    if not number.is_integer():
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return int(number)


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Cast a YAML override to the type of the field's default."""
    if key in _RANGE_KEYS:
        return _as_range(key, value)
    if key in _OPTIONAL_INT_KEYS:
        return None if value is None else _as_int(key, value)
    if isinstance(default, bool):
        return _as_bool(key, value)
    if isinstance(default, int):
        return _as_int(key, value)
    return _as_float(key, value)


def build_configs(
    overrides: Dict[str, Any] | None = None,
) -> tuple[GeneticConfig, AnalysisConfig]:
    """Environment-backed defaults with YAML overrides applied on top."""
    env = get_settings()
    genetic = GeneticConfig.from_settings(env.search)
    analysis = AnalysisConfig(
        monte_carlo_iterations=env.analysis.monte_carlo_iterations,
        ruin_threshold=env.analysis.ruin_threshold,
        walk_forward_training_ratio=env.analysis.walk_forward_training_ratio,
    )
    if not overrides:
        return genetic, analysis

    genetic_keys = {f.name for f in fields(GeneticConfig)}
    analysis_keys = {f.name for f in fields(AnalysisConfig)}
    unknown = set(overrides) - genetic_keys - analysis_keys
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")

    g_updates = {
        k: _coerce(k, overrides[k], getattr(genetic, k))
        for k in genetic_keys & set(overrides)
    }
    a_updates = {
        k: _coerce(k, overrides[k], getattr(analysis, k))
        for k in analysis_keys & set(overrides)
    }
    return replace(genetic, **g_updates), replace(analysis, **a_updates)


def _log_progress(event: SearchEvent) -> None:
    if isinstance(event, StrategyAcceptedEvent):
        logger.info(
            "[search] strategy {}/{} found at generation {}",
            event.accepted,
            event.target,
            event.generation,
        )
    elif isinstance(event, ProgressEvent):
        logger.info(
            "[search] restart={} gen={}/{} best={:.3f} avg={:.3f} accepted={}/{} elapsed={:.1f}s",
            event.restart,
            event.generation,
            event.total_generations,
            event.best_fitness,
            event.average_fitness,
            event.accepted,
            event.target,
            event.elapsed,
        )


def analyze_strategies(
    session: SearchSession,
    series: PriceSeries,
    analysis: AnalysisConfig,
    rng: np.random.Generator,
) -> List[Dict[str, Any]]:
    """Exchange records for every accepted genome, with robustness summaries attached."""
    mc = MonteCarloAnalyzer(
        analysis.monte_carlo_iterations, analysis.ruin_threshold, rng=rng
    )
    wf = WalkForwardValidator(series, analysis.walk_forward_training_ratio)
    records: List[Dict[str, Any]] = []
    for genome in session.accepted:
        mc_result = mc.analyze(genome)
        wf_result = wf.analyze(genome)
        record = genome.to_dict()
        record["rules_text"] = genome.rules_text
        record["monte_carlo"] = mc_result.to_dict()
        record["monte_carlo"]["summary"] = mc_result.summary()
        record["walk_forward"] = wf_result.to_dict()
        record["walk_forward"]["summary"] = wf_result.summary()
        records.append(record)
        logger.info(
            "[search] strategy id={} fitness={:.3f} ror={:.1f}% robustness={} passed={}",
            genome.id,
            genome.fitness,
            mc_result.risk_of_ruin_pct,
            wf_result.robustness,
            wf_result.passed,
        )
    return records


def run(
    data_path: Path,
    *,
    config_path: Path | None = None,
    seed: int | None = None,
    limit: int | None = None,
    out_dir: Path | None = None,
    token: CancellationToken | None = None,
) -> Dict[str, Any]:
    overrides = _load_config(config_path) if config_path else None
    genetic, analysis = build_configs(overrides)
    series = load_price_csv(data_path, limit=limit)
    rng = np.random.default_rng(seed)
    token = token or CancellationToken()
    session = SearchSession()

    with logging_context(run_id=session.run_id):
        optimizer = GeneticOptimizer(series, genetic, rng=rng)
        optimizer.run(progress_sink=_log_progress, token=token, session=session)
        records = analyze_strategies(session, series, analysis, rng)

        target = Path(out_dir or app_settings.output_dir)
        target.mkdir(parents=True, exist_ok=True)
        strategies_path = target / "strategies.json"
        strategies_path.write_text(json.dumps(records, default=str, indent=2))
        summary = {
            **session.summary(),
            "version": app_settings.VERSION,
            "seed": seed,
            "data": str(data_path),
            "bars": len(series),
            "config": {
                "genetic": {f.name: getattr(genetic, f.name) for f in fields(genetic)},
                "analysis": {f.name: getattr(analysis, f.name) for f in fields(analysis)},
            },
            "strategies_path": str(strategies_path),
            "finished_at": datetime.now(timezone.utc).isoformat(),
        }
        (target / "summary.json").write_text(json.dumps(summary, default=str, indent=2))
        logger.info(
            "[search] wrote {} strategies to {} status={}",
            len(records),
            strategies_path,
            session.status.value,
        )
    return summary


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Genetic search for rule-based trading strategies"
    )
    ap.add_argument("--data", required=True, help="OHLC CSV (timestamp,open,high,low,close)")
    ap.add_argument("--config", default=None, help="YAML search configuration")
    ap.add_argument("--seed", type=int, default=None, help="RNG seed for reproducible runs")
    ap.add_argument("--limit", type=int, default=None, help="Use only the last N bars")
    ap.add_argument("--out", default=None, help="Output directory for JSON artifacts")
    ap.add_argument("--log-level", default=None, help="Log level (DEBUG, INFO, ...)")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(force=True, level=args.log_level)

    token = CancellationToken()

    def _on_sigint(signum, frame) -> None:
        logger.warning("[search] interrupt received, stopping after this generation")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        run(
            Path(args.data),
            config_path=Path(args.config) if args.config else None,
            seed=args.seed if args.seed is not None else app_settings.seed,
            limit=args.limit,
            out_dir=Path(args.out) if args.out else None,
            token=token,
        )
    except StratSearchError as exc:
        logger.error("[search] failed: {}", exc)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
