from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from loguru import logger

from stratsearch.backtest.engine import run_backtest
from stratsearch.backtest.metrics import PROFIT_FACTOR_CAP, PerformanceMetrics
from stratsearch.core.exceptions import ConfigError
from stratsearch.core.models import PriceSeries
from stratsearch.optimize.operators import crossover, maybe_mutate, tournament_select
from stratsearch.optimize.session import (
    CancellationToken,
    ProgressEvent,
    ProgressSink,
    SearchSession,
    SearchStatus,
    StrategyAcceptedEvent,
)
from stratsearch.settings import SearchSettings, get_search_settings
from stratsearch.strats.genome import StrategyGenome, random_genome
from stratsearch.strats.params import GenomeBounds

ELITE_COUNT = 2
BALANCE_GATE_PCT = 20.0


@dataclass(frozen=True)
class GeneticConfig:
    """
    Search configuration.

    Attributes:
        population_size (int): Genomes per generation.
        generations (int): Generations per fresh population.
        target_strategies (int): Accepted genomes to collect.
        rule_count_range (Tuple[int, int]): Inclusive rule-count bounds.
        shift_range (Tuple[int, int]): Inclusive lookback-shift bounds.
        min_trades (int): Acceptance floor on closed trades.
        min_profit_factor (float): Acceptance floor on profit factor.
        max_drawdown (float): Acceptance ceiling on max drawdown (%).
        min_win_rate (float): Acceptance floor on win rate (%).
        close_on_opposite (bool): Genomes reverse on opposite signals.
        max_restarts (int | None): Optional bound on fresh populations.
    """

    population_size: int = 100
    generations: int = 50
    target_strategies: int = 5
    rule_count_range: Tuple[int, int] = (3, 8)
    shift_range: Tuple[int, int] = (1, 10)
    min_trades: int = 30
    min_profit_factor: float = 1.5
    max_drawdown: float = 25.0
    min_win_rate: float = 45.0
    close_on_opposite: bool = False
    max_restarts: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: SearchSettings | None = None) -> "GeneticConfig":
        s = settings or get_search_settings()
        return cls(
            population_size=s.population_size,
            generations=s.generations,
            target_strategies=s.target_strategies,
            rule_count_range=s.rule_count_range,
            shift_range=s.shift_range,
            min_trades=s.min_trades,
            min_profit_factor=s.min_profit_factor,
            max_drawdown=s.max_drawdown,
            min_win_rate=s.min_win_rate,
            close_on_opposite=s.close_on_opposite,
            max_restarts=s.max_restarts,
        )

    @property
    def bounds(self) -> GenomeBounds:
        return GenomeBounds(
            rule_count_range=tuple(self.rule_count_range),
            shift_range=tuple(self.shift_range),
        )


# -------- Scoring --------
def balance_bonus(metrics: PerformanceMetrics) -> float:
    buy = metrics.buy_ratio
    if 30.0 <= buy <= 70.0:
        return 1.2
    if 20.0 <= buy <= 80.0:
        return 1.1
    return 0.5


def fitness(metrics: Optional[PerformanceMetrics]) -> float:
    """
    Scalar score used to rank genomes within a generation.

    ``min(pf, 10) ** 1.5 * sqrt(trades) * win-rate bonus * balance bonus``,
    divided by ``1 + maxDD / 100``. Zero trades score 0.
    """
    if metrics is None or metrics.total_trades == 0:
        return 0.0
    pf = min(metrics.profit_factor, PROFIT_FACTOR_CAP)
    wr_bonus = 1.0 + max(0.0, metrics.win_rate - 50.0) / 100.0
    dd_penalty = 1.0 + metrics.max_drawdown / 100.0
    return (
        pf ** 1.5
        * math.sqrt(metrics.total_trades)
        * wr_bonus
        * balance_bonus(metrics)
        / dd_penalty
    )


def meets_criteria(metrics: Optional[PerformanceMetrics], config: GeneticConfig) -> bool:
    """Acceptance thresholds plus the buy/sell balance gate."""
    if metrics is None or metrics.total_trades == 0:
        return False
    if (
        metrics.total_trades < config.min_trades
        or metrics.profit_factor < config.min_profit_factor
        or metrics.max_drawdown > config.max_drawdown
        or metrics.win_rate < config.min_win_rate
    ):
        return False
    return metrics.buy_ratio >= BALANCE_GATE_PCT and metrics.sell_ratio >= BALANCE_GATE_PCT


# -------- Optimizer --------
class GeneticOptimizer:
    """
    Evolves rule-based genomes over one price series until enough distinct
    genomes pass acceptance, restarting from a fresh population after each
    ``generations`` run.

    All randomness flows through the injected ``numpy.random.Generator``.
    """

    def __init__(
        self,
        series: PriceSeries,
        config: GeneticConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
    ):
        self.series = series
        self.config = config or GeneticConfig.from_settings()
        if self.config.population_size < 1 or self.config.generations < 1:
            raise ConfigError(
                "population_size and generations must be >= 1 "
                f"(got {self.config.population_size}, {self.config.generations})"
            )
        self.bounds = self.config.bounds
        self.rng = rng if rng is not None else np.random.default_rng()

    # -------- Population --------
    def random_population(self) -> List[StrategyGenome]:
        return [
            random_genome(
                self.rng, self.bounds, close_on_opposite=self.config.close_on_opposite
            )
            for _ in range(self.config.population_size)
        ]

    def evaluate(self, genome: StrategyGenome) -> StrategyGenome:
        result = run_backtest(self.series, genome)
        return genome.with_evaluation(result.metrics, fitness(result.metrics), result.trades)

    def evaluate_population(
        self, population: List[StrategyGenome]
    ) -> List[StrategyGenome]:
        """Backtest every genome and sort by fitness, best first."""
        scored = [self.evaluate(g) for g in population]
        scored.sort(key=lambda g: g.fitness, reverse=True)
        return scored

    def evolve(self, population: List[StrategyGenome]) -> List[StrategyGenome]:
        """Next generation: cloned elites followed by mutated crossover children."""
        size = self.config.population_size
        nxt = [g.clone() for g in population[: min(ELITE_COUNT, size)]]
        while len(nxt) < size:
            parent_a = tournament_select(population, self.rng)
            parent_b = tournament_select(population, self.rng)
            child = crossover(
                parent_a,
                parent_b,
                self.rng,
                self.bounds,
                close_on_opposite=self.config.close_on_opposite,
            )
            nxt.append(maybe_mutate(child, self.rng, self.bounds))
        return nxt

    # -------- Main loop --------
    def run(
        self,
        progress_sink: ProgressSink | None = None,
        token: CancellationToken | None = None,
        session: SearchSession | None = None,
    ) -> SearchSession:
        cfg = self.config
        session = session or SearchSession()
        token = token or CancellationToken()
        logger.info(
            "[search] start run={} pop={} gens={} target={} series={}",
            session.run_id,
            cfg.population_size,
            cfg.generations,
            cfg.target_strategies,
            len(self.series),
        )

        while len(session.accepted) < cfg.target_strategies:
            if token.cancelled:
                break
            if cfg.max_restarts is not None and session.restarts >= cfg.max_restarts:
                session.finish(SearchStatus.EXHAUSTED)
                logger.warning(
                    "[search] restart cap reached ({}) with {}/{} accepted",
                    cfg.max_restarts,
                    len(session.accepted),
                    cfg.target_strategies,
                )
                return session

            session.restarts += 1
            session.population = self.random_population()
            logger.debug("[search] restart={} new population", session.restarts)
            self._run_generations(session, progress_sink, token)

        if token.cancelled and len(session.accepted) < cfg.target_strategies:
            session.finish(SearchStatus.CANCELLED)
            logger.warning(
                "[search] cancelled run={} accepted={}/{}",
                session.run_id,
                len(session.accepted),
                cfg.target_strategies,
            )
        else:
            session.finish(SearchStatus.COMPLETED)
            logger.info(
                "[search] completed run={} accepted={} restarts={} elapsed={:.1f}s",
                session.run_id,
                len(session.accepted),
                session.restarts,
                session.elapsed,
            )
        return session

    def _run_generations(
        self,
        session: SearchSession,
        progress_sink: ProgressSink | None,
        token: CancellationToken,
    ) -> None:
        cfg = self.config
        for gen in range(cfg.generations):
            session.generation = gen
            population = self.evaluate_population(session.population)
            session.population = population
            session.evaluations += len(population)
            session.generations_run += 1

            if progress_sink is not None and population:
                progress_sink(
                    ProgressEvent(
                        generation=gen + 1,
                        total_generations=cfg.generations,
                        best_fitness=population[0].fitness,
                        average_fitness=float(np.mean([g.fitness for g in population])),
                        accepted=len(session.accepted),
                        target=cfg.target_strategies,
                        elapsed=session.elapsed,
                        restart=session.restarts,
                    )
                )

            if population:
                self._consider(population[0], session, progress_sink)
            if len(session.accepted) >= cfg.target_strategies:
                return
            if token.cancelled:
                return
            if gen < cfg.generations - 1:
                session.population = self.evolve(population)

    def _consider(
        self,
        best: StrategyGenome,
        session: SearchSession,
        progress_sink: ProgressSink | None,
    ) -> None:
        if not meets_criteria(best.metrics, self.config):
            return
        if session.is_duplicate(best):
            logger.debug("[search] duplicate rules skipped id={}", best.id)
            return
        kept = session.accept(best)
        m = kept.metrics
        logger.info(
            "[search] accepted {}/{} id={} fitness={:.3f} trades={} pf={:.2f} wr={:.1f} dd={:.1f}",
            len(session.accepted),
            self.config.target_strategies,
            kept.id,
            kept.fitness,
            m.total_trades,
            m.profit_factor,
            m.win_rate,
            m.max_drawdown,
        )
        if progress_sink is not None:
            progress_sink(
                StrategyAcceptedEvent(
                    genome=kept,
                    accepted=len(session.accepted),
                    target=self.config.target_strategies,
                    generation=session.generation + 1,
                )
            )


def run_search(
    series: PriceSeries,
    config: GeneticConfig | None = None,
    *,
    rng: np.random.Generator | None = None,
    progress_sink: ProgressSink | None = None,
    token: CancellationToken | None = None,
) -> SearchSession:
    return GeneticOptimizer(series, config, rng=rng).run(progress_sink, token)


__all__ = [
    "GeneticConfig",
    "GeneticOptimizer",
    "balance_bonus",
    "fitness",
    "meets_criteria",
    "run_search",
]
