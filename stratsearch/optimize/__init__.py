"""Genetic search over rule-based strategy genomes."""

from stratsearch.optimize.genetic import (
    GeneticConfig,
    GeneticOptimizer,
    fitness,
    meets_criteria,
    run_search,
)
from stratsearch.optimize.session import (
    CancellationToken,
    ProgressEvent,
    SearchSession,
    SearchStatus,
    StrategyAcceptedEvent,
)

__all__ = [
    "GeneticConfig",
    "GeneticOptimizer",
    "fitness",
    "meets_criteria",
    "run_search",
    "CancellationToken",
    "ProgressEvent",
    "SearchSession",
    "SearchStatus",
    "StrategyAcceptedEvent",
]
