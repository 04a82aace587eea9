from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set, Union

from stratsearch.strats.genome import StrategyGenome


class SearchStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"


class CancellationToken:
    """Cooperative stop flag observed at generation boundaries."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass(frozen=True)
class ProgressEvent:
    """Per-generation progress report."""

    generation: int
    total_generations: int
    best_fitness: float
    average_fitness: float
    accepted: int
    target: int
    elapsed: float
    restart: int = 0
    kind: str = "progress"


@dataclass(frozen=True)
class StrategyAcceptedEvent:
    """Emitted once for each genome added to the accepted set."""

    genome: StrategyGenome
    accepted: int
    target: int
    generation: int
    kind: str = "accepted"


SearchEvent = Union[ProgressEvent, StrategyAcceptedEvent]
ProgressSink = Callable[[SearchEvent], None]


@dataclass
class SearchSession:
    """
    Explicit run context for one genetic search.

    Holds the live population, accepted genomes and counters so that
    independent searches never share state.
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    population: List[StrategyGenome] = field(default_factory=list)
    accepted: List[StrategyGenome] = field(default_factory=list)
    accepted_keys: Set[str] = field(default_factory=set)
    generation: int = 0
    generations_run: int = 0
    restarts: int = 0
    evaluations: int = 0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None
    status: SearchStatus = SearchStatus.RUNNING

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def is_duplicate(self, genome: StrategyGenome) -> bool:
        return genome.key in self.accepted_keys

    def accept(self, genome: StrategyGenome) -> StrategyGenome:
        """Store a clone of ``genome``; callers check ``is_duplicate`` first."""
        kept = genome.clone()
        self.accepted.append(kept)
        self.accepted_keys.add(kept.key)
        return kept

    def finish(self, status: SearchStatus) -> None:
        self.status = status
        self.finished_at = time.monotonic()

    def summary(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "accepted": len(self.accepted),
            "restarts": self.restarts,
            "generations_run": self.generations_run,
            "evaluations": self.evaluations,
            "elapsed_seconds": round(self.elapsed, 3),
        }


__all__ = [
    "SearchStatus",
    "CancellationToken",
    "ProgressEvent",
    "StrategyAcceptedEvent",
    "SearchEvent",
    "ProgressSink",
    "SearchSession",
]
