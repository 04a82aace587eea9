"""Centralized search settings powered by Pydantic.

Environment matrix:

| Section  | Environment Variable                  | Default | Purpose                                    |
|----------|---------------------------------------|---------|--------------------------------------------|
| Search   | `STRATSEARCH_POPULATION_SIZE`         | `100`   | Genomes per generation                     |
| Search   | `STRATSEARCH_GENERATIONS`             | `50`    | Generations per restart                    |
| Search   | `STRATSEARCH_TARGET_STRATEGIES`       | `5`     | Accepted genomes to collect                |
| Search   | `STRATSEARCH_RULES_MIN`               | `3`     | Minimum rules per genome                   |
| Search   | `STRATSEARCH_RULES_MAX`               | `8`     | Maximum rules per genome                   |
| Search   | `STRATSEARCH_SHIFT_MIN`               | `1`     | Minimum lookback shift                     |
| Search   | `STRATSEARCH_SHIFT_MAX`               | `10`    | Maximum lookback shift                     |
| Search   | `STRATSEARCH_MIN_TRADES`              | `30`    | Acceptance: minimum closed trades          |
| Search   | `STRATSEARCH_MIN_PROFIT_FACTOR`       | `1.5`   | Acceptance: minimum profit factor          |
| Search   | `STRATSEARCH_MAX_DRAWDOWN`            | `25`    | Acceptance: maximum drawdown (%)           |
| Search   | `STRATSEARCH_MIN_WIN_RATE`            | `45`    | Acceptance: minimum win rate (%)           |
| Search   | `STRATSEARCH_CLOSE_ON_OPPOSITE`       | `false` | Reverse on opposite signal                 |
| Search   | `STRATSEARCH_MAX_RESTARTS`            | `None`  | Bound on fresh populations (None = no cap) |
| Analysis | `STRATSEARCH_MC_ITERATIONS`           | `1000`  | Monte Carlo shuffles                       |
| Analysis | `STRATSEARCH_RUIN_THRESHOLD`          | `0.2`   | Loss fraction counted as ruin              |
| Analysis | `STRATSEARCH_WF_TRAINING_RATIO`       | `0.7`   | Walk-forward training share                |
| Sentry   | `SENTRY_DSN`                          | `None`  | Sentry ingest DSN                          |
| Sentry   | `SENTRY_TRACES_SAMPLE_RATE`           | `0.0`   | Fraction of transactions to trace          |
| Sentry   | `SENTRY_ENVIRONMENT`                  | `None`  | Deployment environment label               |

They source environment variables at construction time and are intended to be
treated as read-only; use ``reload_settings`` after changing the environment.
"""

from __future__ import annotations

from typing import Any, Tuple

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _lenient(default: Any, cast):
    def _coerce(value: Any) -> Any:
        if value in (None, ""):
            return default
        try:
            return cast(value)
        except (TypeError, ValueError):
            return default

    return _coerce


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


class SearchSettings(_SettingsBase):
    """Genetic search configuration surface."""

    population_size: int = Field(default=100, alias="STRATSEARCH_POPULATION_SIZE")
    generations: int = Field(default=50, alias="STRATSEARCH_GENERATIONS")
    target_strategies: int = Field(default=5, alias="STRATSEARCH_TARGET_STRATEGIES")
    rules_min: int = Field(default=3, alias="STRATSEARCH_RULES_MIN")
    rules_max: int = Field(default=8, alias="STRATSEARCH_RULES_MAX")
    shift_min: int = Field(default=1, alias="STRATSEARCH_SHIFT_MIN")
    shift_max: int = Field(default=10, alias="STRATSEARCH_SHIFT_MAX")
    min_trades: int = Field(default=30, alias="STRATSEARCH_MIN_TRADES")
    min_profit_factor: float = Field(
        default=1.5, alias="STRATSEARCH_MIN_PROFIT_FACTOR"
    )
    max_drawdown: float = Field(default=25.0, alias="STRATSEARCH_MAX_DRAWDOWN")
    min_win_rate: float = Field(default=45.0, alias="STRATSEARCH_MIN_WIN_RATE")
    close_on_opposite: bool = Field(
        default=False, alias="STRATSEARCH_CLOSE_ON_OPPOSITE"
    )
    max_restarts: int | None = Field(default=None, alias="STRATSEARCH_MAX_RESTARTS")

    @field_validator(
        "population_size",
        "generations",
        "target_strategies",
        "rules_min",
        "rules_max",
        "shift_min",
        "shift_max",
        "min_trades",
        mode="before",
    )
    @classmethod
    def _coerce_int(cls, value: Any, info) -> int:
        default = cls.model_fields[info.field_name].default
        return _lenient(default, int)(value)

    @field_validator(
        "min_profit_factor", "max_drawdown", "min_win_rate", mode="before"
    )
    @classmethod
    def _coerce_float(cls, value: Any, info) -> float:
        default = cls.model_fields[info.field_name].default
        return _lenient(default, float)(value)

    @field_validator("max_restarts", mode="before")
    @classmethod
    def _coerce_restarts(cls, value: Any) -> int | None:
        return _lenient(None, int)(value)

    @computed_field
    @property
    def rule_count_range(self) -> Tuple[int, int]:
        return (self.rules_min, self.rules_max)

    @computed_field
    @property
    def shift_range(self) -> Tuple[int, int]:
        return (self.shift_min, self.shift_max)


class AnalysisSettings(_SettingsBase):
    """Robustness analysis defaults (Monte Carlo and walk-forward)."""

    monte_carlo_iterations: int = Field(
        default=1000, alias="STRATSEARCH_MC_ITERATIONS"
    )
    ruin_threshold: float = Field(default=0.2, alias="STRATSEARCH_RUIN_THRESHOLD")
    walk_forward_training_ratio: float = Field(
        default=0.7, alias="STRATSEARCH_WF_TRAINING_RATIO"
    )

    @field_validator("monte_carlo_iterations", mode="before")
    @classmethod
    def _coerce_iterations(cls, value: Any) -> int:
        return _lenient(1000, int)(value)

    @field_validator("ruin_threshold", mode="before")
    @classmethod
    def _coerce_ruin(cls, value: Any) -> float:
        return _lenient(0.2, float)(value)

    @field_validator("walk_forward_training_ratio", mode="before")
    @classmethod
    def _coerce_ratio(cls, value: Any) -> float:
        return _lenient(0.7, float)(value)


class SentrySettings(_SettingsBase):
    """Sentry SDK configuration."""

    dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")
    environment: str | None = Field(default=None, alias="SENTRY_ENVIRONMENT")

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    search: SearchSettings = Field(default_factory=SearchSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


def reload_settings() -> Settings:
    """Alias for get_settings to maintain a consistent API."""
    return get_settings()


def get_search_settings() -> SearchSettings:
    return get_settings().search


def get_analysis_settings() -> AnalysisSettings:
    return get_settings().analysis


def get_sentry_settings() -> SentrySettings:
    return get_settings().sentry


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "get_search_settings",
    "get_analysis_settings",
    "get_sentry_settings",
    "SearchSettings",
    "AnalysisSettings",
    "SentrySettings",
]
