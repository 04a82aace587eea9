from __future__ import annotations

from dataclasses import dataclass, field

from stratsearch import APP_VERSION
from stratsearch.utils.env import get_int, get_str


@dataclass(frozen=True)
class Settings:
    """
    Process-level settings read once from the environment.

    Attributes:
        VERSION (str): The package version reported in logs and outputs.
        environment (str): Deployment label (local, ci, prod, ...).
        log_level (str): Default log level for CLI runs.
        output_dir (str): Default directory for search artifacts.
        seed (int | None): Default RNG seed; ``None`` draws fresh entropy.
    """

    VERSION: str = APP_VERSION
    environment: str = field(default_factory=lambda: get_str("ENV", "local"))
    log_level: str = field(default_factory=lambda: get_str("LOG_LEVEL", "INFO"))
    output_dir: str = field(
        default_factory=lambda: get_str("STRATSEARCH_OUTPUT_DIR", "artifacts/search")
    )
    seed: int | None = field(
        default_factory=lambda: (
            get_int("STRATSEARCH_SEED", -1)
            if get_int("STRATSEARCH_SEED", -1) >= 0
            else None
        )
    )


settings = Settings()

__all__ = ["settings", "Settings"]
