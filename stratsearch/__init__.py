import logging
import os
from pathlib import Path

import sentry_sdk
from dotenv import load_dotenv
from loguru import logger
from sentry_sdk.integrations.logging import LoggingIntegration

__version__ = "0.4.2"

# Load environment variables early so SENTRY_DSN and search defaults are visible
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _detect_build_version() -> str:
    explicit = os.getenv("STRATSEARCH_VERSION")
    if explicit:
        return explicit
    build_file = Path(__file__).resolve().parents[1] / "_build_version.txt"
    if build_file.exists():
        try:
            return build_file.read_text(encoding="utf-8").strip()
        except OSError:
            pass
    return __version__


APP_VERSION = _detect_build_version()

# Initialize Sentry as early as possible (only if DSN is provided)
_dsn = os.getenv("SENTRY_DSN")
if _dsn:
    sentry_sdk.init(
        dsn=_dsn,
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0") or 0),
        environment=os.getenv("SENTRY_ENVIRONMENT", os.getenv("ENV", "local")),
        release=APP_VERSION,
    )
else:
    logging.getLogger(__name__).debug("Sentry DSN not set; Sentry disabled")

logger.debug("stratsearch {} imported", APP_VERSION)
