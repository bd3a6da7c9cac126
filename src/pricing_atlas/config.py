"""Configuration constants for the PricingAtlas normalization ETL.

This module centralizes batch defaults, validation bounds and the
environment-derived settings used by the pipeline, storage and API layers.
"""

from __future__ import annotations

import logging
import os

# Job defaults
DEFAULT_BATCH_SIZE = 1000
DEFAULT_CONCURRENT_WORKERS = 4
PROGRESS_LOG_INTERVAL = 10_000  # processed records between progress log lines

# Input validation bounds
MAX_SERVICE_CODE_LENGTH = 100
MAX_REGION_LENGTH = 50

# Output validation bounds
MAX_RESOURCE_NAME_LENGTH = 200
MIN_PRICE_PER_UNIT = 0.0  # exclusive
MAX_PRICE_PER_UNIT = 999_999.99
CURRENCY_CODE_LENGTH = 3

DEFAULT_MINIMUM_COMMITMENT = 1

# Environment
DATABASE_URL_ENV = "PRICING_ATLAS_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite:///pricing_atlas.db"
LOG_LEVEL_ENV = "PRICING_ATLAS_LOG_LEVEL"
SQL_ECHO_ENV = "PRICING_ATLAS_SQL_ECHO"
CORS_ORIGINS_ENV = "PRICING_ATLAS_CORS_ORIGINS"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_database_url() -> str:
    """Return the SQLAlchemy URL for raw and normalized pricing storage."""
    return os.getenv(DATABASE_URL_ENV, "").strip() or DEFAULT_DATABASE_URL


def sql_echo_enabled() -> bool:
    return os.getenv(SQL_ECHO_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Library modules only create module loggers; entry points (scripts, API
    launcher) call this once.
    """
    resolved = (level or os.getenv(LOG_LEVEL_ENV, "") or "INFO").strip().upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, resolved, logging.INFO))
    if not any(getattr(handler, "_pricing_atlas", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._pricing_atlas = True  # type: ignore[attr-defined]
        root.addHandler(handler)
