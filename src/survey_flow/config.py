"""SDK configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  The database
URL falls back to ``survey_db.config`` when ``DATABASE_URL`` is unset.
"""

import logging
import os
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class SurveySettings:
    """Immutable SDK configuration read from environment at startup."""

    # Catalog YAML file (None → QuestionCatalog default, v1/questionnaire.yaml)
    catalog_path: str | None = None

    # Async SQLAlchemy URL (None → survey_db default engine)
    database_url: str | None = None

    # Logging
    log_level: str = "INFO"

    # Create tables on startup if they are missing
    create_schema: bool = True


def load_settings() -> SurveySettings:
    """Build settings from ``SURVEY_*`` / ``DATABASE_URL`` environment variables."""
    return SurveySettings(
        catalog_path=os.getenv("SURVEY_CATALOG_PATH") or None,
        database_url=os.getenv("DATABASE_URL") or None,
        log_level=os.getenv("SURVEY_LOG_LEVEL", "INFO").upper(),
        create_schema=os.getenv("SURVEY_CREATE_SCHEMA", "1") not in ("0", "false", "no"),
    )


def configure_logging(settings: SurveySettings) -> None:
    """Apply the process-wide logging format at the configured level."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
