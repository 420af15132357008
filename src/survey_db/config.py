"""Database configuration — reads the connection URL from environment.

The survey runs on a single device, so the default is a local SQLite file
driven by ``aiosqlite``.  A ``DATABASE_URL`` env var overrides it; plain
``postgresql://`` URLs are rewritten to the asyncpg driver so the same
variable works for a hosted database.
"""

import os

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./survey.db"


def get_async_url() -> str:
    """Return an async-driver connection URL for the SQLAlchemy engine."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return DEFAULT_DATABASE_URL
    return normalise_async_url(url)


def normalise_async_url(url: str) -> str:
    """Ensure ``url`` names an async driver.

    ``postgresql://`` becomes ``postgresql+asyncpg://`` and ``sqlite://``
    becomes ``sqlite+aiosqlite://``.  URLs that already carry a driver are
    returned unchanged.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def is_sqlite(url: str) -> bool:
    """True if ``url`` points at a SQLite database (no connection pool sizing)."""
    return url.startswith("sqlite")
