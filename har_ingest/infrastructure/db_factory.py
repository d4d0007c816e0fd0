"""
Database connection factory for history archive ingestion.

Ingestion runs one batch at a time on a single connection, so connections are
acquired directly rather than through a pool. Transient connection failures
are retried with exponential backoff using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import Connection
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from har_ingest.config import DatabaseConfig, Settings, get_settings


def build_dsn(settings: Optional[Settings] = None, override: Optional[DatabaseConfig] = None) -> str:
    """
    Compose a DSN string from settings, applying config file overrides.
    """
    settings = settings or get_settings()
    override = override or DatabaseConfig()
    user = override.user or settings.db_user
    password = override.password or settings.db_password
    host = override.host or settings.db_host
    port = override.port or settings.db_port
    database = override.database or settings.db_name
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    The connection is not in autocommit mode: statements run inside a
    transaction until `commit()` or `rollback()`.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


__all__ = ["build_dsn", "get_sync_connection"]
