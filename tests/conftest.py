"""
Pytest configuration for history archive ingestion.

Provides fixtures for:
- Settings override for integration tests
- Sample archive files on disk (real XDR, framed and gzip'd)
- An in-memory record store that records every call
- Database connection management for integration tests
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Generator, List, Optional, Tuple

import psycopg
import pytest

from har_ingest.config import Settings
from har_ingest.domain.models import Category, LedgerRange
from har_ingest.errors import StorageError
from har_ingest.infrastructure.db_factory import build_dsn


class FakeRecordStore:
    """RecordStore double: keeps staged rows per transaction and logs calls."""

    def __init__(self, fail_on_insert: Optional[int] = None) -> None:
        self.calls: List[str] = []
        self.committed: List[List[Tuple[Category, int, Any]]] = []
        self.fail_on_insert = fail_on_insert
        self._pending: List[Tuple[Category, int, Any]] = []

    def begin_transaction(self) -> None:
        self.calls.append("begin")
        self._pending = []

    def insert_record(self, category: Category, ledger_seq: int, value: Any) -> None:
        if self.fail_on_insert is not None and len(self._pending) == self.fail_on_insert:
            raise StorageError(f"insert {self.fail_on_insert} rejected")
        self._pending.append((category, ledger_seq, value))

    def commit(self) -> None:
        self.calls.append("commit")
        self.committed.append(self._pending)
        self._pending = []

    def rollback(self) -> None:
        self.calls.append("rollback")
        self._pending = []

    def close(self) -> None:
        self.calls.append("close")

    @property
    def writes(self) -> int:
        return sum(len(batch) for batch in self.committed) + len(self._pending)


@pytest.fixture
def fake_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def failing_store() -> FakeRecordStore:
    return FakeRecordStore(fail_on_insert=5)


@pytest.fixture
def sample_archive(tmp_path: Path) -> str:
    """
    Archive root holding transactions and results files for ledgers 1:191
    (checkpoints 63, 127 and 191).
    """
    from scripts.make_sample_archive import write_sample_archive

    root = tmp_path / "har"
    write_sample_archive(
        str(root), LedgerRange.parse("1:191"), [Category.transactions, Category.results]
    )
    return str(root)


@pytest.fixture
def archive_config_file(tmp_path: Path, sample_archive: str) -> str:
    """Configuration file pointing the testnet network at the sample archive."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "archivistToolPath": "/usr/local/bin/stellar-archivist",
                "testnet": {
                    "harLocalPath": sample_archive,
                    "harRemotePath": "http://history.example.org/testnet",
                },
            }
        ),
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "stellar_history"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, test_dsn: str):
    """
    Create the category tables and empty them before and after each test.
    """
    from har_ingest.infrastructure.record_store import PostgresRecordStore

    store = PostgresRecordStore(dsn=test_dsn)
    store.create_schema()
    store.close()

    def _truncate() -> None:
        with db_connection.cursor() as cur:
            for category in Category:
                cur.execute(f"TRUNCATE TABLE {category.value};")
        db_connection.commit()

    _truncate()
    yield
    _truncate()
