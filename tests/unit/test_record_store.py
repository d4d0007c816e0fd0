from __future__ import annotations

from typing import Any, List, Tuple

import psycopg
import pytest

from har_ingest.domain.models import Category
from har_ingest.errors import StorageError
from har_ingest.infrastructure import record_store
from har_ingest.infrastructure.record_store import (
    PostgresRecordStore,
    RecordStore,
    schema_statements,
)


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, statement: Any, params: Any = None) -> None:
        self._conn.execute(statement, params)


class _FakeConnection:
    def __init__(self, fail_execute: bool = False, fail_commit: bool = False) -> None:
        self.autocommit = False
        self.fail_execute = fail_execute
        self.fail_commit = fail_commit
        self.executed: List[Tuple[Any, Any]] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    def execute(self, statement: Any, params: Any = None) -> None:
        if self.fail_execute:
            raise psycopg.OperationalError("server closed the connection")
        self.executed.append((statement, params))

    def commit(self) -> None:
        if self.fail_commit:
            raise psycopg.OperationalError("commit rejected")
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


def test_schema_has_table_and_index_per_category():
    assert len(schema_statements()) == 2 * len(Category)


def test_postgres_store_satisfies_protocol():
    assert isinstance(PostgresRecordStore(connection=_FakeConnection()), RecordStore)


def test_insert_wraps_value_as_jsonb():
    conn = _FakeConnection()
    store = PostgresRecordStore(connection=conn)
    store.begin_transaction()
    store.insert_record(Category.ledger, 63, {"hash": "ab" * 32})
    store.commit()

    ((_, params),) = conn.executed
    ledger_seq, payload = params
    assert ledger_seq == 63
    assert payload.obj == {"hash": "ab" * 32}
    assert conn.commits == 1


def test_create_schema_runs_every_statement():
    conn = _FakeConnection()
    PostgresRecordStore(connection=conn).create_schema()
    assert len(conn.executed) == len(schema_statements())
    assert conn.commits == 1


def test_create_schema_failure_rolls_back():
    conn = _FakeConnection(fail_execute=True)
    with pytest.raises(StorageError, match="Schema creation failed"):
        PostgresRecordStore(connection=conn).create_schema()
    assert conn.rollbacks == 1


def test_autocommit_connection_is_rejected():
    conn = _FakeConnection()
    conn.autocommit = True
    with pytest.raises(StorageError, match="autocommit"):
        PostgresRecordStore(connection=conn).begin_transaction()


def test_insert_failure_is_storage_error():
    store = PostgresRecordStore(connection=_FakeConnection(fail_execute=True))
    with pytest.raises(StorageError, match="ledger 127") as excinfo:
        store.insert_record(Category.transactions, 127, {})
    assert isinstance(excinfo.value.__cause__, psycopg.Error)


def test_commit_failure_is_storage_error():
    store = PostgresRecordStore(connection=_FakeConnection(fail_commit=True))
    with pytest.raises(StorageError, match="Commit failed"):
        store.commit()


def test_connect_failure_is_storage_error(monkeypatch: pytest.MonkeyPatch):
    def _refuse(dsn=None):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(record_store, "get_sync_connection", _refuse)
    store = PostgresRecordStore(dsn="postgresql://nobody@localhost:1/none")
    with pytest.raises(StorageError, match="Could not connect"):
        store.begin_transaction()


def test_close_releases_connection():
    conn = _FakeConnection()
    store = PostgresRecordStore(connection=conn)
    store.close()
    store.close()
    assert conn.closed
