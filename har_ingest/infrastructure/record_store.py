"""
Record store: the storage collaborator of the ingestion batcher.

One table per record category (table name == category name), each holding the
ledger sequence and the normalized record as JSONB. Inserts are plain INSERTs;
loading the same checkpoint twice is an operator decision, so there is no
upsert or deduplication.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, runtime_checkable

import psycopg
from psycopg import Connection, sql
from psycopg.types.json import Jsonb

from har_ingest.domain.models import Category
from har_ingest.errors import StorageError
from har_ingest.infrastructure.db_factory import get_sync_connection
from har_ingest.utils.logging import get_logger

log = get_logger(__name__)

_CREATE_TABLE = sql.SQL(
    "CREATE TABLE IF NOT EXISTS {table} ("
    "ledger_sequence BIGINT NOT NULL, "
    "data JSONB NOT NULL)"
)
_CREATE_INDEX = sql.SQL(
    "CREATE INDEX IF NOT EXISTS {index} ON {table} (ledger_sequence)"
)
_INSERT = sql.SQL("INSERT INTO {table} (ledger_sequence, data) VALUES (%s, %s)")


def schema_statements() -> List[sql.Composed]:
    """DDL for every category table and its ledger_sequence index."""
    statements: List[sql.Composed] = []
    for category in Category:
        table = sql.Identifier(category.value)
        statements.append(_CREATE_TABLE.format(table=table))
        statements.append(
            _CREATE_INDEX.format(
                index=sql.Identifier(f"{category.value}_ledger_sequence_idx"), table=table
            )
        )
    return statements


@runtime_checkable
class RecordStore(Protocol):
    """
    Transactional sink for normalized records.

    The batcher calls `begin_transaction`, then `insert_record` for every staged
    record, then exactly one of `commit` / `rollback`.
    """

    def begin_transaction(self) -> None: ...

    def insert_record(self, category: Category, ledger_seq: int, value: Any) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


class PostgresRecordStore:
    """
    PostgreSQL implementation backed by a single psycopg connection.

    Every psycopg error is re-raised as `StorageError`.
    """

    def __init__(self, dsn: Optional[str] = None, connection: Optional[Connection] = None) -> None:
        self._dsn = dsn
        self._conn: Optional[Connection] = connection
        self._pending = 0

    @property
    def connection(self) -> Connection:
        if self._conn is None:
            try:
                self._conn = get_sync_connection(self._dsn)
            except psycopg.Error as exc:
                raise StorageError(f"Could not connect to the database: {exc}") from exc
            log.info("DB connected")
        return self._conn

    def create_schema(self) -> None:
        conn = self.connection
        try:
            with conn.cursor() as cur:
                for statement in schema_statements():
                    cur.execute(statement)
            conn.commit()
        except psycopg.Error as exc:
            conn.rollback()
            raise StorageError(f"Schema creation failed: {exc}") from exc

    def begin_transaction(self) -> None:
        # psycopg opens the transaction implicitly on the first statement
        conn = self.connection
        if conn.autocommit:
            raise StorageError("Record store connection must not be in autocommit mode")
        self._pending = 0

    def insert_record(self, category: Category, ledger_seq: int, value: Any) -> None:
        statement = _INSERT.format(table=sql.Identifier(Category(category).value))
        try:
            self.connection.execute(statement, (ledger_seq, Jsonb(value)))
        except psycopg.Error as exc:
            raise StorageError(
                f"Insert into {Category(category).value} failed for ledger {ledger_seq}: {exc}"
            ) from exc
        self._pending += 1

    def commit(self) -> None:
        try:
            self.connection.commit()
        except psycopg.Error as exc:
            raise StorageError(f"Commit failed: {exc}") from exc
        log.debug("Transaction committed", extra={"rows": self._pending})
        self._pending = 0

    def rollback(self) -> None:
        try:
            self.connection.rollback()
        except psycopg.Error as exc:
            raise StorageError(f"Rollback failed: {exc}") from exc
        log.debug("Transaction rolled back", extra={"rows": self._pending})
        self._pending = 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


__all__ = ["RecordStore", "PostgresRecordStore", "schema_statements"]
