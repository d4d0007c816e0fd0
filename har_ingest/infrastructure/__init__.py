"""
Infrastructure package for history archive ingestion.

Centralizes database connectivity and the record store. Keep this layer
focused on I/O and resource management, decoupled from batching logic.
"""

from har_ingest.infrastructure.db_factory import build_dsn, get_sync_connection
from har_ingest.infrastructure.record_store import PostgresRecordStore, RecordStore

__all__ = [
    "build_dsn",
    "get_sync_connection",
    "PostgresRecordStore",
    "RecordStore",
]
