"""
har_ingest - load Stellar history archive files into PostgreSQL.

The package covers:

- checkpoint addressing of archive files
- record framing of decompressed `.xdr.gz` files
- decoding (stellar_sdk) and canonical normalization of records
- checkpoint-aligned, transactional batch ingestion with dry-run support
- mirroring a remote archive locally with stellar-archivist
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

from har_ingest.archive.checkpoints import checkpoints_for_range, to_checkpoint, to_file_path
from har_ingest.config import Settings, get_settings
from har_ingest.domain.models import Category, LedgerRange, NormalizedRecord
from har_ingest.ingest import IngestionBatcher, IngestionReport, run_ingestion
from har_ingest.utils.logging import configure_logging, get_logger

__all__ = [
    "__version__",
    "__license__",
    # Addressing
    "checkpoints_for_range",
    "to_checkpoint",
    "to_file_path",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "Category",
    "LedgerRange",
    "NormalizedRecord",
    # Ingestion
    "IngestionBatcher",
    "IngestionReport",
    "run_ingestion",
    # Logging
    "configure_logging",
    "get_logger",
]
