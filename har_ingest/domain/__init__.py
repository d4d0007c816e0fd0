"""
Domain package for history archive ingestion.

Exports the category table and the models shared by the reader, batcher and
record store. Keep this package focused on data definitions and validation.
"""

from har_ingest.domain.models import (
    CATEGORY_XDR_TYPES,
    DEFAULT_CATEGORIES,
    BatchResult,
    Category,
    LedgerRange,
    Network,
    NormalizedRecord,
)

__all__ = [
    "CATEGORY_XDR_TYPES",
    "DEFAULT_CATEGORIES",
    "BatchResult",
    "Category",
    "LedgerRange",
    "Network",
    "NormalizedRecord",
]
