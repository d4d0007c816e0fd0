"""
Domain models for history archive ingestion.

Defines the fixed record category table, ledger ranges, normalized records
and batch results. Normalized records map one-to-one onto rows of the
per-category tables created by `har_ingest.infrastructure.record_store`.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from har_ingest.archive.checkpoints import checkpoints_for_range
from har_ingest.errors import InvalidRange


class Category(str, Enum):
    """Archive file type; also the archive sub-directory and the table name."""

    bucket = "bucket"
    ledger = "ledger"
    transactions = "transactions"
    results = "results"
    scp = "scp"


class Network(str, Enum):
    live = "live"
    testnet = "testnet"


CATEGORY_XDR_TYPES: Mapping[Category, str] = {
    Category.bucket: "BucketEntry",
    Category.ledger: "LedgerHeaderHistoryEntry",
    Category.transactions: "TransactionHistoryEntry",
    Category.results: "TransactionHistoryResultEntry",
    Category.scp: "SCPHistoryEntry",
}

# Struct path to the ledger sequence inside a decoded record. None means the
# record carries no sequence and is keyed by the checkpoint of its file.
LEDGER_SEQ_PATHS: Mapping[Category, Optional[Tuple[str, ...]]] = {
    Category.bucket: None,
    Category.ledger: ("header", "ledger_seq"),
    Category.transactions: ("ledger_seq",),
    Category.results: ("ledger_seq",),
    Category.scp: ("ledger_messages", "ledger_seq"),
}

DEFAULT_CATEGORIES: Tuple[Category, ...] = (
    Category.ledger,
    Category.transactions,
    Category.results,
)

_RANGE_RE = re.compile(r"^\s*(\d+)\s*:\s*(\d+)\s*$")


class LedgerRange(BaseModel):
    """Inclusive ledger range requested for ingestion."""

    from_ledger: int = Field(..., ge=0)
    to_ledger: int = Field(..., ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _ordered(self) -> "LedgerRange":
        if self.from_ledger > self.to_ledger:
            raise ValueError(f"range start {self.from_ledger} is after end {self.to_ledger}")
        return self

    @classmethod
    def single(cls, ledger: int) -> "LedgerRange":
        if ledger < 0:
            raise InvalidRange(f"Ledger must be a valid ledger sequence: {ledger}")
        return cls(from_ledger=ledger, to_ledger=ledger)

    @classmethod
    def parse(cls, text: str) -> "LedgerRange":
        """Parse a `from:to` range argument."""
        match = _RANGE_RE.match(text or "")
        if not match:
            raise InvalidRange(f"Failed to parse range '{text}', expected FROM:TO")
        from_ledger, to_ledger = int(match.group(1)), int(match.group(2))
        if from_ledger > to_ledger:
            raise InvalidRange(f"Range start {from_ledger} is after range end {to_ledger}")
        return cls(from_ledger=from_ledger, to_ledger=to_ledger)

    def checkpoints(self) -> List[int]:
        return checkpoints_for_range(self.from_ledger, self.to_ledger)


class NormalizedRecord(BaseModel):
    """
    One decoded and canonicalized archive record, keyed by ledger sequence.
    """

    category: Category = Field(..., description="Record category / target table.")
    ledger_seq: int = Field(..., ge=0, description="Ledger sequence the record belongs to.")
    checkpoint: int = Field(..., ge=0, description="Checkpoint of the source file.")
    data: Dict[str, Any] = Field(..., description="Canonical JSON-safe value tree.")

    model_config = {
        "frozen": True,
        "use_enum_values": False,
    }


class BatchResult(BaseModel):
    """Outcome of one checkpoint batch."""

    first_checkpoint: int
    last_checkpoint: int
    checkpoints: int
    files: int = 0
    records: int = 0
    committed: bool = False
    dry_run: bool = False
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None


__all__ = [
    "Category",
    "Network",
    "CATEGORY_XDR_TYPES",
    "LEDGER_SEQ_PATHS",
    "DEFAULT_CATEGORIES",
    "LedgerRange",
    "NormalizedRecord",
    "BatchResult",
]
