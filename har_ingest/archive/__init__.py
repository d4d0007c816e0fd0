"""
Archive package: addressing, framing, reading and mirroring of history archive files.

Only the dependency-free addressing and framing helpers are re-exported here;
import `har_ingest.archive.reader` and `har_ingest.archive.syncer` directly.
"""

from har_ingest.archive.checkpoints import (
    LEDGERS_PER_CHECKPOINT,
    checkpoints_for_range,
    to_checkpoint,
    to_file_path,
    to_ledger_hex,
)
from har_ingest.archive.framer import RecordFramer, iter_record_spans, load_archive_file

__all__ = [
    "LEDGERS_PER_CHECKPOINT",
    "checkpoints_for_range",
    "to_checkpoint",
    "to_file_path",
    "to_ledger_hex",
    "RecordFramer",
    "iter_record_spans",
    "load_archive_file",
]
