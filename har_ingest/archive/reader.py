"""
Read one archive file into normalized records.

Pipeline per file: gunzip -> frame -> decode (stellar_sdk) -> normalize.
All failures are re-raised with the offending file path attached.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from har_ingest.archive.checkpoints import to_file_path
from har_ingest.archive.framer import RecordFramer
from har_ingest.domain.models import Category, NormalizedRecord
from har_ingest.errors import DecodeError, UnsupportedXDR
from har_ingest.utils.logging import get_logger
from har_ingest.xdr.codec import decode_tree, ledger_seq_of
from har_ingest.xdr.normalizer import normalize

log = get_logger(__name__)


@dataclass(frozen=True)
class FileTask:
    """One (checkpoint, category) archive file to read."""

    root_dir: str
    checkpoint: int
    category: Category

    @property
    def path(self) -> str:
        return to_file_path(self.root_dir, self.checkpoint, self.category.value)


def read_records_from_file(path: str, category: Category, checkpoint: int) -> List[NormalizedRecord]:
    """
    Decode and normalize every record of one archive file.

    Raises
    ------
    ArchiveFileMissing, TruncatedStream, DecodeError, UnsupportedXDR
    """
    records: List[NormalizedRecord] = []
    for index, span in enumerate(RecordFramer.from_file(path)):
        try:
            tree = decode_tree(span, category)
        except DecodeError as exc:
            exc.path = path
            log.error(
                f"Failed to decode record {index} of {path}",
                extra={"checkpoint": checkpoint, "category": category.value, "path": path},
            )
            raise
        try:
            ledger_seq = ledger_seq_of(category, tree, checkpoint)
            data = normalize(tree)
        except UnsupportedXDR as exc:
            raise UnsupportedXDR(f"{exc} (file: {path}, record {index})") from exc
        records.append(
            NormalizedRecord(
                category=category,
                ledger_seq=ledger_seq,
                checkpoint=checkpoint,
                data=data if isinstance(data, dict) else {"value": data},
            )
        )
    return records


def read_file_task(task: FileTask) -> List[NormalizedRecord]:
    """Top-level worker entry point so tasks can be shipped to a process pool."""
    path = task.path
    log.debug(
        f"reading {path}",
        extra={"checkpoint": task.checkpoint, "category": task.category.value, "path": path},
    )
    return read_records_from_file(path, task.category, task.checkpoint)


__all__ = ["FileTask", "read_records_from_file", "read_file_task"]
