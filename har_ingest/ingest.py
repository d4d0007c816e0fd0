"""
Checkpoint-aligned, batched ingestion of history archive files.

Usage:
    from har_ingest.ingest import run_ingestion

    report = run_ingestion(
        LedgerRange.parse("1:99999"),
        root_dir="/srv/har/live",
        categories=[Category.transactions],
        store=PostgresRecordStore(),
    )

Batches run strictly one after another in ascending checkpoint order. Each
batch is one storage transaction: every file of the batch is read, framed,
decoded and normalized, every record is staged, and only then are the inserts
submitted and committed. Any failure rolls the whole batch back and stops the
run; earlier batches stay committed, so a run can be resumed from the first
checkpoint of the failed batch.
"""

from __future__ import annotations

import multiprocessing as mp
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from har_ingest.archive.reader import FileTask, read_file_task
from har_ingest.config import get_settings
from har_ingest.domain.models import (
    DEFAULT_CATEGORIES,
    BatchResult,
    Category,
    LedgerRange,
    NormalizedRecord,
)
from har_ingest.errors import BatchFailed, StorageError
from har_ingest.infrastructure.record_store import RecordStore
from har_ingest.utils.logging import get_logger
from har_ingest.utils.profiler import profile_block
from har_ingest.xdr.codec import validate_categories

log = get_logger(__name__)

FileReader = Callable[[FileTask], List[NormalizedRecord]]


class BatchState(str, Enum):
    idle = "idle"
    batching = "batching"
    committing = "committing"
    rolling_back = "rolling_back"


def partition_checkpoints(checkpoints: Sequence[int], batch_size: int) -> List[List[int]]:
    """Split an ordered checkpoint list into consecutive chunks of `batch_size`."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(checkpoints[i : i + batch_size]) for i in range(0, len(checkpoints), batch_size)]


@dataclass
class IngestionReport:
    """Committed (or dry-run) batches of a run, plus the failure that stopped it."""

    batches: List[BatchResult] = field(default_factory=list)
    failure: Optional[BatchFailed] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def records(self) -> int:
        return sum(batch.records for batch in self.batches)

    @property
    def files(self) -> int:
        return sum(batch.files for batch in self.batches)

    @property
    def resume_from(self) -> Optional[int]:
        """First checkpoint of the failed batch, if any."""
        return self.failure.first_checkpoint if self.failure else None


class IngestionBatcher:
    """
    Drives Idle -> Batching -> {Committing, RollingBack} -> Idle for every batch.

    Parameters
    ----------
    root_dir : str
        Local archive root.
    categories : iterable[Category]
        Record categories to load from every checkpoint.
    store : RecordStore | None
        Storage collaborator; may be None only in dry-run mode.
    dry_run : bool
        Read, frame, decode and normalize everything but never touch the store.
    checkpoints_per_batch : int | None
        Defaults to `Settings.checkpoints_per_batch`.
    decode_workers : int | None
        Processes used to read the files of one batch; 1 reads in-process.
    reader : callable | None
        Reads one FileTask in-process. Defaults to `read_file_task`. Pool
        workers always run `read_file_task`, so a custom reader cannot be
        combined with more than one decode worker.
    """

    def __init__(
        self,
        root_dir: str,
        categories: Iterable[Category] = DEFAULT_CATEGORIES,
        store: Optional[RecordStore] = None,
        dry_run: bool = False,
        checkpoints_per_batch: Optional[int] = None,
        decode_workers: Optional[int] = None,
        reader: Optional[FileReader] = None,
    ) -> None:
        if store is None and not dry_run:
            raise ValueError("A record store is required unless dry_run is set")
        validate_categories()
        settings = get_settings()
        self.root_dir = root_dir
        self.categories = [Category(category) for category in categories]
        self.store = store
        self.dry_run = dry_run
        self.checkpoints_per_batch = checkpoints_per_batch or settings.checkpoints_per_batch
        self.decode_workers = decode_workers or settings.decode_workers
        if reader is not None and self.decode_workers > 1:
            raise ValueError(
                f"A custom reader runs in-process only; got decode_workers={self.decode_workers}"
            )
        self._reader = reader or read_file_task
        self.state = BatchState.idle

    def _tasks(self, checkpoints: Sequence[int]) -> List[FileTask]:
        return [
            FileTask(root_dir=self.root_dir, checkpoint=checkpoint, category=category)
            for checkpoint in checkpoints
            for category in self.categories
        ]

    def _read_all(self, tasks: List[FileTask]) -> Iterator[List[NormalizedRecord]]:
        """Yield the records of each task, in task order."""
        if self.decode_workers > 1 and len(tasks) > 1:
            processes = min(self.decode_workers, len(tasks))
            with mp.Pool(processes=processes) as pool:
                yield from pool.imap(read_file_task, tasks)
        else:
            for task in tasks:
                yield self._reader(task)

    def _rollback(self) -> None:
        self.state = BatchState.rolling_back
        try:
            self.store.rollback()
        except StorageError:
            log.exception("Rollback failed; the server discards the open transaction")

    def run_batch(self, checkpoints: Sequence[int]) -> BatchResult:
        """
        Load one batch of checkpoints inside a single transaction.

        Raises
        ------
        BatchFailed
            After rolling back, for any staging or storage failure.
        """
        first, last = checkpoints[0], checkpoints[-1]
        tasks = self._tasks(checkpoints)
        log.info(
            f"Ingesting checkpoints {first} to {last}",
            extra={"first_checkpoint": first, "last_checkpoint": last, "files": len(tasks)},
        )

        self.state = BatchState.batching
        in_transaction = False
        current: Optional[FileTask] = None
        staged: List[NormalizedRecord] = []
        results: Optional[Iterator[List[NormalizedRecord]]] = None

        with profile_block(f"batch {first}:{last}") as stats:
            try:
                if not self.dry_run:
                    self.store.begin_transaction()
                    in_transaction = True

                results = self._read_all(tasks)
                for task in tasks:
                    current = task
                    records = next(results)
                    staged.extend(records)
                    log.debug(
                        f"File for {task.checkpoint}:{task.category.value} staged",
                        extra={"records": len(records), "path": task.path},
                    )
                current = None

                if not self.dry_run:
                    self.state = BatchState.committing
                    for record in staged:
                        self.store.insert_record(record.category, record.ledger_seq, record.data)
                    self.store.commit()
            except BaseException as exc:
                if results is not None:
                    results.close()
                context = {"first_checkpoint": first, "last_checkpoint": last}
                if current is not None:
                    context.update(
                        checkpoint=current.checkpoint,
                        category=current.category.value,
                        path=current.path,
                    )
                log.error(f"Batch {first}:{last} failed: {exc}", extra=context)
                if in_transaction:
                    self._rollback()
                self.state = BatchState.idle
                if not isinstance(exc, Exception):
                    raise
                raise BatchFailed(first, last, exc) from exc

        self.state = BatchState.idle
        result = BatchResult(
            first_checkpoint=first,
            last_checkpoint=last,
            checkpoints=len(checkpoints),
            files=len(tasks),
            records=len(staged),
            committed=not self.dry_run,
            dry_run=self.dry_run,
            duration_seconds=round(stats.duration_seconds, 3),
            peak_rss_bytes=stats.peak_rss_bytes,
        )
        log.info(
            f"Batch {first}:{last} {'checked' if self.dry_run else 'committed'}",
            extra={"records": result.records, "duration": result.duration_seconds},
        )
        return result

    def run(self, checkpoints: Sequence[int]) -> IngestionReport:
        """Process every batch in order, stopping at the first failure."""
        batches = partition_checkpoints(checkpoints, self.checkpoints_per_batch)
        log.info(
            f"Checkpoint ledgers to ingest: {len(checkpoints)} in {len(batches)} batch(es)",
            extra={"dry_run": self.dry_run, "categories": [c.value for c in self.categories]},
        )
        report = IngestionReport()
        for batch in batches:
            try:
                report.batches.append(self.run_batch(batch))
            except BatchFailed as exc:
                log.error(
                    f"Ingestion stopped; resume from checkpoint {exc.first_checkpoint}",
                    extra={
                        "first_checkpoint": exc.first_checkpoint,
                        "last_checkpoint": exc.last_checkpoint,
                    },
                )
                report.failure = exc
                break
        else:
            log.info("Ingestion complete", extra={"records": report.records, "files": report.files})
        return report


def run_ingestion(
    ledger_range: LedgerRange,
    root_dir: str,
    categories: Iterable[Category] = DEFAULT_CATEGORIES,
    store: Optional[RecordStore] = None,
    dry_run: bool = False,
    checkpoints_per_batch: Optional[int] = None,
    decode_workers: Optional[int] = None,
) -> IngestionReport:
    """Resolve `ledger_range` to checkpoints and ingest them batch by batch."""
    categories = list(categories)
    log.info(
        f"Importing {ledger_range.from_ledger} to {ledger_range.to_ledger} "
        f"for types [{', '.join(c.value for c in categories)}]"
    )
    batcher = IngestionBatcher(
        root_dir=root_dir,
        categories=categories,
        store=store,
        dry_run=dry_run,
        checkpoints_per_batch=checkpoints_per_batch,
        decode_workers=decode_workers,
    )
    return batcher.run(ledger_range.checkpoints())


__all__ = [
    "BatchState",
    "IngestionBatcher",
    "IngestionReport",
    "partition_checkpoints",
    "run_ingestion",
]
