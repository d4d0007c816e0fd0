from __future__ import annotations

from typing import List

import pytest

from har_ingest.archive.reader import FileTask
from har_ingest.domain.models import Category, LedgerRange, NormalizedRecord
from har_ingest.errors import ArchiveFileMissing, BatchFailed, StorageError, TruncatedStream
from har_ingest.ingest import (
    BatchState,
    IngestionBatcher,
    partition_checkpoints,
    run_ingestion,
)

RECORDS_PER_FILE = 3


def _stub_reader(fail_at: int | None = None, log: List[FileTask] | None = None):
    def _read(task: FileTask) -> List[NormalizedRecord]:
        if log is not None:
            log.append(task)
        if task.checkpoint == fail_at:
            raise TruncatedStream("cut short", offset=12, declared_size=40, path=task.path)
        return [
            NormalizedRecord(
                category=task.category,
                ledger_seq=task.checkpoint - i,
                checkpoint=task.checkpoint,
                data={"n": i},
            )
            for i in range(RECORDS_PER_FILE)
        ]

    return _read


def test_partition_checkpoints_preserves_order():
    checkpoints = [63 + 64 * i for i in range(7)]
    chunks = partition_checkpoints(checkpoints, 3)
    assert chunks == [checkpoints[0:3], checkpoints[3:6], checkpoints[6:7]]
    assert partition_checkpoints([], 3) == []


def test_partition_checkpoints_rejects_zero_size():
    with pytest.raises(ValueError):
        partition_checkpoints([63], 0)


def test_store_required_unless_dry_run():
    with pytest.raises(ValueError):
        IngestionBatcher(root_dir="/tmp", categories=[Category.transactions])


def test_dry_run_touches_one_file_and_never_writes(sample_archive, fake_store):
    report = run_ingestion(
        LedgerRange.parse("1:63"),
        root_dir=sample_archive,
        categories=[Category.transactions],
        store=fake_store,
        dry_run=True,
    )
    assert report.ok
    assert report.files == 1
    assert report.records == 63
    assert fake_store.calls == []
    assert fake_store.writes == 0
    assert all(batch.dry_run and not batch.committed for batch in report.batches)


def test_single_checkpoint_commits_once_with_every_record(sample_archive, fake_store):
    report = run_ingestion(
        LedgerRange.parse("1:63"),
        root_dir=sample_archive,
        categories=[Category.transactions],
        store=fake_store,
    )
    assert report.ok
    assert fake_store.calls == ["begin", "commit"]
    (committed,) = fake_store.committed
    assert [seq for _, seq, _ in committed] == list(range(1, 64))
    assert {category for category, _, _ in committed} == {Category.transactions}
    assert committed[0][2]["tx_set"]["previous_ledger_hash"] == (1).to_bytes(32, "big").hex()


def test_batches_follow_checkpoint_order(sample_archive, fake_store):
    report = run_ingestion(
        LedgerRange.parse("1:191"),
        root_dir=sample_archive,
        categories=[Category.transactions, Category.results],
        store=fake_store,
        checkpoints_per_batch=2,
    )
    assert [(b.first_checkpoint, b.last_checkpoint) for b in report.batches] == [
        (63, 127),
        (191, 191),
    ]
    assert fake_store.calls == ["begin", "commit", "begin", "commit"]
    assert [len(batch) for batch in fake_store.committed] == [2 * 127, 2 * 64]


def test_failed_batch_rolls_back_and_keeps_earlier_batches(fake_store):
    seen: List[FileTask] = []
    batcher = IngestionBatcher(
        root_dir="/srv/har",
        categories=[Category.transactions],
        store=fake_store,
        checkpoints_per_batch=1,
        decode_workers=1,
        reader=_stub_reader(fail_at=127, log=seen),
    )
    report = batcher.run([63, 127, 191])

    assert not report.ok
    assert [b.first_checkpoint for b in report.batches] == [63]
    assert report.resume_from == 127
    assert isinstance(report.failure.cause, TruncatedStream)
    assert fake_store.calls == ["begin", "commit", "begin", "rollback"]
    assert len(fake_store.committed) == 1
    assert [task.checkpoint for task in seen] == [63, 127]
    assert batcher.state is BatchState.idle


def test_storage_failure_rolls_back_whole_batch(failing_store):
    batcher = IngestionBatcher(
        root_dir="/srv/har",
        categories=[Category.ledger, Category.results],
        store=failing_store,
        checkpoints_per_batch=10,
        decode_workers=1,
        reader=_stub_reader(),
    )
    with pytest.raises(BatchFailed) as excinfo:
        batcher.run_batch([63, 127])

    assert (excinfo.value.first_checkpoint, excinfo.value.last_checkpoint) == (63, 127)
    assert isinstance(excinfo.value.cause, StorageError)
    assert failing_store.calls == ["begin", "rollback"]
    assert failing_store.committed == []


def test_missing_file_fails_batch(tmp_path, fake_store):
    report = run_ingestion(
        LedgerRange.single(100),
        root_dir=str(tmp_path),
        categories=[Category.ledger],
        store=fake_store,
    )
    assert not report.ok
    assert isinstance(report.failure.cause, ArchiveFileMissing)
    assert fake_store.calls == ["begin", "rollback"]


def test_dry_run_still_surfaces_bad_files(fake_store):
    batcher = IngestionBatcher(
        root_dir="/srv/har",
        categories=[Category.transactions],
        store=fake_store,
        dry_run=True,
        decode_workers=1,
        reader=_stub_reader(fail_at=63),
    )
    report = batcher.run([63])
    assert report.failure is not None
    assert fake_store.calls == []


def test_worker_pool_matches_in_process_results(sample_archive):
    kwargs = dict(
        root_dir=sample_archive,
        categories=[Category.transactions, Category.results],
        dry_run=True,
        checkpoints_per_batch=3,
    )
    serial = IngestionBatcher(decode_workers=1, **kwargs).run([63, 127, 191])
    pooled = IngestionBatcher(decode_workers=2, **kwargs).run([63, 127, 191])
    assert serial.ok and pooled.ok
    assert serial.records == pooled.records == 2 * 191


def test_custom_reader_cannot_use_worker_pool(fake_store):
    with pytest.raises(ValueError, match="in-process only"):
        IngestionBatcher(
            root_dir="/srv/har",
            categories=[Category.transactions],
            store=fake_store,
            decode_workers=2,
            reader=_stub_reader(),
        )
