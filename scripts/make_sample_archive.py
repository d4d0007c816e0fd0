"""
Sample archive generator for history archive ingestion.

Writes correctly framed, gzip-compressed archive files containing real XDR
records (one per ledger) at the paths the ingester expects. Useful for dry
runs and for tests that need files on disk.

    python -m scripts.make_sample_archive /tmp/har --range 1:200 --type transactions
"""

from __future__ import annotations

import gzip
import os
from pathlib import Path
from typing import Iterable, List

import typer
from stellar_sdk import xdr as stellar_xdr

from har_ingest.archive.checkpoints import LEDGERS_PER_CHECKPOINT, to_file_path
from har_ingest.archive.framer import frame_record
from har_ingest.domain.models import Category, LedgerRange

app = typer.Typer(help="Write synthetic history archive files (framed + gzip'd XDR).")


def _transactions_entry(ledger_seq: int) -> bytes:
    entry = stellar_xdr.TransactionHistoryEntry(
        ledger_seq=stellar_xdr.Uint32(ledger_seq),
        tx_set=stellar_xdr.TransactionSet(
            previous_ledger_hash=stellar_xdr.Hash(ledger_seq.to_bytes(32, "big")),
            txs=[],
        ),
        ext=stellar_xdr.TransactionHistoryEntryExt(v=0),
    )
    return entry.to_xdr_bytes()


def _results_entry(ledger_seq: int) -> bytes:
    entry = stellar_xdr.TransactionHistoryResultEntry(
        ledger_seq=stellar_xdr.Uint32(ledger_seq),
        tx_result_set=stellar_xdr.TransactionResultSet(results=[]),
        ext=stellar_xdr.TransactionHistoryResultEntryExt(v=0),
    )
    return entry.to_xdr_bytes()


_BUILDERS = {
    Category.transactions: _transactions_entry,
    Category.results: _results_entry,
}


def checkpoint_ledgers(checkpoint: int) -> List[int]:
    """Ledgers stored in the file of `checkpoint` (ledger 0 does not exist)."""
    first = max(checkpoint - LEDGERS_PER_CHECKPOINT + 1, 1)
    return list(range(first, checkpoint + 1))


def write_archive_file(path: str, payloads: Iterable[bytes]) -> str:
    """Frame `payloads` and write them gzip'd at `path`, creating directories."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with gzip.open(path, "wb") as fh:
        for payload in payloads:
            fh.write(frame_record(payload))
    return path


def write_checkpoint_file(root_dir: str, checkpoint: int, category: Category) -> str:
    builder = _BUILDERS.get(category)
    if builder is None:
        raise ValueError(f"No sample record builder for category '{category.value}'")
    path = to_file_path(root_dir, checkpoint, category.value)
    return write_archive_file(path, (builder(seq) for seq in checkpoint_ledgers(checkpoint)))


def write_sample_archive(
    root_dir: str, ledger_range: LedgerRange, categories: Iterable[Category]
) -> List[str]:
    paths: List[str] = []
    for checkpoint in ledger_range.checkpoints():
        for category in categories:
            paths.append(write_checkpoint_file(root_dir, checkpoint, category))
    return paths


@app.command()
def main(
    root_dir: Path = typer.Argument(..., help="Archive root to write into."),
    ledger_range: str = typer.Option("1:63", "--range", "-r", help="Ledger range FROM:TO."),
    category: List[Category] = typer.Option(
        [Category.transactions, Category.results], "--type", "-t", help="Categories to write."
    ),
) -> None:
    paths = write_sample_archive(str(root_dir), LedgerRange.parse(ledger_range), category)
    typer.echo(f"Wrote {len(paths)} file(s) under {root_dir}")


if __name__ == "__main__":
    app()
