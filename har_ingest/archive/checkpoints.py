"""
Checkpoint addressing for history archives.

History files are cut at ledgers one less than a multiple of 64. Every ledger
belongs to exactly one checkpoint, and every (root, category, checkpoint)
triple maps to exactly one file path:

    <root>/<category>/<hh>/<hh>/<hh>/<category>-<hhhhhhhh>.xdr.gz
"""

from __future__ import annotations

import os
from typing import List

from har_ingest.errors import InvalidRange

LEDGERS_PER_CHECKPOINT = 64


def to_checkpoint(ledger_seq: int) -> int:
    """Return the checkpoint ledger whose files contain `ledger_seq`."""
    return (ledger_seq // LEDGERS_PER_CHECKPOINT + 1) * LEDGERS_PER_CHECKPOINT - 1


def is_checkpoint(ledger_seq: int) -> bool:
    return (ledger_seq + 1) % LEDGERS_PER_CHECKPOINT == 0


def checkpoints_for_range(from_ledger: int, to_ledger: int) -> List[int]:
    """
    List the checkpoints covering the inclusive ledger range `from_ledger:to_ledger`.

    Walks from `from_ledger` in steps of 64 and always ends with the checkpoint
    of `to_ledger`. The result is strictly increasing with no duplicates.

    Raises
    ------
    InvalidRange
        If either bound is negative or `from_ledger > to_ledger`.
    """
    if from_ledger < 0 or to_ledger < 0:
        raise InvalidRange(f"Ledger numbers must be non-negative: {from_ledger}:{to_ledger}")
    if from_ledger > to_ledger:
        raise InvalidRange(f"Range start {from_ledger} is after range end {to_ledger}")

    checkpoints: List[int] = []
    for seq in range(from_ledger, to_ledger, LEDGERS_PER_CHECKPOINT):
        checkpoints.append(to_checkpoint(seq))

    last = to_checkpoint(to_ledger)
    if not checkpoints or checkpoints[-1] != last:
        checkpoints.append(last)
    return checkpoints


def to_ledger_hex(ledger_seq: int) -> str:
    """Zero padded, 8 digit, lowercase hex rendering of a ledger number."""
    return format(ledger_seq, "08x")


def to_file_path(root_dir: str, checkpoint: int, category: str) -> str:
    """Build the archive path of the `category` file for `checkpoint` under `root_dir`."""
    ledger_hex = to_ledger_hex(checkpoint)
    return os.path.join(
        root_dir,
        category,
        ledger_hex[0:2],
        ledger_hex[2:4],
        ledger_hex[4:6],
        f"{category}-{ledger_hex}.xdr.gz",
    )


__all__ = [
    "LEDGERS_PER_CHECKPOINT",
    "to_checkpoint",
    "is_checkpoint",
    "checkpoints_for_range",
    "to_ledger_hex",
    "to_file_path",
]
