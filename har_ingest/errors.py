"""
Error taxonomy for history archive ingestion.

Library code raises these; the CLI maps them to exit codes. Every error that
relates to a specific archive file carries enough context (checkpoint,
category, path) to locate the offending file.
"""

from __future__ import annotations

from typing import Optional


class HarIngestError(Exception):
    """Base class for all ingestion errors."""


class ConfigError(HarIngestError):
    """Configuration file missing, unreadable or incomplete."""


class InvalidRange(HarIngestError, ValueError):
    """Malformed or inverted ledger range, rejected before any I/O."""


class TruncatedStream(HarIngestError):
    """
    Archive file ends in the middle of a record.

    Raised when a size prefix is present but the payload it declares is not,
    and when 1 to 3 bytes trail the last record (a partial size prefix).
    `declared_size` is None in the partial-prefix case.
    """

    def __init__(
        self,
        message: str,
        offset: int,
        declared_size: Optional[int] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.offset = offset
        self.declared_size = declared_size
        self.path = path

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (file: {self.path})" if self.path else base


class DecodeError(HarIngestError):
    """The XDR codec rejected the bytes of a record."""

    def __init__(self, message: str, type_name: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.type_name = type_name
        self.path = path

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (file: {self.path})" if self.path else base


class UnsupportedXDR(HarIngestError):
    """A category or typedef has no mapping entry; signals a code gap, not bad data."""


class ArchiveFileMissing(HarIngestError, FileNotFoundError):
    """The archive file for a checkpoint/category is not present locally."""


class StorageError(HarIngestError):
    """Transaction or insert failure in the record store."""


class SyncToolError(HarIngestError):
    """The mirroring tool is missing, failed, or produced unparsable output."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class BatchFailed(HarIngestError):
    """A batch was rolled back; carries its boundaries so an operator can resume."""

    def __init__(self, first_checkpoint: int, last_checkpoint: int, cause: BaseException) -> None:
        super().__init__(
            f"Batch {first_checkpoint}:{last_checkpoint} failed and was rolled back: {cause}"
        )
        self.first_checkpoint = first_checkpoint
        self.last_checkpoint = last_checkpoint
        self.cause = cause


__all__ = [
    "HarIngestError",
    "ConfigError",
    "InvalidRange",
    "TruncatedStream",
    "DecodeError",
    "UnsupportedXDR",
    "ArchiveFileMissing",
    "StorageError",
    "SyncToolError",
    "BatchFailed",
]
