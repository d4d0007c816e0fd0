"""
Record framing for decompressed history archive files.

Each record is preceded by a 4 byte big-endian size whose high bit is the XDR
record-marking "last fragment" flag. Archive writers set it on every record, so
it is masked off and never used to join fragments.

Usage:
    from har_ingest.archive.framer import RecordFramer, load_archive_file

    for span in RecordFramer(load_archive_file(path)):
        decode(span)
"""

from __future__ import annotations

import gzip
import struct
from typing import Iterator, Union

from har_ingest.errors import ArchiveFileMissing, TruncatedStream

SIZE_PREFIX = struct.Struct(">I")
CONTINUATION_BIT = 0x80000000
SIZE_MASK = 0x7FFFFFFF

Buffer = Union[bytes, bytearray, memoryview]


def load_archive_file(path: str) -> bytes:
    """Read and gunzip an archive file into memory."""
    try:
        with gzip.open(path, "rb") as fh:
            return fh.read()
    except FileNotFoundError as exc:
        raise ArchiveFileMissing(f"Archive file not found: {path}") from exc


def iter_record_spans(buffer: Buffer) -> Iterator[memoryview]:
    """
    Yield each size-prefixed record payload of `buffer` in order.

    The sequence ends cleanly when the cursor sits exactly at the end of the
    buffer. A partial size prefix, or a size prefix declaring more bytes than
    remain, raises `TruncatedStream`.
    """
    view = memoryview(buffer)
    total = len(view)
    offset = 0

    while offset < total:
        if total - offset < SIZE_PREFIX.size:
            raise TruncatedStream(
                f"Partial record size prefix at offset {offset} "
                f"({total - offset} trailing bytes)",
                offset=offset,
            )
        (raw_size,) = SIZE_PREFIX.unpack_from(view, offset)
        rec_size = raw_size & SIZE_MASK
        start = offset + SIZE_PREFIX.size
        end = start + rec_size
        if end > total:
            raise TruncatedStream(
                f"Record at offset {offset} declares {rec_size} bytes "
                f"but only {total - start} remain",
                offset=offset,
                declared_size=rec_size,
            )
        yield view[start:end]
        offset = end


class RecordFramer:
    """
    Lazy, restartable view over the records of one decompressed buffer.

    Every iteration starts again from the first record.
    """

    def __init__(self, buffer: Buffer, path: str | None = None) -> None:
        self._buffer = buffer
        self.path = path

    def __iter__(self) -> Iterator[memoryview]:
        try:
            yield from iter_record_spans(self._buffer)
        except TruncatedStream as exc:
            exc.path = self.path
            raise

    @classmethod
    def from_file(cls, path: str) -> "RecordFramer":
        return cls(load_archive_file(path), path=path)


def frame_record(payload: bytes, last_fragment: bool = True) -> bytes:
    """Prefix `payload` with its record mark, as archive writers do."""
    mark = len(payload) | (CONTINUATION_BIT if last_fragment else 0)
    return SIZE_PREFIX.pack(mark) + payload


__all__ = [
    "RecordFramer",
    "iter_record_spans",
    "load_archive_file",
    "frame_record",
    "CONTINUATION_BIT",
    "SIZE_MASK",
]
