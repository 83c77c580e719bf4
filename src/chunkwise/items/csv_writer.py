"""CSV writer for processed Person records, resumable by byte offset."""

from __future__ import annotations

import csv
import io
import logging
import os
from typing import IO, Optional, Sequence

from chunkwise.models.person import Person

logger = logging.getLogger(__name__)

HEADER = ("name", "email", "age", "processedAt")


class PersonCsvWriter:
    """Writes ``name,email,age,processedAt`` lines.

    Every batch is encoded in full before a single write, flush, and fsync,
    so a failed encode leaves the file untouched. ``position()`` is the byte
    offset after the last durable write; ``resume_from(offset)`` truncates
    the file back to it on restart instead of writing a fresh header.
    """

    def __init__(self, path: str, delimiter: str = ",", encoding: str = "utf-8") -> None:
        self.path = path
        self.delimiter = delimiter
        self.encoding = encoding
        self._file: Optional[IO[bytes]] = None
        self._offset = 0
        self._resume_at: Optional[int] = None

    def resume_from(self, position: int) -> None:
        if position < 0:
            raise ValueError(f"Resume position must be >= 0, got {position}")
        self._resume_at = position

    def position(self) -> int:
        return self._offset

    def open(self) -> None:
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)

        if self._resume_at is not None:
            if not os.path.exists(self.path):
                raise FileNotFoundError(
                    f"Cannot resume {self.path} at offset {self._resume_at}: file is missing"
                )
            size = os.path.getsize(self.path)
            if size < self._resume_at:
                raise ValueError(
                    f"Cannot resume {self.path} at offset {self._resume_at}: file has only {size} bytes"
                )
            self._file = open(self.path, "r+b")
            self._file.truncate(self._resume_at)
            self._file.seek(self._resume_at)
            self._offset = self._resume_at
            logger.info("Truncated %s to committed offset %d", self.path, self._offset)
            return

        self._file = open(self.path, "wb")
        self._offset = 0
        self._append(self._encode([HEADER]))

    def write(self, items: Sequence[Person]) -> None:
        if self._file is None:
            raise RuntimeError("Writer is not open")
        rows = [
            (
                p.name,
                p.email,
                p.age,
                p.processed_at.isoformat() if p.processed_at else "",
            )
            for p in items
        ]
        self._append(self._encode(rows))

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None

    def _encode(self, rows) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self.delimiter, lineterminator="\n")
        writer.writerows(rows)
        return buffer.getvalue().encode(self.encoding)

    def _append(self, data: bytes) -> None:
        self._file.write(data)
        self._file.flush()
        os.fsync(self._file.fileno())
        self._offset += len(data)
