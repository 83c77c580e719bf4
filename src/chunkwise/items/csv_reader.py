"""Delimited CSV reader producing Person records, resumable by record count."""

from __future__ import annotations

import csv
import logging
from typing import IO, Optional

from pydantic import ValidationError

from chunkwise.core.exceptions import SourceExhaustedPrematurely
from chunkwise.models.person import Person

logger = logging.getLogger(__name__)

FIELD_NAMES = ("name", "email", "age")


class PersonCsvReader:
    """Reads ``name,email,age`` rows after a single header line.

    ``position()`` is the number of records handed out so far. On restart,
    ``resume_from(n)`` makes ``open()`` skip the first ``n`` records so the
    committed prefix is not read twice.
    """

    def __init__(self, path: str, delimiter: str = ",", encoding: str = "utf-8") -> None:
        self.path = path
        self.delimiter = delimiter
        self.encoding = encoding
        self._file: Optional[IO[str]] = None
        self._rows = None
        self._count = 0
        self._resume_at = 0

    def resume_from(self, position: int) -> None:
        if position < 0:
            raise ValueError(f"Resume position must be >= 0, got {position}")
        self._resume_at = position

    def position(self) -> int:
        return self._count

    def open(self) -> None:
        self._file = open(self.path, "r", encoding=self.encoding, newline="")
        self._rows = csv.reader(self._file, delimiter=self.delimiter)
        self._count = 0
        next(self._rows, None)  # header

        while self._count < self._resume_at:
            if self._next_row() is None:
                raise SourceExhaustedPrematurely(
                    f"{self.path} has {self._count} records, cannot resume at {self._resume_at}"
                )
            self._count += 1
        if self._resume_at:
            logger.info("Skipped %d committed records of %s", self._resume_at, self.path)

    def read(self) -> Person | None:
        if self._rows is None:
            raise RuntimeError("Reader is not open")
        row = self._next_row()
        if row is None:
            return None

        line = self._rows.line_num
        if len(row) != len(FIELD_NAMES):
            raise SourceExhaustedPrematurely(
                f"expected {len(FIELD_NAMES)} fields, got {len(row)}", line_number=line,
            )
        try:
            person = Person(**dict(zip(FIELD_NAMES, row)))
        except ValidationError as exc:
            raise SourceExhaustedPrematurely(str(exc), line_number=line) from exc
        self._count += 1
        return person

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None
        self._rows = None

    def _next_row(self) -> list[str] | None:
        try:
            for row in self._rows:
                if row and any(field.strip() for field in row):
                    return row
        except csv.Error as exc:
            raise SourceExhaustedPrematurely(str(exc), line_number=self._rows.line_num) from exc
        return None
