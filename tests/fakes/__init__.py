"""Shared test doubles: re-exported memory backends and in-memory items."""

from __future__ import annotations

import threading
from typing import Sequence

from chunkwise.persistence.memory_backend import (
    MemoryExecutionMetadataStore,
    MemorySequenceAllocator,
)


class ListReader:
    """Non-resumable reader over a fixed list."""

    def __init__(self, items: Sequence[str]) -> None:
        self.items = list(items)
        self.opened = False
        self.closed = False
        self._index = 0

    def open(self) -> None:
        self.opened = True
        self._index = 0

    def read(self) -> str | None:
        if self._index >= len(self.items):
            return None
        item = self.items[self._index]
        self._index += 1
        return item

    def close(self) -> None:
        self.closed = True


class ResumableListReader(ListReader):
    """Reader that can skip a committed prefix on restart."""

    def __init__(self, items: Sequence[str]) -> None:
        super().__init__(items)
        self._start = 0

    def resume_from(self, position: int) -> None:
        self._start = position

    def position(self) -> int:
        return self._index

    def open(self) -> None:
        super().open()
        self._index = self._start


class BlockingReader(ListReader):
    """Signals ``started`` on first read, then waits for ``release``."""

    def __init__(self, items: Sequence[str]) -> None:
        super().__init__(items)
        self.started = threading.Event()
        self.release = threading.Event()

    def read(self) -> str | None:
        self.started.set()
        self.release.wait(timeout=10)
        return super().read()


class UpperProcessor:
    """Upper-cases strings; raises on ``fail_on`` and filters ``skip``."""

    def __init__(self, fail_on: Sequence[str] = (), skip: Sequence[str] = ()) -> None:
        self.fail_on = set(fail_on)
        self.skip = set(skip)

    def process(self, item: str) -> str | None:
        if item in self.fail_on:
            raise ValueError(f"cannot process {item!r}")
        if item in self.skip:
            return None
        return item.upper()


class RecordingWriter:
    """Keeps every written batch; the ``fail_on_call``-th write raises."""

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.fail_on_call = fail_on_call
        self.batches: list[list[str]] = []
        self.calls = 0
        self.opened = False
        self.closed = False

    def open(self) -> None:
        self.opened = True

    def write(self, items: Sequence[str]) -> None:
        self.calls += 1
        if self.fail_on_call is not None and self.calls == self.fail_on_call:
            raise IOError("disk full")
        self.batches.append(list(items))

    def close(self) -> None:
        self.closed = True

    @property
    def written(self) -> list[str]:
        return [item for batch in self.batches for item in batch]


__all__ = [
    "BlockingReader",
    "ListReader",
    "MemoryExecutionMetadataStore",
    "MemorySequenceAllocator",
    "RecordingWriter",
    "ResumableListReader",
    "UpperProcessor",
]
