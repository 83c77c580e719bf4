"""Job and step definitions wired explicitly at startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from chunkwise.core.protocols import IItemProcessor, IItemReader, IItemWriter
from chunkwise.core.types import JobParameters

# Called once per step run with the job parameters.
ReaderFactory = Callable[[JobParameters], IItemReader[Any]]
WriterFactory = Callable[[JobParameters], IItemWriter[Any]]


@dataclass(frozen=True)
class StepDefinition:
    """A chunk-oriented step: read, process, and write ``chunk_size`` records per commit."""

    name: str
    reader: ReaderFactory
    processor: IItemProcessor[Any, Any]
    writer: WriterFactory
    chunk_size: int = 10

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Step name must not be empty")
        if self.chunk_size < 1:
            raise ValueError(f"Step {self.name!r}: chunk_size must be >= 1, got {self.chunk_size}")


@dataclass(frozen=True)
class JobDefinition:
    """A named, ordered sequence of steps."""

    name: str
    steps: tuple[StepDefinition, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Job name must not be empty")
        if not self.steps:
            raise ValueError(f"Job {self.name!r} has no steps")
        names = [step.name for step in self.steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Job {self.name!r} has duplicate step names: {names}")
