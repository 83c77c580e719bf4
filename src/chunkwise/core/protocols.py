"""Protocol interfaces for all Chunkwise abstractions.

All inter-layer communication goes through these structural Protocols,
which are checkable with isinstance().
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

from chunkwise.models.execution import JobExecution, JobInstance, StepExecution

T_in = TypeVar("T_in", contravariant=True)
T_out = TypeVar("T_out", covariant=True)


# ---------------------------------------------------------------------------
# Persistence: Sequence Allocator
# ---------------------------------------------------------------------------

@runtime_checkable
class ISequenceAllocator(Protocol):
    """Durable, atomic, strictly increasing counters keyed by name."""

    def next(self, name: str) -> int: ...


# ---------------------------------------------------------------------------
# Persistence: Execution Metadata Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IExecutionMetadataStore(Protocol):
    """Durable job instance, job execution, and step execution records."""

    def ping(self) -> None: ...

    def find_or_create_instance(self, job_name: str, parameters: Mapping[str, Any]) -> JobInstance: ...

    def create_execution(
        self, instance_id: int, job_parameters: Mapping[str, Any] | None = None
    ) -> JobExecution: ...

    def update_execution(self, execution: JobExecution) -> None: ...

    def get_execution(self, instance_id: int, execution_id: int) -> JobExecution | None: ...

    def find_executions(self, instance_id: int) -> list[JobExecution]: ...

    def create_step_execution(self, execution_id: int, step_name: str) -> StepExecution: ...

    def update_step_execution(self, step_execution: StepExecution) -> None: ...

    def find_step_executions(self, execution_id: int) -> list[StepExecution]: ...

    def find_latest_step_execution(self, instance_id: int, step_name: str) -> StepExecution | None: ...


# ---------------------------------------------------------------------------
# Items: Reader / Processor / Writer
# ---------------------------------------------------------------------------

@runtime_checkable
class IItemReader(Protocol[T_out]):
    """Lazy, finite, forward-only record source. ``read`` returns None at end of input."""

    def open(self) -> None: ...

    def read(self) -> T_out | None: ...

    def close(self) -> None: ...


@runtime_checkable
class IItemProcessor(Protocol[T_in, T_out]):
    """Pure record transform. Returning None filters the record out of the chunk."""

    def process(self, item: T_in) -> T_out | None: ...


@runtime_checkable
class IItemWriter(Protocol[T_in]):
    """Batch sink. ``write`` applies the whole batch or raises."""

    def open(self) -> None: ...

    def write(self, items: Sequence[T_in]) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class IItemStream(Protocol):
    """Optional restart contract for readers and writers.

    ``resume_from`` is called before ``open``; ``position`` is sampled at
    every chunk commit and saved in the step execution context.
    """

    def position(self) -> int: ...

    def resume_from(self, position: int) -> None: ...
