"""Job instance, job execution, and step execution models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from chunkwise.core.exceptions import InvalidStatusTransition
from chunkwise.core.types import Scalar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(StrEnum):
    STARTING = "STARTING"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    ABANDONED = "ABANDONED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_transition_to(self, other: BatchStatus) -> bool:
        return other in _TRANSITIONS[self]


_TERMINAL = frozenset({
    BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.STOPPED, BatchStatus.ABANDONED,
})

_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.STARTING: frozenset({
        BatchStatus.STARTED, BatchStatus.FAILED, BatchStatus.STOPPED, BatchStatus.ABANDONED,
    }),
    BatchStatus.STARTED: frozenset({
        BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.STOPPED, BatchStatus.ABANDONED,
    }),
    BatchStatus.FAILED: frozenset({BatchStatus.ABANDONED}),
    BatchStatus.STOPPED: frozenset({BatchStatus.ABANDONED}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.ABANDONED: frozenset(),
}


class ExitCode(StrEnum):
    UNKNOWN = "UNKNOWN"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    ABANDONED = "ABANDONED"


class JobInstance(BaseModel):
    """Identity of one (job name, parameter set) combination. Immutable."""

    model_config = {"frozen": True}

    instance_id: int
    job_name: str
    job_key: str
    version: int = 0


class _ExecutionRecord(BaseModel):
    """Status, timestamps, and exit fields shared by job and step executions."""

    status: BatchStatus = BatchStatus.STARTING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    exit_code: ExitCode = ExitCode.UNKNOWN
    exit_message: str = ""
    version: int = 0
    last_updated: Optional[datetime] = None

    def transition(self, status: BatchStatus, at: Optional[datetime] = None) -> None:
        """Move to ``status`` if the state machine allows it.

        STARTED stamps ``start_time``; the first terminal status stamps
        ``end_time``, so ``end_time`` is set exactly when the status is terminal.
        """
        if not self.status.can_transition_to(status):
            raise InvalidStatusTransition(self.status, status)
        at = at or utcnow()
        if status is BatchStatus.STARTED:
            self.start_time = at
            self.exit_code = ExitCode.EXECUTING
        elif status.is_terminal:
            if self.end_time is None:
                self.end_time = at
            self.exit_code = ExitCode(status.value)
        self.status = status

    def fail(self, message: str, at: Optional[datetime] = None) -> None:
        self.transition(BatchStatus.FAILED, at)
        self.exit_message = message


class JobExecution(_ExecutionRecord):
    """One attempt to run a job instance."""

    execution_id: int
    instance_id: int
    job_parameters: dict[str, Scalar] = Field(default_factory=dict)
    create_time: datetime = Field(default_factory=utcnow)


class StepExecution(_ExecutionRecord):
    """One step's progress within a job execution.

    Counters only move in :meth:`record_commit` and :meth:`record_rollback`,
    which the step engine calls at chunk boundaries.
    """

    step_execution_id: int
    execution_id: int
    step_name: str
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    read_skip_count: int = 0
    write_skip_count: int = 0
    process_skip_count: int = 0
    rollback_count: int = 0
    commit_count: int = 0
    execution_context: dict[str, Any] = Field(default_factory=dict)

    def record_commit(self, *, read: int, filtered: int, written: int) -> None:
        self.read_count += read
        self.filter_count += filtered
        self.write_count += written
        self.commit_count += 1

    def record_rollback(self) -> None:
        self.rollback_count += 1
