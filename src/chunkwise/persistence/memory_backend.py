"""In-memory backends for unit tests and local runs: dict-backed fakes.

Records are copied on the way in and on the way out so callers never share
state with the store, the same as with a real database.
"""

from __future__ import annotations

import threading
from typing import Any, Mapping

from chunkwise.core.exceptions import ConcurrentModification, UnknownSequence
from chunkwise.core.protocols import ISequenceAllocator
from chunkwise.models.execution import (
    BatchStatus,
    JobExecution,
    JobInstance,
    StepExecution,
    utcnow,
)
from chunkwise.models.parameters import job_key, normalize_parameters, validate_job_name
from chunkwise.persistence.documents import (
    JOB_EXECUTION_SEQ,
    JOB_INSTANCE_SEQ,
    SEQUENCE_NAMES,
    STEP_EXECUTION_SEQ,
)


class MemorySequenceAllocator:
    """Lock-guarded ISequenceAllocator for unit tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}

    def next(self, name: str) -> int:
        if name not in SEQUENCE_NAMES:
            raise UnknownSequence(name)
        with self._lock:
            value = self._counters.get(name, 0) + 1
            self._counters[name] = value
            return value

    def current(self, name: str) -> int:
        return self._counters.get(name, 0)


class MemoryExecutionMetadataStore:
    """Dict-backed IExecutionMetadataStore for unit tests."""

    def __init__(self, sequences: ISequenceAllocator | None = None) -> None:
        self._sequences = sequences or MemorySequenceAllocator()
        self._lock = threading.RLock()
        self._instances: dict[tuple[str, str], JobInstance] = {}
        self._executions: dict[int, JobExecution] = {}
        self._steps: dict[int, StepExecution] = {}

    def ping(self) -> None:
        return None

    def find_or_create_instance(self, job_name: str, parameters: Mapping[str, Any]) -> JobInstance:
        key = (validate_job_name(job_name), job_key(parameters))
        with self._lock:
            if key not in self._instances:
                self._instances[key] = JobInstance(
                    instance_id=self._sequences.next(JOB_INSTANCE_SEQ),
                    job_name=key[0],
                    job_key=key[1],
                )
            return self._instances[key]

    def create_execution(self, instance_id: int,
                         job_parameters: Mapping[str, Any] | None = None) -> JobExecution:
        now = utcnow()
        execution = JobExecution(
            execution_id=self._sequences.next(JOB_EXECUTION_SEQ),
            instance_id=instance_id,
            job_parameters=normalize_parameters(job_parameters),
            create_time=now,
            last_updated=now,
        )
        with self._lock:
            self._executions[execution.execution_id] = execution.model_copy(deep=True)
        return execution

    def update_execution(self, execution: JobExecution) -> None:
        with self._lock:
            stored = self._executions.get(execution.execution_id)
            if stored is None or stored.version != execution.version:
                raise ConcurrentModification("JobExecution", execution.execution_id, execution.version)
            execution.version += 1
            execution.last_updated = utcnow()
            self._executions[execution.execution_id] = execution.model_copy(deep=True)

    def get_execution(self, instance_id: int, execution_id: int) -> JobExecution | None:
        with self._lock:
            stored = self._executions.get(execution_id)
            if stored is None or stored.instance_id != instance_id:
                return None
            return stored.model_copy(deep=True)

    def find_executions(self, instance_id: int) -> list[JobExecution]:
        with self._lock:
            found = [e for e in self._executions.values() if e.instance_id == instance_id]
            return [e.model_copy(deep=True)
                    for e in sorted(found, key=lambda e: e.execution_id, reverse=True)]

    def create_step_execution(self, execution_id: int, step_name: str) -> StepExecution:
        step = StepExecution(
            step_execution_id=self._sequences.next(STEP_EXECUTION_SEQ),
            execution_id=execution_id,
            step_name=step_name,
            last_updated=utcnow(),
        )
        with self._lock:
            self._steps[step.step_execution_id] = step.model_copy(deep=True)
        return step

    def update_step_execution(self, step_execution: StepExecution) -> None:
        with self._lock:
            stored = self._steps.get(step_execution.step_execution_id)
            if stored is None or stored.version != step_execution.version:
                raise ConcurrentModification(
                    "StepExecution", step_execution.step_execution_id, step_execution.version,
                )
            step_execution.version += 1
            step_execution.last_updated = utcnow()
            self._steps[step_execution.step_execution_id] = step_execution.model_copy(deep=True)

    def find_step_executions(self, execution_id: int) -> list[StepExecution]:
        with self._lock:
            found = [s for s in self._steps.values() if s.execution_id == execution_id]
            return [s.model_copy(deep=True)
                    for s in sorted(found, key=lambda s: s.step_execution_id)]

    def find_latest_step_execution(self, instance_id: int, step_name: str) -> StepExecution | None:
        for execution in self.find_executions(instance_id):
            for step in reversed(self.find_step_executions(execution.execution_id)):
                if step.step_name == step_name and step.status is not BatchStatus.ABANDONED:
                    return step
        return None
