"""Chunkwise exception hierarchy."""

from __future__ import annotations


class ChunkwiseError(Exception):
    """Base exception for all Chunkwise errors."""


# ---------------------------------------------------------------------------
# Infrastructure: propagate to the caller of run()/submit()
# ---------------------------------------------------------------------------

class StorageUnavailable(ChunkwiseError):
    """The durable metadata store could not be reached or rejected the call."""


class ConcurrentModification(ChunkwiseError):
    """A versioned update lost against a newer stored version."""

    def __init__(self, entity: str, identifier: int, expected_version: int) -> None:
        self.entity = entity
        self.identifier = identifier
        self.expected_version = expected_version
        super().__init__(
            f"{entity} {identifier} was modified concurrently "
            f"(expected stored version {expected_version})"
        )


class UnknownSequence(ChunkwiseError, ValueError):
    """Requested sequence name is not one of the registered counters."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown sequence: {name!r}")


# ---------------------------------------------------------------------------
# Pre-flight: the submission itself is rejected
# ---------------------------------------------------------------------------

class InvalidJobParameters(ChunkwiseError, ValueError):
    """Job name or parameter set is not acceptable."""


class NoSuchJob(ChunkwiseError):
    """No job definition is registered under the requested name."""

    def __init__(self, job_name: str) -> None:
        self.job_name = job_name
        super().__init__(f"No job named {job_name!r} is configured")


class DuplicateJobRun(ChunkwiseError):
    """The job instance already has a non-terminal execution."""

    def __init__(self, job_name: str, instance_id: int, execution_id: int) -> None:
        self.job_name = job_name
        self.instance_id = instance_id
        self.execution_id = execution_id
        super().__init__(
            f"Job {job_name!r} instance {instance_id} is already running "
            f"(execution {execution_id})"
        )


JobInstanceAlreadyRunning = DuplicateJobRun


class JobExecutionNotFound(ChunkwiseError):
    """No job execution with the given identifiers exists."""

    def __init__(self, instance_id: int, execution_id: int) -> None:
        self.instance_id = instance_id
        self.execution_id = execution_id
        super().__init__(f"Job execution {execution_id} of instance {instance_id} not found")


class InvalidStatusTransition(ChunkwiseError):
    """Status change would break the monotonic execution state machine."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal status transition {current} -> {requested}")


# ---------------------------------------------------------------------------
# Chunk-local: caught by the step engine, surfaced only as FAILED status
# ---------------------------------------------------------------------------

class ChunkAbortedError(ChunkwiseError):
    """The in-flight chunk was abandoned and will not be committed."""


class ProcessingError(ChunkAbortedError):
    """Reading or processing a record failed."""


class SourceExhaustedPrematurely(ProcessingError):
    """The source ended unexpectedly or yielded a malformed record."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class SinkWriteError(ChunkAbortedError):
    """The writer rejected a batch."""


class ItemStreamError(ChunkwiseError):
    """A reader or writer could not be opened or closed."""
