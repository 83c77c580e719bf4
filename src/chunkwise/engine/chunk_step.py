"""Chunk-oriented step execution.

Each chunk is read, processed, and written as one unit, then committed by a
single versioned update of the StepExecution. That update is the commit
boundary: counters and resume positions only ever reflect committed chunks.
The commit is one document update, not a multi-document transaction; sink
durability is the writer's responsibility.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Mapping

from chunkwise.core.exceptions import (
    ChunkAbortedError,
    ItemStreamError,
    ProcessingError,
    SinkWriteError,
)
from chunkwise.core.protocols import (
    IExecutionMetadataStore,
    IItemReader,
    IItemStream,
    IItemWriter,
)
from chunkwise.engine.definitions import StepDefinition
from chunkwise.models.execution import BatchStatus, JobExecution, StepExecution

logger = logging.getLogger(__name__)

READER_POSITION = "reader.position"
WRITER_POSITION = "writer.position"


@dataclass
class _Chunk:
    items: list[Any] = field(default_factory=list)
    read: int = 0
    filtered: int = 0
    end_of_input: bool = False


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class ChunkStepEngine:
    """Runs one StepDefinition to a terminal StepExecution."""

    def __init__(self, store: IExecutionMetadataStore) -> None:
        self._store = store

    def execute(
        self,
        step: StepDefinition,
        job_execution: JobExecution,
        resume_context: Mapping[str, Any] | None = None,
        stop_event: threading.Event | None = None,
    ) -> StepExecution:
        """Run ``step`` inside ``job_execution`` and return its final StepExecution.

        Args:
            step: Step to run.
            job_execution: Owning execution; its parameters feed the reader/writer factories.
            resume_context: Execution context of the failed or stopped step execution
                being restarted, or None for a fresh run.
            stop_event: Checked between chunks; when set the step ends STOPPED
                after the in-flight chunk commits.

        Chunk and item-stream failures end the step FAILED. Metadata store
        errors propagate.
        """
        step_execution = self._store.create_step_execution(job_execution.execution_id, step.name)
        if resume_context:
            step_execution.execution_context = dict(resume_context)
        step_execution.transition(BatchStatus.STARTED)
        self._store.update_step_execution(step_execution)
        logger.info("Step %s started (step execution %d, chunk size %d)",
                    step.name, step_execution.step_execution_id, step.chunk_size)

        restart = resume_context is not None
        params = job_execution.job_parameters
        try:
            with ExitStack() as stack:
                reader = self._open(stack, lambda: step.reader(params), READER_POSITION,
                                    step_execution, "reader", restart)
                writer = self._open(stack, lambda: step.writer(params), WRITER_POSITION,
                                    step_execution, "writer", restart)
                stopped = self._run_chunks(step, step_execution, reader, writer, stop_event)
        except ChunkAbortedError as exc:
            logger.error("Step %s rolled back chunk %d: %s", step.name,
                         step_execution.commit_count + 1, exc, exc_info=True)
            step_execution.record_rollback()
            return self._finish_failed(step_execution, exc)
        except ItemStreamError as exc:
            logger.error("Step %s failed: %s", step.name, exc, exc_info=True)
            return self._finish_failed(step_execution, exc)

        step_execution.transition(BatchStatus.STOPPED if stopped else BatchStatus.COMPLETED)
        self._store.update_step_execution(step_execution)
        logger.info(
            "Step %s %s: read=%d filtered=%d written=%d commits=%d",
            step.name, step_execution.status, step_execution.read_count,
            step_execution.filter_count, step_execution.write_count, step_execution.commit_count,
        )
        return step_execution

    # ---- stream lifecycle ----

    def _open(self, stack: ExitStack, factory, position_key: str,
              step_execution: StepExecution, role: str, restart: bool):
        """Build, position, and open a reader or writer; register its close()."""
        try:
            item = factory()
        except Exception as exc:
            raise ItemStreamError(f"Failed to create {role}: {_describe(exc)}") from exc

        position = step_execution.execution_context.get(position_key)
        if isinstance(item, IItemStream):
            if position is not None:
                item.resume_from(int(position))
                logger.info("Resuming %s of step %s from position %d",
                            role, step_execution.step_name, position)
        elif restart:
            logger.warning(
                "%s of step %s cannot resume; restarting from the beginning "
                "(records before the failure point will be re-processed)",
                role.capitalize(), step_execution.step_name,
            )

        try:
            item.open()
        except Exception as exc:
            raise ItemStreamError(f"Failed to open {role}: {_describe(exc)}") from exc
        stack.push(self._closer(item, role))
        return item

    @staticmethod
    def _closer(item: Any, role: str):
        """Exit callback closing ``item``; a close error never hides the failure in flight."""
        def close(exc_type, exc, tb) -> bool:
            try:
                item.close()
            except Exception as close_exc:
                if exc is None:
                    raise ItemStreamError(
                        f"Failed to close {role}: {_describe(close_exc)}"
                    ) from close_exc
                logger.error("Failed to close %s after %s: %s", role, _describe(exc),
                             _describe(close_exc), exc_info=close_exc)
            return False
        return close

    # ---- chunk loop ----

    def _run_chunks(self, step: StepDefinition, step_execution: StepExecution,
                    reader: IItemReader[Any], writer: IItemWriter[Any],
                    stop_event: threading.Event | None) -> bool:
        """Process chunks until end of input. Returns True if stopped early."""
        while True:
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested; step %s stopping after %d commits",
                            step.name, step_execution.commit_count)
                return True

            chunk = self._read_chunk(step, reader)
            if chunk.read == 0:
                return False

            if chunk.items:
                try:
                    writer.write(chunk.items)
                except Exception as exc:
                    raise SinkWriteError(_describe(exc)) from exc
            positions = self._positions(reader, writer)

            step_execution.record_commit(
                read=chunk.read, filtered=chunk.filtered, written=len(chunk.items),
            )
            step_execution.execution_context.update(positions)
            self._store.update_step_execution(step_execution)
            logger.debug("Step %s committed chunk %d (%d read, %d written)",
                         step.name, step_execution.commit_count, chunk.read, len(chunk.items))

            if chunk.end_of_input:
                return False

    @staticmethod
    def _read_chunk(step: StepDefinition, reader: IItemReader[Any]) -> _Chunk:
        chunk = _Chunk()
        while chunk.read < step.chunk_size:
            try:
                item = reader.read()
            except ProcessingError:
                raise
            except Exception as exc:
                raise ProcessingError(f"Read failed: {_describe(exc)}") from exc
            if item is None:
                chunk.end_of_input = True
                return chunk
            chunk.read += 1

            try:
                result = step.processor.process(item)
            except ProcessingError:
                raise
            except Exception as exc:
                raise ProcessingError(_describe(exc)) from exc
            if result is None:
                chunk.filtered += 1
            else:
                chunk.items.append(result)
        return chunk

    @staticmethod
    def _positions(reader: Any, writer: Any) -> dict[str, int]:
        positions: dict[str, int] = {}
        for key, item in ((READER_POSITION, reader), (WRITER_POSITION, writer)):
            if isinstance(item, IItemStream):
                try:
                    positions[key] = item.position()
                except Exception as exc:
                    raise ItemStreamError(f"Failed to read {key}: {_describe(exc)}") from exc
        return positions

    def _finish_failed(self, step_execution: StepExecution, exc: Exception) -> StepExecution:
        step_execution.fail(_describe(exc))
        self._store.update_step_execution(step_execution)
        return step_execution
