"""Job lifecycle: instance lookup, duplicate-run guard, step sequencing, restart.

``JobRunner.submit`` is the single entry point the surrounding process needs.
It returns the final JobExecution for any business outcome (COMPLETED,
FAILED, STOPPED) and raises only for pre-flight failures and for metadata
store errors that could not be recorded durably.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping

from chunkwise.core.exceptions import DuplicateJobRun, JobExecutionNotFound, NoSuchJob
from chunkwise.core.protocols import IExecutionMetadataStore
from chunkwise.engine.chunk_step import ChunkStepEngine
from chunkwise.engine.definitions import JobDefinition, StepDefinition
from chunkwise.models.execution import BatchStatus, JobExecution, StepExecution
from chunkwise.models.parameters import normalize_parameters, validate_job_name

logger = logging.getLogger(__name__)

_RESTARTABLE = frozenset({BatchStatus.FAILED, BatchStatus.STOPPED})


class JobRunner:
    """Runs configured jobs against an execution metadata store.

    Args:
        store: Durable job instance / execution / step execution records.
        jobs: Job definitions this runner accepts, looked up by name.
    """

    def __init__(self, store: IExecutionMetadataStore, jobs: Iterable[JobDefinition]) -> None:
        self._store = store
        self._jobs: dict[str, JobDefinition] = {}
        for job in jobs:
            if job.name in self._jobs:
                raise ValueError(f"Job {job.name!r} is defined more than once")
            self._jobs[job.name] = job
        self._engine = ChunkStepEngine(store)
        self._stop_events: dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    @property
    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def submit(self, job_name: str, parameters: Mapping[str, Any] | None = None) -> JobExecution:
        """Launch ``job_name`` with ``parameters`` and run it to a terminal status.

        Raises:
            InvalidJobParameters: Empty job name or non-scalar parameter values.
            NoSuchJob: No definition registered under ``job_name``.
            DuplicateJobRun: The instance already has a non-terminal execution.
            StorageUnavailable: The metadata store failed; the execution may be
                left STARTED. ``fail_stale`` releases it and keeps the committed
                offsets; ``abandon`` releases it for a fresh run.
        """
        job_name = validate_job_name(job_name)
        params = normalize_parameters(parameters)
        job = self._jobs.get(job_name)
        if job is None:
            raise NoSuchJob(job_name)

        instance = self._store.find_or_create_instance(job_name, params)
        prior = self._store.find_executions(instance.instance_id)
        for existing in prior:
            if not existing.status.is_terminal:
                raise DuplicateJobRun(job_name, instance.instance_id, existing.execution_id)

        execution = self._store.create_execution(instance.instance_id, params)
        self._guard_concurrent_launch(job_name, execution)

        execution.transition(BatchStatus.STARTED)
        self._store.update_execution(execution)
        logger.info("Job %s launched: instance %d, execution %d, parameters %s",
                    job_name, instance.instance_id, execution.execution_id, params)

        stop_event = threading.Event()
        with self._lock:
            self._stop_events[execution.execution_id] = stop_event
        try:
            self._run_steps(job, execution, prior, stop_event)
        finally:
            with self._lock:
                self._stop_events.pop(execution.execution_id, None)

        self._store.update_execution(execution)
        logger.info("Job %s finished: instance %d, execution %d, status %s",
                    job_name, instance.instance_id, execution.execution_id, execution.status)
        return execution

    run = submit

    def stop(self, execution_id: int) -> bool:
        """Signal a running execution to stop after its in-flight chunk.

        Returns False when no execution with that id is running in this process.
        """
        with self._lock:
            event = self._stop_events.get(execution_id)
        if event is None:
            return False
        logger.info("Stop requested for execution %d", execution_id)
        event.set()
        return True

    def abandon(self, instance_id: int, execution_id: int) -> JobExecution:
        """Mark a non-COMPLETED execution ABANDONED so its instance can run again.

        Raises:
            JobExecutionNotFound: No such execution under ``instance_id``.
            InvalidStatusTransition: The execution already COMPLETED.
        """
        execution = self._store.get_execution(instance_id, execution_id)
        if execution is None:
            raise JobExecutionNotFound(instance_id, execution_id)
        if execution.status is BatchStatus.ABANDONED:
            return execution

        for step in self._store.find_step_executions(execution_id):
            if not step.status.is_terminal:
                step.transition(BatchStatus.ABANDONED)
                self._store.update_step_execution(step)

        execution.transition(BatchStatus.ABANDONED)
        self._store.update_execution(execution)
        logger.warning("Execution %d of instance %d abandoned", execution_id, instance_id)
        return execution

    def fail_stale(self, instance_id: int, execution_id: int) -> JobExecution:
        """Mark an execution left STARTING or STARTED by a dead process as FAILED.

        Its unfinished step executions become FAILED too and keep their
        execution context, so the next submit of the same parameters resumes
        from the last committed chunk instead of starting over.

        Raises:
            JobExecutionNotFound: No such execution under ``instance_id``.
            InvalidStatusTransition: The execution already reached a terminal status.
        """
        execution = self._store.get_execution(instance_id, execution_id)
        if execution is None:
            raise JobExecutionNotFound(instance_id, execution_id)

        message = "Marked failed after the running process was lost"
        execution.fail(message)
        for step in self._store.find_step_executions(execution_id):
            if not step.status.is_terminal:
                step.fail(message)
                self._store.update_step_execution(step)

        self._store.update_execution(execution)
        logger.warning("Execution %d of instance %d marked FAILED for restart",
                       execution_id, instance_id)
        return execution

    # ---- internals ----

    def _guard_concurrent_launch(self, job_name: str, execution: JobExecution) -> None:
        """Back off if a concurrent submit created an earlier live execution.

        The non-terminal check before ``create_execution`` is a read followed
        by a write, so two processes can both pass it. The lower execution id
        wins; the other one is abandoned before it runs any step.
        """
        for other in self._store.find_executions(execution.instance_id):
            if (other.execution_id < execution.execution_id
                    and not other.status.is_terminal):
                execution.transition(BatchStatus.ABANDONED)
                execution.exit_message = f"Lost launch race to execution {other.execution_id}"
                self._store.update_execution(execution)
                raise DuplicateJobRun(job_name, execution.instance_id, other.execution_id)

    def _run_steps(self, job: JobDefinition, execution: JobExecution,
                   prior: list[JobExecution], stop_event: threading.Event) -> None:
        last = self._last_attempt(prior)
        restart = last is not None and last.status in _RESTARTABLE
        # Step history older than the last successful run belongs to a finished job.
        window_start = max(
            (e.execution_id for e in prior if e.status is BatchStatus.COMPLETED), default=0,
        )
        if restart:
            logger.warning("Restarting job %s instance %d after %s execution %d",
                           job.name, execution.instance_id, last.status, last.execution_id)

        for step in job.steps:
            resume_context = None
            if restart:
                previous = self._previous_step(execution.instance_id, step, window_start)
                if previous is not None and previous.status is BatchStatus.COMPLETED:
                    logger.info("Step %s already completed in execution %d; skipping",
                                step.name, previous.execution_id)
                    continue
                if previous is not None:
                    resume_context = previous.execution_context

            result = self._engine.execute(step, execution, resume_context, stop_event)
            if result.status is BatchStatus.FAILED:
                execution.fail(f"Step {step.name} failed: {result.exit_message}")
                return
            if result.status is BatchStatus.STOPPED:
                execution.transition(BatchStatus.STOPPED)
                execution.exit_message = f"Stopped during step {step.name}"
                return

        execution.transition(BatchStatus.COMPLETED)

    def _previous_step(self, instance_id: int, step: StepDefinition,
                       window_start: int) -> StepExecution | None:
        latest = self._store.find_latest_step_execution(instance_id, step.name)
        if latest is None or latest.execution_id <= window_start:
            return None
        return latest

    def _last_attempt(self, prior: list[JobExecution]) -> JobExecution | None:
        """Newest prior execution that actually ran, ignoring launch-race losers."""
        for candidate in prior:
            if (candidate.status is BatchStatus.ABANDONED
                    and not self._store.find_step_executions(candidate.execution_id)):
                continue
            return candidate
        return None
