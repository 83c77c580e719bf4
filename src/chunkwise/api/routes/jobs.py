"""Job submission and execution lookup endpoints.

Routes are plain ``def`` so FastAPI runs them in its threadpool: ``submit``
blocks until the job reaches a terminal status, and a stop request must be
able to arrive while it runs.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from chunkwise.core.protocols import IExecutionMetadataStore
from chunkwise.core.types import Scalar
from chunkwise.engine.job_runner import JobRunner
from chunkwise.models.execution import JobExecution, StepExecution

router = APIRouter(tags=["jobs"])


class SubmitRequest(BaseModel):
    parameters: dict[str, Scalar] = Field(default_factory=dict)


class StopResponse(BaseModel):
    execution_id: int
    stopping: bool


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner


def get_store(request: Request) -> IExecutionMetadataStore:
    return request.app.state.store


@router.post("/{job_name}/executions", response_model=JobExecution)
def submit_job(job_name: str, body: SubmitRequest | None = None,
               runner: JobRunner = Depends(get_runner)) -> Any:
    """Run ``job_name`` to completion and return the final execution."""
    parameters = body.parameters if body is not None else {}
    return runner.submit(job_name, parameters)


@router.get("/instances/{instance_id}/executions", response_model=list[JobExecution])
def list_executions(instance_id: int,
                    store: IExecutionMetadataStore = Depends(get_store)) -> Any:
    """Executions of an instance, newest first."""
    return store.find_executions(instance_id)


@router.get("/executions/{execution_id}/steps", response_model=list[StepExecution])
def list_step_executions(execution_id: int,
                         store: IExecutionMetadataStore = Depends(get_store)) -> Any:
    """Step executions of an execution, oldest first."""
    return store.find_step_executions(execution_id)


@router.post("/executions/{execution_id}/stop", response_model=StopResponse)
def stop_execution(execution_id: int, runner: JobRunner = Depends(get_runner)) -> Any:
    return StopResponse(execution_id=execution_id, stopping=runner.stop(execution_id))


@router.post("/instances/{instance_id}/executions/{execution_id}/abandon",
             response_model=JobExecution)
def abandon_execution(instance_id: int, execution_id: int,
                      runner: JobRunner = Depends(get_runner)) -> Any:
    return runner.abandon(instance_id, execution_id)


@router.post("/instances/{instance_id}/executions/{execution_id}/fail",
             response_model=JobExecution)
def fail_stale_execution(instance_id: int, execution_id: int,
                         runner: JobRunner = Depends(get_runner)) -> Any:
    """Release an execution whose process died, keeping its restart offsets."""
    return runner.fail_stale(instance_id, execution_id)
