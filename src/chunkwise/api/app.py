"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chunkwise.api.routes import health, jobs
from chunkwise.core.config import AppSettings
from chunkwise.core.exceptions import (
    ConcurrentModification,
    DuplicateJobRun,
    InvalidJobParameters,
    InvalidStatusTransition,
    JobExecutionNotFound,
    NoSuchJob,
    StorageUnavailable,
)
from chunkwise.engine.job_runner import JobRunner
from chunkwise.jobs.csv_processing import build_job
from chunkwise.persistence import create_persistence

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[Exception], int] = {
    StorageUnavailable: 503,
    ConcurrentModification: 409,
    DuplicateJobRun: 409,
    InvalidStatusTransition: 409,
    InvalidJobParameters: 422,
    NoSuchJob: 404,
    JobExecutionNotFound: 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings = app.state.settings
    _, store = create_persistence(settings)
    app.state.store = store
    app.state.runner = JobRunner(store, [build_job(settings)])
    logger.info("Job API ready (backend=%s, environment=%s)",
                settings.backend, settings.environment)
    yield


async def _chunkwise_error(request: Request, exc: Exception) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Chunkwise Batch Job Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or AppSettings()
    for exc_type in _ERROR_STATUS:
        app.add_exception_handler(exc_type, _chunkwise_error)
    app.include_router(health.router)
    app.include_router(jobs.router, prefix="/jobs")
    return app
