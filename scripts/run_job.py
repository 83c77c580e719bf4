"""Launch a job from the command line and exit with its outcome.

Usage:
    python scripts/run_job.py
    python scripts/run_job.py --job csvProcessingJob --param input.file=people.csv

Without ``--param`` a ``timestamp`` parameter is added so every invocation
is a new job instance. Exits 0 only when the execution COMPLETED.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Sequence

from chunkwise.core.config import AppSettings
from chunkwise.core.exceptions import ChunkwiseError
from chunkwise.core.logging import configure_logging
from chunkwise.core.types import Scalar
from chunkwise.engine.job_runner import JobRunner
from chunkwise.jobs.csv_processing import JOB_NAME, build_job
from chunkwise.models.execution import BatchStatus
from chunkwise.persistence import create_persistence

logger = logging.getLogger("run_job")


def parse_param(raw: str) -> tuple[str, Scalar]:
    """Parse ``key=value``; ints stay ints, ``true``/``false`` become bools."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    if value.lower() in ("true", "false"):
        return key, value.lower() == "true"
    try:
        return key, int(value)
    except ValueError:
        return key, value


def main(argv: Sequence[str] | None = None, settings: AppSettings | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a Chunkwise batch job")
    parser.add_argument("--job", default=JOB_NAME, help="Job name")
    parser.add_argument("--param", action="append", type=parse_param, default=[],
                        metavar="KEY=VALUE", help="Job parameter (repeatable)")
    args = parser.parse_args(argv)

    settings = settings or AppSettings()
    configure_logging(settings.log_level)

    parameters: dict[str, Scalar] = dict(args.param)
    if not parameters:
        parameters["timestamp"] = int(time.time() * 1000)

    _, store = create_persistence(settings)
    runner = JobRunner(store, [build_job(settings)])
    try:
        execution = runner.submit(args.job, parameters)
    except ChunkwiseError as exc:
        logger.error("Job %s could not run: %s", args.job, exc)
        return 2

    logger.info("Job Status: %s", execution.status)
    logger.info("Job Instance ID: %d", execution.instance_id)
    logger.info("Job Execution ID: %d", execution.execution_id)
    logger.info("Exit Status: %s %s", execution.exit_code, execution.exit_message)
    return 0 if execution.status is BatchStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
