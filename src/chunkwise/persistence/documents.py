"""Storage layout: sequence names, table names, and per-entity document mapping.

Each entity has an explicit ``*_to_document`` / ``*_from_document`` pair.
Document field names match the batch metadata collections
(``jobInstanceId``, ``jobExecutionId``, ``readCount`` ...), so records stay
readable by other tools that share the same tables.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from chunkwise.models.execution import (
    BatchStatus,
    ExitCode,
    JobExecution,
    JobInstance,
    StepExecution,
)

JOB_INSTANCE_SEQ = "BATCH_JOB_INSTANCE_SEQ"
JOB_EXECUTION_SEQ = "BATCH_JOB_EXECUTION_SEQ"
STEP_EXECUTION_SEQ = "BATCH_STEP_EXECUTION_SEQ"
SEQUENCE_NAMES = (JOB_INSTANCE_SEQ, JOB_EXECUTION_SEQ, STEP_EXECUTION_SEQ)
MAX_SEQUENCE_VALUE = 2**63 - 1

SEQUENCES_TABLE = "batch-sequences"
JOB_INSTANCE_TABLE = "batch-job-instance"
JOB_EXECUTION_TABLE = "batch-job-execution"
STEP_EXECUTION_TABLE = "batch-step-execution"
TABLE_NAMES = (SEQUENCES_TABLE, JOB_INSTANCE_TABLE, JOB_EXECUTION_TABLE, STEP_EXECUTION_TABLE)

_STEP_COUNTERS = {
    "readCount": "read_count",
    "writeCount": "write_count",
    "filterCount": "filter_count",
    "readSkipCount": "read_skip_count",
    "writeSkipCount": "write_skip_count",
    "processSkipCount": "process_skip_count",
    "rollbackCount": "rollback_count",
    "commitCount": "commit_count",
}


# ---- value conversion ----

def to_dynamodb(obj: Any) -> Any:
    """Convert floats to Decimal, recursively, for DynamoDB."""
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: to_dynamodb(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_dynamodb(i) for i in obj]
    return obj


def from_dynamodb(obj: Any) -> Any:
    """Convert Decimal values in a DynamoDB item to int/float, recursively."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):
        return {k: from_dynamodb(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [from_dynamodb(i) for i in obj]
    return obj


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# DynamoDB numbers carry no int/float distinction, so each parameter keeps its type.
_PARAMETER_DECODERS = {"STRING": str, "LONG": int, "DOUBLE": float, "BOOLEAN": bool}


def _parameter_type(value: Any) -> str:
    if isinstance(value, bool):
        return "BOOLEAN"
    if isinstance(value, int):
        return "LONG"
    if isinstance(value, float):
        return "DOUBLE"
    return "STRING"


def parameters_to_document(parameters: dict[str, Any]) -> dict[str, Any]:
    return {
        name: {"type": _parameter_type(value), "value": to_dynamodb(value)}
        for name, value in parameters.items()
    }


def parameters_from_document(doc: dict[str, Any] | None) -> dict[str, Any]:
    """Decode typed parameter entries; bare values from older records pass through."""
    parameters: dict[str, Any] = {}
    for name, entry in (doc or {}).items():
        if isinstance(entry, dict) and entry.get("type") in _PARAMETER_DECODERS:
            parameters[name] = _PARAMETER_DECODERS[entry["type"]](entry["value"])
        else:
            parameters[name] = entry
    return parameters


# ---- JobInstance ----

def job_instance_to_document(instance: JobInstance) -> dict[str, Any]:
    return {
        "jobInstanceId": instance.instance_id,
        "jobName": instance.job_name,
        "jobKey": instance.job_key,
        "version": instance.version,
    }


def job_instance_from_document(doc: dict[str, Any]) -> JobInstance:
    doc = from_dynamodb(doc)
    return JobInstance(
        instance_id=doc["jobInstanceId"],
        job_name=doc["jobName"],
        job_key=doc["jobKey"],
        version=doc.get("version", 0),
    )


# ---- JobExecution ----

def job_execution_status_fields(execution: JobExecution) -> dict[str, Any]:
    """Mutable fields written on every versioned update."""
    return {
        "startTime": _iso(execution.start_time),
        "endTime": _iso(execution.end_time),
        "status": execution.status.value,
        "exitCode": execution.exit_code.value,
        "exitMessage": execution.exit_message,
    }


def job_execution_to_document(execution: JobExecution) -> dict[str, Any]:
    return {
        "jobExecutionId": execution.execution_id,
        "jobInstanceId": execution.instance_id,
        "jobParameters": parameters_to_document(dict(execution.job_parameters)),
        "createTime": _iso(execution.create_time),
        **job_execution_status_fields(execution),
        "version": execution.version,
        "lastUpdated": _iso(execution.last_updated),
    }


def job_execution_from_document(doc: dict[str, Any]) -> JobExecution:
    doc = from_dynamodb(doc)
    return JobExecution(
        execution_id=doc["jobExecutionId"],
        instance_id=doc["jobInstanceId"],
        job_parameters=parameters_from_document(doc.get("jobParameters")),
        create_time=_datetime(doc["createTime"]),
        start_time=_datetime(doc.get("startTime")),
        end_time=_datetime(doc.get("endTime")),
        status=BatchStatus(doc["status"]),
        exit_code=ExitCode(doc.get("exitCode", ExitCode.UNKNOWN)),
        exit_message=doc.get("exitMessage") or "",
        version=doc.get("version", 0),
        last_updated=_datetime(doc.get("lastUpdated")),
    )


# ---- StepExecution ----

def step_execution_status_fields(step: StepExecution) -> dict[str, Any]:
    """Mutable fields written on every versioned update, including the counters."""
    fields: dict[str, Any] = {
        "startTime": _iso(step.start_time),
        "endTime": _iso(step.end_time),
        "status": step.status.value,
        "exitCode": step.exit_code.value,
        "exitMessage": step.exit_message,
        "executionContext": to_dynamodb(dict(step.execution_context)),
    }
    for field, attr in _STEP_COUNTERS.items():
        fields[field] = getattr(step, attr)
    return fields


def step_execution_to_document(step: StepExecution) -> dict[str, Any]:
    return {
        "stepExecutionId": step.step_execution_id,
        "jobExecutionId": step.execution_id,
        "stepName": step.step_name,
        **step_execution_status_fields(step),
        "version": step.version,
        "lastUpdated": _iso(step.last_updated),
    }


def step_execution_from_document(doc: dict[str, Any]) -> StepExecution:
    doc = from_dynamodb(doc)
    counters = {attr: doc.get(field, 0) for field, attr in _STEP_COUNTERS.items()}
    return StepExecution(
        step_execution_id=doc["stepExecutionId"],
        execution_id=doc["jobExecutionId"],
        step_name=doc["stepName"],
        start_time=_datetime(doc.get("startTime")),
        end_time=_datetime(doc.get("endTime")),
        status=BatchStatus(doc["status"]),
        exit_code=ExitCode(doc.get("exitCode", ExitCode.UNKNOWN)),
        exit_message=doc.get("exitMessage") or "",
        execution_context=doc.get("executionContext") or {},
        version=doc.get("version", 0),
        last_updated=_datetime(doc.get("lastUpdated")),
        **counters,
    )
