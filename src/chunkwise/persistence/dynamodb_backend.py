"""DynamoDB backends implementing ISequenceAllocator and IExecutionMetadataStore."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from chunkwise.core.exceptions import (
    ConcurrentModification,
    StorageUnavailable,
    UnknownSequence,
)
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
    JOB_EXECUTION_TABLE,
    JOB_INSTANCE_SEQ,
    JOB_INSTANCE_TABLE,
    MAX_SEQUENCE_VALUE,
    SEQUENCE_NAMES,
    SEQUENCES_TABLE,
    STEP_EXECUTION_SEQ,
    STEP_EXECUTION_TABLE,
    job_execution_from_document,
    job_execution_status_fields,
    job_execution_to_document,
    job_instance_from_document,
    job_instance_to_document,
    step_execution_from_document,
    step_execution_status_fields,
    step_execution_to_document,
)

logger = logging.getLogger(__name__)

_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class _ItemExists(Exception):
    """Conditional create hit an existing primary key."""


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == _CONDITIONAL_CHECK_FAILED


def _resource(region: str, endpoint_url: str | None):
    kwargs: dict = {"region_name": region}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return boto3.resource("dynamodb", **kwargs)


def _sequence_key(name: str) -> dict[str, str]:
    return {"PK": f"SEQ#{name}", "SK": "SEQUENCE"}


def _instance_key(job_name: str, key: str) -> dict[str, str]:
    return {"PK": f"JOB#{job_name}", "SK": f"KEY#{key}"}


def _execution_key(instance_id: int, execution_id: int) -> dict[str, str]:
    return {"PK": f"INSTANCE#{instance_id}", "SK": f"EXECUTION#{execution_id:020d}"}


def _step_key(execution_id: int, step_execution_id: int) -> dict[str, str]:
    return {"PK": f"EXECUTION#{execution_id}", "SK": f"STEP#{step_execution_id:020d}"}


class DynamoDBSequenceAllocator:
    """Production ISequenceAllocator: one item per sequence, mutated only with ADD."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._table_suffix = table_suffix
        self._ddb = _resource(region, endpoint_url)

    def _table(self):
        return self._ddb.Table(f"{SEQUENCES_TABLE}{self._table_suffix}")

    def ensure_sequences(self) -> None:
        """Create missing sequence items at zero. Existing counters are left alone."""
        tbl = self._table()
        for name in SEQUENCE_NAMES:
            try:
                tbl.put_item(
                    Item={**_sequence_key(name), "count": 0},
                    ConditionExpression="attribute_not_exists(PK)",
                )
                logger.info("Initialized sequence %s at 0", name)
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    logger.debug("Sequence %s already initialized", name)
                    continue
                raise StorageUnavailable(f"Failed to initialize sequence {name}: {exc}") from exc
            except BotoCoreError as exc:
                raise StorageUnavailable(f"Failed to initialize sequence {name}: {exc}") from exc

    def next(self, name: str) -> int:
        """Atomically increment and return the counter; a missing counter starts at 0."""
        if name not in SEQUENCE_NAMES:
            raise UnknownSequence(name)
        try:
            resp = self._table().update_item(
                Key=_sequence_key(name),
                UpdateExpression="ADD #count :one",
                ConditionExpression="attribute_not_exists(#count) OR #count < :max",
                ExpressionAttributeNames={"#count": "count"},
                ExpressionAttributeValues={":one": 1, ":max": MAX_SEQUENCE_VALUE},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise StorageUnavailable(f"Sequence {name} is exhausted") from exc
            raise StorageUnavailable(f"Sequence increment failed for {name}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"Sequence increment failed for {name}: {exc}") from exc
        return int(resp["Attributes"]["count"])


class DynamoDBExecutionMetadataStore:
    """Production IExecutionMetadataStore backed by four PK/SK tables."""

    def __init__(self, sequences: ISequenceAllocator, table_suffix: str = "",
                 region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._sequences = sequences
        self._table_suffix = table_suffix
        self._ddb = _resource(region, endpoint_url)

    def _table(self, base: str):
        return self._ddb.Table(f"{base}{self._table_suffix}")

    # ---- low-level helpers ----

    def _put_new(self, table_base: str, key: dict[str, str], doc: dict[str, Any]) -> None:
        """Insert a document whose key must not exist yet."""
        item = {**key, "id": uuid.uuid4().hex, **doc}
        try:
            self._table(table_base).put_item(
                Item=item, ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise _ItemExists(key) from exc
            raise StorageUnavailable(f"DynamoDB put failed on {table_base}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"DynamoDB put failed on {table_base}: {exc}") from exc

    def _get_item(self, table_base: str, key: dict[str, str]) -> dict[str, Any] | None:
        try:
            resp = self._table(table_base).get_item(Key=key, ConsistentRead=True)
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"DynamoDB get failed on {table_base}: {exc}") from exc
        return resp.get("Item")

    def _query_pk(self, table_base: str, pk: str, newest_first: bool = False) -> list[dict[str, Any]]:
        """Query all items with a given partition key, following pagination."""
        tbl = self._table(table_base)
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": "PK = :pk",
            "ExpressionAttributeValues": {":pk": pk},
            "ScanIndexForward": not newest_first,
            "ConsistentRead": True,
        }
        items: list[dict[str, Any]] = []
        try:
            while True:
                resp = tbl.query(**kwargs)
                items.extend(resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return items
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"DynamoDB query failed on {table_base}: {exc}") from exc

    def _versioned_update(self, table_base: str, key: dict[str, str], fields: dict[str, Any],
                          entity: str, identifier: int, expected_version: int) -> None:
        """SET ``fields`` and bump ``version`` only if the stored version still matches."""
        names = {"#version": "version"}
        values: dict[str, Any] = {":expected": expected_version, ":next": expected_version + 1}
        assignments = ["#version = :next"]
        for i, (field, value) in enumerate(fields.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = value
            assignments.append(f"#f{i} = :v{i}")
        try:
            self._table(table_base).update_item(
                Key=key,
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression="#version = :expected",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise ConcurrentModification(entity, identifier, expected_version) from exc
            raise StorageUnavailable(f"DynamoDB update failed on {table_base}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"DynamoDB update failed on {table_base}: {exc}") from exc

    # ---- IExecutionMetadataStore methods ----

    def ping(self) -> None:
        try:
            self._ddb.meta.client.describe_table(
                TableName=f"{JOB_INSTANCE_TABLE}{self._table_suffix}",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"DynamoDB is not reachable: {exc}") from exc

    def find_or_create_instance(self, job_name: str, parameters: Mapping[str, Any]) -> JobInstance:
        job_name = validate_job_name(job_name)
        parameters_key = job_key(parameters)
        key = _instance_key(job_name, parameters_key)

        item = self._get_item(JOB_INSTANCE_TABLE, key)
        if item is not None:
            return job_instance_from_document(item)

        instance = JobInstance(
            instance_id=self._sequences.next(JOB_INSTANCE_SEQ),
            job_name=job_name,
            job_key=parameters_key,
        )
        try:
            self._put_new(JOB_INSTANCE_TABLE, key, job_instance_to_document(instance))
        except _ItemExists:
            # Lost the race: another caller created the same instance first.
            item = self._get_item(JOB_INSTANCE_TABLE, key)
            if item is None:
                raise StorageUnavailable(
                    f"Job instance {job_name!r} vanished after a uniqueness conflict"
                )
            logger.info("Reusing concurrently created job instance for %s", job_name)
            return job_instance_from_document(item)

        logger.info("Created job instance %d for %s (key %s)",
                    instance.instance_id, job_name, instance.job_key)
        return instance

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
        try:
            self._put_new(
                JOB_EXECUTION_TABLE,
                _execution_key(instance_id, execution.execution_id),
                job_execution_to_document(execution),
            )
        except _ItemExists as exc:
            raise StorageUnavailable(
                f"Job execution {execution.execution_id} already exists; "
                f"{JOB_EXECUTION_SEQ} is behind the stored data"
            ) from exc
        return execution

    def update_execution(self, execution: JobExecution) -> None:
        now = utcnow()
        fields = {**job_execution_status_fields(execution), "lastUpdated": now.isoformat()}
        self._versioned_update(
            JOB_EXECUTION_TABLE,
            _execution_key(execution.instance_id, execution.execution_id),
            fields, "JobExecution", execution.execution_id, execution.version,
        )
        execution.version += 1
        execution.last_updated = now

    def get_execution(self, instance_id: int, execution_id: int) -> JobExecution | None:
        item = self._get_item(JOB_EXECUTION_TABLE, _execution_key(instance_id, execution_id))
        return job_execution_from_document(item) if item else None

    def find_executions(self, instance_id: int) -> list[JobExecution]:
        items = self._query_pk(JOB_EXECUTION_TABLE, f"INSTANCE#{instance_id}", newest_first=True)
        return [job_execution_from_document(item) for item in items]

    def create_step_execution(self, execution_id: int, step_name: str) -> StepExecution:
        step = StepExecution(
            step_execution_id=self._sequences.next(STEP_EXECUTION_SEQ),
            execution_id=execution_id,
            step_name=step_name,
            last_updated=utcnow(),
        )
        try:
            self._put_new(
                STEP_EXECUTION_TABLE,
                _step_key(execution_id, step.step_execution_id),
                step_execution_to_document(step),
            )
        except _ItemExists as exc:
            raise StorageUnavailable(
                f"Step execution {step.step_execution_id} already exists; "
                f"{STEP_EXECUTION_SEQ} is behind the stored data"
            ) from exc
        return step

    def update_step_execution(self, step_execution: StepExecution) -> None:
        now = utcnow()
        fields = {**step_execution_status_fields(step_execution), "lastUpdated": now.isoformat()}
        self._versioned_update(
            STEP_EXECUTION_TABLE,
            _step_key(step_execution.execution_id, step_execution.step_execution_id),
            fields, "StepExecution", step_execution.step_execution_id, step_execution.version,
        )
        step_execution.version += 1
        step_execution.last_updated = now

    def find_step_executions(self, execution_id: int) -> list[StepExecution]:
        items = self._query_pk(STEP_EXECUTION_TABLE, f"EXECUTION#{execution_id}")
        return [step_execution_from_document(item) for item in items]

    def find_latest_step_execution(self, instance_id: int, step_name: str) -> StepExecution | None:
        for execution in self.find_executions(instance_id):
            for step in reversed(self.find_step_executions(execution.execution_id)):
                if step.step_name == step_name and step.status is not BatchStatus.ABANDONED:
                    return step
        return None
