"""Integration tests for the DynamoDB metadata store against LocalStack."""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from chunkwise.engine.job_runner import JobRunner
from chunkwise.jobs.csv_processing import INPUT_FILE_PARAM, JOB_NAME, OUTPUT_FILE_PARAM, build_job
from chunkwise.models.execution import BatchStatus
from chunkwise.persistence.documents import JOB_EXECUTION_SEQ
from chunkwise.persistence.dynamodb_backend import (
    DynamoDBExecutionMetadataStore,
    DynamoDBSequenceAllocator,
)
from tests.integration.conftest import LOCALSTACK_URL, REGION, skip_no_localstack


@skip_no_localstack
class TestDynamoDBIntegration:
    @pytest.fixture
    def sequences(self, bootstrapped_tables):
        return DynamoDBSequenceAllocator(
            table_suffix=bootstrapped_tables, region=REGION, endpoint_url=LOCALSTACK_URL,
        )

    @pytest.fixture
    def store(self, sequences, bootstrapped_tables):
        return DynamoDBExecutionMetadataStore(
            sequences, table_suffix=bootstrapped_tables, region=REGION, endpoint_url=LOCALSTACK_URL,
        )

    def test_concurrent_next_has_no_repeats(self, sequences):
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(lambda _: sequences.next(JOB_EXECUTION_SEQ), range(40)))
        assert len(set(values)) == 40
        assert max(values) - min(values) == 39

    def test_concurrent_find_or_create_one_instance(self, store):
        params = {"run": uuid.uuid4().hex}
        with ThreadPoolExecutor(max_workers=8) as pool:
            instances = list(pool.map(
                lambda _: store.find_or_create_instance(JOB_NAME, params), range(16),
            ))
        assert len({i.instance_id for i in instances}) == 1

    def test_csv_job_end_to_end(self, store, tmp_path):
        source = tmp_path / "input.csv"
        source.write_text("name,email,age\nann,a@example.com,30\n", encoding="utf-8")
        params = {
            INPUT_FILE_PARAM: str(source),
            OUTPUT_FILE_PARAM: str(tmp_path / "output.csv"),
            "run": uuid.uuid4().hex,
        }
        execution = JobRunner(store, [build_job()]).submit(JOB_NAME, params)
        assert execution.status is BatchStatus.COMPLETED
        steps = store.find_step_executions(execution.execution_id)
        assert steps[0].write_count == 1
