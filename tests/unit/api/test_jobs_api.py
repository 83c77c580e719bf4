"""Tests for the HTTP surface and its error mapping."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from chunkwise.api.app import create_app
from chunkwise.core.config import AppSettings, BatchConfig
from chunkwise.core.exceptions import StorageUnavailable
from chunkwise.models.execution import BatchStatus


@pytest.fixture
def settings(tmp_path):
    (tmp_path / "input.csv").write_text(
        "name,email,age\nann,a@example.com,30\nben,b@example.com,40\n", encoding="utf-8",
    )
    return AppSettings(
        backend="memory",
        batch=BatchConfig(
            input_file=str(tmp_path / "input.csv"),
            output_file=str(tmp_path / "output.csv"),
        ),
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200

    def test_not_ready_when_store_down(self, client):
        def down():
            raise StorageUnavailable("no route to host")

        client.app.state.store.ping = down
        assert client.get("/ready").status_code == 503


class TestSubmit:
    def test_submit_completes(self, client):
        resp = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {"run": 1}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "COMPLETED"
        assert body["job_parameters"] == {"run": 1}

    def test_submit_without_body(self, client):
        resp = client.post("/jobs/csvProcessingJob/executions")
        assert resp.status_code == 200

    def test_unknown_job_is_404(self, client):
        resp = client.post("/jobs/nope/executions", json={"parameters": {}})
        assert resp.status_code == 404
        assert resp.json()["error"] == "NoSuchJob"

    def test_non_scalar_parameter_is_422(self, client):
        resp = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {"x": [1]}})
        assert resp.status_code == 422

    def test_storage_failure_is_503(self, client):
        def broken(*args, **kwargs):
            raise StorageUnavailable("throttled")

        client.app.state.store.find_or_create_instance = broken
        resp = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {}})
        assert resp.status_code == 503


class TestLookups:
    def test_executions_and_steps(self, client):
        first = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {"run": 1}}).json()
        second = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {"run": 1}}).json()

        executions = client.get(f"/jobs/instances/{first['instance_id']}/executions").json()
        assert [e["execution_id"] for e in executions] == [second["execution_id"], first["execution_id"]]

        steps = client.get(f"/jobs/executions/{first['execution_id']}/steps").json()
        assert steps[0]["step_name"] == "csvProcessingStep"
        assert steps[0]["write_count"] == 2

    def test_stop_idle_execution(self, client):
        resp = client.post("/jobs/executions/99/stop")
        assert resp.json() == {"execution_id": 99, "stopping": False}

    def test_abandon_missing_is_404(self, client):
        assert client.post("/jobs/instances/1/executions/99/abandon").status_code == 404

    def test_abandon_completed_is_409(self, client):
        done = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {}}).json()
        resp = client.post(
            f"/jobs/instances/{done['instance_id']}/executions/{done['execution_id']}/abandon",
        )
        assert resp.status_code == 409

    def test_fail_stale_execution(self, client):
        store = client.app.state.store
        instance = store.find_or_create_instance("csvProcessingJob", {"run": 7})
        stuck = store.create_execution(instance.instance_id, {"run": 7})
        stuck.transition(BatchStatus.STARTED)
        store.update_execution(stuck)

        resp = client.post(
            f"/jobs/instances/{stuck.instance_id}/executions/{stuck.execution_id}/fail",
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "FAILED"

    def test_fail_completed_is_409(self, client):
        done = client.post("/jobs/csvProcessingJob/executions", json={"parameters": {}}).json()
        resp = client.post(
            f"/jobs/instances/{done['instance_id']}/executions/{done['execution_id']}/fail",
        )
        assert resp.status_code == 409
