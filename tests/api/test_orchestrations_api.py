"""Tests for the HTTP API (FastAPI TestClient)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from durable_mr.api import create_app
from durable_mr.execution.registry import Registry
from durable_mr.mapreduce import register_map_reduce
from durable_mr.storage.base import ObjectRef

pytestmark = pytest.mark.slow


@pytest.fixture
def runtime(make_runtime, weather_store):
    return make_runtime(register_map_reduce(Registry(), weather_store), start=False)


@pytest.fixture
def client(runtime, settings):
    app = create_app(runtime, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


def _start(client: TestClient, name: str = "map_reduce", **kwargs):
    return client.post(f"/api/orchestrations/{name}", **kwargs)


# ── Start ────────────────────────────────────────────────────────────────


class TestStartOrchestration:
    """Tests for POST /orchestrations/{name}."""

    def test_accepted_with_check_status_links(self, client: TestClient):
        response = _start(client, json={"map_input_container": "datain"})
        assert response.status_code == 202
        body = response.json()
        instance_id = body["id"]
        assert body["status_query_get_uri"] == f"http://testserver/api/orchestrations/{instance_id}"
        assert body["history_get_uri"].endswith(f"/api/orchestrations/{instance_id}/history")
        assert body["terminate_post_uri"].endswith(f"/api/orchestrations/{instance_id}/terminate")
        assert response.headers["location"] == body["status_query_get_uri"]

    def test_without_body_uses_defaults(self, client: TestClient, runtime):
        response = _start(client)
        assert response.status_code == 202
        state = runtime.wait_for_completion(response.json()["id"], timeout=20)
        assert state.output == 35

    def test_explicit_instance_id(self, client: TestClient):
        response = _start(client, params={"instance_id": "job-1"})
        assert response.json()["id"] == "job-1"

    def test_duplicate_instance_id_conflicts(self, client: TestClient):
        _start(client, params={"instance_id": "job-1"})
        response = _start(client, params={"instance_id": "job-1"})
        assert response.status_code == 409
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["title"] == "InstanceExistsError"

    def test_unknown_orchestration(self, client: TestClient):
        response = _start(client, "nope")
        assert response.status_code == 404
        assert response.json()["title"] == "RegistrationError"

    def test_invalid_input(self, client: TestClient):
        response = _start(client, json={"bogus": 1})
        assert response.status_code == 400
        assert "Invalid input" in response.json()["detail"]


# ── Status & history ─────────────────────────────────────────────────────


class TestInstanceQueries:
    """Tests for GET status and history endpoints."""

    def test_status_after_completion(self, client: TestClient, runtime):
        instance_id = _start(client).json()["id"]
        runtime.wait_for_completion(instance_id, timeout=20)

        response = client.get(f"/api/orchestrations/{instance_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["runtime_status"] == "completed"
        assert body["output"] == 35
        assert body["name"] == "map_reduce"
        assert body["failure"] is None

    def test_status_of_failed_child(self, client: TestClient, runtime, weather_store):
        weather_store.write_text(ObjectRef("datain", "bad.txt"), "header\nshort\n")
        instance_id = _start(client).json()["id"]
        runtime.wait_for_completion(instance_id, timeout=20)

        body = client.get(f"/api/orchestrations/{instance_id}:0").json()
        assert body["runtime_status"] == "failed"
        assert body["failure"]["error_type"] == "PartialFailure"
        assert body["parent_instance_id"] == instance_id

    def test_history(self, client: TestClient, runtime):
        instance_id = _start(client).json()["id"]
        runtime.wait_for_completion(instance_id, timeout=20)

        events = client.get(f"/api/orchestrations/{instance_id}/history").json()
        assert events[0]["event_type"] == "orchestrator_started"
        assert events[-1]["event_type"] == "orchestrator_completed"
        assert [e["sequence"] for e in events] == list(range(len(events)))

    def test_unknown_instance(self, client: TestClient):
        for path in ["/api/orchestrations/missing", "/api/orchestrations/missing/history"]:
            response = client.get(path)
            assert response.status_code == 404
            assert response.json()["title"] == "InstanceNotFoundError"


# ── Terminate ────────────────────────────────────────────────────────────


class TestTerminate:
    """Tests for POST /orchestrations/{id}/terminate."""

    def test_terminate_accepted(self, client: TestClient, runtime):
        instance_id = _start(client).json()["id"]
        response = client.post(
            f"/api/orchestrations/{instance_id}/terminate", json={"reason": "operator"}
        )
        assert response.status_code == 202
        assert response.json() == {"id": instance_id, "terminate_requested": True}
        state = runtime.wait_for_completion(instance_id, timeout=20)
        assert state.status.is_terminal

    def test_terminate_unknown(self, client: TestClient):
        assert client.post("/api/orchestrations/missing/terminate").status_code == 404


# ── App ──────────────────────────────────────────────────────────────────


class TestApp:
    """Tests for application wiring."""

    def test_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "ok"}

    def test_default_runtime_reads_data_dir(self, settings, make_weather_file):
        datain = settings.data_dir / "datain"
        datain.mkdir(parents=True)
        (datain / "w1.txt").write_bytes(make_weather_file(("1901", "+0120"), ("1901", "+0210")))

        app = create_app(settings=settings)
        with TestClient(app) as client:
            instance_id = _start(client).json()["id"]
            state = app.state.runtime.wait_for_completion(instance_id, timeout=20)
        assert state.output == 21
        assert (settings.data_dir / "dataout" / "w1.txt").read_text() == "1901,0120\n1901,0210\n"
