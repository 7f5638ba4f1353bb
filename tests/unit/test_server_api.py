"""API tests for the local execution service.

The runner thread is disabled; tests drive `run_workflow` synchronously.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from research_workflows.server.app import create_app
from research_workflows.server.config import ServerSettings
from research_workflows.server.workflow_runner import run_workflow


def _launch(client: TestClient, **overrides: object) -> dict:
    body: dict[str, object] = {
        "title": "Tech Comparison: vector databases",
        "query": "Compare the top 5 vector databases",
        "sources": ["google", "github"],
        "outputFormat": "comparison",
    }
    body.update(overrides)
    resp = client.post("/api/workflows", json=body)
    assert resp.status_code == 201
    return resp.json()


def _run(client: TestClient, workflow_id: str, start_step: int = 0) -> None:
    run_workflow(
        workflow_id=workflow_id,
        start_step=start_step,
        step_delay_seconds=0,
        workflow_store=client.app.state.workflow_store,
        report_store=client.app.state.report_store,
    )


def test_health(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert "version" in health


def test_launch_creates_default_pipeline(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))

    created = _launch(client)

    assert created["workflowId"].startswith("wf_")
    assert created["status"] == "pending"
    assert created["totalSteps"] == 5
    assert [s["type"] for s in created["steps"]] == [
        "search",
        "extract",
        "analyze",
        "aggregate",
        "generate_report",
    ]
    assert [s["index"] for s in created["steps"]] == [0, 1, 2, 3, 4]
    assert all(s["status"] == "pending" for s in created["steps"])


def test_run_to_completion_produces_report(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client)["workflowId"]

    _run(client, workflow_id)

    status = client.get(f"/api/workflows/{workflow_id}/status").json()
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["currentStep"] == 5
    assert status["completedAt"]
    assert all(s["status"] == "completed" and s["hasOutput"] for s in status["steps"])
    assert status["reportId"]

    report = client.get(f"/api/reports/{status['reportId']}").json()
    assert report["workflowId"] == workflow_id
    assert report["title"] == status["reportTitle"]

    listed = client.get("/api/workflows").json()["workflows"]
    assert [w["id"] for w in listed] == [workflow_id]
    assert listed[0]["report"]["id"] == status["reportId"]
    assert listed[0]["sources"] == ["google", "github"]


def test_failure_then_retry_resumes_from_failed_step(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client, failAtStep=2)["workflowId"]

    _run(client, workflow_id)

    failed = client.get(f"/api/workflows/{workflow_id}/status").json()
    assert failed["status"] == "failed"
    assert failed["failedStep"] == 2
    assert failed["errorMessage"]
    assert [s["status"] for s in failed["steps"]] == [
        "completed",
        "completed",
        "failed",
        "pending",
        "pending",
    ]
    assert failed["progress"] == 40

    retried = client.post(f"/api/workflows/{workflow_id}/retry").json()
    assert retried["status"] == "running"
    assert retried["currentStep"] == 2
    assert retried["failedStep"] is None
    assert [s["status"] for s in retried["steps"]][:3] == ["completed", "completed", "pending"]

    _run(client, workflow_id, start_step=2)

    done = client.get(f"/api/workflows/{workflow_id}/status").json()
    assert done["status"] == "completed"


def test_retry_requires_failed_status(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client)["workflowId"]

    resp = client.post(f"/api/workflows/{workflow_id}/retry")
    assert resp.status_code == 409


def test_cancel_idle_workflow_is_idempotent(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client)["workflowId"]

    first = client.post(f"/api/workflows/{workflow_id}/cancel").json()
    second = client.post(f"/api/workflows/{workflow_id}/cancel").json()

    assert first["status"] == "failed"
    assert first["errorMessage"] == "Cancelled by user"
    assert second == first


def test_cancel_running_workflow_stops_at_next_step(
    monkeypatch, server_settings: ServerSettings
) -> None:
    app = create_app(server_settings)
    client = TestClient(app)
    workflow_id = _launch(client)["workflowId"]
    monkeypatch.setattr(app.state.runs, "is_active", lambda _wid: True)

    pending = client.post(f"/api/workflows/{workflow_id}/cancel").json()
    # The runner owns the transition; nothing is terminal yet.
    assert pending["status"] == "pending"

    _run(client, workflow_id)

    status = client.get(f"/api/workflows/{workflow_id}/status").json()
    assert status["status"] == "failed"
    assert status["errorMessage"] == "Cancelled by user"
    assert status["failedStep"] == 0


def test_cancel_does_not_overwrite_run_that_just_completed(
    monkeypatch, server_settings: ServerSettings
) -> None:
    app = create_app(server_settings)
    client = TestClient(app)
    workflow_id = _launch(client)["workflowId"]

    def finished_meanwhile(_wid: str) -> bool:
        # The runner passed its last cancel check before the flag was set and
        # completes before the handler checks whether it is still alive.
        app.state.workflow_store.update(workflow_id, cancel_requested=False)
        _run(client, workflow_id)
        return False

    monkeypatch.setattr(app.state.runs, "is_active", finished_meanwhile)

    resp = client.post(f"/api/workflows/{workflow_id}/cancel").json()

    assert resp["status"] == "completed"
    assert resp["errorMessage"] is None
    assert resp["reportId"]
    status = client.get(f"/api/workflows/{workflow_id}/status").json()
    assert status["status"] == "completed"
    assert all(s["status"] == "completed" for s in status["steps"])


def test_delete_removes_workflow_and_report(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client)["workflowId"]
    _run(client, workflow_id)
    report_id = client.get(f"/api/workflows/{workflow_id}/status").json()["reportId"]

    resp = client.delete(f"/api/workflows/{workflow_id}")

    assert resp.status_code == 200
    assert resp.json()["reportDeleted"] is True
    assert client.get(f"/api/workflows/{workflow_id}/status").status_code == 404
    assert client.get(f"/api/reports/{report_id}").status_code == 404
    assert client.get("/api/workflows").json()["workflows"] == []


def test_unknown_workflow_is_404(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))

    assert client.get("/api/workflows/wf_nope/status").status_code == 404
    assert client.post("/api/workflows/wf_nope/cancel").status_code == 404
    assert client.post("/api/workflows/wf_nope/retry").status_code == 404
    assert client.delete("/api/workflows/wf_nope").status_code == 404


def test_state_survives_app_restart(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))
    workflow_id = _launch(client)["workflowId"]

    restarted = TestClient(create_app(server_settings))
    assert restarted.get(f"/api/workflows/{workflow_id}/status").status_code == 200


def test_custom_steps_keep_open_vocabulary(server_settings: ServerSettings) -> None:
    client = TestClient(create_app(server_settings))

    created = _launch(
        client,
        steps=[
            {"type": "search"},
            {"type": "translate", "title": "Translate sources"},
        ],
    )

    assert created["totalSteps"] == 2
    assert created["steps"][0]["title"] == "Search sources"
    assert created["steps"][1]["type"] == "translate"
