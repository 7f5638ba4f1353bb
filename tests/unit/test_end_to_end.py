"""Tracker and library against the local service, in-process.

`TestClient` stands in for the requests session so no sockets are opened.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from research_workflows.server.app import create_app
from research_workflows.server.config import ServerSettings
from research_workflows.server.workflow_runner import run_workflow
from research_workflows.tracker.client import WorkflowClient, WorkflowNotFound
from research_workflows.tracker.library import WorkflowLibrary, get_template
from research_workflows.tracker.workflow.models import RunStatus
from research_workflows.tracker.workflow.polling import PollPhase, WorkflowTracker


@pytest.fixture
def service(server_settings: ServerSettings) -> TestClient:
    return TestClient(create_app(server_settings))


@pytest.fixture
def client(service: TestClient) -> WorkflowClient:
    return WorkflowClient(base_url="http://testserver", session=service, token="t0k3n")


def _run(service: TestClient, workflow_id: str, start_step: int = 0) -> None:
    run_workflow(
        workflow_id=workflow_id,
        start_step=start_step,
        step_delay_seconds=0,
        workflow_store=service.app.state.workflow_store,
        report_store=service.app.state.report_store,
    )


def _launch(client: WorkflowClient, **extra: object) -> str:
    template = get_template("market-research")
    snapshot = client.launch_workflow(
        {
            "title": "Market Research: note-taking apps",
            "query": template.render("note-taking apps"),
            "sources": list(template.default_sources),
            "outputFormat": template.default_format,
            **extra,
        }
    )
    return snapshot.workflow_id


def test_tracker_follows_workflow_to_report(service, client, timers) -> None:
    workflow_id = _launch(client)
    tracker = WorkflowTracker(client=client, workflow_id=workflow_id, timer_factory=timers)

    with tracker:
        assert tracker.status is not None
        assert tracker.status.status == RunStatus.PENDING

        _run(service, workflow_id)
        timers.latest.fire()

        assert tracker.phase == PollPhase.SETTLED
        assert not timers.latest.active
        view = tracker.view()
        assert view.badge == "Completed"
        assert tracker.status.report_id is not None
        assert tracker.status.report_id in view.footer

        report = client.get_report(tracker.status.report_id)
        assert report["workflowId"] == workflow_id


def test_retry_from_tracker_restarts_polling(service, client, timers) -> None:
    workflow_id = _launch(client, failAtStep=1)
    _run(service, workflow_id)
    tracker = WorkflowTracker(client=client, workflow_id=workflow_id, timer_factory=timers)

    with tracker:
        assert tracker.phase == PollPhase.SETTLED
        assert tracker.status is not None
        assert tracker.status.failed_step == 1

        result = tracker.retry()
        assert result.ok
        assert tracker.phase == PollPhase.POLLING
        assert tracker.status.status == RunStatus.RUNNING

        _run(service, workflow_id, start_step=1)
        timers.latest.fire()
        assert tracker.status.status == RunStatus.COMPLETED
        assert tracker.phase == PollPhase.SETTLED


def test_library_lists_and_deletes(service, client) -> None:
    keep = _launch(client)
    drop = _launch(client)
    _run(service, drop)

    library = WorkflowLibrary(client)
    library.mount()
    assert {w.id for w in library.groups.active} == {keep}
    assert {w.id for w in library.groups.completed} == {drop}

    assert library.delete(drop)
    assert [w.id for w in library.workflows] == [keep]

    with pytest.raises(WorkflowNotFound):
        client.fetch_status(drop)

    # Deleting twice fails on the server; the cached list is untouched.
    assert library.delete(drop) is False
    assert [w.id for w in library.workflows] == [keep]


def test_unknown_workflow_surfaces_as_tracker_error(client, timers) -> None:
    tracker = WorkflowTracker(client=client, workflow_id="wf_missing", timer_factory=timers)

    with tracker:
        assert tracker.status is None
        assert tracker.error == "Workflow not found"
        assert tracker.phase == PollPhase.POLLING
