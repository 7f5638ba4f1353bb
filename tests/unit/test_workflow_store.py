"""Unit tests for the JSON-file workflow store."""

from __future__ import annotations

from pathlib import Path

import pytest

from research_workflows.server.workflow_store import WorkflowRecord, WorkflowStore
from research_workflows.tracker.workflow.models import RunStatus, StepStatus


def _record(status: RunStatus = RunStatus.RUNNING, current_step: int = 1) -> WorkflowRecord:
    steps = [
        StepStatus(index=0, type="search", title="Search", status=RunStatus.COMPLETED),
        StepStatus(index=1, type="analyze", title="Analyze", status=RunStatus.RUNNING),
        StepStatus(index=2, type="generate_report", title="Report"),
    ]
    return WorkflowRecord(
        workflow_id="wf_1",
        title="T",
        query="q",
        status=status,
        current_step=current_step,
        total_steps=3,
        steps=steps,
        created_at="2025-01-01T00:00:00+00:00",
    )


def test_fail_marks_current_step(tmp_path: Path) -> None:
    store = WorkflowStore(tmp_path / "workflows.json")
    store.create(_record())

    failed = store.fail("wf_1", message="Cancelled by user")

    assert failed.status == RunStatus.FAILED
    assert failed.failed_step == 1
    assert failed.steps[1].status == RunStatus.FAILED
    assert failed.steps[1].error == "Cancelled by user"
    assert failed.progress == 33
    assert failed.completed_at
    assert store.get("wf_1") == failed


def test_fail_leaves_settled_workflow_alone(tmp_path: Path) -> None:
    store = WorkflowStore(tmp_path / "workflows.json")
    completed = _record(status=RunStatus.COMPLETED, current_step=3).model_copy(
        update={"report_id": "r_1"}
    )
    store.create(completed)

    result = store.fail("wf_1", message="Cancelled by user")

    assert result.status == RunStatus.COMPLETED
    assert result.report_id == "r_1"
    assert result.error_message is None
    assert store.get("wf_1").status == RunStatus.COMPLETED


def test_fail_unknown_workflow_raises(tmp_path: Path) -> None:
    store = WorkflowStore(tmp_path / "workflows.json")

    with pytest.raises(KeyError):
        store.fail("wf_missing", message="x")
