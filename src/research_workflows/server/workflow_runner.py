"""Background runner that walks a workflow through its steps.

Step work is simulated: each step sleeps for the configured delay and records
its duration. The `generate_report` step writes a report record. Cancellation is
checked between steps.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid

from research_workflows.server.workflow_store import (
    ReportRecord,
    ReportStore,
    WorkflowStore,
    utc_iso_now,
)
from research_workflows.tracker.workflow.models import RunStatus, StepType

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


class SimulatedStepFailure(RuntimeError):
    pass


def start_workflow_run(
    *,
    workflow_id: str,
    start_step: int,
    step_delay_seconds: float,
    workflow_store: WorkflowStore,
    report_store: ReportStore,
) -> threading.Thread:
    thread = threading.Thread(
        target=run_workflow,
        name=f"workflow-run-{workflow_id}",
        daemon=True,
        kwargs={
            "workflow_id": workflow_id,
            "start_step": start_step,
            "step_delay_seconds": step_delay_seconds,
            "workflow_store": workflow_store,
            "report_store": report_store,
        },
    )
    thread.start()
    return thread


def _execute_step(
    *,
    workflow_id: str,
    index: int,
    step_type: str,
    title: str,
    step_delay_seconds: float,
    fail_at_step: int | None,
    report_store: ReportStore,
) -> str | None:
    """Run one simulated step. Returns a report id for the report step."""

    if step_delay_seconds:
        time.sleep(step_delay_seconds)
    if fail_at_step is not None and fail_at_step == index:
        raise SimulatedStepFailure(f"Step '{title}' failed")
    if step_type != StepType.GENERATE_REPORT.value:
        return None
    report = report_store.save(
        ReportRecord(
            id=f"r_{uuid.uuid4().hex[:12]}",
            workflow_id=workflow_id,
            title=title,
            content=f"Report generated by workflow {workflow_id}.",
            created_at=utc_iso_now(),
        )
    )
    return report.id


def run_workflow(
    *,
    workflow_id: str,
    start_step: int,
    step_delay_seconds: float,
    workflow_store: WorkflowStore,
    report_store: ReportStore,
) -> None:
    record = workflow_store.get(workflow_id)
    if record is None:
        logger.warning("Workflow vanished before run", extra={"workflow_id": workflow_id})
        return

    workflow_store.update(workflow_id, status=RunStatus.RUNNING, current_step=start_step)

    try:
        for index in range(start_step, record.total_steps):
            if not _run_step(
                workflow_id=workflow_id,
                index=index,
                step_delay_seconds=step_delay_seconds,
                workflow_store=workflow_store,
                report_store=report_store,
            ):
                return
        workflow_store.update(
            workflow_id,
            status=RunStatus.COMPLETED,
            current_step=record.total_steps,
            progress=100,
            completed_at=utc_iso_now(),
        )
    except KeyError:
        logger.info("Workflow deleted while running", extra={"workflow_id": workflow_id})
        return
    logger.info("Workflow completed", extra={"workflow_id": workflow_id})


def _run_step(
    *,
    workflow_id: str,
    index: int,
    step_delay_seconds: float,
    workflow_store: WorkflowStore,
    report_store: ReportStore,
) -> bool:
    """Run step `index`. Returns False when the workflow stopped (cancelled or failed).

    Raises:
        KeyError if the workflow was deleted mid-run.
    """

    current = workflow_store.get(workflow_id)
    if current is None:
        raise KeyError(workflow_id)
    if current.cancel_requested:
        workflow_store.fail(workflow_id, step=index, message=CANCELLED_MESSAGE)
        logger.info("Workflow cancelled", extra={"workflow_id": workflow_id, "step": index})
        return False

    step = current.steps[index]
    workflow_store.update(workflow_id, current_step=index)
    workflow_store.update_step(workflow_id, index, status=RunStatus.RUNNING, error=None)
    started = time.monotonic()
    try:
        report_id = _execute_step(
            workflow_id=workflow_id,
            index=index,
            step_type=step.type,
            title=step.title,
            step_delay_seconds=step_delay_seconds,
            fail_at_step=current.fail_at_step,
            report_store=report_store,
        )
    except Exception as e:
        logger.exception("Workflow step failed", extra={"workflow_id": workflow_id, "step": index})
        workflow_store.fail(workflow_id, step=index, message=str(e))
        return False

    workflow_store.update_step(
        workflow_id,
        index,
        status=RunStatus.COMPLETED,
        duration_ms=int((time.monotonic() - started) * 1000),
        has_output=True,
    )
    if report_id is not None:
        report = report_store.get(report_id)
        workflow_store.update(
            workflow_id,
            report_id=report_id,
            report_title=report.title if report is not None else None,
        )
    return True
