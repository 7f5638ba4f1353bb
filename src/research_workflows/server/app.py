"""FastAPI app factory for the local execution service.

Endpoints mirror the contract the tracker consumes:

- GET    /api/workflows
- POST   /api/workflows
- GET    /api/workflows/{id}/status
- POST   /api/workflows/{id}/cancel
- POST   /api/workflows/{id}/retry
- DELETE /api/workflows/{id}
- GET    /api/reports/{id}
"""

from __future__ import annotations

import logging
import threading
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from research_workflows import __version__
from research_workflows.server.config import ServerSettings
from research_workflows.server.workflow_runner import CANCELLED_MESSAGE, start_workflow_run
from research_workflows.server.workflow_store import (
    ReportStore,
    WorkflowRecord,
    WorkflowStore,
    progress_for,
    utc_iso_now,
)
from research_workflows.tracker.workflow.models import (
    DEFAULT_PIPELINE,
    RunStatus,
    StepStatus,
    StepType,
    WireModel,
)

logger = logging.getLogger(__name__)

DEFAULT_STEP_TITLES: dict[str, str] = {
    StepType.SEARCH.value: "Search sources",
    StepType.EXTRACT.value: "Extract key data",
    StepType.ANALYZE.value: "Analyze findings",
    StepType.AGGREGATE.value: "Aggregate results",
    StepType.GENERATE_REPORT.value: "Generate report",
}


class StepDefinition(WireModel):
    type: str
    title: str | None = None
    description: str | None = None


class LaunchRequest(WireModel):
    title: str = Field(min_length=1)
    query: str = Field(min_length=1)
    description: str | None = None
    sources: list[str] = Field(default_factory=list)
    output_format: str | None = None
    steps: list[StepDefinition] | None = None
    fail_at_step: int | None = Field(default=None, ge=0)


class WorkflowList(BaseModel):
    workflows: list[dict[str, object]]


def _build_steps(definitions: list[StepDefinition] | None) -> list[StepStatus]:
    if not definitions:
        definitions = [StepDefinition(type=t.value) for t in DEFAULT_PIPELINE]
    return [
        StepStatus(
            index=i,
            type=d.type,
            title=d.title or DEFAULT_STEP_TITLES.get(d.type, d.type.replace("_", " ").title()),
            description=d.description,
        )
        for i, d in enumerate(definitions)
    ]


class WorkflowRuns:
    """Runner threads by workflow id."""

    def __init__(
        self,
        *,
        settings: ServerSettings,
        workflow_store: WorkflowStore,
        report_store: ReportStore,
    ) -> None:
        self._settings = settings
        self._workflow_store = workflow_store
        self._report_store = report_store
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def is_active(self, workflow_id: str) -> bool:
        with self._lock:
            thread = self._threads.get(workflow_id)
            return thread is not None and thread.is_alive()

    def start(self, workflow_id: str, *, start_step: int) -> None:
        if not self._settings.runner_enabled:
            logger.debug("Runner disabled; not starting", extra={"workflow_id": workflow_id})
            return
        with self._lock:
            self._threads[workflow_id] = start_workflow_run(
                workflow_id=workflow_id,
                start_step=start_step,
                step_delay_seconds=self._settings.step_delay_seconds,
                workflow_store=self._workflow_store,
                report_store=self._report_store,
            )


def create_app(settings: ServerSettings | None = None) -> FastAPI:
    settings = settings or ServerSettings()

    app = FastAPI(
        title="Research Workflow Service",
        version=__version__,
        description="Local execution service for multi-step research workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    workflow_store = WorkflowStore(settings.workflows_state_file)
    report_store = ReportStore(settings.reports_state_file)
    runs = WorkflowRuns(
        settings=settings, workflow_store=workflow_store, report_store=report_store
    )
    app.state.workflow_store = workflow_store
    app.state.report_store = report_store
    app.state.runs = runs

    def _get_or_404(workflow_id: str) -> WorkflowRecord:
        record = workflow_store.get(workflow_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return record

    @app.get("/api/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "ok": True, "version": __version__}

    @app.get("/api/workflows", response_model=WorkflowList)
    def list_workflows() -> WorkflowList:
        return WorkflowList(workflows=[r.to_summary().to_wire() for r in workflow_store.list()])

    @app.post("/api/workflows", status_code=201)
    def launch_workflow(req: LaunchRequest) -> dict[str, object]:
        steps = _build_steps(req.steps)
        record = WorkflowRecord(
            workflow_id=f"wf_{uuid.uuid4().hex[:12]}",
            title=req.title,
            description=req.description,
            query=req.query,
            status=RunStatus.PENDING,
            current_step=0,
            total_steps=len(steps),
            progress=0,
            steps=steps,
            output_format=req.output_format,
            created_at=utc_iso_now(),
            sources=req.sources,
            fail_at_step=req.fail_at_step,
        )
        workflow_store.create(record)
        logger.info(
            "Workflow launched",
            extra={"workflow_id": record.workflow_id, "total_steps": record.total_steps},
        )
        runs.start(record.workflow_id, start_step=0)
        return record.to_status().to_wire()

    @app.get("/api/workflows/{workflow_id}/status")
    def workflow_status(workflow_id: str) -> dict[str, object]:
        return _get_or_404(workflow_id).to_status().to_wire()

    @app.post("/api/workflows/{workflow_id}/cancel")
    def cancel_workflow(workflow_id: str) -> dict[str, object]:
        record = _get_or_404(workflow_id)
        if record.is_terminal:
            # Already settled; cancelling again changes nothing.
            return record.to_status().to_wire()

        record = workflow_store.update(workflow_id, cancel_requested=True)
        if not runs.is_active(workflow_id):
            # The runner may have finished in the meantime; fail() re-checks.
            record = workflow_store.fail(workflow_id, message=CANCELLED_MESSAGE)
        logger.info("Workflow cancel requested", extra={"workflow_id": workflow_id})
        return record.to_status().to_wire()

    @app.post("/api/workflows/{workflow_id}/retry")
    def retry_workflow(workflow_id: str) -> dict[str, object]:
        record = _get_or_404(workflow_id)
        if record.status != RunStatus.FAILED:
            raise HTTPException(status_code=409, detail="Only failed workflows can be retried")

        start_step = record.failed_step if record.failed_step is not None else 0
        reset = {"status": RunStatus.PENDING, "error": None, "duration_ms": None, "has_output": None}
        steps = [
            s.model_copy(update=reset) if s.index >= start_step else s for s in record.steps
        ]
        record = workflow_store.update(
            workflow_id,
            status=RunStatus.RUNNING,
            steps=steps,
            progress=progress_for(steps),
            current_step=start_step,
            error_message=None,
            failed_step=None,
            completed_at=None,
            cancel_requested=False,
            fail_at_step=None,
        )
        logger.info(
            "Workflow retry requested",
            extra={"workflow_id": workflow_id, "start_step": start_step},
        )
        runs.start(workflow_id, start_step=start_step)
        return record.to_status().to_wire()

    @app.delete("/api/workflows/{workflow_id}")
    def delete_workflow(workflow_id: str) -> dict[str, object]:
        record = workflow_store.delete(workflow_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        report_deleted = False
        if record.report_id:
            report_deleted = report_store.delete(record.report_id)
        logger.info(
            "Workflow deleted",
            extra={"workflow_id": workflow_id, "report_deleted": report_deleted},
        )
        return {"success": True, "id": workflow_id, "reportDeleted": report_deleted}

    @app.get("/api/reports/{report_id}")
    def get_report(report_id: str) -> dict[str, object]:
        report = report_store.get(report_id)
        if report is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return report.to_wire()

    return app
