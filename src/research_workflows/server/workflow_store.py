"""Persisted workflow and report records for the local execution service.

Records are JSON files in the state directory so the service survives restarts
(best-effort). Every read-modify-write happens under a per-store lock because
runner threads and request handlers share the same files.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from research_workflows.tracker.workflow.models import (
    ReportRef,
    RunStatus,
    StepStatus,
    WireModel,
    WorkflowStatus,
    WorkflowSummary,
)


def utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


def _safe_load_json_list(path: Path) -> list[dict[str, object]]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return []
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def _save_json_list(path: Path, items: Sequence[BaseModel]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [m.model_dump(mode="json", by_alias=True) for m in items]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class WorkflowRecord(WorkflowStatus):
    """Server-side workflow state: the wire status plus bookkeeping."""

    sources: list[str] = Field(default_factory=list)
    cancel_requested: bool = False
    # Step index at which the simulated runner fails (development aid).
    fail_at_step: int | None = None

    def to_status(self) -> WorkflowStatus:
        return WorkflowStatus.model_validate(self.model_dump(mode="json", by_alias=True))

    def to_summary(self) -> WorkflowSummary:
        return WorkflowSummary(
            id=self.workflow_id,
            title=self.title,
            description=self.description,
            query=self.query,
            status=self.status,
            current_step=self.current_step,
            total_steps=self.total_steps,
            sources=list(self.sources),
            output_format=self.output_format,
            error_message=self.error_message,
            created_at=self.created_at,
            completed_at=self.completed_at,
            report=self.report,
        )


class ReportRecord(WireModel):
    id: str
    workflow_id: str
    title: str
    content: str
    created_at: str

    def ref(self) -> ReportRef:
        return ReportRef(id=self.id, title=self.title)


def progress_for(steps: Sequence[StepStatus]) -> int:
    if not steps:
        return 0
    done = sum(1 for s in steps if s.status == RunStatus.COMPLETED)
    return round(done / len(steps) * 100)


@dataclass
class WorkflowStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[WorkflowRecord]:
        return [WorkflowRecord.model_validate(item) for item in _safe_load_json_list(self.path)]

    def list(self) -> list[WorkflowRecord]:
        with self._lock:
            records = self._load_unlocked()
        # Newest first for the library view.
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get(self, workflow_id: str) -> WorkflowRecord | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.workflow_id == workflow_id:
                    return record
            return None

    def create(self, record: WorkflowRecord) -> WorkflowRecord:
        with self._lock:
            records = self._load_unlocked()
            if any(r.workflow_id == record.workflow_id for r in records):
                raise ValueError(f"Workflow already exists: {record.workflow_id}")
            records.append(record)
            _save_json_list(self.path, records)
            return record

    def update(self, workflow_id: str, **updates: object) -> WorkflowRecord:
        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.workflow_id != workflow_id:
                    continue
                merged = record.model_copy(update=updates)
                records[idx] = merged
                _save_json_list(self.path, records)
                return merged
            raise KeyError(workflow_id)

    def update_step(self, workflow_id: str, index: int, **updates: object) -> WorkflowRecord:
        """Patch one step and recompute progress."""

        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.workflow_id != workflow_id:
                    continue
                steps = list(record.steps)
                steps[index] = steps[index].model_copy(update=updates)
                merged = record.model_copy(update={"steps": steps, "progress": progress_for(steps)})
                records[idx] = merged
                _save_json_list(self.path, records)
                return merged
            raise KeyError(workflow_id)

    def fail(self, workflow_id: str, *, message: str, step: int | None = None) -> WorkflowRecord:
        """Mark the workflow and one step failed, unless it already settled.

        `step` defaults to the current step. The terminal check and the write
        happen under one lock hold, so a run that just completed is left alone.
        """

        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.workflow_id != workflow_id:
                    continue
                if record.is_terminal:
                    return record
                if step is None:
                    step = min(record.current_step, max(record.total_steps - 1, 0))
                steps = list(record.steps)
                if 0 <= step < len(steps):
                    steps[step] = steps[step].model_copy(
                        update={"status": RunStatus.FAILED, "error": message}
                    )
                merged = record.model_copy(
                    update={
                        "steps": steps,
                        "progress": progress_for(steps),
                        "status": RunStatus.FAILED,
                        "error_message": message,
                        "failed_step": step,
                        "completed_at": utc_iso_now(),
                    }
                )
                records[idx] = merged
                _save_json_list(self.path, records)
                return merged
            raise KeyError(workflow_id)

    def delete(self, workflow_id: str) -> WorkflowRecord | None:
        with self._lock:
            records = self._load_unlocked()
            kept = [r for r in records if r.workflow_id != workflow_id]
            if len(kept) == len(records):
                return None
            _save_json_list(self.path, kept)
            return next(r for r in records if r.workflow_id == workflow_id)


@dataclass
class ReportStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[ReportRecord]:
        return [ReportRecord.model_validate(item) for item in _safe_load_json_list(self.path)]

    def get(self, report_id: str) -> ReportRecord | None:
        with self._lock:
            for report in self._load_unlocked():
                if report.id == report_id:
                    return report
            return None

    def save(self, report: ReportRecord) -> ReportRecord:
        with self._lock:
            reports = [r for r in self._load_unlocked() if r.id != report.id]
            reports.append(report)
            _save_json_list(self.path, reports)
            return report

    def delete(self, report_id: str) -> bool:
        with self._lock:
            reports = self._load_unlocked()
            kept = [r for r in reports if r.id != report_id]
            if len(kept) == len(reports):
                return False
            _save_json_list(self.path, kept)
            return True
