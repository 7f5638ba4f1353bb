"""Typed snapshots of workflow state as reported by the execution service.

The service owns these objects; the client only holds a read-only copy per poll.
Wire names are camelCase, attributes are snake_case.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.COMPLETED, RunStatus.FAILED})
ACTIVE_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.PENDING, RunStatus.RUNNING})


class StepType(str, Enum):
    """Known step types. Step payloads may carry others."""

    SEARCH = "search"
    EXTRACT = "extract"
    ANALYZE = "analyze"
    AGGREGATE = "aggregate"
    GENERATE_REPORT = "generate_report"


DEFAULT_PIPELINE: tuple[StepType, ...] = (
    StepType.SEARCH,
    StepType.EXTRACT,
    StepType.ANALYZE,
    StepType.AGGREGATE,
    StepType.GENERATE_REPORT,
)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class StepStatus(WireModel):
    index: int = Field(ge=0)
    type: str
    title: str
    description: str | None = None
    status: RunStatus = RunStatus.PENDING
    error: str | None = None
    duration_ms: float | None = None
    has_output: bool | None = None


class ReportRef(WireModel):
    id: str
    title: str


def _check_contiguous(steps: list[StepStatus]) -> None:
    for expected, step in enumerate(steps):
        if step.index != expected:
            raise ValueError(
                f"Step indices must be contiguous from 0 (expected {expected}, got {step.index})"
            )


class WorkflowStatus(WireModel):
    workflow_id: str = Field(validation_alias=AliasChoices("workflowId", "workflow_id", "id"))
    title: str
    description: str | None = None
    query: str = ""
    status: RunStatus
    current_step: int = Field(default=0, ge=0)
    total_steps: int = Field(default=0, ge=0)
    progress: float = Field(default=0, ge=0, le=100)
    steps: list[StepStatus] = Field(default_factory=list)
    output_format: str | None = None
    error_message: str | None = None
    failed_step: int | None = None
    report_id: str | None = None
    report_title: str | None = None
    created_at: str
    completed_at: str | None = None

    @model_validator(mode="after")
    def _check_step_invariants(self) -> WorkflowStatus:
        _check_contiguous(self.steps)
        if self.current_step > self.total_steps:
            raise ValueError("currentStep must not exceed totalSteps")
        if self.steps and self.total_steps and len(self.steps) != self.total_steps:
            raise ValueError("steps length does not match totalSteps")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def report(self) -> ReportRef | None:
        if not self.report_id:
            return None
        return ReportRef(id=self.report_id, title=self.report_title or "View Report")

    @property
    def display_step(self) -> int:
        """1-indexed step number shown to users."""

        if self.total_steps <= 0:
            return 0
        return min(self.current_step + 1, self.total_steps)

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.steps if s.status == RunStatus.COMPLETED)


class WorkflowSummary(WireModel):
    id: str
    title: str
    description: str | None = None
    query: str = ""
    status: RunStatus
    current_step: int = 0
    total_steps: int = 0
    sources: list[str] = Field(default_factory=list)
    output_format: str | None = None
    error_message: str | None = None
    created_at: str
    completed_at: str | None = None
    report: ReportRef | None = None

    @property
    def progress_percent(self) -> int:
        if self.total_steps <= 0:
            return 0
        return round(self.current_step / self.total_steps * 100)


def steps_from_definitions(definitions: Iterable[Mapping[str, object]]) -> list[StepStatus]:
    """Build step rows from the definitions handed over when a workflow is launched.

    These stand in for server state until the first status fetch succeeds.
    """

    steps: list[StepStatus] = []
    for raw in definitions:
        data = dict(raw)
        if not data.get("status"):
            data["status"] = RunStatus.PENDING.value
        steps.append(StepStatus.model_validate(data))
    return steps
