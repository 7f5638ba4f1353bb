"""Map workflow snapshots to display affordances.

Everything here is pure: no network calls. Step expansion is transient view
state with no server counterpart.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import RunStatus, StepStatus, StepType, WorkflowStatus


@dataclass(frozen=True, slots=True)
class StepAffordance:
    icon: str
    color: str
    animate: bool = False


STEP_ICONS: dict[str, str] = {
    StepType.SEARCH.value: "search",
    StepType.EXTRACT.value: "filter",
    StepType.ANALYZE.value: "brain",
    StepType.AGGREGATE.value: "layers",
    StepType.GENERATE_REPORT.value: "document",
}
FALLBACK_STEP_ICON = "document"

STEP_TYPE_COLORS: dict[str, str] = {
    StepType.SEARCH.value: "blue",
    StepType.EXTRACT.value: "amber",
    StepType.ANALYZE.value: "purple",
    StepType.AGGREGATE.value: "cyan",
    StepType.GENERATE_REPORT.value: "green",
}
FALLBACK_STEP_COLOR = "gray"

STATUS_AFFORDANCES: dict[RunStatus, StepAffordance] = {
    RunStatus.PENDING: StepAffordance(icon="clock", color="gray"),
    RunStatus.RUNNING: StepAffordance(icon="loader", color="blue", animate=True),
    RunStatus.COMPLETED: StepAffordance(icon="check", color="green"),
    RunStatus.FAILED: StepAffordance(icon="x", color="red"),
}

STATUS_BADGES: dict[RunStatus, str] = {
    RunStatus.PENDING: "Starting",
    RunStatus.RUNNING: "Running",
    RunStatus.COMPLETED: "Completed",
    RunStatus.FAILED: "Failed",
}


def step_icon(step_type: str) -> str:
    return STEP_ICONS.get(step_type, FALLBACK_STEP_ICON)


def step_color(step_type: str) -> str:
    return STEP_TYPE_COLORS.get(step_type, FALLBACK_STEP_COLOR)


def status_affordance(status: RunStatus) -> StepAffordance:
    return STATUS_AFFORDANCES.get(status, STATUS_AFFORDANCES[RunStatus.PENDING])


def step_affordance(step: StepStatus) -> tuple[StepAffordance, StepAffordance]:
    """Return (type affordance, status affordance) for a step."""

    return (
        StepAffordance(icon=step_icon(step.type), color=step_color(step.type)),
        status_affordance(step.status),
    )


def format_duration(duration_ms: float) -> str:
    if round(duration_ms) < 1000:
        return f"{round(duration_ms)}ms"
    return f"{duration_ms / 1000:.1f}s"


class StepExpansion:
    """At most one expanded step at a time."""

    def __init__(self) -> None:
        self._expanded: int | None = None

    @property
    def expanded(self) -> int | None:
        return self._expanded

    def toggle(self, index: int) -> None:
        self._expanded = None if self._expanded == index else index

    def is_expanded(self, index: int) -> bool:
        return self._expanded == index

    def reset(self) -> None:
        self._expanded = None


@dataclass(frozen=True, slots=True)
class StepRow:
    index: int
    title: str
    type: str
    status: RunStatus
    type_affordance: StepAffordance
    status_affordance: StepAffordance
    expanded: bool
    duration: str | None = None
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class WorkflowView:
    title: str
    status: RunStatus
    badge: str
    step_label: str
    progress_label: str
    bar_percent: int
    rows: list[StepRow]
    footer: str
    actions: tuple[str, ...]
    description: str | None = None
    report_id: str | None = None
    error: str | None = None


def _row(step: StepStatus, expansion: StepExpansion) -> StepRow:
    type_aff, status_aff = step_affordance(step)
    expanded = expansion.is_expanded(step.index)
    details: list[str] = []
    if expanded:
        if step.description:
            details.append(step.description)
        if step.error:
            details.append(f"Error: {step.error}")
        if step.has_output and step.status == RunStatus.COMPLETED:
            details.append("Data collected successfully")
    duration = None
    if step.duration_ms is not None and step.status == RunStatus.COMPLETED:
        duration = format_duration(step.duration_ms)
    return StepRow(
        index=step.index,
        title=step.title,
        type=step.type,
        status=step.status,
        type_affordance=type_aff,
        status_affordance=status_aff,
        expanded=expanded,
        duration=duration,
        details=details,
    )


def _footer(status: RunStatus, snapshot: WorkflowStatus | None, done: int, total: int) -> str:
    if status == RunStatus.COMPLETED:
        report = snapshot.report if snapshot is not None else None
        if report is not None:
            return f"Report ready: {report.title} ({report.id})"
        return "All steps completed successfully!"
    if status == RunStatus.RUNNING:
        return f"Executing research steps... {done}/{total} steps done"
    if status == RunStatus.FAILED:
        if snapshot is not None and snapshot.error_message:
            return snapshot.error_message
        return "Workflow failed"
    return "Workflow queued, starting shortly..."


def build_view(
    snapshot: WorkflowStatus | None,
    *,
    steps: list[StepStatus] | None = None,
    expansion: StepExpansion | None = None,
    error: str | None = None,
) -> WorkflowView:
    """Build a display model from the cached snapshot (or initial steps before the first fetch)."""

    expansion = expansion or StepExpansion()
    rows_src = snapshot.steps if snapshot is not None and snapshot.steps else (steps or [])

    status = snapshot.status if snapshot is not None else RunStatus.PENDING
    # The service may report fractional percentages; labels show whole numbers.
    progress = round(snapshot.progress) if snapshot is not None else 0
    total = snapshot.total_steps if snapshot is not None and snapshot.total_steps else len(rows_src)
    if snapshot is not None:
        current = snapshot.display_step
    else:
        current = min(1, total)
    done = sum(1 for s in rows_src if s.status == RunStatus.COMPLETED)

    actions: tuple[str, ...] = ()
    if status == RunStatus.RUNNING:
        actions = ("cancel",)
    elif status == RunStatus.FAILED:
        actions = ("retry",)

    return WorkflowView(
        title=snapshot.title if snapshot is not None else "Research Workflow",
        description=snapshot.description if snapshot is not None else None,
        status=status,
        badge=STATUS_BADGES[status],
        step_label=f"Step {current} of {total}",
        progress_label=f"{progress}% complete",
        bar_percent=max(progress, 5) if status == RunStatus.RUNNING else progress,
        rows=[_row(s, expansion) for s in rows_src],
        footer=_footer(status, snapshot, done, total),
        actions=actions,
        report_id=snapshot.report_id if snapshot is not None else None,
        error=error,
    )


def render_text(view: WorkflowView, *, width: int = 30) -> str:
    """Plain-text rendering used by the CLI."""

    filled = round(width * view.bar_percent / 100)
    lines = [
        f"{view.title} [{view.badge}]",
    ]
    if view.description:
        lines.append(f"  {view.description}")
    lines.append(f"  {view.step_label}  [{'#' * filled}{'.' * (width - filled)}]  {view.progress_label}")
    for row in view.rows:
        marker = "v" if row.expanded else ">"
        suffix = f"  {row.duration}" if row.duration else ""
        lines.append(
            f"  {marker} {row.index + 1}. ({row.status_affordance.icon}) {row.title}"
            f" <{row.type_affordance.icon}:{row.type}>{suffix}"
        )
        for detail in row.details:
            lines.append(f"       {detail}")
    lines.append(f"  {view.footer}")
    if view.error:
        lines.append(f"  ! {view.error}")
    if view.actions:
        lines.append(f"  actions: {', '.join(view.actions)}")
    return "\n".join(lines)
