"""Workflow library: the list of all workflows plus launch templates."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from research_workflows.tracker.client import WorkflowApiError, WorkflowClient
from research_workflows.tracker.workflow.actions import ActionDispatcher, ActionResult
from research_workflows.tracker.workflow.models import (
    ACTIVE_STATUSES,
    RunStatus,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkflowTemplate:
    id: str
    name: str
    description: str
    prompt: str
    default_sources: tuple[str, ...]
    default_format: str

    def render(self, topic: str) -> str:
        topic = topic.strip()
        if not topic:
            raise ValueError("topic is required")
        return self.prompt.replace("{topic}", topic)


WORKFLOW_TEMPLATES: tuple[WorkflowTemplate, ...] = (
    WorkflowTemplate(
        id="tech-comparison",
        name="Tech Comparison",
        description="Compare technologies by GitHub stats, features, and community activity",
        prompt=(
            "Compare the top 5 {topic} by GitHub stars, community activity, and features. "
            "Create a comparison report."
        ),
        default_sources=("google", "github"),
        default_format="comparison",
    ),
    WorkflowTemplate(
        id="market-research",
        name="Market Research",
        description="Research products, competitors, and market trends",
        prompt=(
            "Research {topic}, find competitors, analyze reviews, and create a market "
            "analysis report."
        ),
        default_sources=("google",),
        default_format="analysis",
    ),
    WorkflowTemplate(
        id="image-research",
        name="Visual Research",
        description="Find and organize images with analysis",
        prompt=(
            "Find high-quality images of {topic}, categorize them, and create a visual "
            "research summary."
        ),
        default_sources=("google", "pexels"),
        default_format="summary",
    ),
)


def get_template(template_id: str) -> WorkflowTemplate:
    for template in WORKFLOW_TEMPLATES:
        if template.id == template_id:
            return template
    raise KeyError(template_id)


@dataclass(frozen=True, slots=True)
class WorkflowGroups:
    active: list[WorkflowSummary]
    completed: list[WorkflowSummary]
    failed: list[WorkflowSummary]


def group_workflows(workflows: list[WorkflowSummary]) -> WorkflowGroups:
    return WorkflowGroups(
        active=[w for w in workflows if w.status in ACTIVE_STATUSES],
        completed=[w for w in workflows if w.status == RunStatus.COMPLETED],
        failed=[w for w in workflows if w.status == RunStatus.FAILED],
    )


class WorkflowLibrary:
    """Cached list of workflow summaries for one library view.

    Only one load runs at a time per instance; a load requested while another is
    outstanding is dropped, not queued.
    """

    def __init__(
        self,
        client: WorkflowClient,
        *,
        dispatcher: ActionDispatcher | None = None,
        initial: list[WorkflowSummary] | None = None,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher or ActionDispatcher(client)
        self._workflows: list[WorkflowSummary] = list(initial or [])
        self._load_lock = threading.Lock()
        self._loaded = False
        self.error: str | None = None

    @property
    def workflows(self) -> list[WorkflowSummary]:
        return list(self._workflows)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def loading(self) -> bool:
        return self._load_lock.locked()

    @property
    def groups(self) -> WorkflowGroups:
        return group_workflows(self._workflows)

    def mount(self) -> None:
        if not self._loaded:
            self.load()

    def load(self) -> bool:
        """Fetch the list. Returns False when skipped or failed."""

        if not self._load_lock.acquire(blocking=False):
            logger.debug("Workflow list load already in flight")
            return False
        try:
            workflows = self._client.list_workflows()
            self._workflows = workflows
            self._loaded = True
            self.error = None
        except WorkflowApiError as e:
            logger.warning("Failed to load workflows", extra={"error": str(e)})
            self.error = str(e)
            return False
        finally:
            self._load_lock.release()

        logger.debug("Workflows loaded", extra={"count": len(workflows)})
        return True

    def refresh(self) -> bool:
        self._loaded = False
        return self.load()

    def delete(self, workflow_id: str) -> bool:
        """Delete on the server, then drop the cached entry. The entry stays on failure."""

        try:
            self._client.delete_workflow(workflow_id)
        except (WorkflowApiError, ValueError) as e:
            logger.warning(
                "Delete workflow failed", extra={"workflow_id": workflow_id, "error": str(e)}
            )
            return False
        self._workflows = [w for w in self._workflows if w.id != workflow_id]
        return True

    def cancel(self, workflow_id: str) -> ActionResult:
        result = self._dispatcher.cancel(workflow_id)
        self.refresh()
        return result

    def retry(self, workflow_id: str) -> ActionResult:
        result = self._dispatcher.retry(workflow_id)
        self.refresh()
        return result
