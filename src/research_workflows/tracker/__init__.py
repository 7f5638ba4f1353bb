"""Client side: status polling, commands, rendering and the workflow library."""

from research_workflows.tracker.client import (
    NetworkFailure,
    WorkflowApiError,
    WorkflowClient,
    WorkflowNotFound,
)
from research_workflows.tracker.library import WorkflowLibrary
from research_workflows.tracker.workflow.polling import PollPhase, WorkflowTracker

__all__ = [
    "NetworkFailure",
    "PollPhase",
    "WorkflowApiError",
    "WorkflowClient",
    "WorkflowLibrary",
    "WorkflowNotFound",
    "WorkflowTracker",
]
