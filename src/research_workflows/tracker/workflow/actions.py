from __future__ import annotations

import logging
from dataclasses import dataclass

from research_workflows.tracker.client import WorkflowApiError, WorkflowClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    message: str
    details: dict[str, object] | None = None


@dataclass(frozen=True, slots=True)
class ActionDispatcher:
    """Send cancel/retry commands to the execution service.

    Failures are logged and reported in the result, never raised. Cached status
    is never touched here: only the next successful fetch is authoritative.
    """

    client: WorkflowClient

    def cancel(self, workflow_id: str) -> ActionResult:
        return self._send("cancel", workflow_id)

    def retry(self, workflow_id: str) -> ActionResult:
        return self._send("retry", workflow_id)

    def _send(self, command: str, workflow_id: str) -> ActionResult:
        try:
            getattr(self.client, command)(workflow_id)
        except (WorkflowApiError, ValueError) as e:
            logger.warning(
                "Workflow command failed",
                extra={"command": command, "workflow_id": workflow_id, "error": str(e)},
            )
            return ActionResult(
                ok=False,
                message=f"{command.capitalize()} failed: {e}",
                details={"workflow_id": workflow_id},
            )
        return ActionResult(
            ok=True,
            message=f"{command.capitalize()} requested",
            details={"workflow_id": workflow_id},
        )
