"""HTTP client for the workflow execution service.

Wraps a `requests.Session` so network calls stay out of the tracker and
library code and tests can swap the session.

Every method issues exactly one request. There is no retry or backoff here:
the polling cadence is the only retry mechanism.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import ValidationError

from research_workflows.tracker.workflow.models import WorkflowStatus, WorkflowSummary

logger = logging.getLogger(__name__)


class WorkflowApiError(Exception):
    """Base error for failed calls to the execution service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkFailure(WorkflowApiError):
    """The request was rejected in transport or answered with a non-2xx status.

    Authentication failures (401/403) land here too; auth is handled by an
    external identity provider.
    """


class WorkflowNotFound(WorkflowApiError):
    """The service does not know the workflow id."""


class WorkflowClient:
    """Small wrapper around the execution service REST API."""

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:8000",
        token: str = "",
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        headers = {
            "Accept": "application/json",
            "User-Agent": "research-workflow-tracker",
        }
        if token.strip():
            headers["Authorization"] = f"Bearer {token.strip()}"
        self._session.headers.update(headers)

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> WorkflowClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _workflow_url(self, workflow_id: str, suffix: str = "") -> str:
        workflow_id = workflow_id.strip()
        if not workflow_id:
            raise ValueError("workflow_id is required")
        if suffix and not suffix.startswith("/"):
            suffix = "/" + suffix
        return f"{self._base_url}/api/workflows/{workflow_id}{suffix}"

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise NetworkFailure(f"{method} {url} failed: {e}") from e

        if resp.status_code == 404:
            raise WorkflowNotFound("Workflow not found", status_code=404)
        if not 200 <= resp.status_code < 300:
            raise NetworkFailure(
                f"{method} {url} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise WorkflowApiError(f"{method} {url} returned invalid JSON") from e

    def fetch_status(self, workflow_id: str) -> WorkflowStatus:
        data = self._request("GET", self._workflow_url(workflow_id, "status"))
        try:
            return WorkflowStatus.model_validate(data)
        except ValidationError as e:
            raise WorkflowApiError(f"Unexpected status payload: {e}") from e

    def list_workflows(self) -> list[WorkflowSummary]:
        data = self._request("GET", f"{self._base_url}/api/workflows")
        items = data.get("workflows", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise WorkflowApiError("Unexpected workflow list payload")
        try:
            return [WorkflowSummary.model_validate(item) for item in items]
        except ValidationError as e:
            raise WorkflowApiError(f"Unexpected workflow list payload: {e}") from e

    def cancel(self, workflow_id: str) -> None:
        self._request("POST", self._workflow_url(workflow_id, "cancel"))
        logger.info("Cancel requested", extra={"workflow_id": workflow_id})

    def retry(self, workflow_id: str) -> None:
        self._request("POST", self._workflow_url(workflow_id, "retry"))
        logger.info("Retry requested", extra={"workflow_id": workflow_id})

    def delete_workflow(self, workflow_id: str) -> None:
        self._request("DELETE", self._workflow_url(workflow_id))
        logger.info("Workflow deleted", extra={"workflow_id": workflow_id})

    def launch_workflow(self, payload: dict[str, object]) -> WorkflowStatus:
        data = self._request("POST", f"{self._base_url}/api/workflows", json=payload)
        try:
            return WorkflowStatus.model_validate(data)
        except ValidationError as e:
            raise WorkflowApiError(f"Unexpected status payload: {e}") from e

    def get_report(self, report_id: str) -> dict[str, Any]:
        if not report_id.strip():
            raise ValueError("report_id is required")
        data = self._request("GET", f"{self._base_url}/api/reports/{report_id.strip()}")
        if not isinstance(data, dict):
            raise WorkflowApiError("Unexpected report payload")
        return data
