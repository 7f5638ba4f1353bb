"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from research_workflows.server.config import ServerSettings
from research_workflows.tracker.workflow.models import WorkflowStatus


class FakeTimer:
    """Timer driven by hand: `fire()` runs one tick."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled

    def fire(self) -> None:
        if self.active:
            self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def latest(self) -> FakeTimer:
        return self.timers[-1]

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.active]


@pytest.fixture
def timers() -> FakeTimerFactory:
    """Provide a timer factory whose ticks are fired by the test."""
    return FakeTimerFactory()


@pytest.fixture
def status_factory() -> Callable[..., WorkflowStatus]:
    """Build WorkflowStatus snapshots from wire-format overrides."""

    def make(status: str = "running", **overrides: object) -> WorkflowStatus:
        payload: dict[str, object] = {
            "workflowId": "wf_1",
            "title": "Compare vector databases",
            "query": "compare vector databases",
            "status": status,
            "currentStep": 0,
            "totalSteps": 4,
            "progress": 0,
            "steps": [],
            "createdAt": "2025-01-01T00:00:00+00:00",
        }
        payload.update(overrides)
        return WorkflowStatus.model_validate(payload)

    return make


@pytest.fixture
def server_settings(tmp_path: Path) -> ServerSettings:
    """Provide service settings with a temp state dir and the runner thread disabled."""
    return ServerSettings(
        state_path=tmp_path / "workflow_state",
        runner_enabled=False,
        step_delay_seconds=0,
        cors_origins="http://localhost:3000",
    )
