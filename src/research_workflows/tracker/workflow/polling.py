"""Fixed-interval status polling for a single workflow.

Lifecycle: ``idle -> polling -> settled``.

- Polling starts once the tracker is open, the upstream streaming phase has
  ended, and a workflow id is available.
- A terminal status (completed/failed) settles the tracker and cancels the
  timer right away.
- A successful retry command moves a settled tracker back to polling.
- Cancel never stops polling by itself; the server's answer decides.
- ``close()`` returns the tracker to idle; a later ``open()`` polls again.

Overlapping fetches are ordered by a sequence number taken when the request is
issued; a response older than the one already applied is discarded. Timer
ticks are dropped while a fetch is still in flight.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Protocol

from research_workflows.tracker.client import WorkflowApiError, WorkflowClient

from .actions import ActionDispatcher, ActionResult
from .models import StepStatus, WorkflowStatus, steps_from_definitions
from .render import StepExpansion, WorkflowView, build_view

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.5


class PollPhase(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SETTLED = "settled"


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


class IntervalTimer:
    """Call `callback` every `interval` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="workflow-poll", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Polling tick failed")


class WorkflowTracker:
    """Track one workflow's status by polling the execution service."""

    def __init__(
        self,
        *,
        client: WorkflowClient,
        workflow_id: str,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        streaming: bool = False,
        initial_steps: Iterable[Mapping[str, object]] | None = None,
        dispatcher: ActionDispatcher | None = None,
        timer_factory: TimerFactory = IntervalTimer,
        on_update: Callable[[WorkflowTracker], None] | None = None,
    ) -> None:
        self._client = client
        self._workflow_id = workflow_id.strip()
        self._interval = interval_seconds
        self._streaming = streaming
        self._initial_steps: list[StepStatus] = steps_from_definitions(initial_steps or [])
        self._dispatcher = dispatcher or ActionDispatcher(client)
        self._timer_factory = timer_factory
        self._on_update = on_update

        self._lock = threading.RLock()
        self._phase = PollPhase.IDLE
        self._open = False
        self._timer: Timer | None = None
        self._issued_seq = 0
        self._applied_seq = 0
        self._in_flight = 0
        self._status: WorkflowStatus | None = None
        self._error: str | None = None
        self._done = threading.Event()

        self.expansion = StepExpansion()

    @property
    def workflow_id(self) -> str:
        return self._workflow_id

    @property
    def phase(self) -> PollPhase:
        return self._phase

    @property
    def status(self) -> WorkflowStatus | None:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def streaming(self) -> bool:
        return self._streaming

    def __enter__(self) -> WorkflowTracker:
        self.open()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    # ─── lifecycle ───

    def open(self) -> None:
        with self._lock:
            self._open = True
        self._maybe_start()

    def set_streaming(self, streaming: bool) -> None:
        """Feed the upstream streaming gate. Polling waits until it reports False."""

        with self._lock:
            self._streaming = streaming
        if not streaming:
            self._maybe_start()

    def close(self) -> None:
        with self._lock:
            self._open = False
            self._phase = PollPhase.IDLE
            self._release_timer()
            self.expansion.reset()
            self._done.set()
        logger.debug("Tracker closed", extra={"workflow_id": self._workflow_id})

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the tracker settles or closes. Returns False on timeout."""

        return self._done.wait(timeout)

    def _maybe_start(self) -> None:
        with self._lock:
            if not self._open or self._streaming or not self._workflow_id:
                return
            if self._phase != PollPhase.IDLE:
                return
            self._enter_polling()
        self.refresh()

    def _enter_polling(self) -> None:
        # Caller holds the lock.
        self._phase = PollPhase.POLLING
        self._done.clear()
        if self._timer is None:
            self._timer = self._timer_factory(self._interval, self.poll)
            self._timer.start()
        logger.info(
            "Polling started",
            extra={"workflow_id": self._workflow_id, "interval_seconds": self._interval},
        )

    def _release_timer(self) -> None:
        # Caller holds the lock.
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ─── fetching ───

    def poll(self) -> None:
        """Timer tick: fetch unless a previous fetch is still outstanding."""

        with self._lock:
            if not self._open or self._phase != PollPhase.POLLING:
                return
            if self._in_flight:
                logger.debug("Skipping poll tick, fetch in flight", extra={"workflow_id": self._workflow_id})
                return
        self.refresh()

    def refresh(self) -> WorkflowStatus | None:
        """Fetch once, independent of the timer, and apply the result."""

        seq = self.begin_fetch()
        try:
            snapshot = self._client.fetch_status(self._workflow_id)
        except (WorkflowApiError, ValueError) as e:
            logger.warning(
                "Workflow status fetch failed",
                extra={"workflow_id": self._workflow_id, "error": str(e)},
            )
            self.apply_result(seq, error=str(e) or "Failed to fetch status")
            return None
        except Exception:
            # Every issued fetch must be applied, or later ticks stay skipped.
            logger.exception(
                "Unexpected error fetching workflow status",
                extra={"workflow_id": self._workflow_id},
            )
            self.apply_result(seq, error="Failed to fetch status")
            return None
        self.apply_result(seq, status=snapshot)
        return snapshot

    def begin_fetch(self) -> int:
        with self._lock:
            self._issued_seq += 1
            self._in_flight += 1
            return self._issued_seq

    def apply_result(
        self,
        seq: int,
        *,
        status: WorkflowStatus | None = None,
        error: str | None = None,
    ) -> bool:
        """Apply the outcome of fetch `seq`. Returns False when the result was discarded."""

        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            if not self._open:
                return False
            if seq <= self._applied_seq:
                logger.debug(
                    "Discarding stale status response",
                    extra={"workflow_id": self._workflow_id, "seq": seq, "applied": self._applied_seq},
                )
                return False
            self._applied_seq = seq

            if status is None:
                self._error = error or "Failed to fetch status"
            else:
                self._status = status
                self._error = None
                if status.is_terminal and self._phase == PollPhase.POLLING:
                    self._phase = PollPhase.SETTLED
                    self._release_timer()
                    self._done.set()
                    logger.info(
                        "Workflow reached terminal state",
                        extra={"workflow_id": self._workflow_id, "status": status.status.value},
                    )
                elif not status.is_terminal and self._phase == PollPhase.SETTLED:
                    # Server says it is active again (e.g. retried elsewhere).
                    self._enter_polling()
        self._notify()
        return True

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self)

    # ─── commands ───

    def cancel(self) -> ActionResult:
        result = self._dispatcher.cancel(self._workflow_id)
        if result.ok:
            self.refresh()
        return result

    def retry(self) -> ActionResult:
        result = self._dispatcher.retry(self._workflow_id)
        if not result.ok:
            return result
        with self._lock:
            if self._open and self._phase == PollPhase.SETTLED:
                self._enter_polling()
        self.refresh()
        return result

    # ─── display ───

    def toggle_step(self, index: int) -> None:
        self.expansion.toggle(index)
        self._notify()

    def view(self) -> WorkflowView:
        return build_view(
            self._status,
            steps=self._initial_steps,
            expansion=self.expansion,
            error=self._error,
        )
