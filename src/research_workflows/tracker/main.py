"""CLI entrypoint for the workflow tracker."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from pydantic import ValidationError

from research_workflows import __version__
from research_workflows.tracker.client import WorkflowApiError, WorkflowClient
from research_workflows.tracker.config import TrackerSettings
from research_workflows.tracker.library import WORKFLOW_TEMPLATES, WorkflowLibrary, get_template
from research_workflows.tracker.logging import configure_logging
from research_workflows.tracker.workflow.models import RunStatus
from research_workflows.tracker.workflow.polling import PollPhase, WorkflowTracker
from research_workflows.tracker.workflow.render import StepExpansion, build_view, render_text

logger = logging.getLogger(__name__)


def _parse_sources(value: str | None) -> list[str] | None:
    if value is None:
        return None
    parts = [p.strip() for p in value.split(",")]
    return [p for p in parts if p] or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflows",
        description="Track research workflows running on the execution service",
    )
    parser.add_argument(
        "--version", action="version", version=f"research-workflow-tracker {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List workflows grouped by status")

    status = subparsers.add_parser("status", help="Fetch a workflow's status once")
    status.add_argument("workflow_id", help="Workflow id")
    status.add_argument(
        "--expand",
        type=int,
        default=None,
        help="1-based step number to show details for",
    )

    watch = subparsers.add_parser(
        "watch",
        help="Poll a workflow until it completes or fails",
    )
    watch.add_argument("workflow_id", help="Workflow id")
    watch.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        help="Polling interval (defaults to WORKFLOWS_POLL_INTERVAL_SECONDS)",
    )
    watch.add_argument(
        "--timeout-seconds",
        type=float,
        default=0.0,
        help="Give up after this many seconds (0 = wait forever)",
    )

    cancel = subparsers.add_parser("cancel", help="Ask the service to cancel a workflow")
    cancel.add_argument("workflow_id", help="Workflow id")

    retry = subparsers.add_parser("retry", help="Retry a failed workflow from its failed step")
    retry.add_argument("workflow_id", help="Workflow id")

    delete = subparsers.add_parser("delete", help="Delete a workflow and its tracking data")
    delete.add_argument("workflow_id", help="Workflow id")

    launch = subparsers.add_parser("launch", help="Launch a workflow from a template")
    launch.add_argument(
        "--template",
        required=True,
        choices=[t.id for t in WORKFLOW_TEMPLATES],
        help="Workflow template",
    )
    launch.add_argument("--topic", required=True, help="Research topic")
    launch.add_argument(
        "--sources",
        default=None,
        help="Comma-separated sources, e.g. 'google,github' (defaults to the template's)",
    )

    return parser


def _print_library(library: WorkflowLibrary) -> None:
    groups = library.groups
    sections = (
        ("Active", groups.active),
        ("Completed", groups.completed),
        ("Failed", groups.failed),
    )
    if not library.workflows:
        print("No workflows yet.")
        return
    for label, items in sections:
        if not items:
            continue
        print(f"{label} ({len(items)})")
        for w in items:
            line = f"  {w.id}  {w.title}  {w.current_step}/{w.total_steps} steps  {w.progress_percent}%"
            if w.report is not None:
                line += f"  report={w.report.id}"
            if w.error_message:
                line += f"  error={w.error_message}"
            print(line)


def _watch(client: WorkflowClient, args: argparse.Namespace, settings: TrackerSettings) -> int:
    print_lock = threading.Lock()

    def show(tracker: WorkflowTracker) -> None:
        with print_lock:
            print(render_text(tracker.view()))
            print()

    tracker = WorkflowTracker(
        client=client,
        workflow_id=args.workflow_id,
        interval_seconds=args.poll_seconds or settings.poll_interval_seconds,
        on_update=show,
    )
    with tracker:
        try:
            finished = tracker.wait(args.timeout_seconds or None)
        except KeyboardInterrupt:
            print("Stopped watching.", file=sys.stderr)
            return 130
        if not finished:
            print("Timed out waiting for workflow.", file=sys.stderr)
            return 1
        phase = tracker.phase
        snapshot = tracker.status

    if phase != PollPhase.SETTLED or snapshot is None:
        return 1
    return 0 if snapshot.status == RunStatus.COMPLETED else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = TrackerSettings()
    except ValidationError as e:
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    client = WorkflowClient(
        base_url=settings.api_url,
        token=settings.api_token,
        timeout_seconds=settings.request_timeout_seconds,
    )
    try:
        if args.command == "list":
            library = WorkflowLibrary(client)
            library.mount()
            if library.error:
                print(f"Failed to load workflows: {library.error}", file=sys.stderr)
                return 1
            _print_library(library)
            return 0

        if args.command == "status":
            snapshot = client.fetch_status(args.workflow_id)
            expansion = StepExpansion()
            if args.expand is not None:
                expansion.toggle(args.expand - 1)
            print(render_text(build_view(snapshot, expansion=expansion)))
            return 0

        if args.command == "watch":
            return _watch(client, args, settings)

        if args.command in {"cancel", "retry"}:
            tracker = WorkflowTracker(client=client, workflow_id=args.workflow_id)
            with tracker:
                # Opening issues the initial fetch; the command then re-fetches.
                result = tracker.cancel() if args.command == "cancel" else tracker.retry()
                print(result.message)
                print(render_text(tracker.view()))
            return 0 if result.ok else 1

        if args.command == "delete":
            library = WorkflowLibrary(client)
            if not library.delete(args.workflow_id):
                print(f"Failed to delete workflow {args.workflow_id}", file=sys.stderr)
                return 1
            print(f"Deleted workflow {args.workflow_id}")
            return 0

        if args.command == "launch":
            template = get_template(args.template)
            sources = _parse_sources(args.sources) or list(template.default_sources)
            snapshot = client.launch_workflow(
                {
                    "title": f"{template.name}: {args.topic.strip()}",
                    "description": template.description,
                    "query": template.render(args.topic),
                    "sources": sources,
                    "outputFormat": template.default_format,
                }
            )
            logger.info("Workflow launched", extra={"workflow_id": snapshot.workflow_id})
            print(f"Launched workflow {snapshot.workflow_id}: {snapshot.title}")
            return 0

        parser.error(f"Unknown command: {args.command}")
        return 2

    except WorkflowApiError as e:
        logger.error("Request failed", extra={"error": str(e), "status_code": e.status_code})
        print(f"Request failed: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()
