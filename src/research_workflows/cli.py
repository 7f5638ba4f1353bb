"""Console script entrypoint.

The CLI itself lives in `research_workflows.tracker.main`.
"""

from __future__ import annotations

from research_workflows.tracker.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
