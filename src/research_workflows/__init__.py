"""Research workflow tracker.

Provides:
- a status client and fixed-interval poller for multi-step research workflows
- a library view over all workflows
- a local execution service speaking the same HTTP contract
"""

__version__ = "0.1.0"

from research_workflows.tracker.config import TrackerSettings

__all__ = ["__version__", "TrackerSettings"]
