"""FastAPI adapter for a local workflow execution service.

Design intent:
- Speak the same HTTP contract the tracker consumes
- Simulate step execution so the tracker can be developed without the real backend
"""

from __future__ import annotations

__all__ = ["create_app"]

from research_workflows.server.app import create_app
