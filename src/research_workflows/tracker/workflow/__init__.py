"""Workflow status model, polling, commands and step rendering.

The execution service is the single source of truth; everything here reads
snapshots of its state and never corrects them.
"""

__all__: list[str] = []
