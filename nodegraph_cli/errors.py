"""Exceptions raised by the graph engine and its command-line shell."""

from __future__ import annotations

from pathlib import Path


class NodeGraphError(Exception):
    """Base class for errors reported to the caller."""


class EntrypointUnreadable(NodeGraphError):
    """The entry file of an analysis run could not be read."""

    def __init__(self, entry: Path, reason: str) -> None:
        self.entry = entry
        self.reason = reason
        super().__init__(f"Cannot read entrypoint {entry}: {reason}")


class EntrypointNotFound(NodeGraphError):
    """No usable entrypoint exists under an analysis root."""
