"""Exceptions raised by the synchronization core."""

from __future__ import annotations


class NavSyncError(Exception):
    """Base class for all navsync errors."""


class InvalidBounds(NavSyncError, ValueError):
    """Bounding box is malformed (NaN, out of range, unparsable)."""


class WorkflowError(NavSyncError):
    """Download area workflow refused an operation."""


class InvalidTransition(WorkflowError):
    """Operation is not valid in the current workflow state."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f'{operation} is not allowed in state {state!r}')


class DrawingError(WorkflowError):
    """Polygon cannot be closed (too few points or degenerate extent)."""


class DownloadRejected(WorkflowError):
    """Download request failed local validation and was never sent."""


class DownloadFailed(NavSyncError):
    """Pack creation failed; the session is kept for a retry."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PackServiceError(NavSyncError, RuntimeError):
    """Pack service returned an error or an unreadable response."""
