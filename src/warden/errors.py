"""
Error taxonomy for bulk moderation jobs.

Per-target problems never surface as exceptions: the executor turns them into
ActionOutcome values. Only the command layer (submission, authorization) and
status sinks raise.
"""

from __future__ import annotations

from typing import Optional


class WardenError(Exception):
    """Base class for all bot errors."""


class ValidationError(WardenError):
    """Bad job parameters; the job is never enqueued."""


class AuthorizationError(WardenError):
    """The actor lacks rights; no job is created."""


class RateLimited(WardenError):
    """Retryable platform throttle. Never seen by the caller of a job."""

    def __init__(self, retry_after: Optional[float] = None) -> None:
        super().__init__(f"rate limited (retry_after={retry_after})")
        self.retry_after = retry_after


class PermissionRevokedMidRun(WardenError):
    """The bot lost the permission it needs; fatal for the whole job."""


class UnclassifiedActionError(WardenError):
    """Any other per-target failure."""


class StatusMessageGone(WardenError):
    """The status message a reporter edits no longer exists."""


class StatusUnchanged(WardenError):
    """The platform refused an edit because the content did not change."""
