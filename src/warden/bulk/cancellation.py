from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .scheduler import PriorityScheduler

log = logging.getLogger("warden.cancellation")


class CancellationToken:
    """Write-once abort flag polled by workers between targets."""

    def __init__(self, job_key: str) -> None:
        self.job_key = job_key
        self._aborted = False
        self.aborted_by: Optional[int] = None
        self.aborted_at: Optional[float] = None
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self, actor_id: Optional[int], reason: Optional[str] = None) -> bool:
        """Set the flag. Returns True only for the call that flipped it."""
        if self._aborted:
            return False
        self._aborted = True
        self.aborted_by = actor_id
        self.aborted_at = time.time()
        self.reason = reason
        return True


class CancellationController:
    """Per-job abort registry.

    An entry exists only while its job is running: ``register`` on start,
    ``release`` on completion or abort, so a later job with the same key
    always starts with a fresh token.
    """

    def __init__(self, scheduler: "PriorityScheduler") -> None:
        self._scheduler = scheduler
        self._tokens: dict[str, CancellationToken] = {}

    def register(self, job_key: str) -> CancellationToken:
        if job_key in self._tokens:
            raise RuntimeError(f"job {job_key!r} is already registered")
        token = CancellationToken(job_key)
        self._tokens[job_key] = token
        return token

    def get(self, job_key: str) -> Optional[CancellationToken]:
        return self._tokens.get(job_key)

    def release(self, job_key: str) -> None:
        self._tokens.pop(job_key, None)

    def active_keys(self) -> list[str]:
        return list(self._tokens)

    def request_abort(self, job_key: str, actor_id: Optional[int], reason: Optional[str] = None) -> bool:
        token = self._tokens.get(job_key)
        if token is None:
            return False
        flipped = token.abort(actor_id, reason)
        if flipped:
            log.info("Abort requested for %s by %s (%s)", job_key, actor_id, reason or "operator")
        return flipped

    def cancel_before_start(self, job_key: str, reason: str = "cancelled before start") -> bool:
        cancelled = self._scheduler.cancel_queued(lambda t: t.key == job_key, reason)
        return bool(cancelled)
