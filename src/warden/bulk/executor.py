from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Collection, NamedTuple, Optional

from ..constants import FAILURE_REASON_MAX
from ..errors import PermissionRevokedMidRun, RateLimited, UnclassifiedActionError
from .models import ActionOutcome, ActionResult, CallResult, CallStatus, Job, JobReport
from .policy import JitterPolicy, RetryPolicy
from .progress import ProgressReporter

log = logging.getLogger("warden.executor")

ActionFn = Callable[[int], Awaitable[CallResult]]
ReverseFn = Callable[[int], Awaitable[Any]]
ProtectedResolver = Callable[[], Awaitable[Collection[int]]]
PruneFn = Callable[[list[int]], Awaitable[int]]
SleepFn = Callable[[float], Awaitable[Any]]

PERMISSION_REVOKED = "permission revoked"


def truncate_reason(reason: str, limit: int = FAILURE_REASON_MAX) -> str:
    reason = " ".join(str(reason).split()) or "unknown error"
    if len(reason) <= limit:
        return reason
    return reason[: limit - 1] + "…"


class _Attempt(NamedTuple):
    outcome: ActionOutcome
    fatal: bool


@dataclass
class _Cursor:
    """Shared slot index. Claim-then-increment is atomic on the event loop."""
    targets: list[int]
    index: int = 0

    def claim(self) -> Optional[int]:
        if self.index >= len(self.targets):
            return None
        target = self.targets[self.index]
        self.index += 1
        return target

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.targets)


class BulkActionExecutor:
    """Applies one action to many targets with bounded concurrency.

    Generic over ``(targets, action, protected) -> outcomes``: a target may be
    a member id (purge) or a group id (cross-group propagation).
    """

    def __init__(
        self,
        *,
        retry: RetryPolicy,
        jitter: JitterPolicy,
        concurrency: int = 3,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.retry = retry
        self.jitter = jitter
        self.concurrency = max(1, int(concurrency))
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def run(
        self,
        job: Job,
        action: ActionFn,
        *,
        protected: ProtectedResolver,
        reverse: Optional[ReverseFn] = None,
        reporter: Optional[ProgressReporter] = None,
        prune: Optional[PruneFn] = None,
    ) -> JobReport:
        if job.token is None:
            raise RuntimeError(f"job {job.job_key!r} must be started before it runs")
        started = time.monotonic()

        # Step 1: never attempt protected identities
        job.protected_ids = set(await protected())
        pending: list[int] = []
        for target in dict.fromkeys(job.target_ids):
            if target in job.protected_ids:
                job.record(ActionOutcome(target, ActionResult.SKIPPED_PROTECTED))
            else:
                pending.append(target)
        job.target_ids = list(dict.fromkeys(job.target_ids))

        log.info(
            "Job %s: %d targets, %d protected, %d workers",
            job.job_key, len(job.target_ids), len(job.target_ids) - len(pending), self.concurrency,
        )
        if reporter is not None:
            await reporter.start(job.snapshot())

        # Step 2: worker pool over one cursor
        cursor = _Cursor(pending)
        workers = [
            asyncio.create_task(self._worker(job, cursor, action, reverse, reporter), name=f"{job.job_key}-w{i}")
            for i in range(min(self.concurrency, len(pending)))
        ]
        results = await asyncio.gather(*workers, return_exceptions=True)
        for res in results:
            if isinstance(res, BaseException):
                log.error("Worker for %s crashed: %r", job.job_key, res)

        # Step 3: final bookkeeping
        job.finish()
        pruned = 0
        succeeded = [o.target_id for o in job.outcomes if o.result.is_success]
        if prune is not None and succeeded:
            try:
                pruned = await prune(succeeded)
            except Exception:
                log.exception("Pruning after job %s failed", job.job_key)

        snapshot = job.snapshot()
        log.info(
            "Job %s %s: processed=%d/%d applied=%d absent=%d failed=%d protected=%d",
            job.job_key, "aborted" if snapshot.aborted else "completed",
            snapshot.processed, snapshot.total, snapshot.applied,
            snapshot.already_absent, snapshot.failed, snapshot.skipped_protected,
        )
        return JobReport(
            job_key=job.job_key,
            kind=job.kind,
            mode=job.mode,
            snapshot=snapshot,
            outcomes=tuple(job.outcomes),
            aborted_by=job.aborted_by,
            abort_reason=job.token.reason,
            started_by=job.started_by,
            elapsed_seconds=time.monotonic() - started,
            labels=dict(job.labels),
            pruned=pruned,
        )

    async def _worker(
        self,
        job: Job,
        cursor: _Cursor,
        action: ActionFn,
        reverse: Optional[ReverseFn],
        reporter: Optional[ProgressReporter],
    ) -> None:
        token = job.token
        if token is None:
            raise RuntimeError(f"job {job.job_key!r} has no cancellation token")
        while True:
            if token.aborted:
                return
            target = cursor.claim()
            if target is None:
                return

            attempt = await self._attempt(target, action)
            outcome = attempt.outcome
            if outcome.result is ActionResult.APPLIED and reverse is not None:
                await self._reverse(target, reverse)

            job.record(outcome)
            if attempt.fatal:
                token.abort(None, PERMISSION_REVOKED)
                log.error("Job %s aborted: %s on target %s", job.job_key, PERMISSION_REVOKED, target)

            if reporter is not None:
                await reporter.update(job.snapshot())

            if token.aborted or cursor.exhausted:
                return
            await self._sleep(self.jitter.draw(self._rng))

    async def _attempt(self, target: int, action: ActionFn) -> _Attempt:
        last_reason = "unknown error"
        attempts = self.retry.attempts
        for attempt in range(1, attempts + 1):
            try:
                result = await action(target)
            except RateLimited as e:
                result = CallResult.rate_limited(e.retry_after)
            except PermissionRevokedMidRun as e:
                result = CallResult.forbidden(str(e))
            except UnclassifiedActionError as e:
                result = CallResult.other(str(e))
            except Exception as e:
                result = CallResult.other(f"{type(e).__name__}: {e}")

            if result.status is CallStatus.SUCCESS:
                return _Attempt(ActionOutcome(target, ActionResult.APPLIED, attempts=attempt), False)

            if result.status is CallStatus.NOT_FOUND:
                return _Attempt(ActionOutcome(target, ActionResult.ALREADY_ABSENT, attempts=attempt), False)

            if result.status is CallStatus.FORBIDDEN:
                reason = truncate_reason(f"{PERMISSION_REVOKED}: {result.message}" if result.message else PERMISSION_REVOKED)
                return _Attempt(ActionOutcome(target, ActionResult.FAILED, reason=reason, attempts=attempt), True)

            if result.status is CallStatus.RATE_LIMITED:
                last_reason = f"rate limited (retry_after={result.retry_after})"
                if attempt < attempts:
                    delay = self.retry.delay_for(attempt, result.retry_after)
                    log.warning("Rate limited on %s, waiting %.2fs (attempt %d/%d)", target, delay, attempt, attempts)
                    await self._sleep(delay)
                continue

            last_reason = result.message or "unclassified error"
            log.debug("Action on %s failed (attempt %d/%d): %s", target, attempt, attempts, last_reason)
            if attempt < attempts:
                await self._sleep(self.retry.delay_for(attempt))

        log.warning("Giving up on %s after %d attempts: %s", target, attempts, last_reason)
        return _Attempt(
            ActionOutcome(target, ActionResult.FAILED, reason=truncate_reason(last_reason), attempts=attempts),
            False,
        )

    async def _reverse(self, target: int, reverse: ReverseFn) -> None:
        try:
            result = await reverse(target)
        except Exception as e:
            log.warning("Reversal for %s raised: %s", target, e)
            return
        if isinstance(result, CallResult) and result.status is not CallStatus.SUCCESS:
            log.warning("Reversal for %s did not succeed: %s %s", target, result.status.value, result.message)
