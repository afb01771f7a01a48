from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..errors import AuthorizationError, ValidationError
from ..interfaces import AuthorizationService, PlatformActionClient, PresenceStore, StatusSink, validate_platform_client
from ..services.stats import RuntimeStats
from .cancellation import CancellationController
from .executor import BulkActionExecutor
from .models import Job, JobKind, JobReport, JobStatus, ProgressSnapshot, PropagationMode, PurgeMode, RemovalOptions
from .policy import ProgressPolicy
from .progress import ProgressReporter
from .propagation import run_propagation
from .reporting import render_cancelled, render_progress, render_summary, truncate_message
from .scheduler import PriorityLike, PriorityScheduler, Task

log = logging.getLogger("warden.jobs")

WhitelistFn = Callable[[int], Awaitable[set[int]]]

SHUTDOWN_REASON = "bot shutting down"


@dataclass(frozen=True)
class JobHandle:
    job_key: str
    task_id: str
    kind: JobKind
    priority: int
    # 0 when dispatched immediately, otherwise the 1-based queue position
    position: int


def _parse_id(params: Mapping[str, Any], name: str, *, required: bool = True) -> Optional[int]:
    raw = params.get(name)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"Missing required parameter: {name}")
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Parameter {name} must be a numeric id") from None
    if value <= 0:
        raise ValidationError(f"Parameter {name} must be a positive id")
    return value


def _parse_enum(enum_cls, raw: Any, default):
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown mode {raw!r} (use {allowed})") from None


class JobService:
    """Submission, abort and status surface for bulk jobs.

    Owns the scheduler, the cancellation registry and the per-job progress
    reporters. A job's entries exist only between submission and settlement.
    """

    def __init__(
        self,
        *,
        presence: PresenceStore,
        platform: PlatformActionClient,
        auth: AuthorizationService,
        executor: BulkActionExecutor,
        progress_policy: ProgressPolicy,
        stats: Optional[RuntimeStats] = None,
        whitelist: Optional[WhitelistFn] = None,
        mute_duration_seconds: int = 86_400,
        failure_sample_limit: int = 5,
        default_priority: PriorityLike = "normal",
        scheduler: Optional[PriorityScheduler] = None,
    ) -> None:
        self.presence = presence
        self.platform = validate_platform_client(platform)
        self.auth = auth
        self.executor = executor
        self.progress_policy = progress_policy
        self.stats = stats or RuntimeStats()
        self._whitelist = whitelist
        self.mute_duration_seconds = int(mute_duration_seconds)
        self.failure_sample_limit = int(failure_sample_limit)
        self.default_priority = default_priority

        self.scheduler = scheduler or PriorityScheduler()
        self.cancellation = CancellationController(self.scheduler)
        self._jobs: dict[str, Job] = {}
        self._background: set[asyncio.Task[None]] = set()

    @staticmethod
    def job_key_for(kind: JobKind, subject_id: int) -> str:
        return f"{kind.value}:{subject_id}"

    async def _require_operator(self, actor_id: int) -> None:
        if not await self.auth.is_authorized_operator(actor_id):
            raise AuthorizationError("Only bot operators can manage bulk jobs.")

    def _build_job(self, kind: JobKind, params: Mapping[str, Any], actor_id: int) -> Job:
        if kind is JobKind.PURGE:
            group_id = _parse_id(params, "group_id")
            mode = _parse_enum(PurgeMode, params.get("mode"), PurgeMode.BAN)
            return Job(
                job_key=self.job_key_for(kind, group_id),
                kind=kind,
                started_by=actor_id,
                mode=mode.value,
                group_id=group_id,
            )

        identity = _parse_id(params, "identity_id")
        mode = _parse_enum(PropagationMode, params.get("mode"), PropagationMode.MUTE)
        source = _parse_id(params, "source_group_id", required=False)
        if identity == self.platform.self_id:
            raise ValidationError("The bot cannot propagate an action against itself.")
        return Job(
            job_key=self.job_key_for(kind, identity),
            kind=kind,
            started_by=actor_id,
            mode=mode.value,
            identity_id=identity,
            source_group_id=source,
        )

    async def submit_job(
        self,
        kind: str | JobKind,
        params: Mapping[str, Any],
        priority: PriorityLike = None,
        *,
        actor_id: int,
        status: Optional[StatusSink] = None,
    ) -> JobHandle:
        await self._require_operator(actor_id)
        try:
            job_kind = JobKind(kind.value if isinstance(kind, JobKind) else str(kind).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown job kind: {kind!r}") from None

        job = self._build_job(job_kind, params, actor_id)
        if job.job_key in self._jobs:
            raise ValidationError(f"Job `{job.job_key}` is already queued or running.")

        task = Task(
            kind=job_kind.value,
            key=job.job_key,
            body=lambda: self._run_job(job, status),
            on_cancel=lambda reason: self._on_cancelled(job, reason, status),
            on_start=lambda: job.start(self.cancellation.register(job.job_key)),
        )
        self._jobs[job.job_key] = job
        try:
            self.scheduler.enqueue(task, self.default_priority if priority is None else priority)
        except ValidationError:
            self._jobs.pop(job.job_key, None)
            raise
        self.stats.jobs_submitted += 1

        queued = self.scheduler.queued()
        position = queued.index(task) + 1 if task in queued else 0
        log.info("Job %s submitted by %s (priority=%s position=%s)", job.job_key, actor_id, task.priority, position)
        return JobHandle(job.job_key, task.id, job_kind, task.priority, position)

    async def request_abort(self, job_key: str, actor_id: int) -> bool:
        """Abort a running job, or drop it from the queue. True only once."""
        await self._require_operator(actor_id)
        if self.cancellation.request_abort(job_key, actor_id):
            return True
        return self.cancellation.cancel_before_start(job_key, f"cancelled by {actor_id}")

    async def cancel_before_start(self, job_key: str, actor_id: int) -> bool:
        await self._require_operator(actor_id)
        return self.cancellation.cancel_before_start(job_key, f"cancelled by {actor_id}")

    def query_status(self, job_key: str) -> Optional[ProgressSnapshot]:
        job = self._jobs.get(job_key)
        return job.snapshot() if job is not None else None

    def job(self, job_key: str) -> Optional[Job]:
        return self._jobs.get(job_key)

    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    async def shutdown(self) -> None:
        self.scheduler.cancel_queued(lambda t: True, SHUTDOWN_REASON)
        for key in self.cancellation.active_keys():
            self.cancellation.request_abort(key, None, SHUTDOWN_REASON)
        await self.scheduler.wait_idle()

    def _on_cancelled(self, job: Job, reason: str, status: Optional[StatusSink]) -> None:
        job.status = JobStatus.CANCELLED
        self._jobs.pop(job.job_key, None)
        self.stats.jobs_cancelled += 1
        log.info("Job %s cancelled before start: %s", job.job_key, reason)
        if status is not None:
            notice = asyncio.get_running_loop().create_task(self._notify(status, render_cancelled(job.job_key, reason)))
            self._background.add(notice)
            notice.add_done_callback(self._background.discard)

    @staticmethod
    async def _notify(status: StatusSink, text: str) -> None:
        try:
            await status.send(text)
        except Exception as e:
            log.error("Failed to post job notice: %s", e)

    def _title(self, job: Job) -> str:
        if job.kind is JobKind.PURGE:
            return f"Tracked member purge ({job.mode}) in {job.group_id}"
        return f"Cross-group {job.mode} of {job.identity_id}"

    async def _run_job(self, job: Job, status: Optional[StatusSink]) -> JobReport:
        started = time.monotonic()
        reporter: Optional[ProgressReporter] = None
        if status is not None:
            title = self._title(job)
            reporter = ProgressReporter(
                status,
                lambda snap: render_progress(title, snap, elapsed_seconds=time.monotonic() - started),
                self.progress_policy,
            )

        try:
            if job.kind is JobKind.PURGE:
                report = await self._run_purge(job, reporter)
            else:
                report = await run_propagation(self, job, reporter)
            self.stats.record_report(report)
            if reporter is not None:
                await reporter.finalize(render_summary(report, sample_limit=self.failure_sample_limit))
            return report
        except Exception as e:
            self.stats.jobs_crashed += 1
            if reporter is not None:
                await reporter.finalize(truncate_message(f"❌ Job `{job.job_key}` failed: {e}"))
            raise
        finally:
            self.cancellation.release(job.job_key)
            self._jobs.pop(job.job_key, None)

    async def _run_purge(self, job: Job, reporter: Optional[ProgressReporter]) -> JobReport:
        group_id = job.group_id
        if group_id is None:
            raise RuntimeError(f"purge job {job.job_key!r} has no group")
        job.target_ids = list(await self.presence.get_known_targets(group_id))
        opts = RemovalOptions(reason=f"Bulk purge requested by {job.started_by}")

        async def protected() -> set[int]:
            ids = set(await self.auth.list_elevated_members(group_id))
            ids.add(self.platform.self_id)
            if self._whitelist is not None:
                ids |= set(await self._whitelist(group_id))
            return ids

        async def remove(target: int):
            return await self.platform.apply_removal(group_id, target, opts)

        async def reverse(target: int):
            return await self.platform.reverse_removal(group_id, target)

        async def prune(ids: list[int]) -> int:
            return await self.presence.prune_targets(group_id, ids)

        return await self.executor.run(
            job,
            remove,
            protected=protected,
            reverse=reverse if job.mode == PurgeMode.KICK.value else None,
            reporter=reporter,
            prune=prune,
        )
