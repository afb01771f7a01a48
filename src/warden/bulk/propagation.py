"""
Cross-group propagation.

Same executor, different target space: the targets are the groups one
flagged identity has been seen in, and the action is a single mute or
removal of that identity per group.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .models import Job, JobReport, PropagationMode, RemovalOptions, Restriction
from .progress import ProgressReporter

if TYPE_CHECKING:
    from .service import JobService

log = logging.getLogger("warden.propagation")


async def run_propagation(service: "JobService", job: Job, reporter: Optional[ProgressReporter]) -> JobReport:
    identity = job.identity_id
    if identity is None:
        raise RuntimeError(f"propagation job {job.job_key!r} has no identity")
    platform = service.platform

    groups = [g for g in await service.presence.get_groups_for_identity(identity) if g != job.source_group_id]
    job.target_ids = groups
    for group_id in groups:
        job.labels[group_id] = await service.presence.get_group_title(group_id) or str(group_id)

    mode = PropagationMode(job.mode)
    log.info("Propagating %s of %s across %d groups", mode.value, identity, len(groups))

    async def protected() -> set[int]:
        # A group is off-limits when the identity holds elevated rights there.
        if identity == platform.self_id:
            return set(groups)
        shielded: set[int] = set()
        for group_id in groups:
            if identity in await service.auth.list_elevated_members(group_id):
                shielded.add(group_id)
        return shielded

    restriction = Restriction(
        duration_seconds=service.mute_duration_seconds,
        reason=f"Cross-group mute requested by {job.started_by}",
    )
    removal = RemovalOptions(reason=f"Cross-group removal requested by {job.started_by}")

    async def act(group_id: int):
        if mode is PropagationMode.MUTE:
            return await platform.apply_restriction(group_id, identity, restriction)
        return await platform.apply_removal(group_id, identity, removal)

    async def forget(group_ids: list[int]) -> int:
        return await service.presence.forget_identity(identity, group_ids)

    return await service.executor.run(
        job,
        act,
        protected=protected,
        reporter=reporter,
        # A muted identity is still a member; only removals clear presence.
        prune=forget if mode is PropagationMode.REMOVE else None,
    )
