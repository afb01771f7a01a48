"""
Tests for JobService: submission, abort, queue cancellation and status.
"""

from __future__ import annotations

import asyncio

import pytest

from warden.bulk.models import JobKind, JobStatus
from warden.bulk.scheduler import Priority
from warden.errors import AuthorizationError, ValidationError

from .conftest import BOT_ID, GROUP_ID, OPERATOR_ID

OTHER_GROUP = GROUP_ID + 1


def _seed_group(presence, platform, group_id: int, ids) -> None:
    presence.seed(group_id, ids, title=f"group-{group_id}")
    platform.members[group_id].update(ids)


async def _settle(service) -> None:
    await service.scheduler.wait_idle()
    # Let background notices flush.
    for _ in range(3):
        await asyncio.sleep(0)


class TestSubmitValidation:
    async def test_non_operator_is_rejected(self, service) -> None:
        with pytest.raises(AuthorizationError):
            await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=12345)

    @pytest.mark.parametrize(
        "kind, params",
        [
            ("nuke", {"group_id": GROUP_ID}),
            ("purge", {}),
            ("purge", {"group_id": "abc"}),
            ("purge", {"group_id": -4}),
            ("purge", {"group_id": GROUP_ID, "mode": "explode"}),
            ("propagate", {"identity_id": 77, "mode": "shout"}),
            ("propagate", {"mode": "mute"}),
            ("propagate", {"identity_id": BOT_ID, "mode": "mute"}),
        ],
    )
    async def test_bad_parameters_are_rejected(self, service, kind, params) -> None:
        with pytest.raises(ValidationError):
            await service.submit_job(kind, params, actor_id=OPERATOR_ID)
        assert service.jobs() == []

    async def test_bad_priority_leaves_nothing_behind(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.submit_job("purge", {"group_id": GROUP_ID}, "asap", actor_id=OPERATOR_ID)
        assert service.query_status(f"purge:{GROUP_ID}") is None
        assert service.scheduler.active is None


class TestPurgeJobs:
    async def test_purge_runs_and_reports(self, service, presence, platform, auth, sink, stats) -> None:
        """A purge removes tracked members and posts a summary.

        Given: 5 tracked members, one of them elevated, plus the bot
        When: An operator submits a purge
        Then: 4 are removed, presence is pruned and the summary is posted
        """
        # Given
        _seed_group(presence, platform, GROUP_ID, [BOT_ID, 10, 11, 12, 13, 14])
        auth.elevated[GROUP_ID] = {14}

        # When
        handle = await service.submit_job(JobKind.PURGE, {"group_id": str(GROUP_ID)}, actor_id=OPERATOR_ID, status=sink)
        await _settle(service)

        # Then
        assert handle.job_key == f"purge:{GROUP_ID}"
        assert handle.position == 0
        assert handle.priority == int(Priority.NORMAL)
        assert sorted(t for _, t in platform.calls_for("remove")) == [10, 11, 12, 13]
        assert await presence.get_known_targets(GROUP_ID) == [BOT_ID, 14]
        assert "finished" in sink.last
        assert "Applied: 4" in sink.last
        assert stats.jobs_completed == 1
        assert stats.actions_applied == 4
        assert stats.actions_skipped_protected == 2
        assert service.query_status(handle.job_key) is None

    async def test_whitelisted_members_are_protected(self, presence, platform, auth, executor) -> None:
        from warden.bulk.policy import ProgressPolicy
        from warden.bulk.service import JobService

        async def whitelist(group_id: int) -> set[int]:
            return {11}

        service = JobService(
            presence=presence,
            platform=platform,
            auth=auth,
            executor=executor,
            progress_policy=ProgressPolicy(),
            whitelist=whitelist,
        )
        _seed_group(presence, platform, GROUP_ID, [10, 11])

        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        await _settle(service)

        assert platform.calls_for("remove") == [(GROUP_ID, 10)]

    async def test_kick_mode_lifts_the_ban(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10, 11])

        await service.submit_job("purge", {"group_id": GROUP_ID, "mode": "kick"}, actor_id=OPERATOR_ID)
        await _settle(service)

        assert sorted(platform.reversed) == [(GROUP_ID, 10), (GROUP_ID, 11)]
        assert platform.banned == set()

    async def test_duplicate_key_is_rejected_while_active(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10])
        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)

        with pytest.raises(ValidationError):
            await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)

        await _settle(service)
        # Settled jobs free their key.
        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        await _settle(service)


class TestAbortAndCancel:
    async def test_abort_is_accepted_once(self, service, presence, platform, sink, stats) -> None:
        _seed_group(presence, platform, GROUP_ID, list(range(10, 40)))
        handle = await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID, status=sink)

        assert await service.request_abort(handle.job_key, OPERATOR_ID) is True
        assert await service.request_abort(handle.job_key, OPERATOR_ID) is False
        await _settle(service)

        assert platform.calls == []
        assert stats.jobs_aborted == 1
        assert f"Aborted by <@{OPERATOR_ID}>." in sink.last
        assert "Remaining targets were not processed." in sink.last

    async def test_non_operator_cannot_abort(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10])
        handle = await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)

        with pytest.raises(AuthorizationError):
            await service.request_abort(handle.job_key, 999)
        await _settle(service)

    async def test_queued_job_can_be_cancelled(self, service, presence, platform, sink, stats) -> None:
        _seed_group(presence, platform, GROUP_ID, [10, 11])
        _seed_group(presence, platform, OTHER_GROUP, [20, 21])
        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        queued = await service.submit_job("purge", {"group_id": OTHER_GROUP}, actor_id=OPERATOR_ID, status=sink)

        assert queued.position == 1
        assert service.job(queued.job_key).status is JobStatus.QUEUED
        assert await service.cancel_before_start(queued.job_key, OPERATOR_ID) is True
        assert await service.cancel_before_start(queued.job_key, OPERATOR_ID) is False
        await _settle(service)

        assert all(g == GROUP_ID for g, _ in platform.calls_for("remove"))
        assert stats.jobs_cancelled == 1
        assert sink.sent and "cancelled before it started" in sink.sent[0]
        assert service.query_status(queued.job_key) is None

    async def test_abort_on_queued_job_drops_it(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10])
        _seed_group(presence, platform, OTHER_GROUP, [20])
        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        queued = await service.submit_job("purge", {"group_id": OTHER_GROUP}, actor_id=OPERATOR_ID)

        assert await service.request_abort(queued.job_key, OPERATOR_ID) is True
        await _settle(service)
        assert platform.calls_for("remove") == [(GROUP_ID, 10)]

    async def test_cancel_cannot_touch_running_job(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10])
        handle = await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)

        assert await service.cancel_before_start(handle.job_key, OPERATOR_ID) is False
        await _settle(service)
        assert platform.calls_for("remove") == [(GROUP_ID, 10)]

    async def test_higher_priority_jumps_the_queue(self, service, presence, platform) -> None:
        for gid in (GROUP_ID, GROUP_ID + 1, GROUP_ID + 2):
            _seed_group(presence, platform, gid, [gid * 10])
        await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        await service.submit_job("purge", {"group_id": GROUP_ID + 1}, "low", actor_id=OPERATOR_ID)
        urgent = await service.submit_job("purge", {"group_id": GROUP_ID + 2}, "critical", actor_id=OPERATOR_ID)

        assert urgent.position == 1
        await _settle(service)
        assert [g for g, _ in platform.calls_for("remove")] == [GROUP_ID, GROUP_ID + 2, GROUP_ID + 1]

    async def test_shutdown_cancels_queue_and_aborts_active(self, service, presence, platform, stats) -> None:
        _seed_group(presence, platform, GROUP_ID, list(range(10, 20)))
        _seed_group(presence, platform, OTHER_GROUP, [20])
        running = await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)
        await service.submit_job("purge", {"group_id": OTHER_GROUP}, actor_id=OPERATOR_ID)

        await service.shutdown()

        assert stats.jobs_cancelled == 1
        assert stats.jobs_aborted == 1
        assert service.query_status(running.job_key) is None
        assert platform.calls_for("remove") == []


class TestStatus:
    async def test_query_status_reports_live_snapshot(self, service, presence, platform) -> None:
        _seed_group(presence, platform, GROUP_ID, [10, 11])
        handle = await service.submit_job("purge", {"group_id": GROUP_ID}, actor_id=OPERATOR_ID)

        snap = service.query_status(handle.job_key)
        assert snap is not None
        assert snap.processed == 0
        assert not snap.aborted

        await _settle(service)
        assert service.query_status(handle.job_key) is None

    async def test_unknown_key_has_no_status(self, service) -> None:
        assert service.query_status("purge:1") is None
