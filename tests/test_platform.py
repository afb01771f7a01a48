"""
Tests for the discord.py adapters: exception classification and the
channel status sink.
"""

from __future__ import annotations

from types import SimpleNamespace

import discord
import pytest

from warden.bulk.cancellation import CancellationToken
from warden.bulk.models import CallStatus, Job, JobKind, RemovalOptions, Restriction
from warden.errors import StatusMessageGone, StatusUnchanged
from warden.platform.discord_client import DiscordActionClient, classify_exception
from warden.platform.status import ChannelStatusSink


def _response(status: int, headers: dict | None = None) -> SimpleNamespace:
    return SimpleNamespace(status=status, reason="test", headers=headers or {})


class TestClassifyException:
    def test_not_found(self) -> None:
        assert classify_exception(discord.NotFound(_response(404), "Unknown Member")).status is CallStatus.NOT_FOUND

    def test_forbidden(self) -> None:
        assert classify_exception(discord.Forbidden(_response(403), "Missing Permissions")).status is CallStatus.FORBIDDEN

    def test_rate_limited_exception_carries_hint(self) -> None:
        result = classify_exception(discord.RateLimited(42.0))
        assert result.status is CallStatus.RATE_LIMITED
        assert result.retry_after == 42.0

    def test_http_429_reads_retry_after_header(self) -> None:
        result = classify_exception(discord.HTTPException(_response(429, {"Retry-After": "3.5"}), "slow down"))
        assert result.status is CallStatus.RATE_LIMITED
        assert result.retry_after == 3.5

    def test_server_error_is_unclassified(self) -> None:
        result = classify_exception(discord.HTTPException(_response(503), "upstream"))
        assert result.status is CallStatus.OTHER
        assert "503" in result.message

    def test_unrelated_exception_is_unclassified(self) -> None:
        result = classify_exception(TimeoutError("read timed out"))
        assert result.status is CallStatus.OTHER
        assert "TimeoutError" in result.message


class _FakeMessage:
    def __init__(self, message_id: int) -> None:
        self.id = message_id
        self.content: str | None = None
        self.deleted = False

    async def edit(self, *, content: str, allowed_mentions=None) -> None:
        if self.deleted:
            raise discord.NotFound(_response(404), "Unknown Message")
        self.content = content


class _FakeChannel:
    def __init__(self) -> None:
        self.messages: list[_FakeMessage] = []

    async def send(self, content: str, allowed_mentions=None) -> _FakeMessage:
        message = _FakeMessage(len(self.messages) + 1)
        message.content = content
        self.messages.append(message)
        return message


class TestChannelStatusSink:
    async def test_send_then_edit(self) -> None:
        channel = _FakeChannel()
        sink = ChannelStatusSink(channel)

        handle = await sink.send("one")
        await sink.edit(handle, "two")

        assert channel.messages[0].content == "two"

    async def test_identical_edit_raises_unchanged(self) -> None:
        sink = ChannelStatusSink(_FakeChannel())
        handle = await sink.send("same")

        with pytest.raises(StatusUnchanged):
            await sink.edit(handle, "same")

    async def test_deleted_message_raises_gone(self) -> None:
        sink = ChannelStatusSink(_FakeChannel())
        handle = await sink.send("one")
        handle.deleted = True

        with pytest.raises(StatusMessageGone):
            await sink.edit(handle, "two")


class _GoneGuildBot:
    """A client that is no longer a member of any guild."""

    user = SimpleNamespace(id=1)

    def get_guild(self, guild_id: int):
        return None

    async def fetch_guild(self, guild_id: int):
        raise discord.Forbidden(_response(403), {"code": 50001, "message": "Missing Access"})


class TestDepartedGuild:
    async def test_calls_in_a_left_guild_are_not_found(self) -> None:
        """A guild the bot left is treated as already satisfied, not as lost permission.

        Given: A bot that is not in guild 222
        When: A mute, a removal and an unban are attempted there
        Then: Every call is NOT_FOUND
        """
        # Given
        client = DiscordActionClient(_GoneGuildBot())

        # When
        results = [
            await client.apply_restriction(222, 42, Restriction(duration_seconds=60)),
            await client.apply_removal(222, 42, RemovalOptions()),
            await client.reverse_removal(222, 42),
        ]

        # Then
        assert [r.status for r in results] == [CallStatus.NOT_FOUND] * 3

    async def test_left_guild_does_not_abort_propagation(self, executor) -> None:
        client = DiscordActionClient(_GoneGuildBot())
        job = Job(job_key="propagate:42", kind=JobKind.PROPAGATE, started_by=500, mode="mute", identity_id=42)
        job.target_ids = [222, 223]
        job.start(CancellationToken(job.job_key))

        async def mute(group_id: int):
            return await client.apply_restriction(group_id, 42, Restriction(duration_seconds=60))

        async def nothing_protected() -> set[int]:
            return set()

        report = await executor.run(job, mute, protected=nothing_protected)

        assert not report.snapshot.aborted
        assert report.snapshot.processed == 2
        assert report.snapshot.already_absent == 2
