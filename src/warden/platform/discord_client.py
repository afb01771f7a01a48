from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

import discord

from ..bulk.models import CallResult, RemovalOptions, Restriction
from ..constants import MAX_TIMEOUT_SECONDS

log = logging.getLogger("warden.platform")

UNKNOWN_GUILD = "Unknown Guild"


def _retry_after(e: Exception) -> Optional[float]:
    value = getattr(e, "retry_after", None)
    if value is None:
        response = getattr(e, "response", None)
        headers = getattr(response, "headers", None) or {}
        value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def classify_exception(e: Exception) -> CallResult:
    """Map a discord.py exception onto the executor's result taxonomy."""
    if isinstance(e, discord.NotFound):
        return CallResult.not_found(str(e))
    if isinstance(e, discord.Forbidden):
        return CallResult.forbidden(str(e))
    if isinstance(e, discord.RateLimited):
        return CallResult.rate_limited(_retry_after(e))
    if isinstance(e, discord.HTTPException):
        if e.status == 429:
            return CallResult.rate_limited(_retry_after(e))
        return CallResult.other(f"HTTP {e.status}: {e.text or e}")
    return CallResult.other(f"{type(e).__name__}: {e}")


class DiscordActionClient:
    """Moderation calls against Discord, returned as classified results."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    @property
    def self_id(self) -> int:
        return self.bot.user.id if self.bot.user else 0

    def _guild(self, group_id: int) -> Optional[discord.Guild]:
        # The bot can only act where it is a member; a guild it left is gone.
        return self.bot.get_guild(group_id)

    async def apply_removal(self, group_id: int, target_id: int, opts: RemovalOptions) -> CallResult:
        try:
            guild = self._guild(group_id)
            if guild is None:
                return CallResult.not_found(UNKNOWN_GUILD)
            member = await guild.fetch_member(target_id)
            await guild.ban(member, reason=opts.reason, delete_message_seconds=opts.delete_message_seconds)
            return CallResult.success()
        except Exception as e:
            return classify_exception(e)

    async def apply_restriction(self, group_id: int, target_id: int, restriction: Restriction) -> CallResult:
        seconds = max(1, min(MAX_TIMEOUT_SECONDS, int(restriction.duration_seconds)))
        try:
            guild = self._guild(group_id)
            if guild is None:
                return CallResult.not_found(UNKNOWN_GUILD)
            member = await guild.fetch_member(target_id)
            await member.timeout(dt.timedelta(seconds=seconds), reason=restriction.reason)
            return CallResult.success()
        except Exception as e:
            return classify_exception(e)

    async def reverse_removal(self, group_id: int, target_id: int) -> CallResult:
        try:
            guild = self._guild(group_id)
            if guild is None:
                return CallResult.not_found(UNKNOWN_GUILD)
            await guild.unban(discord.Object(id=target_id), reason="Soft removal: lift ban")
            return CallResult.success()
        except Exception as e:
            log.debug("Unban of %s in %s failed: %s", target_id, group_id, e)
            return classify_exception(e)
