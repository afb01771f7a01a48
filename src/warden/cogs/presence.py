from __future__ import annotations

import logging

import discord
from discord.ext import commands

log = logging.getLogger("warden.cogs.presence")


class PresenceCog(commands.Cog):
    """Feeds the presence store from normal traffic."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    async def _record(self, guild: discord.Guild, user: discord.abc.User) -> None:
        if user.bot:
            return
        try:
            await self.bot.presence_store.record_seen(guild.id, user.id, guild.name)  # type: ignore[attr-defined]
            self.bot.stats.presence_records += 1  # type: ignore[attr-defined]
        except Exception:
            log.exception("Failed to record presence of %s in %s", user.id, guild.id)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is not None:
            await self._record(message.guild, message.author)

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        await self._record(member.guild, member)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            await self.bot.presence_store.forget_group(guild.id)  # type: ignore[attr-defined]
        except Exception:
            log.exception("Failed to clear presence of departed guild %s", guild.id)
