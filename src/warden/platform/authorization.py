from __future__ import annotations

import logging

import discord

from ..services.operator_store import OperatorStore

log = logging.getLogger("warden.authorization")


def is_elevated(member: discord.Member) -> bool:
    perms = member.guild_permissions
    return bool(perms.administrator or perms.ban_members or perms.kick_members or perms.moderate_members)


class DiscordAuthorizationService:
    """Operators come from the store and the configured owner; elevated
    members are read live from the guild."""

    def __init__(self, bot: discord.Client, operators: OperatorStore, owner_id: int) -> None:
        self.bot = bot
        self.operators = operators
        self.owner_id = owner_id

    async def is_authorized_operator(self, actor_id: int) -> bool:
        if self.owner_id and actor_id == self.owner_id:
            return True
        return await self.operators.is_operator(actor_id)

    async def list_elevated_members(self, group_id: int) -> set[int]:
        guild = self.bot.get_guild(group_id)
        if guild is None:
            return set()
        if not guild.chunked:
            try:
                await guild.chunk()
            except discord.HTTPException as e:
                log.warning("Could not chunk members of %s: %s", group_id, e)

        elevated = {guild.owner_id} if guild.owner_id else set()
        elevated.update(m.id for m in guild.members if is_elevated(m))
        return elevated
