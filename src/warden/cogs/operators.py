from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import COLORS
from ..errors import AuthorizationError
from ..utils import safe_embed, safe_send


class OperatorsCog(commands.Cog):
    """Bot operator list and per-server whitelist."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    async def _require_operator(self, interaction: discord.Interaction) -> None:
        if not await self.bot.authorization.is_authorized_operator(interaction.user.id):  # type: ignore[attr-defined]
            raise AuthorizationError("Only bot operators can change this.")

    def _require_owner(self, interaction: discord.Interaction) -> None:
        if interaction.user.id != self.bot.settings.owner_id:  # type: ignore[attr-defined]
            raise AuthorizationError("Only the bot owner can change operators.")

    @app_commands.guild_only()
    @app_commands.command(name="whitelist_add", description="Protect a member from bulk jobs in this server.")
    async def whitelist_add(self, interaction: discord.Interaction, member: discord.Member) -> None:
        assert interaction.guild is not None
        await self._require_operator(interaction)
        added = await self.bot.operator_store.add_whitelisted(interaction.guild.id, member.id, interaction.user.id)  # type: ignore[attr-defined]
        await safe_send(interaction, f"✅ {member.mention} whitelisted." if added else f"{member.mention} was already whitelisted.")

    @app_commands.guild_only()
    @app_commands.command(name="whitelist_remove", description="Stop protecting a member from bulk jobs.")
    async def whitelist_remove(self, interaction: discord.Interaction, member: discord.Member) -> None:
        assert interaction.guild is not None
        await self._require_operator(interaction)
        removed = await self.bot.operator_store.remove_whitelisted(interaction.guild.id, member.id)  # type: ignore[attr-defined]
        await safe_send(interaction, f"✅ {member.mention} removed from the whitelist." if removed else f"{member.mention} was not whitelisted.")

    @app_commands.guild_only()
    @app_commands.command(name="whitelist_list", description="Show members protected from bulk jobs.")
    async def whitelist_list(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        await self._require_operator(interaction)
        ids = sorted(await self.bot.operator_store.list_whitelist(interaction.guild.id))  # type: ignore[attr-defined]
        body = "\n".join(f"• <@{i}> ({i})" for i in ids[:50]) or "Nobody is whitelisted."
        await safe_send(interaction, embed=safe_embed("Whitelist", body, COLORS["info"]))

    @app_commands.command(name="operator_add", description="Grant bulk job rights (owner only).")
    async def operator_add(self, interaction: discord.Interaction, user: discord.User) -> None:
        self._require_owner(interaction)
        added = await self.bot.operator_store.add_operator(user.id)  # type: ignore[attr-defined]
        await safe_send(interaction, f"✅ {user.mention} is now an operator." if added else f"{user.mention} already is an operator.")

    @app_commands.command(name="operator_remove", description="Revoke bulk job rights (owner only).")
    async def operator_remove(self, interaction: discord.Interaction, user: discord.User) -> None:
        self._require_owner(interaction)
        removed = await self.bot.operator_store.remove_operator(user.id)  # type: ignore[attr-defined]
        await safe_send(interaction, f"✅ {user.mention} is no longer an operator." if removed else f"{user.mention} was not an operator.")
