"""
Bulk Jobs Cog

Operator commands that submit, abort and inspect heavy moderation jobs.
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..bulk.models import JobKind, ProgressSnapshot
from ..bulk.scheduler import Priority
from ..constants import COLORS, CONFIRM_TIMEOUT_SECONDS
from ..platform.status import ChannelStatusSink
from ..utils import error_embed, safe_embed, safe_send

log = logging.getLogger("warden.cogs.bulk_jobs")

PRIORITY_CHOICES = [app_commands.Choice(name=p.name.lower(), value=p.name.lower()) for p in Priority]


class ConfirmationView(discord.ui.View):
    """Confirm/cancel buttons restricted to the invoking operator."""

    def __init__(self, actor_id: int) -> None:
        super().__init__(timeout=CONFIRM_TIMEOUT_SECONDS)
        self.actor_id = actor_id
        self.value: Optional[bool] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.actor_id:
            await interaction.response.send_message("❌ Only the operator who started this can confirm it.", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.defer()
        self.value = True
        self.stop()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.send_message("Cancelled.", ephemeral=True)
        self.value = False
        self.stop()


def _snapshot_embed(job_key: str, snap: ProgressSnapshot, state: str) -> discord.Embed:
    e = safe_embed(f"Job {job_key}", f"State: **{state}**", COLORS["info"])
    e.add_field(name="Progress", value=f"{snap.processed}/{snap.total}", inline=True)
    e.add_field(name="Applied", value=str(snap.applied), inline=True)
    e.add_field(name="Already absent", value=str(snap.already_absent), inline=True)
    e.add_field(name="Protected", value=str(snap.skipped_protected), inline=True)
    e.add_field(name="Failed", value=str(snap.failed), inline=True)
    e.add_field(name="Abort requested", value="yes" if snap.aborted else "no", inline=True)
    return e


class BulkJobsCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @property
    def jobs(self):
        return self.bot.job_service  # type: ignore[attr-defined]

    async def _submit(
        self,
        interaction: discord.Interaction,
        kind: JobKind,
        params: dict,
        priority: Optional[str],
    ) -> None:
        sink = ChannelStatusSink(interaction.channel) if interaction.channel is not None else None
        handle = await self.jobs.submit_job(kind, params, priority, actor_id=interaction.user.id, status=sink)
        where = "started now" if handle.position == 0 else f"queued at position {handle.position}"
        await safe_send(
            interaction,
            f"✅ Job `{handle.job_key}` accepted ({where}, priority {handle.priority}). "
            f"Progress will be posted in this channel.",
        )

    @app_commands.guild_only()
    @app_commands.default_permissions(ban_members=True)
    @app_commands.command(name="purge_tracked", description="Remove every tracked member of this server except staff.")
    @app_commands.describe(mode="ban keeps them out; kick bans then lifts the ban", priority="Job priority")
    @app_commands.choices(
        mode=[app_commands.Choice(name="ban", value="ban"), app_commands.Choice(name="kick", value="kick")],
        priority=PRIORITY_CHOICES,
    )
    async def purge_tracked(
        self,
        interaction: discord.Interaction,
        mode: Optional[app_commands.Choice[str]] = None,
        priority: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        assert interaction.guild is not None
        guild = interaction.guild
        tracked = len(await self.bot.presence_store.get_known_targets(guild.id))  # type: ignore[attr-defined]
        mode_value = mode.value if mode else "ban"

        embed = safe_embed(
            "⚠️ CONFIRM BULK REMOVAL",
            (
                f"This will **{mode_value}** up to **{tracked}** tracked members of **{guild.name}**.\n\n"
                "Staff, whitelisted members and the bot itself are skipped.\n"
                "You can stop it at any time with `/job_abort`."
            ),
            COLORS["warning"],
        )
        view = ConfirmationView(interaction.user.id)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)
        await view.wait()
        if view.value is not True:
            return

        await self._submit(
            interaction,
            JobKind.PURGE,
            {"group_id": guild.id, "mode": mode_value},
            priority.value if priority else None,
        )

    @app_commands.command(name="propagate", description="Mute or remove a flagged user in every server they were seen in.")
    @app_commands.describe(user_id="The flagged user's id", mode="mute or remove", priority="Job priority")
    @app_commands.choices(
        mode=[app_commands.Choice(name="mute", value="mute"), app_commands.Choice(name="remove", value="remove")],
        priority=PRIORITY_CHOICES,
    )
    async def propagate(
        self,
        interaction: discord.Interaction,
        user_id: str,
        mode: app_commands.Choice[str],
        priority: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._submit(
            interaction,
            JobKind.PROPAGATE,
            {
                "identity_id": user_id.strip(),
                "mode": mode.value,
                "source_group_id": interaction.guild.id if interaction.guild else None,
            },
            priority.value if priority else None,
        )

    @app_commands.command(name="job_abort", description="Stop a running job, or drop it from the queue.")
    async def job_abort(self, interaction: discord.Interaction, key: str) -> None:
        if await self.jobs.request_abort(key.strip(), interaction.user.id):
            await safe_send(interaction, f"⏹️ Abort requested for `{key}`. In-flight actions will finish first.")
        else:
            await safe_send(interaction, embed=error_embed(f"No active job `{key}`, or it is already stopping."))

    @app_commands.command(name="job_cancel", description="Remove a job from the queue before it starts.")
    async def job_cancel(self, interaction: discord.Interaction, key: str) -> None:
        if await self.jobs.cancel_before_start(key.strip(), interaction.user.id):
            await safe_send(interaction, f"🚫 Job `{key}` removed from the queue.")
        else:
            await safe_send(interaction, embed=error_embed(f"Job `{key}` is not queued."))

    @app_commands.command(name="job_status", description="Show progress of a queued or running job.")
    async def job_status(self, interaction: discord.Interaction, key: str) -> None:
        key = key.strip()
        snap = self.jobs.query_status(key)
        job = self.jobs.job(key)
        if snap is None or job is None:
            await safe_send(interaction, embed=error_embed(f"No queued or running job `{key}`."))
            return
        await safe_send(interaction, embed=_snapshot_embed(key, snap, job.status.value))

    @app_commands.command(name="job_queue", description="List the running job and everything queued behind it.")
    async def job_queue(self, interaction: discord.Interaction) -> None:
        scheduler = self.jobs.scheduler
        lines = []
        if scheduler.active is not None:
            lines.append(f"▶️ `{scheduler.active.key}` ({scheduler.active.kind})")
        for i, task in enumerate(scheduler.queued(), start=1):
            lines.append(f"{i}. `{task.key}` ({task.kind}, priority {task.priority})")
        await safe_send(interaction, embed=safe_embed("Job queue", "\n".join(lines) or "Idle.", COLORS["info"]))
