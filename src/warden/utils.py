from __future__ import annotations

import logging

import discord

from .constants import COLORS, MAX_EMBED_DESCRIPTION, MAX_EMBED_TITLE

log = logging.getLogger("warden.utils")


def safe_embed(title: str, description: str, color: int = COLORS["default"]) -> discord.Embed:
    """Create an embed with safe length limits."""
    if len(title) > MAX_EMBED_TITLE:
        title = title[:MAX_EMBED_TITLE - 1] + "…"
    if len(description) > MAX_EMBED_DESCRIPTION:
        description = description[:MAX_EMBED_DESCRIPTION - 1] + "…"
    return discord.Embed(title=title, description=description, color=color)


def error_embed(description: str) -> discord.Embed:
    return safe_embed("❌ Error", description, COLORS["error"])


async def safe_send(
    interaction: discord.Interaction,
    content: str | None = None,
    *,
    embed: discord.Embed | None = None,
    ephemeral: bool = True,
    view: discord.ui.View | None = None,
) -> bool:
    """Respond or follow up, whichever the interaction still allows."""
    kwargs = {"content": content, "embed": embed, "ephemeral": ephemeral}
    if view is not None:
        kwargs["view"] = view
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(**kwargs)
            return True
        await interaction.followup.send(**kwargs)
        return True
    except (discord.NotFound, discord.HTTPException):
        return False
    except Exception:
        log.exception("safe_send failed")
        return False
