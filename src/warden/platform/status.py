from __future__ import annotations

import logging

import discord

from ..errors import StatusMessageGone, StatusUnchanged

log = logging.getLogger("warden.status")


class ChannelStatusSink:
    """Posts and edits a job's status message in one channel."""

    def __init__(self, channel: discord.abc.Messageable) -> None:
        self.channel = channel
        self._last: dict[int, str] = {}

    async def send(self, text: str) -> discord.Message:
        message = await self.channel.send(text, allowed_mentions=discord.AllowedMentions.none())
        self._last[message.id] = text
        return message

    async def edit(self, handle: discord.Message, text: str) -> None:
        if self._last.get(handle.id) == text:
            raise StatusUnchanged()
        try:
            await handle.edit(content=text, allowed_mentions=discord.AllowedMentions.none())
        except discord.NotFound as e:
            self._last.pop(handle.id, None)
            raise StatusMessageGone(str(e)) from e
        self._last[handle.id] = text
