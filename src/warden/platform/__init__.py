"""discord.py adapters for the bulk job collaborators."""

from .authorization import DiscordAuthorizationService
from .discord_client import DiscordActionClient, classify_exception
from .status import ChannelStatusSink

__all__ = ["ChannelStatusSink", "DiscordActionClient", "DiscordAuthorizationService", "classify_exception"]
