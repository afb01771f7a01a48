from __future__ import annotations

from typing import Final

# Discord limits
SAFE_MESSAGE_LENGTH: Final[int] = 1900
MAX_EMBED_DESCRIPTION: Final[int] = 4096
MAX_EMBED_TITLE: Final[int] = 256
MAX_TIMEOUT_SECONDS: Final[int] = 28 * 24 * 60 * 60

# Bot configuration
CACHE_TTL_SECONDS: Final[int] = 120
CONFIRM_TIMEOUT_SECONDS: Final[int] = 60
FAILURE_REASON_MAX: Final[int] = 120

# Colors (hex values)
COLORS = {
    "default": 0x5865F2,
    "success": 0x57F287,
    "warning": 0xF1C40F,
    "error": 0xED4245,
    "info": 0x3498DB,
}

# Error messages
ERROR_MESSAGES = {
    "missing_permissions": "You don't have permission to use this command.",
    "not_operator": "Only bot operators can run bulk jobs.",
    "guild_only": "This command can only be used in a server.",
    "unexpected": "Something went wrong running that command.",
}
