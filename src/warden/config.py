from __future__ import annotations

import os
from dataclasses import dataclass, field

from .bulk.scheduler import normalize_priority
from .errors import ValidationError


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _get_id_set(name: str) -> frozenset[int]:
    raw = os.getenv(name, "")
    ids: set[int] = set()
    for part in raw.replace(",", " ").split():
        try:
            ids.add(int(part))
        except ValueError:
            continue
    return frozenset(ids)


@dataclass(frozen=True)
class Settings:
    token: str
    sync_guild_id: int
    owner_id: int
    sqlite_path: str
    log_level: str
    cache_default_ttl_seconds: int
    admin_ids: frozenset[int] = field(default_factory=frozenset)

    # Bulk executor pacing
    bulk_concurrency: int = 3
    bulk_jitter_min_ms: int = 350
    bulk_jitter_max_ms: int = 900

    # Retry / backoff
    retry_attempts: int = 4
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    retry_prefer_server_hint: bool = True

    # Progress edits
    progress_interval_seconds: float = 5.0
    progress_batch_size: int = 25
    failure_sample_limit: int = 5

    # Cross-group mute duration
    mute_duration_minutes: int = 1440

    default_job_priority: str = "normal"


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")

    default_priority = os.getenv("DEFAULT_JOB_PRIORITY", "normal").strip() or "normal"
    try:
        normalize_priority(default_priority)
    except ValidationError as e:
        raise RuntimeError(f"DEFAULT_JOB_PRIORITY: {e}") from None

    return Settings(
        token=token,
        sync_guild_id=_get_int("SYNC_GUILD_ID", 0),
        # Default to 0 to avoid accidentally granting owner powers to a random ID
        owner_id=_get_int("BOT_OWNER_ID", 0),
        admin_ids=_get_id_set("BOT_ADMIN_IDS"),
        sqlite_path=(os.getenv("SQLITE_PATH", "warden.sqlite3").strip() or "warden.sqlite3"),
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"),
        cache_default_ttl_seconds=_get_int("CACHE_DEFAULT_TTL_SECONDS", 120),
        bulk_concurrency=max(1, _get_int("BULK_CONCURRENCY", 3)),
        bulk_jitter_min_ms=max(0, _get_int("BULK_JITTER_MIN_MS", 350)),
        bulk_jitter_max_ms=max(0, _get_int("BULK_JITTER_MAX_MS", 900)),
        retry_attempts=max(1, _get_int("RETRY_ATTEMPTS", 4)),
        retry_base_delay_seconds=_get_float("RETRY_BASE_DELAY_SECONDS", 1.0),
        retry_max_delay_seconds=_get_float("RETRY_MAX_DELAY_SECONDS", 30.0),
        retry_prefer_server_hint=_get_bool("RETRY_PREFER_SERVER_HINT", True),
        progress_interval_seconds=_get_float("PROGRESS_INTERVAL_SECONDS", 5.0),
        progress_batch_size=max(1, _get_int("PROGRESS_BATCH_SIZE", 25)),
        failure_sample_limit=max(0, _get_int("FAILURE_SAMPLE_LIMIT", 5)),
        mute_duration_minutes=max(1, _get_int("MUTE_DURATION_MINUTES", 1440)),
        default_job_priority=default_priority,
    )
