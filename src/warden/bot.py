from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .bulk.executor import BulkActionExecutor
from .bulk.policy import JitterPolicy, ProgressPolicy, RetryPolicy
from .bulk.service import JobService
from .config import Settings
from .constants import CACHE_TTL_SECONDS
from .database import initialize_database
from .error_handlers import setup_error_handlers
from .platform.authorization import DiscordAuthorizationService
from .platform.discord_client import DiscordActionClient
from .services.operator_store import OperatorStore
from .services.presence_store import PresenceStore
from .services.stats import RuntimeStats

log = logging.getLogger("warden.bot")

# 429s longer than this are raised to the executor instead of slept inside discord.py
MAX_RATELIMIT_TIMEOUT_SECONDS = 30.0


class _CommandSyncManager:
    def __init__(self, bot: "WardenBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        if self.bot.settings.sync_guild_id:
            await self.sync_guild(self.bot.settings.sync_guild_id)
        else:
            await self.sync_global()

    async def sync_global(self) -> None:
        async with self._lock:
            await self.bot.tree.sync()
            log.info("Commands synced globally")
            self._log_tree()

    async def sync_guild(self, guild_id: int) -> None:
        async with self._lock:
            guild = discord.Object(id=guild_id)
            self.bot.tree.copy_global_to(guild=guild)
            await self.bot.tree.sync(guild=guild)
            log.info("Commands synced to guild %d", guild_id)
            self._log_tree()

    def _log_tree(self) -> None:
        cmds = self.bot.tree.get_commands()
        log.info("Tree commands loaded: %d", len(cmds))
        for c in cmds:
            log.info(" - /%s", c.name)


class WardenBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.members = True
        # Presence is recorded from message traffic.
        intents.message_content = True

        log.info("INTENTS: guilds=%s members=%s message_content=%s", intents.guilds, intents.members, intents.message_content)

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            help_command=None,
            max_ratelimit_timeout=MAX_RATELIMIT_TIMEOUT_SECONDS,
        )

        self.settings = settings
        self.owner_id = settings.owner_id or None
        self.stats = RuntimeStats()

        cache_ttl = settings.cache_default_ttl_seconds or CACHE_TTL_SECONDS
        self.presence_store = PresenceStore(settings.sqlite_path, cache_ttl)
        self.operator_store = OperatorStore(settings.sqlite_path, cache_ttl)

        self.action_client = DiscordActionClient(self)
        self.authorization = DiscordAuthorizationService(self, self.operator_store, settings.owner_id)

        executor = BulkActionExecutor(
            retry=RetryPolicy(
                attempts=settings.retry_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
                prefer_server_hint=settings.retry_prefer_server_hint,
            ),
            jitter=JitterPolicy(
                min_seconds=settings.bulk_jitter_min_ms / 1000,
                max_seconds=settings.bulk_jitter_max_ms / 1000,
            ),
            concurrency=settings.bulk_concurrency,
        )
        self.job_service = JobService(
            presence=self.presence_store,
            platform=self.action_client,
            auth=self.authorization,
            executor=executor,
            progress_policy=ProgressPolicy(
                interval_seconds=settings.progress_interval_seconds,
                batch_size=settings.progress_batch_size,
            ),
            stats=self.stats,
            whitelist=self.operator_store.list_whitelist,
            mute_duration_seconds=settings.mute_duration_minutes * 60,
            failure_sample_limit=settings.failure_sample_limit,
            default_priority=settings.default_job_priority,
        )
        self._sync_mgr = _CommandSyncManager(self)

    async def setup_hook(self) -> None:
        await initialize_database(self.settings.sqlite_path, [self.presence_store, self.operator_store])
        seeded = await self.operator_store.bootstrap(self.settings.owner_id, self.settings.admin_ids)
        if seeded:
            log.info("Bootstrapped %d operator(s) from the environment", seeded)

        await setup_error_handlers(self)

        loaded: list[str] = []
        failed: list[str] = []

        async def _load_cog(import_path: str, class_name: str) -> None:
            try:
                log.info("Loading cog: %s.%s", import_path, class_name)
                mod = __import__(import_path, fromlist=[class_name])
                cls = getattr(mod, class_name)
                await self.add_cog(cls(self))
                loaded.append(f"{import_path}.{class_name}")
            except ModuleNotFoundError as e:
                log.error("Module not found for cog %s.%s: %s", import_path, class_name, e)
                failed.append(f"{import_path}.{class_name} (ModuleNotFoundError)")
            except AttributeError as e:
                log.error("Class %s not found in module %s: %s", class_name, import_path, e)
                failed.append(f"{import_path}.{class_name} (AttributeError)")
            except Exception as e:
                log.exception("Failed to load cog: %s.%s", import_path, class_name)
                failed.append(f"{import_path}.{class_name} ({type(e).__name__})")

        await _load_cog("warden.cogs.presence", "PresenceCog")
        await _load_cog("warden.cogs.operators", "OperatorsCog")
        await _load_cog("warden.cogs.bulk_jobs", "BulkJobsCog")

        log.info("Startup cog load summary: loaded=%d failed=%d", len(loaded), len(failed))
        for name in failed:
            log.warning("Startup cog failed: %s", name)
        await self._sync_mgr.sync_startup()
        log.info("Command sync complete")

    async def close(self) -> None:
        try:
            await self.job_service.shutdown()
        except Exception:
            log.exception("Job service shutdown failed")
        finally:
            await super().close()

    async def on_ready(self) -> None:
        log.info("Logged in as %s (%s) in %d guild(s)", self.user, self.user.id if self.user else "?", len(self.guilds))
