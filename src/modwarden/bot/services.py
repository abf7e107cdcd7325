"""
Runtime service container.

All mutable moderation state (history, active sanctions, rate-limit windows,
invite snapshots, timers) lives in the objects built here. Cogs receive the
container at setup instead of importing module-level globals.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

import discord

from modwarden.configuration.app_configuration import AppConfig
from modwarden.database.db_connection import ConnectionManager
from modwarden.database.punishment_store import PunishmentStore
from modwarden.invites.invite_attribution import InviteAttributionEngine
from modwarden.invites.invite_cache import InviteSnapshotCache
from modwarden.moderation.notifier import AuditNotifier
from modwarden.moderation.platform import DiscordModerationPlatform
from modwarden.moderation.punishment_engine import PunishmentLifecycleEngine
from modwarden.moderation.rate_limiter import PunishmentRateLimiter
from modwarden.moderation.sanction_registry import ActiveSanctionRegistry
from modwarden.scheduler.deferred_scheduler import DeferredTaskScheduler
from modwarden.scheduler.guild_sync_scheduler import GuildSyncScheduler
from modwarden.util.logger import get_logger

logger = get_logger("services")


@dataclass
class ModwardenServices:
    config: AppConfig
    store: PunishmentStore
    registry: ActiveSanctionRegistry
    rate_limiter: PunishmentRateLimiter
    scheduler: DeferredTaskScheduler
    platform: DiscordModerationPlatform
    notifier: AuditNotifier
    engine: PunishmentLifecycleEngine
    invite_cache: InviteSnapshotCache
    attribution: InviteAttributionEngine
    invite_refresh: GuildSyncScheduler
    started_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    async def start(self) -> None:
        """Load persisted history. Called once before connecting to Discord."""
        await self.store.load()

    async def shutdown(self) -> None:
        """Drop pending timers, stop periodic work and close the database."""
        try:
            await self.scheduler.shutdown()
        except Exception:
            logger.exception("[SERVICES] Error shutting down deferred scheduler")
        try:
            await self.invite_refresh.shutdown()
        except Exception:
            logger.exception("[SERVICES] Error shutting down invite refresh")
        try:
            await self.store.close()
        except Exception:
            logger.exception("[SERVICES] Error closing punishment store")
        logger.info("[SERVICES] Shutdown complete")


def build_services(bot: discord.Bot, config: AppConfig, connection: ConnectionManager) -> ModwardenServices:
    """Wire every service for ``bot`` from ``config``."""
    store = PunishmentStore(connection, config.database_path)
    registry = ActiveSanctionRegistry()
    rate_limiter = PunishmentRateLimiter(
        max_actions=config.rate_limit_max_actions,
        window_ms=int(config.rate_limit_window_seconds * 1000),
    )
    scheduler = DeferredTaskScheduler()
    platform = DiscordModerationPlatform(bot, config.mute_role_name)
    notifier = AuditNotifier(bot, config.log_channel_id)
    engine = PunishmentLifecycleEngine(platform, store, registry, rate_limiter, scheduler, notifier)
    invite_cache = InviteSnapshotCache(platform)
    attribution = InviteAttributionEngine(platform, invite_cache, settle_delay=config.invite_settle_delay)
    invite_refresh = GuildSyncScheduler(
        name="INVITE REFRESH",
        per_guild_coro=lambda guild: invite_cache.refresh(guild.id),
        get_interval=lambda: config.invite_refresh_interval,
        initial_delay=config.invite_refresh_interval,
    )
    return ModwardenServices(
        config=config,
        store=store,
        registry=registry,
        rate_limiter=rate_limiter,
        scheduler=scheduler,
        platform=platform,
        notifier=notifier,
        engine=engine,
        invite_cache=invite_cache,
        attribution=attribution,
        invite_refresh=invite_refresh,
    )
