"""Periodic per-guild task runner.

Iterates all guilds on a fixed interval and calls a coroutine for each one.
Used to keep the invite snapshot cache fresh between invite events.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import discord

from modwarden.util.logger import get_logger

logger = get_logger("sync_scheduler")


class GuildSyncScheduler:
    """
    Reusable scheduler for periodic per-guild operations.

    Args:
        name: Human-readable name for logging (e.g. "invites").
        per_guild_coro: Async callable that accepts a single `discord.Guild` argument.
        get_interval: Callable returning the interval in seconds (called at start).
        initial_delay: Seconds to wait before the first pass.
    """

    def __init__(
        self,
        name: str,
        per_guild_coro: Callable[[discord.Guild], Awaitable[Any]],
        get_interval: Callable[[], float],
        initial_delay: float = 0.0,
    ) -> None:
        self._name = name
        self._per_guild_coro = per_guild_coro
        self._get_interval = get_interval
        self._initial_delay = initial_delay
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _sync_all_guilds(self, bot: discord.Bot) -> None:
        for guild in list(bot.guilds):
            try:
                await self._per_guild_coro(guild)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[%s] Failed to sync guild %s: %s", self._name, guild.name, exc)

    async def _run_loop(self, bot: discord.Bot, interval: float) -> None:
        logger.info("[%s] Starting periodic sync (interval=%.1fs) for %d guilds", self._name, interval, len(bot.guilds))
        try:
            if self._initial_delay > 0:
                await asyncio.sleep(self._initial_delay)
            while True:
                await self._sync_all_guilds(bot)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic sync cancelled", self._name)
            raise

    def start(self, bot: discord.Bot) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Sync task already running", self._name)
            return
        interval = self._get_interval()
        self._task = asyncio.create_task(self._run_loop(bot, interval))

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)
