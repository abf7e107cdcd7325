"""
Per-guild cache of invite usage counters.

Each refresh replaces a guild's snapshot wholesale. The cache is best effort:
a failed fetch keeps the previous snapshot and is logged.
"""

from __future__ import annotations

from typing import Dict, Iterable

from modwarden.datatypes.discord_datatypes import GuildID
from modwarden.datatypes.invite_datatypes import InviteInfo, InviteSnapshot
from modwarden.moderation.platform import PlatformError
from modwarden.util.logger import get_logger

logger = get_logger("invite_cache")


class InviteSnapshotCache:
    """Holds the last known invite listing for every guild."""

    def __init__(self, platform) -> None:
        self.platform = platform
        self._snapshots: Dict[GuildID, InviteSnapshot] = {}

    def has(self, guild_id: GuildID | int | str) -> bool:
        return GuildID(guild_id) in self._snapshots

    def snapshot(self, guild_id: GuildID | int | str) -> InviteSnapshot:
        """Copy of the cached snapshot, empty if the guild was never primed."""
        return dict(self._snapshots.get(GuildID(guild_id), {}))

    def get_invite(self, guild_id: GuildID | int | str, code: str) -> InviteInfo | None:
        return self._snapshots.get(GuildID(guild_id), {}).get(code)

    def replace(self, guild_id: GuildID | int | str, snapshot: InviteSnapshot) -> None:
        self._snapshots[GuildID(guild_id)] = dict(snapshot)

    def drop(self, guild_id: GuildID | int | str) -> None:
        self._snapshots.pop(GuildID(guild_id), None)

    async def refresh(self, guild_id: GuildID | int | str) -> InviteSnapshot | None:
        """
        Refetch the guild's invites and store them.

        Returns:
            The new snapshot, or None when the fetch failed.
        """
        guild_id = GuildID(guild_id)
        try:
            snapshot = await self.platform.fetch_invites(guild_id)
        except PlatformError as exc:
            logger.warning("[INVITE CACHE] Could not fetch invites for guild %s: %s", guild_id, exc)
            return None
        self.replace(guild_id, snapshot)
        logger.debug("[INVITE CACHE] Cached %d invites for guild %s", len(snapshot), guild_id)
        return dict(snapshot)

    async def prime_all(self, guild_ids: Iterable[GuildID | int | str]) -> int:
        """Refresh every guild; returns how many refreshes succeeded."""
        primed = 0
        for guild_id in guild_ids:
            if await self.refresh(guild_id) is not None:
                primed += 1
        logger.info("[INVITE CACHE] Primed invite snapshots for %d guilds", primed)
        return primed
