"""
Work out which invite brought a new member in.

The platform does not say which invite a member used, so the engine compares
the cached invite counters from before the join with a fresh listing taken
after a short settle delay. Resolution order, first match wins:

1. an invite present before and after whose ``uses`` went up;
2. an invite present before but gone after (a consumed single-use or expired invite);
3. the guild's vanity URL, when it has one;
4. Unknown.

Two joins through different invites inside one settle delay can be
misattributed. That is accepted; this is a heuristic.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Tuple

from modwarden.datatypes.discord_datatypes import GuildID, UserID
from modwarden.datatypes.invite_datatypes import AttributionSource, InviteSnapshot, JoinAttribution
from modwarden.invites.invite_cache import InviteSnapshotCache
from modwarden.moderation.platform import PlatformError
from modwarden.util.logger import get_logger

logger = get_logger("invite_attribution")

DEFAULT_SETTLE_DELAY = 7.0


def match_invite(before: InviteSnapshot, after: InviteSnapshot) -> JoinAttribution | None:
    """Apply the two counter-based rules; None when neither matches."""
    for code, invite in after.items():
        previous = before.get(code)
        if previous is not None and invite.uses > previous.uses:
            return JoinAttribution.from_invite(invite, AttributionSource.USES_INCREASED)

    for code, invite in before.items():
        if code not in after:
            return JoinAttribution.from_invite(invite, AttributionSource.INVITE_CONSUMED)

    return None


def resolve_used_invite(before: InviteSnapshot, after: InviteSnapshot, vanity_code: str | None = None) -> JoinAttribution:
    """Full resolution over two snapshots and an optional vanity code."""
    matched = match_invite(before, after)
    if matched is not None:
        return matched
    if vanity_code:
        return JoinAttribution.vanity(vanity_code)
    return JoinAttribution.unknown()


class InviteAttributionEngine:
    """
    Join/leave attribution on top of an :class:`InviteSnapshotCache`.

    Args:
        platform: Adapter providing ``vanity_code``.
        cache: Snapshot cache that is refreshed after each join.
        settle_delay: Seconds to wait before re-reading invite counters.
        sleep: Awaitable delay function, swapped out in tests.
    """

    def __init__(
        self,
        platform,
        cache: InviteSnapshotCache,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.platform = platform
        self.cache = cache
        self.settle_delay = settle_delay
        self._sleep = sleep
        self._joins: Dict[Tuple[GuildID, UserID], JoinAttribution] = {}

    async def on_invite_changed(self, guild_id: GuildID | int | str) -> None:
        await self.cache.refresh(guild_id)

    async def on_member_join(self, guild_id: GuildID | int | str, user_id: UserID | int | str) -> JoinAttribution:
        """Attribute a join and remember the answer until the member leaves."""
        guild_id, user_id = GuildID(guild_id), UserID(user_id)
        before = self.cache.snapshot(guild_id)

        await self._sleep(self.settle_delay)

        after = await self.cache.refresh(guild_id)
        attribution = match_invite(before, after) if after is not None else None
        if attribution is None:
            attribution = resolve_used_invite({}, {}, await self._vanity_code(guild_id))

        self._joins[(guild_id, user_id)] = attribution
        logger.info(
            "[INVITE ATTRIBUTION] %s joined guild %s via %s (inviter %s, %s)",
            user_id,
            guild_id,
            attribution.invite_code,
            attribution.inviter_tag,
            attribution.source.value,
        )
        return attribution

    async def _vanity_code(self, guild_id: GuildID) -> str | None:
        try:
            return await self.platform.vanity_code(guild_id)
        except PlatformError as exc:
            logger.debug("[INVITE ATTRIBUTION] Vanity lookup for guild %s failed: %s", guild_id, exc)
            return None

    def on_member_leave(self, guild_id: GuildID | int | str, user_id: UserID | int | str) -> JoinAttribution:
        """Consume the attribution recorded at the member's last join."""
        return self._joins.pop((GuildID(guild_id), UserID(user_id)), JoinAttribution.unknown())

    def peek(self, guild_id: GuildID | int | str, user_id: UserID | int | str) -> JoinAttribution | None:
        return self._joins.get((GuildID(guild_id), UserID(user_id)))
