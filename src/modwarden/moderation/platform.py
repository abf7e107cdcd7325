"""
Discord adapter for the moderation and invite engines.

The engines only deal in IDs and primitive values. This module turns those
into py-cord calls and translates the SDK's exceptions into the small
``PlatformError`` hierarchy so callers can handle failures without importing
``discord`` themselves.

Any object exposing the same coroutine methods can stand in for
:class:`DiscordModerationPlatform` (the tests use an in-memory fake).
"""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass
from typing import Any, Awaitable, TypeVar

import discord

from modwarden.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modwarden.datatypes.invite_datatypes import InviteInfo, InviteSnapshot
from modwarden.datatypes.punishment_datatypes import PunishmentKind
from modwarden.util.logger import get_logger

logger = get_logger("moderation_platform")

T = TypeVar("T")


class PlatformError(Exception):
    """A Discord call failed (network, HTTP or gateway error)."""


class PlatformPermissionError(PlatformError):
    """Discord refused the call (missing permission or role hierarchy)."""


class PlatformNotFoundError(PlatformError):
    """The guild, member, role or ban targeted by the call does not exist."""


class PlatformRateLimitedError(PlatformError):
    """Discord answered with HTTP 429."""


@dataclass(frozen=True, slots=True)
class UserSummary:
    """Minimal user information needed for precondition checks and display."""

    id: UserID
    tag: str
    is_bot: bool


# Permission a bot needs for each kind, as a ``discord.Permissions`` attribute name.
_REQUIRED_PERMISSION = {
    PunishmentKind.TIMEOUT: "moderate_members",
    PunishmentKind.UNTIMEOUT: "moderate_members",
    PunishmentKind.MUTE: "manage_roles",
    PunishmentKind.UNMUTE: "manage_roles",
    PunishmentKind.BAN: "ban_members",
    PunishmentKind.UNBAN: "ban_members",
    PunishmentKind.KICK: "kick_members",
}


async def call_platform(awaitable: Awaitable[T]) -> T:
    """Await a py-cord call, re-raising SDK failures as :class:`PlatformError` subclasses."""
    try:
        return await awaitable
    except discord.Forbidden as exc:
        raise PlatformPermissionError(str(exc)) from exc
    except discord.NotFound as exc:
        raise PlatformNotFoundError(str(exc)) from exc
    except discord.HTTPException as exc:
        if exc.status == 429:
            raise PlatformRateLimitedError(str(exc)) from exc
        raise PlatformError(str(exc)) from exc
    except (discord.DiscordException, asyncio.TimeoutError, OSError) as exc:
        raise PlatformError(str(exc)) from exc


class DiscordModerationPlatform:
    """
    py-cord implementation of the moderation platform.

    Args:
        bot: Connected bot instance.
        mute_role_name: Name of the role used to mute members.
    """

    def __init__(self, bot: discord.Bot, mute_role_name: str) -> None:
        self.bot = bot
        self.mute_role_name = mute_role_name

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def self_id(self) -> UserID | None:
        user = self.bot.user
        return UserID(user.id) if user is not None else None

    def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self.bot.get_guild(GuildID(guild_id).to_int())
        if guild is None:
            raise PlatformNotFoundError(f"Guild {guild_id} is not available")
        return guild

    async def _member(self, guild_id: GuildID, user_id: UserID) -> discord.Member | None:
        guild = self._guild(guild_id)
        uid = UserID(user_id).to_int()
        member = guild.get_member(uid)
        if member is not None:
            return member
        try:
            return await call_platform(guild.fetch_member(uid))
        except PlatformNotFoundError:
            return None

    async def _require_member(self, guild_id: GuildID, user_id: UserID) -> discord.Member:
        member = await self._member(guild_id, user_id)
        if member is None:
            raise PlatformNotFoundError(f"User {user_id} is not a member of guild {guild_id}")
        return member

    def _mute_role(self, guild: discord.Guild) -> discord.Role | None:
        return discord.utils.get(guild.roles, name=self.mute_role_name)

    async def fetch_user(self, user_id: UserID) -> UserSummary | None:
        uid = UserID(user_id).to_int()
        user = self.bot.get_user(uid)
        if user is None:
            try:
                user = await call_platform(self.bot.fetch_user(uid))
            except PlatformNotFoundError:
                return None
        return UserSummary(id=UserID(user.id), tag=str(user), is_bot=user.bot)

    def guild_name(self, guild_id: GuildID) -> str:
        guild = self.bot.get_guild(GuildID(guild_id).to_int())
        return guild.name if guild is not None else str(guild_id)

    async def is_member(self, guild_id: GuildID, user_id: UserID) -> bool:
        return await self._member(guild_id, user_id) is not None

    async def can_moderate(self, guild_id: GuildID, user_id: UserID, kind: PunishmentKind) -> bool:
        """Whether the bot holds the permission for ``kind`` and outranks the subject."""
        guild = self._guild(guild_id)
        me = guild.me
        if me is None:
            return False
        if not getattr(me.guild_permissions, _REQUIRED_PERMISSION[kind], False):
            return False

        if kind in (PunishmentKind.MUTE, PunishmentKind.UNMUTE):
            role = self._mute_role(guild)
            if role is not None and role >= me.top_role:
                return False

        member = await self._member(guild_id, user_id)
        if member is None:
            # Bans and unbans work on bare user IDs.
            return kind in (PunishmentKind.BAN, PunishmentKind.UNBAN)
        if member.id == guild.owner_id:
            return False
        if kind is PunishmentKind.TIMEOUT and member.guild_permissions.administrator:
            return False
        return member.top_role < me.top_role

    async def is_timed_out(self, guild_id: GuildID, user_id: UserID) -> bool:
        member = await self._member(guild_id, user_id)
        return bool(member is not None and member.timed_out)

    def mute_role_exists(self, guild_id: GuildID) -> bool:
        return self._mute_role(self._guild(guild_id)) is not None

    async def has_mute_role(self, guild_id: GuildID, user_id: UserID) -> bool:
        guild = self._guild(guild_id)
        role = self._mute_role(guild)
        member = await self._member(guild_id, user_id)
        return bool(role is not None and member is not None and role in member.roles)

    async def is_banned(self, guild_id: GuildID, user_id: UserID) -> bool:
        guild = self._guild(guild_id)
        try:
            await call_platform(guild.fetch_ban(discord.Object(id=UserID(user_id).to_int())))
        except PlatformNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def apply_timeout(self, guild_id: GuildID, user_id: UserID, until: datetime.datetime, reason: str | None) -> None:
        member = await self._require_member(guild_id, user_id)
        await call_platform(member.timeout(until, reason=reason))

    async def remove_timeout(self, guild_id: GuildID, user_id: UserID, reason: str | None) -> None:
        member = await self._require_member(guild_id, user_id)
        await call_platform(member.remove_timeout(reason=reason))

    async def add_mute_role(self, guild_id: GuildID, user_id: UserID, reason: str | None) -> None:
        guild = self._guild(guild_id)
        role = self._mute_role(guild)
        if role is None:
            raise PlatformNotFoundError(f"Mute role {self.mute_role_name!r} not found in guild {guild_id}")
        member = await self._require_member(guild_id, user_id)
        await call_platform(member.add_roles(role, reason=reason))

    async def remove_mute_role(self, guild_id: GuildID, user_id: UserID, reason: str | None) -> None:
        guild = self._guild(guild_id)
        role = self._mute_role(guild)
        if role is None:
            raise PlatformNotFoundError(f"Mute role {self.mute_role_name!r} not found in guild {guild_id}")
        member = await self._require_member(guild_id, user_id)
        await call_platform(member.remove_roles(role, reason=reason))

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str | None, delete_message_seconds: int = 0) -> None:
        guild = self._guild(guild_id)
        await call_platform(
            guild.ban(
                discord.Object(id=UserID(user_id).to_int()),
                reason=reason,
                delete_message_seconds=delete_message_seconds,
            )
        )

    async def unban(self, guild_id: GuildID, user_id: UserID, reason: str | None) -> None:
        guild = self._guild(guild_id)
        await call_platform(guild.unban(discord.Object(id=UserID(user_id).to_int()), reason=reason))

    async def kick(self, guild_id: GuildID, user_id: UserID, reason: str | None) -> None:
        member = await self._require_member(guild_id, user_id)
        await call_platform(member.kick(reason=reason))

    # ------------------------------------------------------------------
    # Invites
    # ------------------------------------------------------------------

    async def fetch_invites(self, guild_id: GuildID) -> InviteSnapshot:
        guild = self._guild(guild_id)
        invites = await call_platform(guild.invites())
        return {invite.code: invite_to_info(invite) for invite in invites}

    async def vanity_code(self, guild_id: GuildID) -> str | None:
        guild = self._guild(guild_id)
        if "VANITY_URL" not in guild.features:
            return None
        try:
            invite = await call_platform(guild.vanity_invite())
        except PlatformError as exc:
            logger.debug("[PLATFORM] Could not read vanity invite for guild %s: %s", guild_id, exc)
            return None
        return invite.code if invite is not None else None


def invite_to_info(invite: Any) -> InviteInfo:
    """Convert a ``discord.Invite`` into an :class:`InviteInfo`."""
    inviter = getattr(invite, "inviter", None)
    channel = getattr(invite, "channel", None)
    return InviteInfo(
        code=invite.code,
        uses=invite.uses or 0,
        max_uses=invite.max_uses or None,
        inviter_id=UserID(inviter.id) if inviter is not None else None,
        inviter_tag=str(inviter) if inviter is not None else None,
        channel_id=ChannelID(channel.id) if channel is not None else None,
        channel_name=getattr(channel, "name", None),
        temporary=bool(invite.temporary),
        max_age=invite.max_age,
    )
