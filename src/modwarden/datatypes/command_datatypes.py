"""
Typed argument records for the moderation commands.

The set is closed: the engine's ``execute`` matches on these classes, so a new
moderation command means a new class here and a new case there.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from modwarden.datatypes.discord_datatypes import GuildID, UserID


@dataclass(frozen=True, slots=True)
class TimeoutCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None
    duration_minutes: int


@dataclass(frozen=True, slots=True)
class UntimeoutCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class MuteCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None
    duration_days: int | None = None


@dataclass(frozen=True, slots=True)
class UnmuteCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class BanCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None = None
    duration_days: int | None = None


@dataclass(frozen=True, slots=True)
class UnbanCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class KickCommand:
    guild_id: GuildID
    subject_id: UserID
    moderator_id: UserID
    reason: str | None = None


ModerationCommand = Union[
    TimeoutCommand,
    UntimeoutCommand,
    MuteCommand,
    UnmuteCommand,
    BanCommand,
    UnbanCommand,
    KickCommand,
]
