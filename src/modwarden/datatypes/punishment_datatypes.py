"""
Punishment kinds and the immutable records stored in a member's history.

Durations are stored as plain numbers whose unit depends on the kind:
minutes for a timeout, days for a mute or ban. ``None`` means permanent
(or not applicable, for kinds that carry no duration).
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum

from modwarden.datatypes.discord_datatypes import UserID


class PunishmentKind(Enum):
    """Every kind of entry that can appear in a punishment history."""

    TIMEOUT = "Timeout"
    UNTIMEOUT = "Untimeout"
    MUTE = "Mute"
    UNMUTE = "Unmute"
    BAN = "Ban"
    UNBAN = "Unban"
    KICK = "Kick"

    def __str__(self) -> str:
        return self.value


# Kinds counted by the per-moderator rate limiter.
PUNITIVE_KINDS = frozenset({PunishmentKind.TIMEOUT, PunishmentKind.MUTE, PunishmentKind.BAN, PunishmentKind.KICK})

# Kinds that cannot be issued without a reason.
REASON_REQUIRED_KINDS = frozenset({PunishmentKind.TIMEOUT, PunishmentKind.MUTE})

# Sanctions tracked in the active-sanction registry and reversed automatically.
REVERSIBLE_KINDS = frozenset({PunishmentKind.TIMEOUT, PunishmentKind.MUTE})

# Kind that undoes each issued sanction.
REVERSAL_OF = {
    PunishmentKind.TIMEOUT: PunishmentKind.UNTIMEOUT,
    PunishmentKind.MUTE: PunishmentKind.UNMUTE,
    PunishmentKind.BAN: PunishmentKind.UNBAN,
}

# Sanction each reversal kind undoes.
SANCTION_OF = {reversal: sanction for sanction, reversal in REVERSAL_OF.items()}

MAX_BAN_DAYS = 7


def duration_to_timedelta(kind: PunishmentKind, duration: int | None) -> datetime.timedelta | None:
    """Convert a stored duration into a timedelta using the unit of ``kind``.

    Returns ``None`` for permanent sanctions and for kinds without a duration.
    """
    if duration is None:
        return None
    if kind is PunishmentKind.TIMEOUT:
        return datetime.timedelta(minutes=duration)
    if kind in (PunishmentKind.MUTE, PunishmentKind.BAN):
        return datetime.timedelta(days=duration)
    return None


def describe_duration(kind: PunishmentKind, duration: int | None) -> str:
    """Human-readable duration label used in history listings and embeds."""
    if kind in (PunishmentKind.KICK, PunishmentKind.UNTIMEOUT, PunishmentKind.UNMUTE, PunishmentKind.UNBAN):
        return "N/A"
    if duration is None:
        return "Permanent"
    if kind is PunishmentKind.TIMEOUT:
        return f"{duration} minute{'s' if duration != 1 else ''}"
    return f"{duration} day{'s' if duration != 1 else ''}"


@dataclass(frozen=True, slots=True)
class PunishmentRecord:
    """One entry in a subject's punishment history.

    Attributes:
        subject_id: The user the record is about.
        moderator_id: The moderator who performed the action.
        kind: What was done.
        reason: Free-text justification, if one was given.
        duration: Length of the sanction in the kind's unit, ``None`` when permanent/not applicable.
        timestamp: When the action took effect (timezone-aware UTC).
    """

    subject_id: UserID
    moderator_id: UserID
    kind: PunishmentKind
    reason: str | None
    duration: int | None
    timestamp: datetime.datetime

    @property
    def ends_at(self) -> datetime.datetime | None:
        """When the sanction lapses, or ``None`` if it never does."""
        delta = duration_to_timedelta(self.kind, self.duration)
        return self.timestamp + delta if delta is not None else None

    def is_active_at(self, moment: datetime.datetime) -> bool:
        """True when the sanction is permanent or has not yet lapsed at ``moment``."""
        ends_at = self.ends_at
        return ends_at is None or ends_at > moment

    def to_row(self) -> dict:
        """Return a storage-friendly mapping with an ISO-8601 timestamp."""
        return {
            "subject_id": str(self.subject_id),
            "moderator_id": str(self.moderator_id),
            "kind": self.kind.value,
            "reason": self.reason,
            "duration": self.duration,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_row(cls, row) -> "PunishmentRecord":
        """Rebuild a record from a mapping produced by :meth:`to_row`.

        Naive timestamps are taken to be UTC.
        """
        timestamp = datetime.datetime.fromisoformat(row["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)
        duration = row["duration"]
        return cls(
            subject_id=UserID(row["subject_id"]),
            moderator_id=UserID(row["moderator_id"]),
            kind=PunishmentKind(row["kind"]),
            reason=row["reason"],
            duration=int(duration) if duration is not None else None,
            timestamp=timestamp,
        )
