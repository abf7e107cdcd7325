"""
Invite snapshot entries and join attribution results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from modwarden.datatypes.discord_datatypes import ChannelID, UserID

UNKNOWN = "Unknown"
VANITY_LABEL = "Vanity URL"


@dataclass(frozen=True, slots=True)
class InviteInfo:
    """Usage metadata for one invite code at the moment it was fetched."""

    code: str
    uses: int
    max_uses: int | None = None
    inviter_id: UserID | None = None
    inviter_tag: str | None = None
    channel_id: ChannelID | None = None
    channel_name: str | None = None
    temporary: bool = False
    max_age: int | None = None

    @property
    def url(self) -> str:
        return f"https://discord.gg/{self.code}"


# invite code -> InviteInfo
InviteSnapshot = Dict[str, InviteInfo]


class AttributionSource(Enum):
    """Which resolution rule produced an attribution."""

    USES_INCREASED = "uses_increased"
    INVITE_CONSUMED = "invite_consumed"
    VANITY = "vanity"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class JoinAttribution:
    """Best-effort answer to "which invite brought this member in?"."""

    invite_code: str
    inviter_id: UserID | None
    inviter_tag: str
    source: AttributionSource

    @property
    def is_known(self) -> bool:
        return self.source is not AttributionSource.UNKNOWN

    @classmethod
    def unknown(cls) -> "JoinAttribution":
        return cls(invite_code=UNKNOWN, inviter_id=None, inviter_tag=UNKNOWN, source=AttributionSource.UNKNOWN)

    @classmethod
    def vanity(cls, code: str) -> "JoinAttribution":
        return cls(invite_code=code, inviter_id=None, inviter_tag=VANITY_LABEL, source=AttributionSource.VANITY)

    @classmethod
    def from_invite(cls, invite: InviteInfo, source: AttributionSource) -> "JoinAttribution":
        return cls(
            invite_code=invite.code,
            inviter_id=invite.inviter_id,
            inviter_tag=invite.inviter_tag or UNKNOWN,
            source=source,
        )
