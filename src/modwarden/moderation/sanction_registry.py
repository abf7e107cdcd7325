"""
In-memory registry of members currently under a timeout or mute applied by
the bot.

Every method is synchronous. The engine relies on this: ``discard_if_present``
checks and removes in one step, and because nothing in between can yield to
the event loop, a manual reversal and an expiring timer cannot both claim the
same entry.
"""

from __future__ import annotations

from typing import Dict, Set

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.punishment_datatypes import REVERSIBLE_KINDS, PunishmentKind


class ActiveSanctionRegistry:
    """Two sets of subject IDs: one for timeouts, one for mutes."""

    def __init__(self) -> None:
        self._sets: Dict[PunishmentKind, Set[UserID]] = {kind: set() for kind in REVERSIBLE_KINDS}

    def _set_for(self, kind: PunishmentKind) -> Set[UserID]:
        try:
            return self._sets[kind]
        except KeyError:
            raise ValueError(f"{kind} is not tracked in the active sanction registry") from None

    def add(self, kind: PunishmentKind, user_id: UserID | int | str) -> None:
        self._set_for(kind).add(UserID(user_id))

    def contains(self, kind: PunishmentKind, user_id: UserID | int | str) -> bool:
        return UserID(user_id) in self._set_for(kind)

    def discard_if_present(self, kind: PunishmentKind, user_id: UserID | int | str) -> bool:
        """Remove the subject from ``kind``'s set; return True if it was there."""
        members = self._set_for(kind)
        uid = UserID(user_id)
        if uid not in members:
            return False
        members.remove(uid)
        return True

    def discard_all(self, user_id: UserID | int | str) -> None:
        """Drop the subject from every set (used when they are banned or kicked)."""
        uid = UserID(user_id)
        for members in self._sets.values():
            members.discard(uid)

    def members(self, kind: PunishmentKind) -> Set[UserID]:
        return set(self._set_for(kind))
