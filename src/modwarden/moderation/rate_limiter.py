"""
Per-moderator limit on punitive actions within a trailing time window.

Entries are never pruned eagerly; expired ones are filtered out when the
limit is checked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.punishment_datatypes import PUNITIVE_KINDS, PunishmentKind

DEFAULT_MAX_ACTIONS = 3
DEFAULT_WINDOW_MS = 3_600_000


@dataclass(frozen=True, slots=True)
class RateLimitEntry:
    kind: PunishmentKind
    timestamp_ms: int


class PunishmentRateLimiter:
    """
    Tracks punitive actions per moderator.

    Args:
        max_actions: Actions allowed inside one window.
        window_ms: Window length in milliseconds.
    """

    def __init__(self, max_actions: int = DEFAULT_MAX_ACTIONS, window_ms: int = DEFAULT_WINDOW_MS) -> None:
        self.max_actions = max_actions
        self.window_ms = window_ms
        self._entries: Dict[UserID, List[RateLimitEntry]] = {}

    def recent_count(self, moderator_id: UserID | int | str, now_ms: int) -> int:
        """Number of punitive actions by the moderator strictly inside the window ending at ``now_ms``."""
        cutoff = now_ms - self.window_ms
        return sum(
            1
            for entry in self._entries.get(UserID(moderator_id), ())
            if entry.kind in PUNITIVE_KINDS and entry.timestamp_ms > cutoff
        )

    def is_limited(self, moderator_id: UserID | int | str, now_ms: int) -> bool:
        return self.recent_count(moderator_id, now_ms) >= self.max_actions

    def record(self, moderator_id: UserID | int | str, kind: PunishmentKind, now_ms: int) -> None:
        """Append an entry. Non-punitive kinds are ignored."""
        if kind not in PUNITIVE_KINDS:
            return
        self._entries.setdefault(UserID(moderator_id), []).append(RateLimitEntry(kind, now_ms))
