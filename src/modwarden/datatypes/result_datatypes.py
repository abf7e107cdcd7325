"""
Outcome types returned by the punishment engine to the command layer.

A command either succeeds, is rejected by a precondition (an expected,
user-facing outcome) or fails while talking to Discord. None of these are
raised as exceptions; the command layer only ever shows ``message``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from modwarden.datatypes.punishment_datatypes import PunishmentRecord


class RejectionReason(Enum):
    """Precondition failures, each with the message shown to the moderator."""

    RATE_LIMITED = "You have reached the punishment limit for the past hour. Please wait before issuing another."
    REASON_REQUIRED = "A reason is required for this action."
    SELF_TARGET = "You cannot perform this action on yourself."
    BOT_SELF_TARGET = "You cannot perform this action on me."
    BOT_TARGET = "You cannot perform this action on a bot."
    NOT_A_MEMBER = "That user is not a member of this server."
    ALREADY_SANCTIONED = "That user is already under this sanction."
    NOT_SANCTIONED = "That user is not under this sanction."
    MUTE_ROLE_MISSING = "The mute role could not be found on this server."
    MISSING_PERMISSION = "I do not have permission to act on that user."
    DURATION_OUT_OF_RANGE = "The duration is outside the allowed range."
    UNSUPPORTED = "That action is not supported here."

    @property
    def message(self) -> str:
        return self.value


class DeliveryStatus(Enum):
    """Outcome of a direct-message delivery attempt."""

    DELIVERED = "delivered"
    BLOCKED = "blocked"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


EXECUTION_ERROR_MESSAGE = "An error occurred while executing the command."


@dataclass(slots=True)
class ModerationResult:
    """Result of an Issue or Reverse call.

    Attributes:
        success: True when the action was applied and recorded.
        message: Human-readable text for the invoker.
        rejection: Set when a precondition rejected the request.
        record: The history entry appended on success.
        dm_status: Outcome of the subject notification, when one was attempted.
        subject_tag: Display name of the subject, when it could be resolved.
    """

    success: bool
    message: str
    rejection: RejectionReason | None = None
    record: PunishmentRecord | None = None
    dm_status: DeliveryStatus | None = None
    subject_tag: str | None = None

    @classmethod
    def ok(
        cls,
        record: PunishmentRecord,
        message: str,
        dm_status: DeliveryStatus | None = None,
        subject_tag: str | None = None,
    ) -> "ModerationResult":
        return cls(success=True, message=message, record=record, dm_status=dm_status, subject_tag=subject_tag)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "ModerationResult":
        return cls(success=False, message=reason.message, rejection=reason)

    @classmethod
    def failure(cls) -> "ModerationResult":
        return cls(success=False, message=EXECUTION_ERROR_MESSAGE)
