"""
Punishment lifecycle: issuing and reversing sanctions, automatic expiry and
re-applying an active mute when a member rejoins.

The engine owns no Discord objects. It talks to the platform adapter with IDs,
keeps the active-sanction registry, rate limiter and history store in sync,
and answers every call with a :class:`ModerationResult`. Precondition
failures come back as rejections; platform failures come back as a generic
failure and leave all state untouched.

State changes follow one rule: the platform call happens first, bookkeeping
after. The only exception is the notice sent to the subject of a ban or kick,
which goes out before the action so it can still be delivered.
"""

from __future__ import annotations

import datetime
from typing import Callable, List

from modwarden.datatypes.command_datatypes import (
    BanCommand,
    KickCommand,
    ModerationCommand,
    MuteCommand,
    TimeoutCommand,
    UnbanCommand,
    UnmuteCommand,
    UntimeoutCommand,
)
from modwarden.datatypes.discord_datatypes import GuildID, UserID
from modwarden.datatypes.punishment_datatypes import (
    MAX_BAN_DAYS,
    PUNITIVE_KINDS,
    REASON_REQUIRED_KINDS,
    REVERSIBLE_KINDS,
    SANCTION_OF,
    PunishmentKind,
    PunishmentRecord,
    describe_duration,
    duration_to_timedelta,
)
from modwarden.datatypes.result_datatypes import DeliveryStatus, ModerationResult, RejectionReason
from modwarden.moderation.platform import PlatformError, UserSummary
from modwarden.util.logger import get_logger

logger = get_logger("punishment_engine")

Clock = Callable[[], datetime.datetime]

# Discord caps a timeout at 28 days.
MAX_TIMEOUT_MINUTES = 28 * 24 * 60

# Kinds that only make sense for someone currently in the guild.
MEMBER_REQUIRED_KINDS = frozenset({
    PunishmentKind.TIMEOUT,
    PunishmentKind.UNTIMEOUT,
    PunishmentKind.MUTE,
    PunishmentKind.UNMUTE,
    PunishmentKind.KICK,
})

# Kinds whose subject is told before the platform action runs.
NOTIFY_FIRST_KINDS = frozenset({PunishmentKind.BAN, PunishmentKind.KICK})

PAST_TENSE = {
    PunishmentKind.TIMEOUT: "timed out",
    PunishmentKind.UNTIMEOUT: "removed from timeout",
    PunishmentKind.MUTE: "muted",
    PunishmentKind.UNMUTE: "unmuted",
    PunishmentKind.BAN: "banned",
    PunishmentKind.UNBAN: "unbanned",
    PunishmentKind.KICK: "kicked",
}

REJOIN_REASON = "Re-applying active mute after rejoin"


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def reversal_job_key(kind: PunishmentKind, subject_id: UserID | int | str) -> str:
    """Scheduler key of the automatic reversal for ``kind`` on a subject."""
    return f"{kind.value.lower()}:{UserID(subject_id)}"


class PunishmentLifecycleEngine:
    """
    Issue/Reverse entry points plus the timers that undo temporary sanctions.

    Args:
        platform: Discord adapter (see ``modwarden.moderation.platform``).
        store: Persistent punishment history.
        registry: Active timeouts and mutes applied by the bot.
        rate_limiter: Per-moderator punitive action limiter.
        scheduler: One-shot deferred job scheduler.
        notifier: Audit channel and DM delivery.
        clock: Returns the current time as an aware UTC datetime.
    """

    def __init__(self, platform, store, registry, rate_limiter, scheduler, notifier, clock: Clock = utc_now) -> None:
        self.platform = platform
        self.store = store
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.scheduler = scheduler
        self.notifier = notifier
        self.clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def check_rate_limit(self, moderator_id: UserID | int | str) -> bool:
        """True when the moderator has used up their punitive actions for the current window."""
        return self.rate_limiter.is_limited(moderator_id, self._now_ms())

    def get_history(self, subject_id: UserID | int | str) -> List[PunishmentRecord]:
        return self.store.get_history(subject_id)

    async def record_punishment(
        self,
        subject_id: UserID | int | str,
        moderator_id: UserID | int | str,
        kind: PunishmentKind,
        reason: str | None = None,
        duration: int | None = None,
        timestamp: datetime.datetime | None = None,
    ) -> PunishmentRecord:
        """Append a history entry and count it against the moderator if it is punitive."""
        record = PunishmentRecord(
            subject_id=UserID(subject_id),
            moderator_id=UserID(moderator_id),
            kind=kind,
            reason=reason,
            duration=duration,
            timestamp=timestamp or self.clock(),
        )
        await self._commit(record)
        return record

    async def _commit(self, record: PunishmentRecord) -> None:
        await self.store.record_punishment(record)
        self.rate_limiter.record(record.moderator_id, record.kind, int(record.timestamp.timestamp() * 1000))

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------

    async def execute(self, command: ModerationCommand) -> ModerationResult:
        """Run a typed moderation command."""
        match command:
            case TimeoutCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r, duration_minutes=d):
                return await self.issue(g, s, m, PunishmentKind.TIMEOUT, r, d)
            case MuteCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r, duration_days=d):
                return await self.issue(g, s, m, PunishmentKind.MUTE, r, d)
            case BanCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r, duration_days=d):
                return await self.issue(g, s, m, PunishmentKind.BAN, r, d)
            case KickCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r):
                return await self.issue(g, s, m, PunishmentKind.KICK, r)
            case UntimeoutCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r):
                return await self.reverse(g, s, m, PunishmentKind.UNTIMEOUT, r)
            case UnmuteCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r):
                return await self.reverse(g, s, m, PunishmentKind.UNMUTE, r)
            case UnbanCommand(guild_id=g, subject_id=s, moderator_id=m, reason=r):
                return await self.reverse(g, s, m, PunishmentKind.UNBAN, r)
        raise TypeError(f"Unsupported moderation command: {command!r}")

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _reject(self, reason: RejectionReason, kind: PunishmentKind, subject_id, moderator_id) -> ModerationResult:
        logger.info(
            "[PUNISHMENT ENGINE] %s on %s by %s rejected: %s",
            kind.value,
            subject_id,
            moderator_id,
            reason.name,
        )
        return ModerationResult.rejected(reason)

    @staticmethod
    def _duration_valid(kind: PunishmentKind, duration: int | None) -> bool:
        if kind is PunishmentKind.TIMEOUT:
            return duration is not None and 1 <= duration <= MAX_TIMEOUT_MINUTES
        if kind is PunishmentKind.MUTE:
            return duration is None or duration >= 1
        if kind is PunishmentKind.BAN:
            return duration is None or 0 <= duration <= MAX_BAN_DAYS
        return True

    async def _target_rejection(
        self,
        guild_id: GuildID,
        subject_id: UserID,
        moderator_id: UserID,
        kind: PunishmentKind,
    ) -> tuple[RejectionReason | None, UserSummary | None]:
        """Checks shared by Issue and Reverse. May raise PlatformError."""
        if subject_id == moderator_id:
            return RejectionReason.SELF_TARGET, None
        if self.platform.self_id is not None and subject_id == self.platform.self_id:
            return RejectionReason.BOT_SELF_TARGET, None

        summary = await self.platform.fetch_user(subject_id)
        if summary is None:
            return RejectionReason.NOT_A_MEMBER, None
        if summary.is_bot:
            return RejectionReason.BOT_TARGET, summary

        if kind in MEMBER_REQUIRED_KINDS and not await self.platform.is_member(guild_id, subject_id):
            return RejectionReason.NOT_A_MEMBER, summary
        if kind in (PunishmentKind.MUTE, PunishmentKind.UNMUTE) and not self.platform.mute_role_exists(guild_id):
            return RejectionReason.MUTE_ROLE_MISSING, summary
        if not await self.platform.can_moderate(guild_id, subject_id, kind):
            return RejectionReason.MISSING_PERMISSION, summary
        return None, summary

    async def _is_sanctioned(self, guild_id: GuildID, subject_id: UserID, sanction: PunishmentKind) -> bool:
        """Platform-reported state for ``sanction`` on the subject."""
        if sanction is PunishmentKind.TIMEOUT:
            return await self.platform.is_timed_out(guild_id, subject_id)
        if sanction is PunishmentKind.MUTE:
            return await self.platform.has_mute_role(guild_id, subject_id)
        if sanction is PunishmentKind.BAN:
            return await self.platform.is_banned(guild_id, subject_id)
        return False

    async def _tag(self, user_id: UserID) -> str | None:
        try:
            summary = await self.platform.fetch_user(user_id)
        except PlatformError:
            return None
        return summary.tag if summary is not None else None

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    async def issue(
        self,
        guild_id: GuildID | int | str,
        subject_id: UserID | int | str,
        moderator_id: UserID | int | str,
        kind: PunishmentKind,
        reason: str | None = None,
        duration: int | None = None,
    ) -> ModerationResult:
        """
        Apply a punitive sanction.

        Preconditions, first failure wins: rate limit, reason, duration range,
        self/bot targets, membership, mute role, bot permission, and finally
        "already under this sanction" as the platform reports it.
        """
        guild_id, subject_id, moderator_id = GuildID(guild_id), UserID(subject_id), UserID(moderator_id)
        reason = reason.strip() if reason and reason.strip() else None

        if kind not in PUNITIVE_KINDS:
            return self._reject(RejectionReason.UNSUPPORTED, kind, subject_id, moderator_id)
        if self.check_rate_limit(moderator_id):
            return self._reject(RejectionReason.RATE_LIMITED, kind, subject_id, moderator_id)
        if kind in REASON_REQUIRED_KINDS and reason is None:
            return self._reject(RejectionReason.REASON_REQUIRED, kind, subject_id, moderator_id)
        if not self._duration_valid(kind, duration):
            return self._reject(RejectionReason.DURATION_OUT_OF_RANGE, kind, subject_id, moderator_id)

        try:
            rejection, summary = await self._target_rejection(guild_id, subject_id, moderator_id, kind)
            if rejection is None and kind in REVERSIBLE_KINDS:
                if await self._is_sanctioned(guild_id, subject_id, kind):
                    rejection = RejectionReason.ALREADY_SANCTIONED
                elif self.registry.discard_if_present(kind, subject_id):
                    # Lifted outside the bot, e.g. role removed by hand.
                    logger.info("[PUNISHMENT ENGINE] Dropping stale %s entry for %s", kind.value, subject_id)
                    await self.scheduler.cancel(reversal_job_key(kind, subject_id))
            elif rejection is None and kind is PunishmentKind.BAN:
                if await self._is_sanctioned(guild_id, subject_id, kind):
                    rejection = RejectionReason.ALREADY_SANCTIONED
        except PlatformError as exc:
            logger.error("[PUNISHMENT ENGINE] Precondition lookup for %s on %s failed: %s", kind.value, subject_id, exc)
            return ModerationResult.failure()
        if rejection is not None:
            return self._reject(rejection, kind, subject_id, moderator_id)

        subject_tag = summary.tag if summary else None
        guild_name = self.platform.guild_name(guild_id)
        record = PunishmentRecord(
            subject_id=subject_id,
            moderator_id=moderator_id,
            kind=kind,
            reason=reason,
            duration=duration,
            timestamp=self.clock(),
        )

        dm_status: DeliveryStatus | None = None
        if kind in NOTIFY_FIRST_KINDS:
            dm_status = await self.notifier.notify_subject(record, guild_name, subject_tag)

        try:
            await self._apply(guild_id, record)
        except PlatformError as exc:
            logger.error("[PUNISHMENT ENGINE] %s on %s by %s failed: %s", kind.value, subject_id, moderator_id, exc)
            return ModerationResult.failure()

        if kind in REVERSIBLE_KINDS:
            self.registry.add(kind, subject_id)
        else:
            self.registry.discard_all(subject_id)
            for sanction in REVERSIBLE_KINDS:
                await self.scheduler.cancel(reversal_job_key(sanction, subject_id))

        await self._commit(record)

        ends_at = record.ends_at
        if kind in REVERSIBLE_KINDS and ends_at is not None:
            await self._schedule_reversal(guild_id, subject_id, kind, (ends_at - self.clock()).total_seconds())

        if kind not in NOTIFY_FIRST_KINDS:
            dm_status = await self.notifier.notify_subject(record, guild_name, subject_tag)

        moderator_tag = await self._tag(moderator_id)
        await self.notifier.audit_punishment(record, subject_tag, moderator_tag)

        logger.info(
            "[PUNISHMENT ENGINE] %s issued on %s by %s (duration=%s)",
            kind.value,
            subject_id,
            moderator_id,
            describe_duration(kind, duration),
        )
        return ModerationResult.ok(record, self._success_message(record, subject_tag), dm_status, subject_tag)

    async def _apply(self, guild_id: GuildID, record: PunishmentRecord) -> None:
        kind, subject_id, reason = record.kind, record.subject_id, record.reason
        if kind is PunishmentKind.TIMEOUT:
            await self.platform.apply_timeout(guild_id, subject_id, record.ends_at, reason)
        elif kind is PunishmentKind.MUTE:
            await self.platform.add_mute_role(guild_id, subject_id, reason)
        elif kind is PunishmentKind.BAN:
            delete_window = duration_to_timedelta(kind, record.duration)
            seconds = int(delete_window.total_seconds()) if delete_window is not None else 0
            await self.platform.ban(guild_id, subject_id, reason, delete_message_seconds=seconds)
        elif kind is PunishmentKind.KICK:
            await self.platform.kick(guild_id, subject_id, reason)
        elif kind is PunishmentKind.UNTIMEOUT:
            await self.platform.remove_timeout(guild_id, subject_id, reason)
        elif kind is PunishmentKind.UNMUTE:
            await self.platform.remove_mute_role(guild_id, subject_id, reason)
        elif kind is PunishmentKind.UNBAN:
            await self.platform.unban(guild_id, subject_id, reason)

    @staticmethod
    def _success_message(record: PunishmentRecord, subject_tag: str | None) -> str:
        message = f"{subject_tag or record.subject_id} has been {PAST_TENSE[record.kind]}"
        if record.kind in (PunishmentKind.TIMEOUT, PunishmentKind.MUTE) or (
            record.kind is PunishmentKind.BAN and record.duration is not None
        ):
            label = describe_duration(record.kind, record.duration)
            message += " permanently" if record.duration is None else f" ({label})"
        return message + "."

    # ------------------------------------------------------------------
    # Reverse
    # ------------------------------------------------------------------

    async def reverse(
        self,
        guild_id: GuildID | int | str,
        subject_id: UserID | int | str,
        moderator_id: UserID | int | str,
        kind: PunishmentKind,
        reason: str | None = None,
    ) -> ModerationResult:
        """
        Lift a sanction (Untimeout, Unmute or Unban).

        The sanction must be active according to the platform. On success the
        subject leaves the registry and any pending automatic reversal is
        cancelled.
        """
        guild_id, subject_id, moderator_id = GuildID(guild_id), UserID(subject_id), UserID(moderator_id)
        reason = reason.strip() if reason and reason.strip() else None

        sanction = SANCTION_OF.get(kind)
        if sanction is None:
            return self._reject(RejectionReason.UNSUPPORTED, kind, subject_id, moderator_id)

        try:
            rejection, summary = await self._target_rejection(guild_id, subject_id, moderator_id, kind)
            if rejection is None and not await self._is_sanctioned(guild_id, subject_id, sanction):
                rejection = RejectionReason.NOT_SANCTIONED
        except PlatformError as exc:
            logger.error("[PUNISHMENT ENGINE] Precondition lookup for %s on %s failed: %s", kind.value, subject_id, exc)
            return ModerationResult.failure()
        if rejection is not None:
            return self._reject(rejection, kind, subject_id, moderator_id)

        record = PunishmentRecord(
            subject_id=subject_id,
            moderator_id=moderator_id,
            kind=kind,
            reason=reason,
            duration=None,
            timestamp=self.clock(),
        )
        try:
            await self._apply(guild_id, record)
        except PlatformError as exc:
            logger.error("[PUNISHMENT ENGINE] %s on %s by %s failed: %s", kind.value, subject_id, moderator_id, exc)
            return ModerationResult.failure()

        if sanction in REVERSIBLE_KINDS:
            self.registry.discard_if_present(sanction, subject_id)
            await self.scheduler.cancel(reversal_job_key(sanction, subject_id))
        else:
            self.registry.discard_all(subject_id)
            for reversible in REVERSIBLE_KINDS:
                await self.scheduler.cancel(reversal_job_key(reversible, subject_id))

        await self._commit(record)

        subject_tag = summary.tag if summary else None
        dm_status = await self.notifier.notify_subject(record, self.platform.guild_name(guild_id), subject_tag)
        await self.notifier.audit_punishment(record, subject_tag, await self._tag(moderator_id))

        logger.info("[PUNISHMENT ENGINE] %s on %s by %s", kind.value, subject_id, moderator_id)
        return ModerationResult.ok(record, self._success_message(record, subject_tag), dm_status, subject_tag)

    # ------------------------------------------------------------------
    # Automatic reversal
    # ------------------------------------------------------------------

    async def _schedule_reversal(self, guild_id: GuildID, subject_id: UserID, kind: PunishmentKind, delay_seconds: float) -> None:
        async def _fire() -> None:
            await self.expire(guild_id, subject_id, kind)

        await self.scheduler.schedule(reversal_job_key(kind, subject_id), delay_seconds, _fire)

    async def expire(self, guild_id: GuildID | int | str, subject_id: UserID | int | str, kind: PunishmentKind) -> bool:
        """
        Timer callback undoing a lapsed timeout or mute.

        Does nothing when the subject is no longer registered (for example
        after a manual reversal). Returns True when the reversal ran.
        """
        guild_id, subject_id = GuildID(guild_id), UserID(subject_id)
        if not self.registry.discard_if_present(kind, subject_id):
            logger.debug("[PUNISHMENT ENGINE] %s on %s already lifted; skipping automatic removal", kind.value, subject_id)
            return False

        try:
            if kind is PunishmentKind.TIMEOUT:
                await self.platform.remove_timeout(guild_id, subject_id, "Timeout expired")
            elif kind is PunishmentKind.MUTE:
                await self.platform.remove_mute_role(guild_id, subject_id, "Mute expired")
        except PlatformError as exc:
            logger.warning("[PUNISHMENT ENGINE] Automatic %s removal for %s failed: %s", kind.value, subject_id, exc)

        subject_tag = await self._tag(subject_id)
        await self.notifier.audit_auto_reversal(kind, subject_id, subject_tag, self.platform.guild_name(guild_id))
        logger.info("[PUNISHMENT ENGINE] %s on %s removed automatically", kind.value, subject_id)
        return True

    # ------------------------------------------------------------------
    # Rejoin
    # ------------------------------------------------------------------

    def _active_mute(self, subject_id: UserID) -> PunishmentRecord | None:
        """Latest Mute without a later Unmute, if it is still in force."""
        record = self.store.latest_of_kind(subject_id, (PunishmentKind.MUTE, PunishmentKind.UNMUTE))
        if record is None or record.kind is PunishmentKind.UNMUTE:
            return None
        return record if record.is_active_at(self.clock()) else None

    async def reapply_on_rejoin(self, guild_id: GuildID | int | str, subject_id: UserID | int | str) -> bool:
        """
        Restore a mute that was still in force when the member left.

        Returns True when the mute role was re-added.
        """
        guild_id, subject_id = GuildID(guild_id), UserID(subject_id)
        mute = self._active_mute(subject_id)
        if mute is None:
            return False

        try:
            if not self.platform.mute_role_exists(guild_id):
                logger.warning("[PUNISHMENT ENGINE] Cannot re-mute %s: mute role missing", subject_id)
                return False
            await self.platform.add_mute_role(guild_id, subject_id, REJOIN_REASON)
        except PlatformError as exc:
            logger.warning("[PUNISHMENT ENGINE] Re-muting %s after rejoin failed: %s", subject_id, exc)
            return False

        self.registry.add(PunishmentKind.MUTE, subject_id)
        ends_at = mute.ends_at
        if ends_at is not None:
            await self._schedule_reversal(guild_id, subject_id, PunishmentKind.MUTE, (ends_at - self.clock()).total_seconds())
        logger.info("[PUNISHMENT ENGINE] Re-applied mute on %s after rejoin (ends %s)", subject_id, ends_at or "never")
        return True
