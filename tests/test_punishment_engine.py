"""Tests for the punishment lifecycle engine."""

import datetime

import pytest

from modwarden.datatypes.command_datatypes import BanCommand, KickCommand, MuteCommand, TimeoutCommand, UnbanCommand
from modwarden.datatypes.discord_datatypes import GuildID, UserID
from modwarden.datatypes.punishment_datatypes import PunishmentKind
from modwarden.datatypes.result_datatypes import EXECUTION_ERROR_MESSAGE, DeliveryStatus, RejectionReason

GUILD = 1
BOT = 999


def _setup_users(platform):
    moderator = platform.add_user(10, "mod")
    subject = platform.add_user(20, "subject")
    return moderator, subject


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fourth_punitive_action_within_window_is_rejected_until_oldest_expires(engine, platform, clock):
    moderator = platform.add_user(10, "mod")
    subjects = [platform.add_user(user_id) for user_id in (20, 21, 22, 23)]

    for subject in subjects[:3]:
        result = await engine.issue(GUILD, subject, moderator, PunishmentKind.KICK, "spam")
        assert result.success
        clock.advance(minutes=10)

    rejected = await engine.issue(GUILD, subjects[3], moderator, PunishmentKind.KICK, "spam")
    assert rejected.rejection is RejectionReason.RATE_LIMITED
    assert rejected.message == RejectionReason.RATE_LIMITED.message
    assert engine.get_history(subjects[3]) == []

    # The first kick now falls just outside the trailing hour.
    clock.advance(minutes=30, milliseconds=1)
    allowed = await engine.issue(GUILD, subjects[3], moderator, PunishmentKind.KICK, "spam")
    assert allowed.success


@pytest.mark.asyncio
async def test_rate_limit_is_checked_before_reason(engine, platform):
    moderator = platform.add_user(10, "mod")
    for user_id in (20, 21, 22):
        subject = platform.add_user(user_id)
        assert (await engine.issue(GUILD, subject, moderator, PunishmentKind.KICK)).success

    target = platform.add_user(23)
    result = await engine.issue(GUILD, target, moderator, PunishmentKind.TIMEOUT, None, 5)

    assert result.rejection is RejectionReason.RATE_LIMITED
    assert engine.check_rate_limit(moderator) is True


@pytest.mark.asyncio
async def test_reversals_do_not_count_towards_rate_limit(engine, platform):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")
    await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "again")

    assert engine.check_rate_limit(moderator) is False


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [PunishmentKind.TIMEOUT, PunishmentKind.MUTE])
async def test_reason_required_for_timeout_and_mute(engine, platform, kind):
    moderator, subject = _setup_users(platform)

    result = await engine.issue(GUILD, subject, moderator, kind, "   ", 5)

    assert result.rejection is RejectionReason.REASON_REQUIRED
    assert platform.calls == []


@pytest.mark.asyncio
async def test_kick_and_ban_do_not_need_a_reason(engine, platform):
    moderator, subject = _setup_users(platform)
    other = platform.add_user(21)

    assert (await engine.issue(GUILD, subject, moderator, PunishmentKind.KICK)).success
    assert (await engine.issue(GUILD, other, moderator, PunishmentKind.BAN)).success


@pytest.mark.asyncio
async def test_self_target_rejected(engine, platform):
    moderator = platform.add_user(10, "mod")

    result = await engine.issue(GUILD, moderator, moderator, PunishmentKind.KICK)

    assert result.rejection is RejectionReason.SELF_TARGET


@pytest.mark.asyncio
async def test_bot_itself_rejected(engine, platform):
    moderator = platform.add_user(10, "mod")

    result = await engine.issue(GUILD, BOT, moderator, PunishmentKind.BAN)

    assert result.rejection is RejectionReason.BOT_SELF_TARGET


@pytest.mark.asyncio
async def test_other_bot_accounts_rejected(engine, platform):
    moderator = platform.add_user(10, "mod")
    other_bot = platform.add_user(40, "helper-bot", is_bot=True)

    result = await engine.issue(GUILD, other_bot, moderator, PunishmentKind.TIMEOUT, "spam", 5)

    assert result.rejection is RejectionReason.BOT_TARGET


@pytest.mark.asyncio
async def test_kick_requires_membership_but_ban_does_not(engine, platform):
    moderator = platform.add_user(10, "mod")
    outsider = platform.add_user(30, member=False)

    kick = await engine.issue(GUILD, outsider, moderator, PunishmentKind.KICK)
    ban = await engine.issue(GUILD, outsider, moderator, PunishmentKind.BAN)

    assert kick.rejection is RejectionReason.NOT_A_MEMBER
    assert ban.success


@pytest.mark.asyncio
async def test_mute_rejected_when_mute_role_missing(engine, platform):
    moderator, subject = _setup_users(platform)
    platform.mute_role = False

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")

    assert result.rejection is RejectionReason.MUTE_ROLE_MISSING


@pytest.mark.asyncio
async def test_missing_permission_rejected(engine, platform):
    moderator, subject = _setup_users(platform)
    platform.moderatable = False

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.KICK)

    assert result.rejection is RejectionReason.MISSING_PERMISSION


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind,duration",
    [
        (PunishmentKind.BAN, 8),
        (PunishmentKind.BAN, -1),
        (PunishmentKind.TIMEOUT, 0),
        (PunishmentKind.TIMEOUT, None),
        (PunishmentKind.MUTE, 0),
    ],
)
async def test_duration_out_of_range(engine, platform, kind, duration):
    moderator, subject = _setup_users(platform)

    result = await engine.issue(GUILD, subject, moderator, kind, "spam", duration)

    assert result.rejection is RejectionReason.DURATION_OUT_OF_RANGE


@pytest.mark.asyncio
async def test_reversal_kinds_cannot_be_issued(engine, platform):
    moderator, subject = _setup_users(platform)

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.UNMUTE, "oops")

    assert result.rejection is RejectionReason.UNSUPPORTED


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_timeout_applies_registers_records_and_schedules(engine, platform, scheduler, notifier, clock):
    moderator, subject = _setup_users(platform)

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 10)

    assert result.success
    assert result.subject_tag == "subject"
    assert platform.calls == [("apply_timeout", subject, clock.now + datetime.timedelta(minutes=10), "spam")]
    assert engine.registry.contains(PunishmentKind.TIMEOUT, subject)
    assert [r.kind for r in engine.get_history(subject)] == [PunishmentKind.TIMEOUT]
    assert scheduler.jobs["timeout:20"][0] == pytest.approx(600.0)
    assert notifier.audits == [result.record]
    assert notifier.notices == [result.record]


@pytest.mark.asyncio
async def test_permanent_mute_is_not_scheduled(engine, platform, scheduler):
    moderator, subject = _setup_users(platform)

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")

    assert result.success
    assert result.record.duration is None
    assert "permanently" in result.message
    assert scheduler.jobs == {}
    assert engine.registry.contains(PunishmentKind.MUTE, subject)


@pytest.mark.asyncio
async def test_already_timed_out_subject_is_rejected_without_mutation(engine, platform):
    moderator, subject = _setup_users(platform)
    first = await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 10)
    assert first.success

    second = await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam again", 10)

    assert second.rejection is RejectionReason.ALREADY_SANCTIONED
    assert len(engine.get_history(subject)) == 1
    assert engine.registry.members(PunishmentKind.TIMEOUT) == {subject}
    assert [call[0] for call in platform.calls] == ["apply_timeout"]


@pytest.mark.asyncio
async def test_platform_reported_timeout_counts_as_already_sanctioned(engine, platform):
    moderator, subject = _setup_users(platform)
    platform.timed_out.add(subject)

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 10)

    assert result.rejection is RejectionReason.ALREADY_SANCTIONED
    assert not engine.registry.contains(PunishmentKind.TIMEOUT, subject)


@pytest.mark.asyncio
async def test_mute_role_removed_by_hand_allows_muting_again(engine, platform):
    moderator, subject = _setup_users(platform)
    first = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")
    assert first.success
    platform.muted.discard(subject)

    again = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam again")

    assert again.success
    assert subject in platform.muted
    assert engine.registry.members(PunishmentKind.MUTE) == {subject}
    assert [r.kind for r in engine.get_history(subject)] == [PunishmentKind.MUTE, PunishmentKind.MUTE]


@pytest.mark.asyncio
async def test_stale_mute_entry_cancels_its_pending_expiry(engine, platform, scheduler):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 3)
    assert scheduler.is_pending("mute:20")
    platform.muted.discard(subject)

    again = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam again")

    assert again.success
    assert "mute:20" in scheduler.cancelled
    assert not scheduler.is_pending("mute:20")
    assert engine.registry.contains(PunishmentKind.MUTE, subject)


@pytest.mark.asyncio
async def test_platform_failure_leaves_state_untouched(engine, platform, scheduler):
    moderator, subject = _setup_users(platform)
    platform.fail_on.add("apply_timeout")

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 10)

    assert result.success is False
    assert result.rejection is None
    assert result.message == EXECUTION_ERROR_MESSAGE
    assert engine.get_history(subject) == []
    assert not engine.registry.contains(PunishmentKind.TIMEOUT, subject)
    assert engine.rate_limiter.recent_count(moderator, 10**13) == 0
    assert scheduler.jobs == {}


@pytest.mark.asyncio
async def test_ban_notifies_before_acting_and_clears_active_sanctions(engine, platform, scheduler, events):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 2)
    assert scheduler.is_pending("mute:20")
    events.clear()

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.BAN, "raiding", 2)

    assert result.success
    assert events == ["notify_subject", "ban"]
    assert platform.calls[-1] == ("ban", subject, "raiding", 2 * 86400)
    assert not engine.registry.contains(PunishmentKind.MUTE, subject)
    assert not scheduler.is_pending("mute:20")
    assert "timeout:20" in scheduler.cancelled


@pytest.mark.asyncio
async def test_kick_notice_still_sent_when_kick_fails(engine, platform, notifier):
    moderator, subject = _setup_users(platform)
    platform.fail_on.add("kick")

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.KICK, "bye")

    assert result.message == EXECUTION_ERROR_MESSAGE
    assert len(notifier.notices) == 1
    assert engine.get_history(subject) == []


@pytest.mark.asyncio
async def test_blocked_dm_does_not_roll_back_the_action(engine, platform, notifier):
    moderator, subject = _setup_users(platform)
    notifier.dm_status = DeliveryStatus.BLOCKED

    result = await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 1)

    assert result.success
    assert result.dm_status is DeliveryStatus.BLOCKED
    assert subject in platform.muted


# ---------------------------------------------------------------------------
# Reverse
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unmute_rejected_when_not_muted(engine, platform):
    moderator, subject = _setup_users(platform)

    result = await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE)

    assert result.rejection is RejectionReason.NOT_SANCTIONED
    assert engine.get_history(subject) == []


@pytest.mark.asyncio
async def test_untimeout_checks_platform_state(engine, platform):
    moderator, subject = _setup_users(platform)
    # Timed out by someone else: not in the registry, but Discord reports it.
    platform.timed_out.add(subject)

    result = await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNTIMEOUT, "appealed")

    assert result.success
    assert subject not in platform.timed_out
    assert [r.kind for r in engine.get_history(subject)] == [PunishmentKind.UNTIMEOUT]


@pytest.mark.asyncio
async def test_unban_works_for_non_members(engine, platform, scheduler):
    moderator = platform.add_user(10, "mod")
    subject = platform.add_user(30, member=False)
    platform.banned.add(subject)

    result = await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNBAN)

    assert result.success
    assert subject not in platform.banned
    assert {"timeout:30", "mute:30"} <= set(scheduler.cancelled)


@pytest.mark.asyncio
async def test_reverse_platform_failure_keeps_registry(engine, platform):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 1)
    platform.fail_on.add("remove_mute_role")

    result = await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE)

    assert result.message == EXECUTION_ERROR_MESSAGE
    assert engine.registry.contains(PunishmentKind.MUTE, subject)
    assert len(engine.get_history(subject)) == 1


# ---------------------------------------------------------------------------
# Automatic reversal
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_manual_unmute_before_expiry_makes_timer_a_noop(engine, platform, scheduler, notifier):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 3)
    _, pending_callback = scheduler.jobs["mute:20"]

    unmute = await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE, "appealed")
    assert unmute.success
    assert "mute:20" in scheduler.cancelled
    assert not scheduler.is_pending("mute:20")

    # The timer fires anyway, as if it had already been dequeued.
    await pending_callback()

    removals = [call for call in platform.calls if call[0] == "remove_mute_role"]
    assert len(removals) == 1
    assert notifier.auto_reversals == []
    assert [r.kind for r in engine.get_history(subject)] == [PunishmentKind.MUTE, PunishmentKind.UNMUTE]


@pytest.mark.asyncio
async def test_expired_mute_is_removed_without_history_entry(engine, platform, scheduler, notifier, clock):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 3)
    clock.advance(days=3)

    await scheduler.fire("mute:20")

    assert subject not in platform.muted
    assert not engine.registry.contains(PunishmentKind.MUTE, subject)
    assert notifier.auto_reversals == [(PunishmentKind.MUTE, subject)]
    assert len(engine.get_history(subject)) == 1


@pytest.mark.asyncio
async def test_expire_tolerates_platform_failure(engine, platform, notifier):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 5)
    platform.fail_on.add("remove_timeout")

    fired = await engine.expire(GUILD, subject, PunishmentKind.TIMEOUT)

    assert fired is True
    assert not engine.registry.contains(PunishmentKind.TIMEOUT, subject)
    assert notifier.auto_reversals == [(PunishmentKind.TIMEOUT, subject)]


@pytest.mark.asyncio
async def test_second_expiry_for_same_subject_is_noop(engine, platform):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "spam", 5)

    assert await engine.expire(GUILD, subject, PunishmentKind.TIMEOUT) is True
    assert await engine.expire(GUILD, subject, PunishmentKind.TIMEOUT) is False


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_history_only_grows_by_successful_calls(engine, platform):
    moderator, subject = _setup_users(platform)

    outcomes = [
        await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 1),
        await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 1),  # already muted
        await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE),
        await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNTIMEOUT),  # not timed out
        await engine.issue(GUILD, subject, moderator, PunishmentKind.TIMEOUT, "again", 5),
    ]
    successes = [outcome for outcome in outcomes if outcome.success]
    first_record = successes[0].record

    history = engine.get_history(subject)

    assert len(history) == len(successes) == 3
    assert history[0] is first_record
    assert [r.kind for r in history] == [PunishmentKind.MUTE, PunishmentKind.UNMUTE, PunishmentKind.TIMEOUT]

    history.clear()
    assert len(engine.get_history(subject)) == 3


@pytest.mark.asyncio
async def test_record_punishment_counts_only_punitive_kinds(engine):
    await engine.record_punishment(20, 10, PunishmentKind.KICK, "manual")
    await engine.record_punishment(20, 10, PunishmentKind.UNBAN)

    assert [r.kind for r in engine.get_history(20)] == [PunishmentKind.KICK, PunishmentKind.UNBAN]
    assert engine.rate_limiter.recent_count(10, engine._now_ms()) == 1


# ---------------------------------------------------------------------------
# Rejoin
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rejoin_during_active_mute_reapplies_role(engine, platform, scheduler, clock):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 3)
    # Member leaves: Discord drops their roles.
    platform.muted.discard(subject)
    clock.advance(days=1)

    reapplied = await engine.reapply_on_rejoin(GUILD, subject)

    assert reapplied is True
    assert subject in platform.muted
    assert engine.registry.contains(PunishmentKind.MUTE, subject)
    assert scheduler.jobs["mute:20"][0] == pytest.approx(2 * 86400)
    assert len(engine.get_history(subject)) == 1


@pytest.mark.asyncio
async def test_rejoin_after_mute_end_does_not_remute(engine, platform, clock):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam", 3)
    platform.muted.discard(subject)
    clock.advance(days=3)

    assert await engine.reapply_on_rejoin(GUILD, subject) is False
    assert subject not in platform.muted


@pytest.mark.asyncio
async def test_rejoin_after_unmute_does_not_remute(engine, platform):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")
    await engine.reverse(GUILD, subject, moderator, PunishmentKind.UNMUTE)

    assert await engine.reapply_on_rejoin(GUILD, subject) is False


@pytest.mark.asyncio
async def test_rejoin_with_permanent_mute_reapplies_without_timer(engine, platform, scheduler, clock):
    moderator, subject = _setup_users(platform)
    await engine.issue(GUILD, subject, moderator, PunishmentKind.MUTE, "spam")
    platform.muted.discard(subject)
    clock.advance(days=365)

    assert await engine.reapply_on_rejoin(GUILD, subject) is True
    assert scheduler.jobs == {}


@pytest.mark.asyncio
async def test_rejoin_without_history_is_noop(engine, platform):
    subject = platform.add_user(20)

    assert await engine.reapply_on_rejoin(GUILD, subject) is False
    assert platform.calls == []


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_execute_dispatches_typed_commands(engine, platform):
    moderator, subject = _setup_users(platform)
    other = platform.add_user(21)

    timeout = await engine.execute(TimeoutCommand(GuildID(GUILD), subject, moderator, "spam", 15))
    mute = await engine.execute(MuteCommand(GuildID(GUILD), other, moderator, "spam", 2))
    ban = await engine.execute(BanCommand(GuildID(GUILD), UserID(22), moderator, None, None))

    assert timeout.record.kind is PunishmentKind.TIMEOUT
    assert timeout.record.duration == 15
    assert mute.record.kind is PunishmentKind.MUTE
    assert ban.rejection is RejectionReason.NOT_A_MEMBER  # unknown user

    platform.add_user(22, member=False)
    platform.banned.add(UserID(22))
    unban = await engine.execute(UnbanCommand(GuildID(GUILD), UserID(22), moderator))
    assert unban.record.kind is PunishmentKind.UNBAN


@pytest.mark.asyncio
async def test_execute_rejects_unknown_command(engine):
    with pytest.raises(TypeError):
        await engine.execute(object())


@pytest.mark.asyncio
async def test_kick_command_records_reason(engine, platform):
    moderator, subject = _setup_users(platform)

    result = await engine.execute(KickCommand(GuildID(GUILD), subject, moderator, "  bye  "))

    assert result.record.reason == "bye"
    assert subject not in platform.members
