"""
Pytest configuration and fixtures for modwarden tests.
"""

import datetime
import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modwarden.database.db_connection import ConnectionManager  # noqa: E402
from modwarden.database.punishment_store import PunishmentStore  # noqa: E402
from modwarden.datatypes.discord_datatypes import UserID  # noqa: E402
from modwarden.datatypes.result_datatypes import DeliveryStatus  # noqa: E402
from modwarden.moderation.platform import PlatformError, UserSummary  # noqa: E402
from modwarden.moderation.punishment_engine import PunishmentLifecycleEngine  # noqa: E402
from modwarden.moderation.rate_limiter import PunishmentRateLimiter  # noqa: E402
from modwarden.moderation.sanction_registry import ActiveSanctionRegistry  # noqa: E402

BOT_ID = 999
GUILD_ID = 1


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime.datetime | None = None) -> None:
        self.now = start or datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


class FakePlatform:
    """In-memory stand-in for DiscordModerationPlatform."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.self_id = UserID(BOT_ID)
        self.users: dict[UserID, UserSummary] = {}
        self.members: set[UserID] = set()
        self.timed_out: set[UserID] = set()
        self.muted: set[UserID] = set()
        self.banned: set[UserID] = set()
        self.mute_role = True
        self.moderatable = True
        self.fail_on: set[str] = set()
        self.calls: list[tuple] = []
        self.invite_listings: list = []
        self.vanity: str | None = None

    def add_user(self, user_id: int, tag: str | None = None, is_bot: bool = False, member: bool = True) -> UserID:
        uid = UserID(user_id)
        self.users[uid] = UserSummary(id=uid, tag=tag or f"user{user_id}", is_bot=is_bot)
        if member:
            self.members.add(uid)
        return uid

    def _act(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        self.events.append(name)
        if name in self.fail_on:
            raise PlatformError(f"{name} failed")

    def guild_name(self, guild_id) -> str:
        return "Test Guild"

    async def fetch_user(self, user_id):
        return self.users.get(UserID(user_id))

    async def is_member(self, guild_id, user_id) -> bool:
        return UserID(user_id) in self.members

    async def can_moderate(self, guild_id, user_id, kind) -> bool:
        return self.moderatable

    async def is_timed_out(self, guild_id, user_id) -> bool:
        return UserID(user_id) in self.timed_out

    def mute_role_exists(self, guild_id) -> bool:
        return self.mute_role

    async def has_mute_role(self, guild_id, user_id) -> bool:
        return UserID(user_id) in self.muted

    async def is_banned(self, guild_id, user_id) -> bool:
        return UserID(user_id) in self.banned

    async def apply_timeout(self, guild_id, user_id, until, reason) -> None:
        self._act("apply_timeout", UserID(user_id), until, reason)
        self.timed_out.add(UserID(user_id))

    async def remove_timeout(self, guild_id, user_id, reason) -> None:
        self._act("remove_timeout", UserID(user_id), reason)
        self.timed_out.discard(UserID(user_id))

    async def add_mute_role(self, guild_id, user_id, reason) -> None:
        self._act("add_mute_role", UserID(user_id), reason)
        self.muted.add(UserID(user_id))

    async def remove_mute_role(self, guild_id, user_id, reason) -> None:
        self._act("remove_mute_role", UserID(user_id), reason)
        self.muted.discard(UserID(user_id))

    async def ban(self, guild_id, user_id, reason, delete_message_seconds=0) -> None:
        self._act("ban", UserID(user_id), reason, delete_message_seconds)
        self.banned.add(UserID(user_id))
        self.members.discard(UserID(user_id))

    async def unban(self, guild_id, user_id, reason) -> None:
        self._act("unban", UserID(user_id), reason)
        self.banned.discard(UserID(user_id))

    async def kick(self, guild_id, user_id, reason) -> None:
        self._act("kick", UserID(user_id), reason)
        self.members.discard(UserID(user_id))

    async def fetch_invites(self, guild_id):
        self.calls.append(("fetch_invites", guild_id))
        if "fetch_invites" in self.fail_on:
            raise PlatformError("fetch_invites failed")
        if not self.invite_listings:
            return {}
        return dict(self.invite_listings.pop(0))

    async def vanity_code(self, guild_id):
        return self.vanity


class FakeNotifier:
    """Records every notification instead of talking to Discord."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.dm_status = DeliveryStatus.DELIVERED
        self.notices: list = []
        self.audits: list = []
        self.auto_reversals: list = []
        self.sent_audits: list = []
        self.sent_dms: list = []

    async def notify_subject(self, record, guild_name, subject_tag):
        self.events.append("notify_subject")
        self.notices.append(record)
        return self.dm_status

    async def audit_punishment(self, record, subject_tag, moderator_tag):
        self.audits.append(record)

    async def audit_auto_reversal(self, kind, subject_id, subject_tag, guild_name):
        self.auto_reversals.append((kind, subject_id))
        return self.dm_status

    async def send_audit(self, embed):
        self.sent_audits.append(embed)
        return True

    async def send_dm(self, user_id, embed):
        self.sent_dms.append((user_id, embed))
        return self.dm_status


class FakeScheduler:
    """Keeps scheduled callbacks so tests can fire them by hand."""

    def __init__(self) -> None:
        self.jobs: dict = {}
        self.cancelled: list[str] = []

    def is_pending(self, key: str) -> bool:
        return key in self.jobs

    async def schedule(self, key, delay_seconds, callback) -> None:
        self.jobs[key] = (delay_seconds, callback)

    async def cancel(self, key) -> bool:
        self.cancelled.append(key)
        return self.jobs.pop(key, None) is not None

    async def fire(self, key):
        _, callback = self.jobs.pop(key)
        return await callback()

    async def shutdown(self) -> None:
        self.jobs.clear()


@pytest.fixture()
def events() -> list:
    return []


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def platform(events) -> FakePlatform:
    return FakePlatform(events)


@pytest.fixture()
def notifier(events) -> FakeNotifier:
    return FakeNotifier(events)


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def store(tmp_path) -> PunishmentStore:
    # Never opened: records stay in memory and saves are skipped.
    return PunishmentStore(ConnectionManager(), tmp_path / "punishments.db")


@pytest.fixture()
def engine(platform, store, scheduler, notifier, clock) -> PunishmentLifecycleEngine:
    return PunishmentLifecycleEngine(
        platform=platform,
        store=store,
        registry=ActiveSanctionRegistry(),
        rate_limiter=PunishmentRateLimiter(),
        scheduler=scheduler,
        notifier=notifier,
        clock=clock,
    )
