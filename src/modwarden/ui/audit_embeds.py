"""
Embed builders for audit-channel records, direct messages and command replies.

Everything here is display only: builders take plain values (tags, IDs,
records) and return a ``discord.Embed``. No Discord calls are made.
"""

from __future__ import annotations

import datetime
from typing import Iterable, Sequence

import discord

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.invite_datatypes import InviteInfo, JoinAttribution
from modwarden.datatypes.punishment_datatypes import PunishmentKind, PunishmentRecord, describe_duration
from modwarden.datatypes.result_datatypes import DeliveryStatus

FOOTER_TEXT = "Server Log"
NO_REASON = "No reason provided"

# Emoji, colour and past-tense label per kind.
KIND_DETAILS = {
    PunishmentKind.TIMEOUT:   ("⏱️", discord.Color.orange(), "timed out"),
    PunishmentKind.UNTIMEOUT: ("✅", discord.Color.green(), "removed from timeout"),
    PunishmentKind.MUTE:      ("🔇", discord.Color.orange(), "muted"),
    PunishmentKind.UNMUTE:    ("🔊", discord.Color.green(), "unmuted"),
    PunishmentKind.BAN:       ("🔨", discord.Color.dark_red(), "banned"),
    PunishmentKind.UNBAN:     ("🔓", discord.Color.green(), "unbanned"),
    PunishmentKind.KICK:      ("👢", discord.Color.red(), "kicked"),
}

# How many history entries fit in one embed (Discord allows 25 fields).
HISTORY_LIMIT = 25


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def discord_timestamp(moment: datetime.datetime, style: str = "f") -> str:
    """Format ``moment`` as a Discord timestamp markup string."""
    return f"<t:{int(moment.timestamp())}:{style}>"


def _who(tag: str | None, user_id: UserID | int | str) -> str:
    return f"{tag} ({user_id})" if tag else str(user_id)


def _base_embed(title: str, color: discord.Color, description: str | None = None) -> discord.Embed:
    embed = discord.Embed(title=title, description=description, color=color, timestamp=_now())
    embed.set_footer(text=FOOTER_TEXT)
    return embed


# ---------------------------------------------------------------------------
# Moderation actions
# ---------------------------------------------------------------------------

def punishment_audit_embed(record: PunishmentRecord, subject_tag: str | None, moderator_tag: str | None) -> discord.Embed:
    """Audit-channel record of a successful Issue or Reverse."""
    emoji, color, _ = KIND_DETAILS[record.kind]
    embed = _base_embed(f"{emoji} {record.kind.value}", color)
    embed.add_field(name="User", value=_who(subject_tag, record.subject_id), inline=False)
    embed.add_field(name="Moderator", value=_who(moderator_tag, record.moderator_id), inline=False)
    embed.add_field(name="Duration", value=describe_duration(record.kind, record.duration), inline=True)
    embed.add_field(name="Start Time", value=discord_timestamp(record.timestamp), inline=True)
    if record.kind in (PunishmentKind.TIMEOUT, PunishmentKind.MUTE):
        ends_at = record.ends_at
        embed.add_field(name="End Time", value=discord_timestamp(ends_at) if ends_at else "Never", inline=True)
    embed.add_field(name="Reason", value=record.reason or NO_REASON, inline=False)
    return embed


def punishment_response_embed(record: PunishmentRecord, subject_tag: str | None) -> discord.Embed:
    """Confirmation shown to the moderator who ran the command."""
    emoji, _, label = KIND_DETAILS[record.kind]
    embed = discord.Embed(
        description=f"{emoji} **{subject_tag or record.subject_id}** has been {label}.",
        color=discord.Color.green(),
        timestamp=_now(),
    )
    embed.add_field(name="User", value=_who(subject_tag, record.subject_id), inline=False)
    if record.kind in (PunishmentKind.TIMEOUT, PunishmentKind.MUTE, PunishmentKind.BAN):
        embed.add_field(name="Duration", value=describe_duration(record.kind, record.duration), inline=True)
    if record.reason:
        embed.add_field(name="Reason", value=record.reason, inline=False)
    return embed


def subject_notice_embed(record: PunishmentRecord, guild_name: str) -> discord.Embed:
    """Direct message telling the subject what happened to them."""
    emoji, color, label = KIND_DETAILS[record.kind]
    description = f"You have been {label} in **{guild_name}**."
    if record.kind in (PunishmentKind.TIMEOUT, PunishmentKind.MUTE, PunishmentKind.BAN):
        duration = describe_duration(record.kind, record.duration)
        description += f"\nDuration: {duration.lower() if record.duration is None else duration}"
    embed = discord.Embed(title=f"{emoji} {record.kind.value}", description=description, color=color, timestamp=_now())
    if record.reason:
        embed.add_field(name="Reason", value=record.reason, inline=False)
    return embed


def auto_reversal_audit_embed(kind: PunishmentKind, subject_id: UserID, subject_tag: str | None) -> discord.Embed:
    """Audit record for a sanction that lapsed and was removed automatically."""
    embed = _base_embed(f"⌛ {kind.value} Removed Automatically", discord.Color.green())
    embed.add_field(name="User", value=_who(subject_tag, subject_id), inline=False)
    return embed


def auto_reversal_notice_embed(kind: PunishmentKind, guild_name: str) -> discord.Embed:
    return discord.Embed(
        title=f"⌛ {kind.value} Lifted",
        description=f"Your {kind.value.lower()} in **{guild_name}** has expired and was removed automatically.",
        color=discord.Color.green(),
        timestamp=_now(),
    )


def dm_failure_embed(subject_tag: str | None, subject_id: UserID, status: DeliveryStatus, context: str) -> discord.Embed:
    """Audit record for a direct message that could not be delivered."""
    reason = "The user does not accept direct messages." if status is DeliveryStatus.BLOCKED else "Delivery failed."
    embed = _base_embed("✉️ DM Delivery Failed", discord.Color.light_grey(), reason)
    embed.add_field(name="User", value=_who(subject_tag, subject_id), inline=False)
    embed.add_field(name="Context", value=context, inline=False)
    embed.add_field(name="Status", value=str(status), inline=True)
    return embed


def history_embed(subject_tag: str, records: Sequence[PunishmentRecord]) -> discord.Embed:
    """Render a subject's punishment history, most recent entries last."""
    embed = discord.Embed(
        title=f"Punishment History for {subject_tag}",
        color=discord.Color.blurple(),
        timestamp=_now(),
    )
    if not records:
        embed.description = f"{subject_tag} has no punishment history."
        return embed

    shown = list(records)[-HISTORY_LIMIT:]
    if len(shown) < len(records):
        embed.description = f"Showing the latest {len(shown)} of {len(records)} entries."
    else:
        embed.description = f"Here is the punishment history for {subject_tag}:"

    for record in shown:
        embed.add_field(
            name=f"{record.kind.value} • {discord_timestamp(record.timestamp, 'd')}",
            value=(
                f"Moderator: <@{record.moderator_id}>\n"
                f"Reason: {record.reason or NO_REASON}\n"
                f"Duration: {describe_duration(record.kind, record.duration)}"
            ),
            inline=False,
        )
    return embed


# ---------------------------------------------------------------------------
# Direct-message relay and channel tools
# ---------------------------------------------------------------------------

def relay_message_embed(message: str, guild_name: str) -> discord.Embed:
    embed = discord.Embed(description=message, color=discord.Color.blurple(), timestamp=_now())
    embed.set_footer(text=f"Message from the staff of {guild_name}")
    return embed


def relay_audit_embed(recipient_tag: str, recipient_id: UserID, moderator_tag: str, message: str) -> discord.Embed:
    embed = _base_embed("✉️ Direct Message Sent", discord.Color.blurple())
    embed.add_field(name="Recipient", value=_who(recipient_tag, recipient_id), inline=False)
    embed.add_field(name="Moderator", value=moderator_tag, inline=False)
    embed.add_field(name="Message", value=message[:1024], inline=False)
    return embed


def channel_action_embed(
    title: str,
    moderator_tag: str,
    channel_name: str,
    reason: str | None = None,
    extra_fields: Iterable[tuple[str, str]] = (),
) -> discord.Embed:
    """Audit record for a channel tool (clear, slowmode, lock, unlock)."""
    embed = _base_embed(title, discord.Color.blue())
    embed.add_field(name="Channel", value=f"#{channel_name}", inline=True)
    embed.add_field(name="Moderator", value=moderator_tag, inline=True)
    for name, value in extra_fields:
        embed.add_field(name=name, value=value, inline=True)
    if reason:
        embed.add_field(name="Reason", value=reason, inline=False)
    return embed


# ---------------------------------------------------------------------------
# Invites and membership
# ---------------------------------------------------------------------------

def invite_created_embed(invite: InviteInfo) -> discord.Embed:
    embed = _base_embed("📨 Invite Created", discord.Color.green())
    embed.add_field(name="Channel", value=f"#{invite.channel_name}" if invite.channel_name else "Unknown", inline=True)
    embed.add_field(name="Inviter", value=_who(invite.inviter_tag, invite.inviter_id) if invite.inviter_id else "Unknown", inline=True)
    embed.add_field(name="Code", value=invite.code, inline=True)
    embed.add_field(name="URL", value=invite.url, inline=False)
    embed.add_field(name="Uses", value=f"{invite.uses}/{invite.max_uses or '∞'}", inline=True)
    max_age = f"{invite.max_age // 60} minutes" if invite.max_age else "Never expires"
    embed.add_field(name="Max Age", value=max_age, inline=True)
    embed.add_field(name="Temporary", value="Yes" if invite.temporary else "No", inline=True)
    return embed


def invite_deleted_embed(code: str, channel_name: str | None) -> discord.Embed:
    embed = _base_embed("🗑️ Invite Deleted", discord.Color.red())
    embed.add_field(name="Channel", value=f"#{channel_name}" if channel_name else "Unknown", inline=True)
    embed.add_field(name="Code", value=code, inline=True)
    return embed


def _attribution_fields(embed: discord.Embed, attribution: JoinAttribution) -> None:
    embed.add_field(name="Invite Code", value=attribution.invite_code, inline=True)
    inviter = _who(attribution.inviter_tag, attribution.inviter_id) if attribution.inviter_id else attribution.inviter_tag
    embed.add_field(name="Inviter", value=inviter, inline=True)


def member_join_embed(
    member_tag: str,
    member_id: UserID,
    created_at: datetime.datetime,
    joined_at: datetime.datetime | None,
    attribution: JoinAttribution,
    avatar_url: str | None = None,
) -> discord.Embed:
    embed = _base_embed("📥 Member Joined", discord.Color.green())
    embed.add_field(name="User", value=_who(member_tag, member_id), inline=False)
    embed.add_field(name="Account Created", value=discord_timestamp(created_at), inline=True)
    if joined_at is not None:
        embed.add_field(name="Joined", value=discord_timestamp(joined_at), inline=True)
    _attribution_fields(embed, attribution)
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    return embed


def member_leave_embed(member_tag: str, member_id: UserID, attribution: JoinAttribution, avatar_url: str | None = None) -> discord.Embed:
    embed = _base_embed("📤 Member Left", discord.Color.red())
    embed.add_field(name="User", value=_who(member_tag, member_id), inline=False)
    _attribution_fields(embed, attribution)
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    return embed


def welcome_embed(guild_name: str) -> discord.Embed:
    return discord.Embed(
        title=f"Welcome to {guild_name}!",
        description=(
            "We're glad to have you here. Please read the rules and pick your roles "
            "to get access to every part of the server."
        ),
        color=discord.Color.blurple(),
        timestamp=_now(),
    )


def welcome_blocked_embed(member_tag: str, member_id: UserID) -> discord.Embed:
    return _base_embed(
        "Welcome DM Blocked",
        discord.Color.light_grey(),
        f"The welcome message to {_who(member_tag, member_id)} was not delivered because of the user's privacy settings.",
    )


def voice_presence_embed(user_id: UserID, dwell_seconds: float) -> discord.Embed:
    return discord.Embed(
        description=f"<@{user_id}> has been in the voice channel for more than {int(dwell_seconds)} seconds.",
        color=discord.Color.blurple(),
        timestamp=_now(),
    )


# ---------------------------------------------------------------------------
# Utility commands
# ---------------------------------------------------------------------------

def status_embed(uptime: datetime.timedelta, latency_ms: float, guild_count: int) -> discord.Embed:
    total = int(uptime.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    embed = discord.Embed(title="Bot Status", color=discord.Color.green(), timestamp=_now())
    embed.add_field(name="Uptime", value=f"{hours}h {minutes}m {seconds}s", inline=True)
    embed.add_field(name="Latency", value=f"{latency_ms:.0f} ms", inline=True)
    embed.add_field(name="Servers", value=str(guild_count), inline=True)
    return embed


def help_embed(commands: Iterable[tuple[str, str]]) -> discord.Embed:
    embed = discord.Embed(
        title="List of Commands",
        description="Here are all the commands available for this bot:",
        color=discord.Color.blurple(),
    )
    for name, description in commands:
        embed.add_field(name=f"/{name}", value=description or "-", inline=False)
    return embed
