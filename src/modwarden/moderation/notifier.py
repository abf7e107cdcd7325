"""
Audit-channel and direct-message delivery.

Nothing here raises: a missing log channel or a failed send is logged and
reported through the return value. DM outcomes are classified as
``DeliveryStatus`` so callers can tell "the user blocks DMs" from other
failures.
"""

from __future__ import annotations

import discord

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.punishment_datatypes import PunishmentKind, PunishmentRecord
from modwarden.datatypes.result_datatypes import DeliveryStatus
from modwarden.ui import audit_embeds
from modwarden.util.logger import get_logger

logger = get_logger("audit_notifier")

# Discord error code for "Cannot send messages to this user".
DM_BLOCKED_CODE = 50007


class AuditNotifier:
    """
    Sends audit embeds to the configured log channel and embeds to users by DM.

    Args:
        bot: Connected bot instance.
        log_channel_id: Channel receiving audit records, or None to disable them.
    """

    def __init__(self, bot: discord.Bot, log_channel_id: int | None) -> None:
        self.bot = bot
        self.log_channel_id = log_channel_id

    async def _log_channel(self):
        if not self.log_channel_id:
            return None
        channel = self.bot.get_channel(self.log_channel_id)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(self.log_channel_id)
        except discord.DiscordException as exc:
            logger.error("[AUDIT] Log channel %s not found: %s", self.log_channel_id, exc)
            return None

    async def send_audit(self, embed: discord.Embed) -> bool:
        """Post ``embed`` to the log channel. Returns True when it was sent."""
        if not self.log_channel_id:
            logger.debug("[AUDIT] No log channel configured; dropping audit record %r", embed.title)
            return False
        channel = await self._log_channel()
        if channel is None:
            return False
        try:
            await channel.send(embed=embed)
        except discord.DiscordException as exc:
            logger.error("[AUDIT] Failed to send audit record %r: %s", embed.title, exc)
            return False
        return True

    async def send_dm(self, user_id: UserID, embed: discord.Embed) -> DeliveryStatus:
        """DM ``embed`` to the user and classify the outcome."""
        uid = UserID(user_id).to_int()
        try:
            user = self.bot.get_user(uid) or await self.bot.fetch_user(uid)
            await user.send(embed=embed)
        except discord.Forbidden as exc:
            if exc.code != DM_BLOCKED_CODE:
                logger.debug("[AUDIT] DM to %s forbidden (code %s)", user_id, exc.code)
            return DeliveryStatus.BLOCKED
        except discord.DiscordException as exc:
            logger.warning("[AUDIT] Could not send DM to %s: %s", user_id, exc)
            return DeliveryStatus.FAILED
        return DeliveryStatus.DELIVERED

    async def report_delivery_failure(
        self,
        subject_id: UserID,
        subject_tag: str | None,
        status: DeliveryStatus,
        context: str,
    ) -> None:
        logger.info("[AUDIT] DM to %s not delivered (%s): %s", subject_id, status, context)
        await self.send_audit(audit_embeds.dm_failure_embed(subject_tag, subject_id, status, context))

    async def notify_subject(self, record: PunishmentRecord, guild_name: str, subject_tag: str | None) -> DeliveryStatus:
        """DM the subject about ``record``; undelivered notices get their own audit record."""
        status = await self.send_dm(record.subject_id, audit_embeds.subject_notice_embed(record, guild_name))
        if status is not DeliveryStatus.DELIVERED:
            await self.report_delivery_failure(record.subject_id, subject_tag, status, f"{record.kind.value} notice")
        return status

    async def audit_punishment(self, record: PunishmentRecord, subject_tag: str | None, moderator_tag: str | None) -> None:
        await self.send_audit(audit_embeds.punishment_audit_embed(record, subject_tag, moderator_tag))

    async def audit_auto_reversal(
        self,
        kind: PunishmentKind,
        subject_id: UserID,
        subject_tag: str | None,
        guild_name: str,
    ) -> DeliveryStatus:
        """Post the auto-removal audit record and tell the subject, best effort."""
        await self.send_audit(audit_embeds.auto_reversal_audit_embed(kind, subject_id, subject_tag))
        status = await self.send_dm(subject_id, audit_embeds.auto_reversal_notice_embed(kind, guild_name))
        if status is not DeliveryStatus.DELIVERED:
            logger.info("[AUDIT] Auto-removal notice for %s not delivered (%s)", subject_id, status)
        return status
