"""Voice presence watch.

When a member enters the watched voice channel and stays for the configured
dwell time, a notification pinging the configured role is posted. Leaving
before the dwell time cancels it; leaving afterwards deletes the notification.
"""

from typing import Dict

import discord
from discord.ext import commands

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.ui import audit_embeds
from modwarden.util.logger import get_logger

logger = get_logger("voice_listener_cog")


def voice_job_key(user_id) -> str:
    return f"voice:{UserID(user_id)}"


class VoiceListenerCog(commands.Cog):
    """Tracks members entering and leaving the watched voice channel."""

    def __init__(self, discord_bot_instance, services):
        self.bot = discord_bot_instance
        self.services = services
        self._notifications: Dict[UserID, discord.Message] = {}

    @staticmethod
    def _channel_id(state: discord.VoiceState | None) -> int | None:
        channel = getattr(state, "channel", None)
        return channel.id if channel is not None else None

    @commands.Cog.listener(name='on_voice_state_update')
    async def on_voice_state_update(self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        watched = self.services.config.voice_watch_channel_id
        if watched is None or member.bot:
            return

        before_id, after_id = self._channel_id(before), self._channel_id(after)
        if before_id == after_id:
            return

        if after_id == watched:
            await self.services.scheduler.schedule(
                voice_job_key(member.id),
                self.services.config.voice_dwell_seconds,
                lambda: self._notify(member),
            )
        elif before_id == watched:
            await self.services.scheduler.cancel(voice_job_key(member.id))
            await self._retract(UserID(member.id))

    async def _notify(self, member: discord.Member) -> None:
        channel_id = self.services.config.voice_notification_channel_id
        if channel_id is None:
            return
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            logger.warning("Voice notification channel %s not found", channel_id)
            return

        role_id = self.services.config.voice_ping_role_id
        content = f"<@&{role_id}>" if role_id else None
        embed = audit_embeds.voice_presence_embed(UserID(member.id), self.services.config.voice_dwell_seconds)
        try:
            message = await channel.send(content=content, embed=embed)
        except discord.DiscordException as exc:
            logger.error("Failed to post voice notification for %s: %s", member, exc)
            return
        self._notifications[UserID(member.id)] = message

    async def _retract(self, user_id: UserID) -> None:
        message = self._notifications.pop(user_id, None)
        if message is None:
            return
        try:
            await message.delete()
        except discord.DiscordException as exc:
            logger.warning("Could not delete voice notification for %s: %s", user_id, exc)


def setup(discord_bot_instance, services):
    """Register the VoiceListenerCog with the bot."""
    discord_bot_instance.add_cog(VoiceListenerCog(discord_bot_instance, services))
