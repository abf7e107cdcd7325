"""
Channel tools cog: message clearing, slowmode, channel lock/unlock and the
staff direct-message relay.

Every successful action posts an audit record to the log channel.
"""

import discord
from discord import Option
from discord.ext import commands

from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.result_datatypes import EXECUTION_ERROR_MESSAGE, DeliveryStatus, RejectionReason
from modwarden.ui import audit_embeds
from modwarden.util.discord_utils import has_permissions, send_followup_safe
from modwarden.util.logger import get_logger

logger = get_logger("channel_cog")

NO_PERMISSION_MESSAGE = "You do not have permission to use this command."
MAX_CLEAR = 100
MAX_SLOWMODE_SECONDS = 21600


class ChannelCog(commands.Cog):
    """Channel management commands."""

    def __init__(self, discord_bot_instance, services):
        self.bot = discord_bot_instance
        self.services = services
        logger.info("Channel cog loaded")

    def _lock_role(self, guild: discord.Guild) -> discord.Role:
        """Role whose Send Messages permission lock/unlock toggles; @everyone if unset."""
        role_id = self.services.config.lock_role_id
        role = guild.get_role(role_id) if role_id else None
        return role or guild.default_role

    @commands.slash_command(name="clear", description="Delete recent messages in this channel.")
    async def clear(
        self,
        ctx: discord.ApplicationContext,
        number: Option(int, "Number of messages to clear (1-100).", min_value=1, max_value=MAX_CLEAR, required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_messages=True):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return
        if not 1 <= number <= MAX_CLEAR:
            await send_followup_safe(ctx, f"Please choose a number between 1 and {MAX_CLEAR}.")
            return

        try:
            deleted = await ctx.channel.purge(limit=number)
        except discord.DiscordException as exc:
            logger.error("Failed to clear messages in %s: %s", ctx.channel, exc)
            await send_followup_safe(ctx, EXECUTION_ERROR_MESSAGE)
            return

        await send_followup_safe(ctx, f"Deleted {len(deleted)} messages.")
        await self.services.notifier.send_audit(
            audit_embeds.channel_action_embed(
                "🧹 Messages Cleared",
                str(ctx.author),
                ctx.channel.name,
                extra_fields=[("Deleted", str(len(deleted)))],
            )
        )

    @commands.slash_command(name="slowmode", description="Set slowmode for this channel.")
    async def slowmode(
        self,
        ctx: discord.ApplicationContext,
        duration: Option(int, "Slowmode in seconds (0 to disable).", min_value=0, max_value=MAX_SLOWMODE_SECONDS, required=True),  # type: ignore
        reason: Option(str, "Reason for slowmode.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_channels=True):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return
        if self.services.engine.check_rate_limit(UserID(ctx.author.id)):
            await send_followup_safe(ctx, RejectionReason.RATE_LIMITED.message)
            return
        if not 0 <= duration <= MAX_SLOWMODE_SECONDS:
            await send_followup_safe(ctx, RejectionReason.DURATION_OUT_OF_RANGE.message)
            return

        try:
            await ctx.channel.edit(slowmode_delay=duration, reason=reason)
        except discord.DiscordException as exc:
            logger.error("Failed to set slowmode in %s: %s", ctx.channel, exc)
            await send_followup_safe(ctx, EXECUTION_ERROR_MESSAGE)
            return

        label = "disabled" if duration == 0 else f"set to {duration} seconds"
        await send_followup_safe(ctx, f"Slowmode {label}.")
        await self.services.notifier.send_audit(
            audit_embeds.channel_action_embed(
                "🐢 Slowmode Changed",
                str(ctx.author),
                ctx.channel.name,
                reason=reason,
                extra_fields=[("Slowmode", f"{duration} seconds")],
            )
        )

    async def _set_locked(self, ctx: discord.ApplicationContext, locked: bool, reason: str | None) -> None:
        if not has_permissions(ctx, manage_channels=True):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return

        role = self._lock_role(ctx.guild)
        overwrite = ctx.channel.overwrites_for(role)
        currently_locked = overwrite.send_messages is False
        if currently_locked == locked:
            await send_followup_safe(ctx, "This channel is already locked." if locked else "This channel is not locked.")
            return

        overwrite.send_messages = False if locked else None
        try:
            await ctx.channel.set_permissions(role, overwrite=overwrite, reason=reason)
        except discord.DiscordException as exc:
            logger.error("Failed to %s %s: %s", "lock" if locked else "unlock", ctx.channel, exc)
            await send_followup_safe(ctx, EXECUTION_ERROR_MESSAGE)
            return

        await send_followup_safe(ctx, "Channel locked." if locked else "Channel unlocked.")
        await self.services.notifier.send_audit(
            audit_embeds.channel_action_embed(
                "🔒 Channel Locked" if locked else "🔓 Channel Unlocked",
                str(ctx.author),
                ctx.channel.name,
                reason=reason,
            )
        )

    @commands.slash_command(name="lockchannel", description="Stop members from sending messages here.")
    async def lockchannel(
        self,
        ctx: discord.ApplicationContext,
        reason: Option(str, "Reason for locking.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._set_locked(ctx, True, reason)

    @commands.slash_command(name="unlockchannel", description="Allow members to send messages here again.")
    async def unlockchannel(
        self,
        ctx: discord.ApplicationContext,
        reason: Option(str, "Reason for unlocking.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._set_locked(ctx, False, reason)

    @commands.slash_command(name="dm", description="Send a direct message to a user on behalf of the staff.")
    async def dm(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to send the DM to.", required=True),  # type: ignore
        message: Option(str, "The message to send.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_messages=True):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return

        recipient_id = UserID(user.id)
        status = await self.services.notifier.send_dm(
            recipient_id, audit_embeds.relay_message_embed(message, ctx.guild.name)
        )
        if status is DeliveryStatus.DELIVERED:
            await send_followup_safe(ctx, f"Message sent to {user}.")
            await self.services.notifier.send_audit(
                audit_embeds.relay_audit_embed(str(user), recipient_id, str(ctx.author), message)
            )
        elif status is DeliveryStatus.BLOCKED:
            await send_followup_safe(ctx, f"{user} does not accept direct messages.")
        else:
            await send_followup_safe(ctx, f"Failed to send the message to {user}.")


def setup(discord_bot_instance, services):
    """Register the channel cog with the bot."""
    discord_bot_instance.add_cog(ChannelCog(discord_bot_instance, services))
