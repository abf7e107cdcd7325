"""
Moderation cog: slash commands for sanctioning members and reading their history.

Each command defers ephemerally, checks the invoker's Discord permission,
builds a typed command record and hands it to the punishment engine. The
engine's result is shown as-is: a confirmation embed on success, the
rejection text otherwise.

Permissions
- timeout / untimeout: Moderate Members
- mute / unmute: Manage Roles
- ban / unban: Ban Members
- kick: Kick Members
- punishmentlist: Moderate Members
"""

import discord
from discord import Option
from discord.ext import commands

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
from modwarden.datatypes.punishment_datatypes import MAX_BAN_DAYS
from modwarden.datatypes.result_datatypes import EXECUTION_ERROR_MESSAGE, DeliveryStatus, ModerationResult
from modwarden.ui import audit_embeds
from modwarden.util.discord_utils import has_permissions, send_followup_safe
from modwarden.util.logger import get_logger

logger = get_logger("moderation_cog")

NO_PERMISSION_MESSAGE = "You do not have permission to use this command."

DM_STATUS_NOTES = {
    DeliveryStatus.BLOCKED: "The user does not accept direct messages, so they were not notified.",
    DeliveryStatus.FAILED: "The user could not be notified by direct message.",
}


class ModerationCog(commands.Cog):
    """Slash commands wrapping the punishment engine."""

    def __init__(self, discord_bot_instance, services):
        self.discord_bot_instance = discord_bot_instance
        self.services = services
        logger.info("Moderation cog loaded")

    async def run_command(
        self,
        ctx: discord.ApplicationContext,
        required_permission_name: str,
        command: ModerationCommand,
    ) -> ModerationResult | None:
        """Shared flow: permission check, engine call, reply."""
        if not has_permissions(ctx, **{required_permission_name: True}):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return None

        try:
            result = await self.services.engine.execute(command)
        except Exception as exc:
            logger.exception("Error executing %s: %s", type(command).__name__, exc)
            await send_followup_safe(ctx, EXECUTION_ERROR_MESSAGE)
            return None

        if not result.success:
            await send_followup_safe(ctx, result.message)
            return result

        embed = audit_embeds.punishment_response_embed(result.record, result.subject_tag)
        note = DM_STATUS_NOTES.get(result.dm_status)
        await send_followup_safe(ctx, content=note, embed=embed)
        return result

    @staticmethod
    def _ids(ctx: discord.ApplicationContext, user) -> tuple[GuildID, UserID, UserID]:
        return GuildID(ctx.guild.id), UserID(user.id), UserID(ctx.author.id)

    @commands.slash_command(name="timeout", description="Timeout a member for a number of minutes.")
    async def timeout(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to timeout.", required=True),  # type: ignore
        duration: Option(int, "Duration in minutes.", min_value=1, max_value=40320, required=True),  # type: ignore
        reason: Option(str, "Reason for the timeout.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(
            ctx, "moderate_members", TimeoutCommand(guild_id, subject_id, moderator_id, reason, duration)
        )

    @commands.slash_command(name="untimeout", description="Remove a member's timeout.")
    async def untimeout(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to release.", required=True),  # type: ignore
        reason: Option(str, "Reason for removing the timeout.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "moderate_members", UntimeoutCommand(guild_id, subject_id, moderator_id, reason))

    @commands.slash_command(name="mute", description="Give a member the mute role, optionally for a number of days.")
    async def mute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to mute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the mute.", required=True),  # type: ignore
        duration: Option(int, "Duration in days (leave empty for permanent).", min_value=1, required=False, default=None),  # type: ignore
    ) -> None:
        """Mute a member; without a duration the mute lasts until /unmute."""
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "manage_roles", MuteCommand(guild_id, subject_id, moderator_id, reason, duration))

    @commands.slash_command(name="unmute", description="Remove the mute role from a member.")
    async def unmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to unmute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unmute.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "manage_roles", UnmuteCommand(guild_id, subject_id, moderator_id, reason))

    @commands.slash_command(name="ban", description="Ban a user from the server.")
    async def ban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the ban.", required=False, default=None),  # type: ignore
        duration: Option(
            int,
            "Days of recent messages to delete (0-7).",
            min_value=0,
            max_value=MAX_BAN_DAYS,
            required=False,
            default=None,
        ),  # type: ignore
    ) -> None:
        """Ban a user.

        Banned users are removed from the server and cannot rejoin unless
        unbanned. The subject is notified before the ban goes through.
        """
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "ban_members", BanCommand(guild_id, subject_id, moderator_id, reason, duration))

    @commands.slash_command(name="unban", description="Lift a user's ban.")
    async def unban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to unban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unban.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "ban_members", UnbanCommand(guild_id, subject_id, moderator_id, reason))

    @commands.slash_command(name="kick", description="Kick a member from the server.")
    async def kick(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to kick.", required=True),  # type: ignore
        reason: Option(str, "Reason for the kick.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        guild_id, subject_id, moderator_id = self._ids(ctx, user)
        await self.run_command(ctx, "kick_members", KickCommand(guild_id, subject_id, moderator_id, reason))

    @commands.slash_command(name="punishmentlist", description="Show a user's punishment history.")
    async def punishmentlist(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user whose history to show.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, moderate_members=True):
            await send_followup_safe(ctx, NO_PERMISSION_MESSAGE)
            return

        records = self.services.engine.get_history(UserID(user.id))
        await send_followup_safe(ctx, embed=audit_embeds.history_embed(str(user), records))


def setup(discord_bot_instance, services):
    """Register the moderation cog with the bot."""
    discord_bot_instance.add_cog(ModerationCog(discord_bot_instance, services))
