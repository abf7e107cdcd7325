"""Event listener Cog for modwarden.

This cog handles bot lifecycle events (on_ready), membership and invite
events, and command error handling.
"""

import discord
from discord.ext import commands

from modwarden.datatypes.discord_datatypes import GuildID, UserID
from modwarden.datatypes.result_datatypes import DeliveryStatus
from modwarden.moderation.platform import invite_to_info
from modwarden.ui import audit_embeds
from modwarden.util.discord_utils import avatar_url
from modwarden.util.logger import get_logger

logger = get_logger("events_listener_cog")


class EventsListenerCog(commands.Cog):
    """Cog containing lifecycle, membership, invite and command error handlers."""

    def __init__(self, discord_bot_instance, services):
        """Initialize the events listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        services:
            Service container shared by every cog.
        """
        self.bot = discord_bot_instance
        self.services = services
        logger.info("Events listener cog loaded")

    @commands.Cog.listener(name='on_ready')
    async def on_ready(self):
        """Handle bot startup: presence, invite snapshot priming and periodic refresh."""
        if self.bot.user:
            await self._update_presence()
            logger.info(f"Bot connected as {self.bot.user} (ID: {self.bot.user.id})")
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        logger.info("--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--")

        logger.info("Priming invite snapshots...")
        await self.services.invite_cache.prime_all(guild.id for guild in self.bot.guilds)

        if not self.services.invite_refresh.running:
            self.services.invite_refresh.start(self.bot)

    async def _update_presence(self) -> None:
        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name=self.services.config.presence_activity,
            ),
        )

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    @commands.Cog.listener(name='on_member_join')
    async def on_member_join(self, member: discord.Member):
        """Re-apply an active mute, greet the member and log where they came from."""
        guild_id, user_id = GuildID(member.guild.id), UserID(member.id)

        await self.services.engine.reapply_on_rejoin(guild_id, user_id)

        if not member.bot:
            status = await self.services.notifier.send_dm(user_id, audit_embeds.welcome_embed(member.guild.name))
            if status is DeliveryStatus.BLOCKED:
                await self.services.notifier.send_audit(audit_embeds.welcome_blocked_embed(str(member), user_id))
            elif status is DeliveryStatus.FAILED:
                logger.warning("Welcome DM to %s failed", member)

        attribution = await self.services.attribution.on_member_join(guild_id, user_id)
        await self.services.notifier.send_audit(
            audit_embeds.member_join_embed(
                str(member),
                user_id,
                member.created_at,
                member.joined_at,
                attribution,
                avatar_url(member),
            )
        )

    @commands.Cog.listener(name='on_member_remove')
    async def on_member_remove(self, member: discord.Member):
        attribution = self.services.attribution.on_member_leave(GuildID(member.guild.id), UserID(member.id))
        await self.services.notifier.send_audit(
            audit_embeds.member_leave_embed(str(member), UserID(member.id), attribution, avatar_url(member))
        )

    # ------------------------------------------------------------------
    # Invites
    # ------------------------------------------------------------------

    @commands.Cog.listener(name='on_guild_remove')
    async def on_guild_remove(self, guild: discord.Guild):
        self.services.invite_cache.drop(GuildID(guild.id))
        logger.info("Left guild %s, dropped its invite snapshot", guild.id)

    @commands.Cog.listener(name='on_invite_create')
    async def on_invite_create(self, invite: discord.Invite):
        if invite.guild is None:
            return
        await self.services.attribution.on_invite_changed(GuildID(invite.guild.id))
        await self.services.notifier.send_audit(audit_embeds.invite_created_embed(invite_to_info(invite)))

    @commands.Cog.listener(name='on_invite_delete')
    async def on_invite_delete(self, invite: discord.Invite):
        if invite.guild is None:
            return
        guild_id = GuildID(invite.guild.id)
        cached = self.services.invite_cache.get_invite(guild_id, invite.code)
        channel_name = getattr(invite.channel, "name", None) or (cached.channel_name if cached else None)
        await self.services.attribution.on_invite_changed(guild_id)
        await self.services.notifier.send_audit(audit_embeds.invite_deleted_embed(invite.code, channel_name))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @commands.Cog.listener(name='on_application_command_error')
    async def on_application_command_error(self, application_context: discord.ApplicationContext, error: Exception):
        """Handle errors from application commands with logging and user feedback.

        Parameters
        ----------
        application_context:
            The command invocation context.
        error:
            The exception raised during command execution.
        """
        if isinstance(error, commands.CommandNotFound):
            return

        command_name = getattr(application_context.command, 'name', '<unknown>')
        logger.error(f"Error in command '{command_name}': {error}", exc_info=error)

        error_message = "An error occurred while executing the command."
        try:
            await application_context.respond(error_message, ephemeral=True)
        except discord.InteractionResponded:
            await application_context.followup.send(error_message, ephemeral=True)


def setup(discord_bot_instance, services):
    """Register the EventsListenerCog with the bot."""
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, services))
