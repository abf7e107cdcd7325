"""
Utility commands cog: bot status, command list and command re-sync.
"""

import datetime

import discord
from discord.ext import commands

from modwarden.ui import audit_embeds
from modwarden.util.discord_utils import has_permissions, send_followup_safe
from modwarden.util.logger import get_logger

logger = get_logger("utility_commands")


class UtilityCog(commands.Cog):
    """Cog for status and maintenance commands."""

    def __init__(self, bot: discord.Bot, services):
        self.bot = bot
        self.services = services

    @commands.slash_command(name="status", description="Show uptime and latency.")
    async def status(self, application_context: discord.ApplicationContext) -> None:
        await application_context.defer(ephemeral=True)
        uptime = datetime.datetime.now(datetime.timezone.utc) - self.services.started_at
        embed = audit_embeds.status_embed(uptime, self.bot.latency * 1000, len(self.bot.guilds))
        await send_followup_safe(application_context, embed=embed)

    @commands.slash_command(name="help", description="List the available commands.")
    async def help(self, application_context: discord.ApplicationContext) -> None:
        await application_context.defer(ephemeral=True)
        entries = sorted(
            (command.name, getattr(command, "description", ""))
            for command in self.bot.application_commands
        )
        await send_followup_safe(application_context, embed=audit_embeds.help_embed(entries))

    @commands.slash_command(name="reloadcommands", description="Re-register the bot's slash commands.")
    async def reloadcommands(self, application_context: discord.ApplicationContext) -> None:
        """Re-sync application commands with Discord (administrators only)."""
        await application_context.defer(ephemeral=True)
        if not has_permissions(application_context, administrator=True):
            await send_followup_safe(application_context, "Only administrators can reload commands.")
            return
        try:
            await self.bot.sync_commands()
        except discord.DiscordException as exc:
            logger.error("Failed to sync application commands: %s", exc)
            await send_followup_safe(application_context, "Reloading commands failed.")
            return
        logger.info("Application commands re-synced by %s", application_context.author)
        await send_followup_safe(application_context, "Commands reloaded.")


def setup(bot: discord.Bot, services) -> None:
    """Register the utility cog with the bot."""
    bot.add_cog(UtilityCog(bot, services))
