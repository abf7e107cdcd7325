"""
discord_utils.py
================

Small stateless helpers shared by the cogs.
"""

from __future__ import annotations

import discord

from modwarden.util.logger import get_logger

logger = get_logger("discord_utils")


def has_permissions(application_context: discord.ApplicationContext, **required_permissions) -> bool:
    """
    Check if the command issuer has all specified permissions in the guild.

    Args:
        application_context (discord.ApplicationContext): The command context.
        **required_permissions: Permission flags to check.

    Returns:
        bool: True if all permissions are present, False otherwise.
    """
    if not isinstance(application_context.author, discord.Member):
        return False
    return all(
        getattr(application_context.author.guild_permissions, permission_name, False)
        for permission_name in required_permissions
    )


def avatar_url(user) -> str | None:
    avatar = getattr(user, "display_avatar", None)
    return getattr(avatar, "url", None)


async def send_followup_safe(application_context: discord.ApplicationContext, *args, **kwargs) -> None:
    """Send a followup, logging instead of raising when Discord rejects it."""
    try:
        await application_context.send_followup(*args, **kwargs)
    except discord.DiscordException as exc:
        logger.error("Failed to send followup for %s: %s", getattr(application_context.command, "name", "?"), exc)
