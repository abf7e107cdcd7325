"""
modwarden
=========

A Discord moderation bot: timeouts, mutes, bans and kicks with per-member
history, automatic expiry, a per-moderator rate limit, audit logging and
invite attribution for new members.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODWARDEN_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODWARDEN_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from modwarden.bot.services import ModwardenServices, build_services
from modwarden.configuration.app_configuration import app_config
from modwarden.database.db_connection import db_connection
from modwarden.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents required for modwarden runtime features."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.invites = True
    intents.voice_states = True
    intents.messages = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot, services: ModwardenServices) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from modwarden.bot.cogs import channel_cmds, events_listener, moderation_cmds, utility_cmds, voice_listener

    events_listener.setup(discord_bot_instance, services)
    voice_listener.setup(discord_bot_instance, services)
    moderation_cmds.setup(discord_bot_instance, services)
    channel_cmds.setup(discord_bot_instance, services)
    utility_cmds.setup(discord_bot_instance, services)

    logger.info("All cogs loaded successfully.")


def create_bot() -> tuple[discord.Bot, ModwardenServices]:
    """Instantiate the Discord bot, its services, and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    services = build_services(bot, app_config, db_connection)
    load_cogs(bot, services)
    return bot, services


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot, services: ModwardenServices) -> None:
    """Close the Discord connection, drop pending timers and close the database."""
    if not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await services.shutdown()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the services and the bot, returning an exit code."""
    token = load_environment()

    try:
        bot, services = create_bot()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    try:
        logger.info("Loading punishment history from %s", app_config.database_path)
        await services.start()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        await shutdown_runtime(bot, services)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, services)

    return exit_code


def main() -> int:
    """Entrypoint that orchestrates the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting modwarden…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
