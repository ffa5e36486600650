"""
Modledger entry point.

Startup order matters: the working directory is switched to the project
home before any module that resolves ``./config`` or ``./data`` is imported,
the database is opened before the first cog can touch a repository, and on
the way out pending confirmations are aborted before the database closes.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """``MODLEDGER_HOME`` if set, else the executable's folder when frozen, else the repository root."""
    if home := os.getenv("MODLEDGER_HOME"):
        return Path(home).resolve()
    if getattr(sys, "frozen", False):
        return Path(sys.argv[0]).resolve().parent
    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from modledger.configuration.app_configuration import app_config
from modledger.database.db_connection import db_connection
from modledger.moderation.guild_moderation import guild_moderation
from modledger.util.logger import get_logger, handle_exception

logger = get_logger("main")

COGS = ("events_listener", "moderation_cmds", "case_cmds")


def load_environment() -> str:
    """Read ``.env`` and return ``DISCORD_BOT_TOKEN``; exits with status 1 when it is missing."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("DISCORD_BOT_TOKEN is not set (environment or .env). Cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """
    Members and bans for the membership listeners; message content so a
    moderator's plain-text reply can answer a massban confirmation.
    """
    intents = discord.Intents.default()
    intents.members = True
    intents.bans = True
    intents.message_content = True
    return intents


def create_bot() -> discord.Bot:
    bot = discord.Bot(intents=build_intents())
    for cog in COGS:
        bot.load_extension(f"modledger.bot.cogs.{cog}")
    logger.info("Loaded cogs: %s", ", ".join(COGS))
    return bot


async def shutdown_runtime(bot: discord.Bot | None) -> None:
    if bot is not None and not bot.is_closed():
        await bot.close()
    await guild_moderation.shutdown()
    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    token = load_environment()

    try:
        await db_connection.open(app_config.database_path)
    except Exception as exc:
        logger.critical("Could not open database %s: %s", app_config.database_path, exc)
        return 1

    bot = None
    try:
        bot = create_bot()
        logger.info("Connecting to Discord…")
        await bot.start(token)
        return 0
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        return 1
    except asyncio.CancelledError:
        logger.info("Startup cancelled")
        return 0
    except Exception:
        logger.exception("Bot stopped on an unexpected error")
        return 1
    finally:
        await shutdown_runtime(bot)


def main() -> int:
    sys.excepthook = handle_exception
    logger.info("Starting Modledger…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
