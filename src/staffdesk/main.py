"""
StaffDesk Bot
=============

Runs the staff workflow engine against one Discord guild: opens the case
database, wires the engine to py-cord adapters and drives the reconciliation
sweeps from a background cog.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. STAFFDESK_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("STAFFDESK_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio

import discord
from dotenv import load_dotenv

from staffdesk.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment() -> str:
    """Load ``.env`` from the base directory and return the Discord bot token.

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
    """Intents needed to read member roles and deliver notices."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    return intents


def create_bot() -> discord.Bot:
    return discord.Bot(intents=build_intents())


async def async_main() -> int:
    """Bootstrap database, engine and bot, returning an exit code."""
    os.chdir(BASE_DIR)
    token = load_environment()

    # Imported here so the configuration is read relative to BASE_DIR
    from staffdesk.bot import reconciliation_cog
    from staffdesk.bot.discord_gateway import DiscordChannelJanitor, DiscordNotifier, DiscordRoleGateway
    from staffdesk.configuration.app_configuration import app_config
    from staffdesk.database.db_connection import db_connection
    from staffdesk.database.sqlite_case_store import SqliteCaseStore
    from staffdesk.engine import build_engine
    from staffdesk.ranks.rank_directory import RankDirectory

    guild_id = app_config.guild_id
    if guild_id is None:
        logger.critical("'guild_id' is not set in %s. Bot cannot start.", app_config.config_path)
        return 1

    try:
        await db_connection.open(app_config.database_path)
        store = SqliteCaseStore(db_connection)
        await store.initialize()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        await db_connection.close()
        return 1

    exit_code = 0
    bot = create_bot()
    try:
        directory = RankDirectory(role_ids=app_config.role_ids)
        engine = build_engine(
            app_config,
            store,
            roles=DiscordRoleGateway(bot, guild_id, directory),
            notifier=DiscordNotifier(bot),
            intent_handler=DiscordChannelJanitor(bot),
            directory=directory,
        )
        bot.staffdesk = engine  # type: ignore[attr-defined]
        reconciliation_cog.setup(bot, engine.scheduler, app_config.sweep_settings)

        logger.info("Attempting to connect to Discord…")
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        if not bot.is_closed():
            await bot.close()
        await db_connection.close()
        logger.info("Shutdown complete.")

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting StaffDesk…")
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
