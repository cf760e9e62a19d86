"""
Atelier Order Bot - Main entry point.
"""

import asyncio
import logging
import sys

from aiogram import Bot

from atelier_bot.bot.bot import get_bot, get_dispatcher, set_commands
from atelier_bot.bot.handlers import register_handlers
from atelier_bot.config import settings
from atelier_bot.db.sqlite import db


# Fix for Windows asyncio
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def on_startup(bot: Bot) -> None:
    """Initialize services on startup."""
    logger.info("Starting Atelier Order Bot...")

    await db.init()
    logger.info(f"Database initialized ({settings.db_url})")

    if settings.llm_phrasing_enabled:
        logger.info(f"Question phrasing via {settings.llm_provider}")

    await set_commands(bot)


async def on_shutdown() -> None:
    """Cleanup on shutdown."""
    logger.info("Shutting down Atelier Order Bot...")
    await db.close()
    logger.info("Cleanup complete")


async def main() -> None:
    """Main function to run the bot."""
    bot = get_bot()
    dp = get_dispatcher()

    register_handlers(dp)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    logger.info("Bot is starting...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
