"""
Bot handlers registration.
"""

from aiogram import Dispatcher

from atelier_bot.bot.handlers.admin import router as admin_router
from atelier_bot.bot.handlers.chat import router as chat_router
from atelier_bot.bot.handlers.start import router as start_router


def register_handlers(dp: Dispatcher) -> None:
    """Register all handlers to dispatcher."""
    # Order matters! Commands first, free text last
    dp.include_router(start_router)
    dp.include_router(admin_router)
    dp.include_router(chat_router)
