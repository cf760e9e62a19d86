"""
Telegram bot initialization and command menu.
"""

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand, BotCommandScopeChat, BotCommandScopeDefault

from atelier_bot.config import settings


CLIENT_COMMANDS = [
    BotCommand(command="start", description="Începe sau continuă comanda"),
    BotCommand(command="summary", description="Rezumatul comenzii"),
    BotCommand(command="new", description="Comandă nouă"),
    BotCommand(command="messages", description="Mesajele mele cu ID-uri"),
    BotCommand(command="edit", description="Corectează un mesaj"),
    BotCommand(command="help", description="Ajutor"),
]

ADMIN_COMMANDS = CLIENT_COMMANDS + [
    BotCommand(command="history", description="Istoricul editărilor unei comenzi"),
    BotCommand(command="unlock", description="Deblochează o comandă"),
]


def create_bot() -> Bot:
    """Create configured Telegram bot instance."""
    return Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )


async def set_commands(bot: Bot) -> None:
    """Publish the command menu; admins also see maintenance commands."""
    await bot.set_my_commands(CLIENT_COMMANDS, scope=BotCommandScopeDefault())
    for admin_id in settings.admin_ids:
        await bot.set_my_commands(ADMIN_COMMANDS, scope=BotCommandScopeChat(chat_id=admin_id))


# Global instances
bot: Bot | None = None
dp: Dispatcher | None = None


def get_bot() -> Bot:
    """Get or create bot instance."""
    global bot
    if bot is None:
        bot = create_bot()
    return bot


def get_dispatcher() -> Dispatcher:
    """Get or create dispatcher instance."""
    global dp
    if dp is None:
        dp = Dispatcher()
    return dp
