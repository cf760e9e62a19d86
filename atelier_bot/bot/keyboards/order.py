"""
Inline keyboards for the order conversation.
"""

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def get_order_keyboard(complete: bool = False) -> InlineKeyboardMarkup:
    """Summary / new order buttons, plus confirm once the order is complete."""
    builder = InlineKeyboardBuilder()
    if complete:
        builder.row(
            InlineKeyboardButton(text="✅ Confirmă comanda", callback_data="order:confirm"),
        )
    builder.row(
        InlineKeyboardButton(text="📋 Rezumat", callback_data="order:summary"),
        InlineKeyboardButton(text="🆕 Comandă nouă", callback_data="order:new"),
    )
    return builder.as_markup()


def get_new_order_keyboard() -> InlineKeyboardMarkup:
    """Keyboard after an order is confirmed."""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="🆕 Comandă nouă", callback_data="order:new"),
    )
    return builder.as_markup()
