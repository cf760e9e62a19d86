"""
Start, help and order lifecycle commands.
"""

import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Message, User

from atelier_bot.bot.keyboards.order import get_new_order_keyboard, get_order_keyboard
from atelier_bot.core.orders import OrderState, order_intake
from atelier_bot.core.orders.errors import ConflictError
from atelier_bot.core.orders.questions import ASK_PRODUCT
from atelier_bot.core.orders.replay import as_message

logger = logging.getLogger(__name__)

router = Router(name="start")


WELCOME_MESSAGE = """👋 <b>Bună!</b>

Sunt asistentul atelierului pentru comenzi en-gros de tricouri, hanorace și polo.

<b>Cum comanzi:</b>
• Spune ce produse și ce culori vrei: «30 tricouri albe și 20 negre»
• Împarte pe mărimi: «10 M, 15 L, restul XL»
• Spune dacă vrei personalizare: «broderie pe piept» sau «fără personalizare»

<b>Comenzi:</b>
/summary — rezumatul comenzii
/new — începe o comandă nouă
/help — ajutor"""


HELP_MESSAGE = """🤖 <b>Cum te pot ajuta:</b>

<b>Cantități:</b>
• «10 M», «M:10» sau «M10» adaugă 10 bucăți pe mărimea M
• «0 M» șterge mărimea M
• «restul L» pune pe L bucățile rămase

<b>Culori:</b>
• «schimb culoarea» sau «altă culoare» trece la altă culoare
• Culori: alb, negru, navy, gri, roșu, verde, albastru

<b>Corecturi:</b>
/messages — mesajele tale cu ID-urile lor
/edit ID_COMANDĂ ID_MESAJ text nou — corectează un mesaj anterior

<b>Comenzi:</b>
/summary — rezumatul comenzii
/new — comandă nouă"""


def owner_of(user: User) -> tuple[str, str]:
    """Order owner id and display name for a Telegram user."""
    return str(user.id), user.full_name


async def send_summary(message: Message, owner_id: str, owner_name: str) -> None:
    order = await order_intake.get_or_start(owner_id, owner_name)
    state = OrderState.from_dict(order.order_state)
    await message.answer(
        f"{state.format_summary()}\n\n<i>Comanda #{order.id}</i>",
        reply_markup=get_order_keyboard(state.is_complete),
    )


async def send_new_order(message: Message, owner_id: str, owner_name: str) -> None:
    order = await order_intake.start_order(owner_id, owner_name)
    first_question = as_message(order.conversation[-1]).content
    await message.answer(
        f"🆕 Comanda #{order.id} a început.\n\n{first_question}",
        reply_markup=get_order_keyboard(),
    )


@router.message(CommandStart())
async def handle_start(message: Message) -> None:
    """Handle /start command."""
    owner_id, owner_name = owner_of(message.from_user)
    await message.answer(WELCOME_MESSAGE)

    order = await order_intake.get_or_start(owner_id, owner_name)
    conversation = order.conversation or []
    prompt = as_message(conversation[-1]).content if conversation else ASK_PRODUCT
    await message.answer(prompt, reply_markup=get_order_keyboard())


@router.message(Command("help"))
async def handle_help(message: Message) -> None:
    """Handle /help command."""
    await message.answer(HELP_MESSAGE)


@router.message(Command("new"))
async def handle_new(message: Message) -> None:
    """Cancel the open draft and start over."""
    owner_id, owner_name = owner_of(message.from_user)
    await send_new_order(message, owner_id, owner_name)


@router.message(Command("summary"))
async def handle_summary(message: Message) -> None:
    """Show the current order."""
    owner_id, owner_name = owner_of(message.from_user)
    await send_summary(message, owner_id, owner_name)


# =============================================================================
# CALLBACKS
# =============================================================================

@router.callback_query(F.data == "order:summary")
async def callback_summary(callback: CallbackQuery) -> None:
    owner_id, owner_name = owner_of(callback.from_user)
    await callback.answer()
    await send_summary(callback.message, owner_id, owner_name)


@router.callback_query(F.data == "order:new")
async def callback_new(callback: CallbackQuery) -> None:
    owner_id, owner_name = owner_of(callback.from_user)
    await callback.answer()
    await send_new_order(callback.message, owner_id, owner_name)


@router.callback_query(F.data == "order:confirm")
async def callback_confirm(callback: CallbackQuery) -> None:
    owner_id, owner_name = owner_of(callback.from_user)
    order = await order_intake.get_or_start(owner_id, owner_name)

    try:
        confirmed = await order_intake.confirm_order(order.id)
    except ConflictError:
        await callback.answer("Comanda este editată chiar acum, încearcă din nou.", show_alert=True)
        return

    if not confirmed:
        await callback.answer("Comanda nu este completă încă.", show_alert=True)
        return

    await callback.answer("Comanda a fost confirmată!")
    await callback.message.answer(
        f"✅ Comanda #{order.id} a fost confirmată. Te contactăm în curând!",
        reply_markup=get_new_order_keyboard(),
    )
