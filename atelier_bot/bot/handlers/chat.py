"""
Free-text order conversation.
"""

import html
import logging

from aiogram import F, Router
from aiogram.types import Message

from atelier_bot.bot.handlers.start import owner_of
from atelier_bot.bot.keyboards.order import get_order_keyboard
from atelier_bot.core.orders import order_intake
from atelier_bot.core.orders.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

router = Router(name="chat")


@router.message(F.text & ~F.text.startswith("/"))
async def handle_text(message: Message) -> None:
    """Apply one customer message to the open order."""
    owner_id, owner_name = owner_of(message.from_user)
    order = await order_intake.get_or_start(owner_id, owner_name)

    try:
        reply = await order_intake.handle_user_message(order.id, message.text)
    except ConflictError:
        await message.answer(
            "⏳ Comanda este corectată chiar acum. Trimite mesajul din nou în câteva secunde."
        )
        return
    except NotFoundError:
        logger.error(f"Order {order.id} vanished while handling a message")
        await message.answer("😔 Nu am găsit comanda. Începe una nouă cu /new.")
        return

    logger.info(
        f"Order {order.id}: message {reply.user_message_id} "
        f"{'applied' if reply.accepted else 'rejected'}"
    )
    await message.answer(html.escape(reply.text), reply_markup=get_order_keyboard(reply.complete))
