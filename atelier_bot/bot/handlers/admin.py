"""
Message edits, audit history and lock maintenance.

/edit is open to the order owner and admins; /history and /unlock are
admin only.
"""

import html
import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message, User

from atelier_bot.bot.handlers.start import owner_of
from atelier_bot.bot.keyboards.order import get_order_keyboard
from atelier_bot.config import settings
from atelier_bot.core.orders import (
    EditRequest,
    Identity,
    OrderState,
    ServiceResponse,
    edit_orchestrator,
    order_intake,
)
from atelier_bot.core.orders.editing import ADMIN_ROLE
from atelier_bot.core.orders.replay import as_message
from atelier_bot.db.stores import order_store

logger = logging.getLogger(__name__)

router = Router(name="admin")


ERROR_MESSAGES = {
    "bad_request": "Cerere incompletă.",
    "unauthorized": "Nu ai dreptul să faci asta.",
    "not_found": "Comanda sau mesajul nu există.",
    "conflict": "Comanda este editată chiar acum. Încearcă din nou.",
    "reparse_failed": "Corectura ar face comanda inconsistentă, așa că nu a fost aplicată.",
    "internal_error": "Eroare internă.",
}


def identity_of(user: User) -> Identity:
    """Caller identity; admins come from ADMIN_TELEGRAM_IDS."""
    role = ADMIN_ROLE if user.id in settings.admin_ids else "client"
    return Identity(user_id=str(user.id), role=role)


def format_error(response: ServiceResponse) -> str:
    tag = response.body.get("error", "internal_error")
    text = ERROR_MESSAGES.get(tag, ERROR_MESSAGES["internal_error"])
    details = response.body.get("message")
    if details:
        text += f"\n<i>{html.escape(str(details))}</i>"
    return f"❌ {text}"


# =============================================================================
# EDITING
# =============================================================================

@router.message(Command("messages"))
async def handle_messages(message: Message, command: CommandObject) -> None:
    """List customer messages of an order with their ids."""
    owner_id, owner_name = owner_of(message.from_user)
    order_id = (command.args or "").strip()

    if order_id:
        if not identity_of(message.from_user).is_admin:
            await message.answer(format_error(ServiceResponse(403, {"error": "unauthorized"})))
            return
        order = await order_store.read(order_id)
    else:
        order = await order_intake.get_or_start(owner_id, owner_name)

    if order is None:
        await message.answer(format_error(ServiceResponse(404, {"error": "not_found"})))
        return

    lines = [f"💬 <b>Mesajele comenzii #{order.id}</b>", ""]
    for item in order.conversation or []:
        turn = as_message(item)
        if not turn.is_user:
            continue
        edited = " ✏️" if turn.edited_at else ""
        lines.append(f"<code>{turn.id}</code>{edited}: {html.escape(turn.content)}")

    if len(lines) == 2:
        lines.append("Niciun mesaj încă.")
    await message.answer("\n".join(lines))


@router.message(Command("edit"))
async def handle_edit(message: Message, command: CommandObject) -> None:
    """/edit ORDER_ID MESSAGE_ID new text"""
    parts = (command.args or "").split(maxsplit=2)
    if len(parts) < 3:
        await message.answer("Folosire: /edit ID_COMANDĂ ID_MESAJ text nou")
        return

    current_user = identity_of(message.from_user)
    request = EditRequest(
        order_id=parts[0],
        message_id=parts[1],
        new_text=parts[2],
        user_id=current_user.user_id,
    )
    response = await edit_orchestrator.edit_message(request, current_user)

    if not response.ok:
        await message.answer(format_error(response))
        return

    state = OrderState.from_dict(response.body["order_state"])
    await message.answer(
        f"✅ Mesajul a fost corectat și comanda recalculată.\n\n{state.format_summary()}",
        reply_markup=get_order_keyboard(state.is_complete),
    )


# =============================================================================
# ADMIN
# =============================================================================

@router.message(Command("history"))
async def handle_history(message: Message, command: CommandObject) -> None:
    """/history ORDER_ID"""
    response = await edit_orchestrator.get_order_history(
        (command.args or "").strip(), identity_of(message.from_user)
    )
    if not response.ok:
        await message.answer(format_error(response))
        return

    lines = [f"📜 <b>Istoric #{response.body['order_id']}</b> ({response.body['count']})", ""]
    for event in response.body["events"]:
        error = f" — {html.escape(str(event['error']))}" if event.get("error") else ""
        lines.append(
            f"{event['timestamp'][:19]} <b>{event['event']}</b> "
            f"user={event.get('user_id')} msg={event.get('message_id')}{error}"
        )
    await message.answer("\n".join(lines[:60]))


@router.message(Command("unlock"))
async def handle_unlock(message: Message, command: CommandObject) -> None:
    """/unlock ORDER_ID"""
    response = await edit_orchestrator.force_unlock(
        (command.args or "").strip(), identity_of(message.from_user)
    )
    if not response.ok:
        await message.answer(format_error(response))
        return

    if response.body["was_locked"]:
        await message.answer(f"🔓 Comanda #{response.body['order_id']} a fost deblocată.")
    else:
        await message.answer(f"Comanda #{response.body['order_id']} nu era blocată.")
