"""
Live order intake: one customer message in, one clarifying question out.

Each turn appends the user message and the assistant question to the stored
conversation and persists the state obtained by folding both into the
previous state, so the stored state always equals build_state(conversation).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from atelier_bot.core.orders.errors import ConflictError, NotFoundError
from atelier_bot.core.orders.models import ChatMessage, MessageRole, OrderState, OrderStatus
from atelier_bot.core.orders.questions import ASK_PRODUCT, next_question, phrase_question
from atelier_bot.core.orders.reducer import ReduceFailure
from atelier_bot.core.orders.replay import apply_turn, as_message, build_state
from atelier_bot.db.models import OrderRecord
from atelier_bot.db.stores import OrderStore, order_store
from atelier_bot.integrations.llm import BaseLLM, get_phrasing_llm

logger = logging.getLogger(__name__)

TURN_WRITE_ATTEMPTS = 3


@dataclass
class IntakeReply:
    """Result of one customer turn."""
    order_id: str
    text: str                   # what the customer sees
    state: OrderState
    accepted: bool = True       # False when the message was rejected
    user_message_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.state.is_complete


class OrderIntake:
    """Drives the order conversation for the chat transport."""

    def __init__(self, orders: OrderStore, llm: Optional[BaseLLM] = None, use_llm: bool = True):
        self.orders = orders
        self._llm = llm
        self.use_llm = use_llm

    @property
    def llm(self) -> Optional[BaseLLM]:
        if not self.use_llm:
            return None
        if self._llm is None:
            self._llm = get_phrasing_llm()
        return self._llm

    # =========================================================================
    # ORDER LIFECYCLE
    # =========================================================================

    async def start_order(self, owner_id: str, owner_name: Optional[str] = None) -> OrderRecord:
        """Cancel any open draft and start a new order with the first question."""
        previous = await self.orders.find_open(owner_id)
        if previous is not None:
            await self.orders.update(previous.id, status=OrderStatus.CANCELLED.value)
            logger.info(f"Order {previous.id} cancelled, replaced by a new one")

        order = await self.orders.create(owner_id, owner_name)

        greeting = ChatMessage(role=MessageRole.ASSISTANT, content=ASK_PRODUCT)
        state, _ = apply_turn(OrderState(), greeting)
        order.conversation = [greeting.to_dict()]
        order.order_state = state.to_dict()
        await self.orders.update(
            order.id,
            conversation=order.conversation,
            order_state=order.order_state,
        )
        return order

    async def get_or_start(self, owner_id: str, owner_name: Optional[str] = None) -> OrderRecord:
        """Open draft of the customer, or a new one."""
        order = await self.orders.find_open(owner_id)
        if order is None:
            order = await self.start_order(owner_id, owner_name)
        return order

    async def confirm_order(self, order_id: str) -> bool:
        """
        Mark a complete order as confirmed.

        Returns:
            False if the order is not complete yet
        """
        order = await self._load_unlocked(order_id)
        state = OrderState.from_dict(order.order_state)
        if not state.is_complete:
            return False
        written = await self.orders.update(
            order_id,
            unlocked_only=True,
            expected_version=order.version,
            status=OrderStatus.CONFIRMED.value,
        )
        if not written:
            raise ConflictError("Order changed while confirming")
        logger.info(f"Order {order_id} confirmed: {state.total_pieces} pieces")
        return True

    async def get_state(self, order_id: str) -> OrderState:
        order = await self.orders.read(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return OrderState.from_dict(order.order_state)

    # =========================================================================
    # TURNS
    # =========================================================================

    async def handle_user_message(self, order_id: str, text: str) -> IntakeReply:
        """
        Apply one customer message and produce the next question.

        The write only lands on the version of the order that was read; if
        another writer got in between, the turn is folded again on top of it.

        Raises:
            NotFoundError: unknown order
            ConflictError: an edit holds the order lock, or the order kept
                changing for TURN_WRITE_ATTEMPTS attempts
        """
        user_message = ChatMessage(role=MessageRole.USER, content=text)

        for attempt in range(1, TURN_WRITE_ATTEMPTS + 1):
            order = await self._load_unlocked(order_id)
            conversation, state, outcome, question = _fold_turn(order, user_message)

            written = await self.orders.update(
                order_id,
                unlocked_only=True,
                expected_version=order.version,
                conversation=[m.to_dict() for m in conversation],
                order_state=state.to_dict(),
            )
            if written:
                break
            logger.info(f"Order {order_id} changed during turn (attempt {attempt}), folding again")
        else:
            raise ConflictError("Order keeps changing, message not saved")

        if outcome.ok:
            shown = await phrase_question(question, state, self.llm)
        else:
            shown = question
            logger.info(f"Order {order_id}: message rejected ({outcome.reason})")

        return IntakeReply(
            order_id=order_id,
            text=shown,
            state=state,
            accepted=outcome.ok,
            user_message_id=user_message.id,
        )

    async def _load_unlocked(self, order_id: str) -> OrderRecord:
        order = await self.orders.read(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.locked_for_edit:
            raise ConflictError("Order is currently being edited")
        return order


def _fold_turn(order: OrderRecord, user_message: ChatMessage):
    """Conversation and state after the user message and the question it gets."""
    conversation = [as_message(item) for item in (order.conversation or [])]
    if order.order_state:
        state = OrderState.from_dict(order.order_state)
    else:
        state = build_state(conversation)

    conversation.append(user_message)
    state, outcome = apply_turn(state, user_message)
    question = next_question(state) if outcome.ok else _correction(outcome)

    # The deterministic question is what replay reads back
    assistant_message = ChatMessage(role=MessageRole.ASSISTANT, content=question)
    conversation.append(assistant_message)
    state, _ = apply_turn(state, assistant_message)
    return conversation, state, outcome, question


def _correction(failure: ReduceFailure) -> str:
    """Prompt shown when a message contradicts the order."""
    color = str(failure.details.get("color", "")).upper()
    total = failure.details.get("total")
    return (
        f"Nu pot aplica mesajul: pentru {color} toate cele {total} bucăți "
        f"sunt deja repartizate pe mărimi, deci nu mai rămâne nimic pentru „restul”. "
        f"Te rog scrie cantitățile exacte."
    )


# Global intake instance
order_intake = OrderIntake(order_store)
