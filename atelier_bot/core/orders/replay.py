"""
Conversation replay: rebuild an OrderState from message history.
"""

import logging
from typing import Iterable, Union

from atelier_bot.core.orders.models import ChatMessage, MessageRole, OrderState
from atelier_bot.core.orders.reducer import ReduceOutcome, reduce_message

logger = logging.getLogger(__name__)


def as_message(item: Union[ChatMessage, dict]) -> ChatMessage:
    """Accept stored dicts as well as ChatMessage objects."""
    if isinstance(item, ChatMessage):
        return item
    return ChatMessage.from_dict(item)


def apply_turn(state: OrderState, message: ChatMessage) -> tuple[OrderState, ReduceOutcome | None]:
    """
    Fold one conversation turn into the state.

    User turns go through the reducer; a failed reduction keeps the previous
    state. Assistant and system turns only update last_question.

    Returns:
        Tuple of (new_state, reducer outcome or None for non-user turns)
    """
    if message.role == MessageRole.USER:
        outcome = reduce_message(state, message.content)
        if outcome.ok:
            return outcome.state, outcome
        return state, outcome

    new_state = state.copy()
    new_state.last_question = message.content
    return new_state, None


def build_state(messages: Iterable[Union[ChatMessage, dict]]) -> OrderState:
    """
    Build a fresh OrderState from a slice of conversation history.

    A message the reducer rejects is logged and skipped so one bad turn
    does not abort reconstruction of the rest.
    """
    state = OrderState()

    for index, item in enumerate(messages):
        message = as_message(item)
        state, outcome = apply_turn(state, message)
        if outcome is not None and not outcome.ok:
            logger.warning(
                f"Replay skipped message #{index} ({message.id}): {outcome.message}"
            )

    return state
