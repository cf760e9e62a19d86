"""
Orders module for Atelier bot.
Interprets the order conversation, replays it after edits and audits edits.
"""

from atelier_bot.core.orders.models import (
    ChatMessage,
    MessageRole,
    OrderState,
    OrderStatus,
    Personalization,
    Variant,
)
from atelier_bot.core.orders.vocabulary import ProductType
from atelier_bot.core.orders.normalize import normalize_text
from atelier_bot.core.orders.errors import (
    EditError,
    OverCapacityError,
    ReducerError,
)
from atelier_bot.core.orders.reducer import (
    Diagnostics,
    ReduceFailure,
    ReduceResult,
    apply_user_message,
    reduce_message,
)
from atelier_bot.core.orders.replay import build_state
from atelier_bot.core.orders.questions import next_question, phrase_question
from atelier_bot.core.orders.editing import (
    EditOrchestrator,
    EditRequest,
    Identity,
    ServiceResponse,
    edit_orchestrator,
)
from atelier_bot.core.orders.intake import IntakeReply, OrderIntake, order_intake

__all__ = [
    # Models
    "ChatMessage",
    "MessageRole",
    "OrderState",
    "OrderStatus",
    "Personalization",
    "ProductType",
    "Variant",
    # Interpretation
    "normalize_text",
    "Diagnostics",
    "ReduceFailure",
    "ReduceResult",
    "apply_user_message",
    "reduce_message",
    "build_state",
    "next_question",
    "phrase_question",
    # Errors
    "EditError",
    "OverCapacityError",
    "ReducerError",
    # Services
    "EditOrchestrator",
    "EditRequest",
    "Identity",
    "ServiceResponse",
    "edit_orchestrator",
    "IntakeReply",
    "OrderIntake",
    "order_intake",
]
