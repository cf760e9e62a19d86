"""
Clarifying questions for the order conversation.

next_question() is deterministic: its text is what gets stored in the
conversation and read back by the reducer as last_question. Sizes are only
named when a bare number answer should land on that size.
"""

import logging
from typing import Optional

from atelier_bot.core.orders.models import OVER_CAPACITY, OrderState, Variant
from atelier_bot.core.orders.vocabulary import ProductType
from atelier_bot.integrations.llm.base import BaseLLM

logger = logging.getLogger(__name__)


PRODUCT_PLURAL = {
    ProductType.SHIRTS: "tricouri",
    ProductType.HOODIES: "hanorace",
    ProductType.POLO: "tricouri polo",
}

PRODUCT_DEFINITE = {
    ProductType.SHIRTS: "tricourile",
    ProductType.HOODIES: "hanoracele",
    ProductType.POLO: "tricourile polo",
}

ASK_PRODUCT = "Ce produse dorești să comanzi? Lucrăm cu tricouri, hanorace și polo."
ASK_COLORS = "Ce culori dorești și câte bucăți din fiecare? (ex: 30 albe, 20 negre)"
ORDER_COMPLETE = "Comanda este completă! ✅ Poți verifica rezumatul cu /summary."

PHRASING_SYSTEM_PROMPT = """Ești asistentul unui atelier de textile personalizate.
Reformulează întrebarea primită prietenos și scurt, în limba română.
Păstrează exact culorile, cantitățile și mărimile. Nu adăuga informații noi.
Răspunde doar cu întrebarea reformulată."""


def next_question(state: OrderState) -> str:
    """
    Next thing to ask the customer.

    Returns:
        Romanian prompt; ORDER_COMPLETE when nothing is missing
    """
    if state.product_type is None and not state.variants:
        return ASK_PRODUCT

    if not state.variants:
        return ASK_COLORS

    over = next((v for v in state.variants if v.error == OVER_CAPACITY), None)
    if over is not None:
        return (
            f"Pentru {over.color.upper()} ai indicat {over.assigned} bucăți, "
            f"dar totalul este {over.total_quantity}. "
            f"Te rog corectează cantitățile pe mărimi."
        )

    variant = _sizing_target(state)
    if variant is not None:
        return _ask_sizes(state, variant)

    undecided = next((v for v in state.variants if not v.personalization.decided), None)
    if undecided is not None:
        return (
            f"Dorești personalizare pe {_definite(state)} {undecided.color.upper()}? "
            f"(broderie, serigrafie, DTG sau fără personalizare)"
        )

    return ORDER_COMPLETE


async def phrase_question(question: str, state: OrderState, llm: Optional[BaseLLM] = None) -> str:
    """
    Reword a question through the LLM.

    Falls back to the original text when the LLM is missing or fails.
    """
    if llm is None:
        return question

    prompt = f"Întrebare: {question}\n\nComanda curentă:\n{_plain_summary(state)}"
    try:
        response = await llm.generate(
            prompt=prompt,
            system_prompt=PHRASING_SYSTEM_PROMPT,
            temperature=0.3,
            max_tokens=200,
        )
    except Exception as e:
        logger.warning(f"LLM phrasing failed ({llm.name}), using template: {e}")
        return question

    text = (response.content or "").strip()
    return text or question


# =============================================================================
# HELPERS
# =============================================================================

def _sizing_target(state: OrderState) -> Optional[Variant]:
    """Variant still missing sizes; the active one first."""
    active = state.get_active()
    if active is not None and not active.is_complete:
        return active
    return next((v for v in state.variants if not v.is_complete), None)


def _ask_sizes(state: OrderState, variant: Variant) -> str:
    color = variant.color.upper()

    if not variant.total_quantity:
        return f"Câte {_plural(state)} {color} dorești și pe ce mărimi? (ex: 10 M, 15 L)"

    if not variant.quantities_per_size:
        return (
            f"Pentru cele {variant.total_quantity} {_plural(state)} {color}, "
            f"ce mărimi dorești? (ex: 10 M, 15 L, 5 XL)"
        )

    return f"Mai lipsesc {variant.remaining} bucăți pentru {color}. Pe ce mărimi?"


def _plural(state: OrderState) -> str:
    return PRODUCT_PLURAL.get(state.product_type, "bucăți")


def _definite(state: OrderState) -> str:
    return PRODUCT_DEFINITE.get(state.product_type, "produsele")


def _plain_summary(state: OrderState) -> str:
    lines = []
    for variant in state.variants:
        lines.append(
            f"- {variant.color}: {variant.assigned}/{variant.total_quantity or '?'} "
            f"({variant.format_sizes()})"
        )
    return "\n".join(lines) or "- nimic încă"
