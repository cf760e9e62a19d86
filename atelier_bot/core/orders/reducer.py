"""
Order-state reducer.

Turns one customer message into a new OrderState. The function is pure:
the input state is deep-copied and the caller's object is never touched.

Steps run in a fixed order because later ones depend on the active variant
and on colors created earlier in the same message:

    1. product type + budget
    2. active variant resolution
    3. size/quantity extraction (additive)
    4. relative quantity ("restul L")
    5. color / variant detection
    6. bare-number answer to the previous question
    7. personalization decision
    8. completion recomputation
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from atelier_bot.core.orders.errors import OverCapacityError
from atelier_bot.core.orders.models import OVER_CAPACITY, OrderState, Personalization, Variant
from atelier_bot.core.orders.normalize import normalize_text
from atelier_bot.core.orders.vocabulary import (
    COLOR_ALIAS_PATTERNS,
    COLOR_ALIASES,
    NO_PERSONALIZATION_PHRASES,
    NO_WORDS,
    PERSONALIZATION_KEYWORD,
    PRODUCT_PATTERNS,
    PRODUCT_WORD,
    REST_WORD,
    SIZE_ALTERNATION,
    SIZES,
    TECHNIQUES,
    UNLOCK_PHRASES,
    YES_WORDS,
    ZONES,
)

logger = logging.getLogger(__name__)


# "10 M" / "10M", "M:10", "M10" / "M 10". Matched left to right without overlap.
# A lone "3XL" is a size token, not "3 x XL".
SIZE_QTY_PATTERN = re.compile(
    rf"(?<!\d)(?!3xl\b)(?P<qty_first>\d+)\s*(?P<size_after>{SIZE_ALTERNATION})\b"
    rf"|\b(?P<size_colon>{SIZE_ALTERNATION})\s*:\s*(?P<qty_colon>\d+)(?!\d)"
    rf"|\b(?P<size_first>{SIZE_ALTERNATION})\s*(?P<qty_after>\d+)(?!\d)",
    re.IGNORECASE,
)

REST_PATTERN = re.compile(
    rf"\b{REST_WORD}\s+(?:(?:pe|in|la|de)\s+)?(?P<size_a>{SIZE_ALTERNATION.lower()})\b"
    rf"|\b(?P<size_b>{SIZE_ALTERNATION.lower()})\s+{REST_WORD}\b"
)

BUDGET_PATTERN = re.compile(
    r"\bbuget(?:ul)?(?:\s*:|\s+(?:de|este|e|total|maxim)\b)*\s*(?P<amount_a>\d+(?:\.\d{3})*)(?!\d)"
    r"|(?<!\d)(?P<amount_b>\d+(?:\.\d{3})*)\s*(?:lei|ron)\b"
)

# Sizes named by the assistant, matched on normalized text as whole words
QUESTION_SIZE_PATTERN = re.compile(
    rf"(?<![\w-])({SIZE_ALTERNATION.lower()})(?![\w-])"
)

BARE_NUMBER_PATTERN = re.compile(r"\d+")

COLOR_QTY_PATTERNS = {
    alias: re.compile(
        rf"(?<!\d)(?P<qty>\d+)\s*(?:de\s+)?(?:{PRODUCT_WORD}\s+)?{re.escape(alias)}\b"
    )
    for alias in COLOR_ALIASES
}

TECHNIQUE_PATTERNS = {alias: re.compile(rf"\b{alias}\b") for alias in TECHNIQUES}
ZONE_PATTERNS = {alias: re.compile(rf"\b{alias}\b") for alias in ZONES}


@dataclass
class Diagnostics:
    """What the reducer recognised in one message."""
    parsed_sizes: list[str] = field(default_factory=list)
    parsed_colors: list[str] = field(default_factory=list)
    parsed_quantities: dict[str, dict] = field(default_factory=dict)
    target_variant: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    def record_size(self, size: str, before: int, added: int, after: int, label: str = "") -> None:
        self.parsed_sizes.append(f"{size} ({label})" if label else size)
        entry = self.parsed_quantities.get(size)
        if entry is None:
            self.parsed_quantities[size] = {"before": before, "added": added, "after": after}
        else:
            entry["added"] = entry.get("added", 0) + added
            entry["after"] = after

    def record_color(self, color: str) -> None:
        if color not in self.parsed_colors:
            self.parsed_colors.append(color)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "parsed_sizes": list(self.parsed_sizes),
            "parsed_colors": list(self.parsed_colors),
            "parsed_quantities": {k: dict(v) for k, v in self.parsed_quantities.items()},
            "target_variant": self.target_variant,
            "warnings": list(self.warnings),
        }


@dataclass
class ReduceResult:
    """Message applied; the new state replaces the old one."""
    state: OrderState
    diagnostics: Diagnostics

    ok = True


@dataclass
class ReduceFailure:
    """Message contradicts the order; the caller keeps its previous state."""
    reason: str
    message: str
    diagnostics: Diagnostics
    details: dict = field(default_factory=dict)

    ok = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "reason": self.reason,
            "message": self.message,
            "details": dict(self.details),
            "diagnostics": self.diagnostics.to_dict(),
        }


ReduceOutcome = Union[ReduceResult, ReduceFailure]


# =============================================================================
# PUBLIC API
# =============================================================================

def reduce_message(state: OrderState, message: str) -> ReduceOutcome:
    """
    Apply one customer message and report the outcome explicitly.

    Unrecognised text is ignored. Arithmetic contradictions come back as
    ReduceFailure instead of an exception.
    """
    diagnostics = Diagnostics()
    try:
        new_state = _apply(state, message, diagnostics)
    except OverCapacityError as e:
        logger.info(f"Message rejected ({e.reason}): {message[:50]!r}")
        return ReduceFailure(
            reason=e.reason,
            message=str(e),
            diagnostics=diagnostics,
            details={"color": e.color, "assigned": e.assigned, "total": e.total},
        )
    return ReduceResult(state=new_state, diagnostics=diagnostics)


def apply_user_message(state: OrderState, message: str) -> ReduceResult:
    """
    Apply one customer message.

    Raises:
        OverCapacityError: "restul <size>" on a variant with nothing left
    """
    diagnostics = Diagnostics()
    new_state = _apply(state, message, diagnostics)
    return ReduceResult(state=new_state, diagnostics=diagnostics)


def question_sizes(question: Optional[str]) -> list[str]:
    """Distinct sizes named in an assistant question, in order of mention."""
    sizes = []
    for token in QUESTION_SIZE_PATTERN.findall(normalize_text(question)):
        size = token.upper()
        if size not in sizes:
            sizes.append(size)
    return sizes


# =============================================================================
# STEPS
# =============================================================================

def _apply(state: OrderState, message: str, diagnostics: Diagnostics) -> OrderState:
    updated = state.copy()
    raw = message if isinstance(message, str) else str(message or "")
    norm = normalize_text(raw)

    mentioned_colors = _color_mentions(norm)

    _extract_product_and_budget(updated, norm)
    target = _resolve_active_variant(updated, norm, mentioned_colors, diagnostics)
    _extract_sizes(updated, target, raw, diagnostics)
    _resolve_rest(updated, target, norm, diagnostics)
    _detect_colors(updated, norm, mentioned_colors, diagnostics)
    _resolve_short_answer(updated, target, raw, state.last_question, diagnostics)
    _extract_personalization(updated, norm, mentioned_colors, diagnostics)
    _recompute(updated, diagnostics)

    logger.debug(
        f"Reduced {raw[:40]!r}: target={diagnostics.target_variant} "
        f"sizes={diagnostics.parsed_sizes} colors={diagnostics.parsed_colors}"
    )
    return updated


def _extract_product_and_budget(state: OrderState, norm: str) -> None:
    # First writer wins; earliest mention in the message decides
    if state.product_type is None:
        found = []
        for product_type, pattern in PRODUCT_PATTERNS:
            match = pattern.search(norm)
            if match:
                found.append((match.start(), product_type))
        if found:
            state.product_type = min(found, key=lambda item: item[0])[1]

    match = BUDGET_PATTERN.search(norm)
    if match:
        amount = match.group("amount_a") or match.group("amount_b")
        state.budget = float(amount.replace(".", ""))


def _resolve_active_variant(
    state: OrderState,
    norm: str,
    mentioned_colors: list[str],
    diagnostics: Diagnostics,
) -> Optional[Variant]:
    unlocked = any(phrase in norm for phrase in UNLOCK_PHRASES)
    if unlocked:
        state.active_variant = None
        state.active_variant_locked = False
        diagnostics.warnings.append("activeVariantLocked released by user command")

    current = state.get_active()
    if current is None:
        state.active_variant = None

    if current is not None and state.active_variant_locked:
        pass
    elif mentioned_colors:
        color = mentioned_colors[0]
        current = state.find_variant(color)
        if current is None:
            # Placeholder now so sizes in this same message have a home
            current = Variant(color=color)
            state.variants.append(current)
        state.active_variant = current.color
    elif not unlocked and (current is None or current.is_complete):
        fallback = _first_unsized(state) or _first_incomplete(state)
        if fallback is not None:
            current = fallback
            state.active_variant = fallback.color

    diagnostics.target_variant = current.color if current else None
    return current


def _extract_sizes(
    state: OrderState,
    target: Optional[Variant],
    raw: str,
    diagnostics: Diagnostics,
) -> None:
    for match in SIZE_QTY_PATTERN.finditer(raw):
        size = (
            match.group("size_after") or match.group("size_colon") or match.group("size_first")
        ).upper()
        qty = int(match.group("qty_first") or match.group("qty_colon") or match.group("qty_after"))

        if size not in SIZES:
            continue
        if target is None:
            diagnostics.warnings.append(f"Size {size}:{qty} ignored, no active variant")
            continue

        before = target.quantities_per_size.get(size, 0)
        if qty == 0:
            # Corrective zeroing is the only way a size disappears
            if size in target.quantities_per_size:
                del target.quantities_per_size[size]
                diagnostics.parsed_sizes.append(f"{size} (removed)")
                diagnostics.parsed_quantities[size] = {"before": before, "removed": True, "after": 0}
            continue

        after = before + qty
        target.quantities_per_size[size] = after
        diagnostics.record_size(size, before, qty, after)
        state.active_variant_locked = True


def _resolve_rest(
    state: OrderState,
    target: Optional[Variant],
    norm: str,
    diagnostics: Diagnostics,
) -> None:
    matches = list(REST_PATTERN.finditer(norm))
    if not matches:
        return
    if target is None or not target.total_quantity:
        diagnostics.warnings.append("Rest requested but active variant has no total quantity")
        return

    for match in matches:
        size = (match.group("size_a") or match.group("size_b")).upper()
        assigned = target.assigned
        remaining = target.total_quantity - assigned

        if remaining <= 0:
            target.error = OVER_CAPACITY
            diagnostics.warnings.append(
                f"Cannot assign rest to {size}: {assigned}/{target.total_quantity} already assigned"
            )
            raise OverCapacityError(
                target.color, assigned, target.total_quantity, diagnostics.to_dict()
            )

        before = target.quantities_per_size.get(size, 0)
        after = before + remaining
        target.quantities_per_size[size] = after
        diagnostics.record_size(size, before, remaining, after, label="rest")
        state.active_variant_locked = True


def _detect_colors(
    state: OrderState,
    norm: str,
    mentioned_colors: list[str],
    diagnostics: Diagnostics,
) -> None:
    with_qty = []
    for alias, pattern in COLOR_QTY_PATTERNS.items():
        for match in pattern.finditer(norm):
            qty = int(match.group("qty"))
            if qty > 0:
                with_qty.append((match.start(), COLOR_ALIASES[alias], qty))

    for _, color, qty in sorted(with_qty, key=lambda item: item[0]):
        variant = state.find_variant(color)
        if variant is None:
            state.variants.append(Variant(color=color, total_quantity=qty))
        else:
            if variant.total_quantity not in (None, qty):
                diagnostics.warnings.append(
                    f"Variant {color}: total changed {variant.total_quantity} -> {qty}"
                )
            variant.total_quantity = qty
        diagnostics.record_color(color)

    for color in mentioned_colors:
        if state.find_variant(color) is None:
            state.variants.append(Variant(color=color))
        diagnostics.record_color(color)


def _resolve_short_answer(
    state: OrderState,
    target: Optional[Variant],
    raw: str,
    last_question: Optional[str],
    diagnostics: Diagnostics,
) -> None:
    text = raw.strip()
    if not last_question or not BARE_NUMBER_PATTERN.fullmatch(text):
        return

    sizes = question_sizes(last_question)

    if not sizes:
        return
    if len(sizes) > 1:
        diagnostics.warnings.append(
            f"Bare number {text} ignored: previous question names several sizes {sizes}"
        )
        return
    if target is None:
        diagnostics.warnings.append(f"Bare number {text} ignored, no active variant")
        return

    size = sizes[0]
    qty = int(text)
    before = target.quantities_per_size.get(size, 0)
    after = before + qty
    target.quantities_per_size[size] = after
    diagnostics.record_size(size, before, qty, after, label="short answer")
    state.active_variant_locked = True


def _extract_personalization(
    state: OrderState,
    norm: str,
    mentioned_colors: list[str],
    diagnostics: Diagnostics,
) -> None:
    target = _personalization_target(state, mentioned_colors)
    if target is None:
        return

    choice = target.personalization
    stripped = norm.strip(" .!?")
    asked = PERSONALIZATION_KEYWORD in normalize_text(state.last_question)

    if any(phrase in norm for phrase in NO_PERSONALIZATION_PHRASES):
        target.personalization = Personalization(enabled=False, decided=True)
        diagnostics.warnings.append(f"Variant {target.color}: personalization declined")
        return

    technique = _first_match(TECHNIQUE_PATTERNS, TECHNIQUES, norm)
    zone = _first_match(ZONE_PATTERNS, ZONES, norm)

    if technique:
        choice.enabled = True
        choice.decided = True
        choice.technique = technique
    if zone and (technique or choice.enabled or asked or PERSONALIZATION_KEYWORD in norm):
        choice.enabled = True
        choice.decided = True
        choice.zone = zone

    # Short yes/no reply to "Dorești personalizare ...?"
    if not technique and not zone and asked and len(stripped.split()) <= 3:
        word = re.match(r"[a-z]+", stripped)
        first_word = word.group(0) if word else ""
        if first_word in YES_WORDS:
            choice.enabled = True
            choice.decided = True
        elif first_word in NO_WORDS:
            target.personalization = Personalization(enabled=False, decided=True)


def _recompute(state: OrderState, diagnostics: Diagnostics) -> None:
    for variant in state.variants:
        variant.recompute()
        if variant.error == OVER_CAPACITY:
            diagnostics.warnings.append(
                f"Variant {variant.color}: over_capacity ({variant.assigned}/{variant.total_quantity})"
            )

    active = state.get_active()
    if active is None:
        state.active_variant = None
        state.active_variant_locked = False
    elif active.is_complete:
        state.active_variant_locked = False


# =============================================================================
# HELPERS
# =============================================================================

def _color_mentions(norm: str) -> list[str]:
    """Canonical colors mentioned in the message, in text order, deduplicated."""
    hits = []
    for alias, pattern in COLOR_ALIAS_PATTERNS.items():
        for match in pattern.finditer(norm):
            hits.append((match.start(), COLOR_ALIASES[alias]))

    colors = []
    for _, color in sorted(hits, key=lambda item: item[0]):
        if color not in colors:
            colors.append(color)
    return colors


def _first_unsized(state: OrderState) -> Optional[Variant]:
    for variant in state.variants:
        if not variant.quantities_per_size:
            return variant
    return None


def _first_incomplete(state: OrderState) -> Optional[Variant]:
    for variant in state.variants:
        if not variant.is_complete and variant.error is None:
            return variant
    return None


def _personalization_target(state: OrderState, mentioned_colors: list[str]) -> Optional[Variant]:
    """Variant a personalization answer refers to."""
    if mentioned_colors:
        return state.find_variant(mentioned_colors[0])

    # "Dorești personalizare pe tricourile ROȘU?" names the variant being asked about
    asked_about = _color_mentions(normalize_text(state.last_question))
    if len(asked_about) == 1:
        variant = state.find_variant(asked_about[0])
        if variant is not None:
            return variant

    return state.get_active()


def _first_match(patterns: dict, mapping: dict, norm: str) -> Optional[str]:
    hits = []
    for alias, pattern in patterns.items():
        match = pattern.search(norm)
        if match:
            hits.append((match.start(), mapping[alias]))
    if not hits:
        return None
    return min(hits, key=lambda item: item[0])[1]
