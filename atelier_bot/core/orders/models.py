"""
Order models for Atelier bot.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from atelier_bot.core.orders.normalize import normalize_text
from atelier_bot.core.orders.vocabulary import ProductType, SIZES


class OrderStatus(Enum):
    """Order status enum."""
    DRAFT = "draft"              # Conversation in progress
    CONFIRMED = "confirmed"      # Customer confirmed the collected order
    CANCELLED = "cancelled"      # Replaced by a new order


class MessageRole(Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


OVER_CAPACITY = "over_capacity"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Personalization:
    """Personalization choice for one variant."""
    enabled: bool = False
    technique: Optional[str] = None
    zone: Optional[str] = None
    decided: bool = False       # customer answered the question at all

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "enabled": self.enabled,
            "technique": self.technique,
            "zone": self.zone,
            "decided": self.decided,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Personalization":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            technique=data.get("technique"),
            zone=data.get("zone"),
            decided=bool(data.get("decided", False)),
        )

    def format_summary(self) -> str:
        """Format personalization as text."""
        if not self.decided:
            return "nedecisă"
        if not self.enabled:
            return "fără"
        parts = [self.technique or "da"]
        if self.zone:
            parts.append(f"pe {self.zone}")
        return " ".join(parts)


@dataclass
class Variant:
    """One color's configuration."""
    color: str
    total_quantity: Optional[int] = None
    quantities_per_size: dict[str, int] = field(default_factory=dict)
    personalization: Personalization = field(default_factory=Personalization)

    # Derived by recompute(), never set directly
    is_complete: bool = False
    error: Optional[str] = None
    remaining: Optional[int] = None

    @property
    def key(self) -> str:
        """Case and diacritic insensitive identity."""
        return normalize_text(self.color)

    @property
    def assigned(self) -> int:
        """Sum of quantities already placed on sizes."""
        return sum(self.quantities_per_size.values())

    def recompute(self) -> None:
        """Refresh is_complete / error / remaining from the quantities."""
        assigned = self.assigned

        # Total is inferred once, the first time sizes arrive without one
        if assigned > 0 and not self.total_quantity:
            self.total_quantity = assigned

        self.is_complete = False
        self.error = None
        self.remaining = None

        if self.total_quantity is None:
            return

        if assigned == self.total_quantity:
            self.is_complete = True
        elif assigned > self.total_quantity:
            self.error = OVER_CAPACITY
        else:
            self.remaining = self.total_quantity - assigned

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "color": self.color,
            "total_quantity": self.total_quantity,
            "quantities_per_size": dict(self.quantities_per_size),
            "personalization": self.personalization.to_dict(),
            "is_complete": self.is_complete,
            "error": self.error,
            "remaining": self.remaining,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Variant":
        return cls(
            color=data["color"],
            total_quantity=data.get("total_quantity"),
            quantities_per_size={k: int(v) for k, v in (data.get("quantities_per_size") or {}).items()},
            personalization=Personalization.from_dict(data.get("personalization")),
            is_complete=bool(data.get("is_complete", False)),
            error=data.get("error"),
            remaining=data.get("remaining"),
        )

    def format_sizes(self) -> str:
        """Sizes in canonical order, e.g. 'M:10, L:20'."""
        ordered = sorted(
            self.quantities_per_size.items(),
            key=lambda item: SIZES.index(item[0]) if item[0] in SIZES else len(SIZES),
        )
        return ", ".join(f"{size}:{qty}" for size, qty in ordered) or "—"


@dataclass
class OrderState:
    """Accumulated interpretation of a conversation."""
    product_type: Optional[ProductType] = None
    variants: list[Variant] = field(default_factory=list)
    budget: Optional[float] = None
    last_question: Optional[str] = None
    active_variant: Optional[str] = None
    active_variant_locked: bool = False

    def copy(self) -> "OrderState":
        """Deep copy; reducer steps never touch the caller's object."""
        return copy.deepcopy(self)

    def find_variant(self, color: Optional[str]) -> Optional[Variant]:
        """Find variant by color, ignoring case and diacritics."""
        if not color:
            return None
        key = normalize_text(color)
        for variant in self.variants:
            if variant.key == key:
                return variant
        return None

    def get_active(self) -> Optional[Variant]:
        """Variant currently receiving size input."""
        return self.find_variant(self.active_variant)

    @property
    def total_pieces(self) -> int:
        """Pieces declared across all variants."""
        return sum(v.total_quantity or 0 for v in self.variants)

    @property
    def is_complete(self) -> bool:
        """All variants have sizes and a personalization decision."""
        return bool(self.variants) and all(
            v.is_complete and v.personalization.decided for v in self.variants
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "product_type": self.product_type.value if self.product_type else None,
            "variants": [v.to_dict() for v in self.variants],
            "budget": self.budget,
            "last_question": self.last_question,
            "active_variant": self.active_variant,
            "active_variant_locked": self.active_variant_locked,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "OrderState":
        """Rebuild from to_dict() output (None gives an empty state)."""
        if not data:
            return cls()
        product_type = data.get("product_type")
        return cls(
            product_type=ProductType(product_type) if product_type else None,
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            budget=data.get("budget"),
            last_question=data.get("last_question"),
            active_variant=data.get("active_variant"),
            active_variant_locked=bool(data.get("active_variant_locked", False)),
        )

    def format_summary(self) -> str:
        """Format order state for chat."""
        product = self.product_type.value if self.product_type else "nedefinit"
        lines = [
            "📦 <b>Comanda ta</b>",
            f"Produs: {product}",
        ]
        if self.budget:
            lines.append(f"Buget: {self.budget:.0f} RON")

        if not self.variants:
            lines.append("")
            lines.append("Nicio culoare aleasă încă.")
            return "\n".join(lines)

        lines.append("")
        for i, variant in enumerate(self.variants, 1):
            if variant.error == OVER_CAPACITY:
                status = f"❌ {variant.assigned}/{variant.total_quantity} (prea mult)"
            elif variant.is_complete:
                status = f"✅ {variant.assigned}/{variant.total_quantity}"
            else:
                status = f"⏳ {variant.assigned}/{variant.total_quantity or '?'}"
            marker = "👉 " if variant.key == normalize_text(self.active_variant) else ""
            lines.append(f"{marker}{i}. <b>{variant.color}</b> — {status}")
            lines.append(f"   Mărimi: {variant.format_sizes()}")
            lines.append(f"   Personalizare: {variant.personalization.format_summary()}")

        lines.append("")
        lines.append(f"<b>Total:</b> {self.total_pieces} buc")
        return "\n".join(lines)


@dataclass
class ChatMessage:
    """Single conversation turn."""
    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=_now)

    # Edit stamps
    edited_at: Optional[datetime] = None
    edited_by: Optional[str] = None
    original_content: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "edited_at": self.edited_at.isoformat() if self.edited_at else None,
            "edited_by": self.edited_by,
            "original_content": self.original_content,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex[:12]),
            role=MessageRole(data.get("role", "user")),
            content=data.get("content") or "",
            created_at=_parse_dt(data.get("created_at")) or _now(),
            edited_at=_parse_dt(data.get("edited_at")),
            edited_by=data.get("edited_by"),
            original_content=data.get("original_content"),
        )
