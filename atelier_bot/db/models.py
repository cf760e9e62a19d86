"""
SQLAlchemy models for Atelier Order Bot.
Orders keep their conversation and derived state as JSON; audit logs are append-only.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ORDERS
# =============================================================================


class OrderRecord(Base):
    """Order being collected through chat."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft")

    # Conversation turns (ChatMessage.to_dict) and the state derived from them
    conversation: Mapped[list] = mapped_column(JSON, default=list)
    order_state: Mapped[dict] = mapped_column(JSON, default=dict)

    # Single-writer edit lock
    locked_for_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    lock_token: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Bumped on every write; writers compare it to the version they read
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_orders_owner_status", "owner_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<OrderRecord(id='{self.id}', owner='{self.owner_id}', status='{self.status}')>"


# =============================================================================
# AUDIT TRAIL
# =============================================================================


class AuditLogRecord(Base):
    """One audit event (edit attempt, failure, success...)."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(32), nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Event specific payload (old/new text, diagnostics, replay logs)
    details: Mapped[dict] = mapped_column(JSON, default=dict)

    __table_args__ = (
        Index("ix_audit_logs_order_timestamp", "order_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogRecord(order='{self.order_id}', event='{self.event}')>"
