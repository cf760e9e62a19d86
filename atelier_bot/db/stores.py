"""
Order and audit-log stores.

Thin async repositories over the SQLAlchemy models. The edit lock is taken
with a single conditional UPDATE, so check-and-set is atomic in the database.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import asc, desc, or_, select, update

from atelier_bot.db.models import AuditLogRecord, OrderRecord
from atelier_bot.db.sqlite import Database, db

logger = logging.getLogger(__name__)


class OrderStore:
    """Orders with their conversation, derived state and edit lock."""

    def __init__(self, database: Database):
        self.database = database

    async def create(self, owner_id: str, owner_name: Optional[str] = None) -> OrderRecord:
        """Create an empty draft order."""
        record = OrderRecord(
            id=uuid.uuid4().hex[:8].upper(),
            owner_id=str(owner_id),
            owner_name=owner_name,
            status="draft",
            conversation=[],
            order_state={},
            locked_for_edit=False,
            version=0,
        )
        async with self.database.session() as session:
            session.add(record)
        logger.info(f"Order {record.id} created for {owner_id}")
        return record

    async def read(self, order_id: str) -> Optional[OrderRecord]:
        """Load order by id."""
        async with self.database.session() as session:
            return await session.get(OrderRecord, order_id)

    async def find_open(self, owner_id: str) -> Optional[OrderRecord]:
        """Most recent draft order of a customer."""
        async with self.database.session() as session:
            result = await session.execute(
                select(OrderRecord)
                .where(OrderRecord.owner_id == str(owner_id))
                .where(OrderRecord.status == "draft")
                .order_by(desc(OrderRecord.created_at))
                .limit(1)
            )
            return result.scalars().first()

    async def update(
        self,
        order_id: str,
        unlocked_only: bool = False,
        expected_version: Optional[int] = None,
        held_lock: Optional[str] = None,
        **fields: Any,
    ) -> bool:
        """
        Write several fields in one UPDATE statement and bump the version.

        Args:
            unlocked_only: skip the write while an edit holds the lock
            expected_version: skip the write if the row changed since it was read
            held_lock: skip the write unless this lock token still holds the order

        Returns:
            True if a row was written
        """
        fields["updated_at"] = datetime.now(timezone.utc)
        fields["version"] = OrderRecord.version + 1
        stmt = update(OrderRecord).where(OrderRecord.id == order_id)
        if unlocked_only:
            stmt = stmt.where(OrderRecord.locked_for_edit.is_(False))
        if expected_version is not None:
            stmt = stmt.where(OrderRecord.version == expected_version)
        if held_lock is not None:
            stmt = stmt.where(OrderRecord.lock_token == held_lock)

        async with self.database.session() as session:
            result = await session.execute(
                stmt.values(**fields).execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def try_lock(
        self,
        order_id: str,
        user_id: str,
        stale_after_seconds: int = 0,
    ) -> Optional[str]:
        """
        Atomically take the edit lock.

        A lock older than stale_after_seconds may be taken over (0 disables).

        Returns:
            Lock token if this call now holds the lock, else None
        """
        now = datetime.now(timezone.utc)
        token = uuid.uuid4().hex
        free = OrderRecord.locked_for_edit.is_(False)
        if stale_after_seconds > 0:
            cutoff = now - timedelta(seconds=stale_after_seconds)
            free = or_(free, OrderRecord.locked_at < cutoff)

        async with self.database.session() as session:
            result = await session.execute(
                update(OrderRecord)
                .where(OrderRecord.id == order_id)
                .where(free)
                .values(
                    locked_for_edit=True,
                    locked_at=now,
                    locked_by=str(user_id),
                    lock_token=token,
                )
                .execution_options(synchronize_session=False)
            )
            acquired = result.rowcount == 1

        if not acquired:
            return None
        logger.info(f"Order {order_id} locked for edit by {user_id}")
        return token

    async def unlock(self, order_id: str, token: Optional[str] = None) -> bool:
        """
        Release the edit lock.

        Args:
            token: only release if this token still holds the lock

        Returns:
            True if a lock was cleared
        """
        stmt = (
            update(OrderRecord)
            .where(OrderRecord.id == order_id)
            .where(OrderRecord.locked_for_edit.is_(True))
        )
        if token is not None:
            stmt = stmt.where(OrderRecord.lock_token == token)

        async with self.database.session() as session:
            result = await session.execute(
                stmt.values(
                    locked_for_edit=False, locked_at=None, locked_by=None, lock_token=None
                ).execution_options(synchronize_session=False)
            )
            released = result.rowcount == 1

        if released:
            logger.info(f"Order {order_id} unlocked")
        return released


class AuditLogStore:
    """Append-only audit trail."""

    SORTABLE = {
        "timestamp": AuditLogRecord.timestamp,
        "created_date": AuditLogRecord.timestamp,
        "id": AuditLogRecord.id,
        "event": AuditLogRecord.event,
    }

    FILTERABLE = {
        "order_id": AuditLogRecord.order_id,
        "event": AuditLogRecord.event,
        "user_id": AuditLogRecord.user_id,
        "message_id": AuditLogRecord.message_id,
    }

    def __init__(self, database: Database):
        self.database = database

    async def create(self, entry: dict) -> None:
        """Append one entry; keys outside the columns go to details."""
        entry = dict(entry)
        timestamp = entry.pop("timestamp", None) or datetime.now(timezone.utc)
        record = AuditLogRecord(
            order_id=str(entry.pop("order_id", "") or ""),
            event=entry.pop("event"),
            user_id=_str_or_none(entry.pop("user_id", None)),
            message_id=_str_or_none(entry.pop("message_id", None)),
            timestamp=timestamp,
            details=entry,
        )
        async with self.database.session() as session:
            session.add(record)

    async def filter(
        self,
        query: dict,
        sort: str = "-timestamp",
        limit: int = 100,
    ) -> list[dict]:
        """
        Find entries matching all query fields.

        Args:
            query: column -> value equality filters
            sort: column name, "-" prefix for descending
            limit: maximum entries returned
        """
        stmt = select(AuditLogRecord)
        for key, value in query.items():
            column = self.FILTERABLE.get(key)
            if column is None:
                raise ValueError(f"Cannot filter audit log by {key}")
            stmt = stmt.where(column == value)

        descending = sort.startswith("-")
        column = self.SORTABLE.get(sort.lstrip("-"))
        if column is None:
            raise ValueError(f"Cannot sort audit log by {sort}")
        order = desc if descending else asc
        # id breaks ties between entries written in the same instant
        stmt = stmt.order_by(order(column), order(AuditLogRecord.id)).limit(limit)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return [_entry_to_dict(record) for record in result.scalars().all()]


def _str_or_none(value) -> Optional[str]:
    return None if value is None else str(value)


def _entry_to_dict(record: AuditLogRecord) -> dict:
    entry = dict(record.details or {})
    entry.update({
        "id": record.id,
        "order_id": record.order_id,
        "event": record.event,
        "user_id": record.user_id,
        "message_id": record.message_id,
        "timestamp": record.timestamp.isoformat() if record.timestamp else None,
    })
    return entry


# Global store instances
order_store = OrderStore(db)
audit_log = AuditLogStore(db)
