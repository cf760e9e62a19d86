"""
Pytest configuration and fixtures.
"""

import os

# Settings are read at import time
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test-token")

import pytest
import pytest_asyncio

from atelier_bot.core.orders.editing import ADMIN_ROLE, EditOrchestrator, Identity
from atelier_bot.core.orders.intake import OrderIntake
from atelier_bot.core.orders.models import ChatMessage, MessageRole
from atelier_bot.core.orders.replay import build_state
from atelier_bot.db.sqlite import Database
from atelier_bot.db.stores import AuditLogStore, OrderStore


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite file per test."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.init()
    yield database
    await database.close()


@pytest.fixture
def orders(database) -> OrderStore:
    return OrderStore(database)


@pytest.fixture
def audit(database) -> AuditLogStore:
    return AuditLogStore(database)


@pytest.fixture
def editor(orders, audit) -> EditOrchestrator:
    return EditOrchestrator(orders, audit, lock_stale_after_seconds=300)


@pytest.fixture
def intake(orders) -> OrderIntake:
    return OrderIntake(orders, use_llm=False)


@pytest.fixture
def owner() -> Identity:
    return Identity(user_id="1001", role="client")


@pytest.fixture
def admin() -> Identity:
    return Identity(user_id="9000", role=ADMIN_ROLE)


def user(content: str, message_id: str) -> dict:
    return ChatMessage(role=MessageRole.USER, content=content, id=message_id).to_dict()


def assistant(content: str, message_id: str) -> dict:
    return ChatMessage(role=MessageRole.ASSISTANT, content=content, id=message_id).to_dict()


@pytest_asyncio.fixture
async def make_order(orders):
    """Create an order owned by 1001 with the given stored conversation."""

    async def _make(conversation: list[dict], owner_id: str = "1001"):
        record = await orders.create(owner_id, "Test Client")
        await orders.update(
            record.id,
            conversation=conversation,
            order_state=build_state(conversation).to_dict(),
        )
        return record.id

    return _make
