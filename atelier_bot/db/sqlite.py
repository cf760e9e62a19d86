"""
Async SQLAlchemy engine and session management.

Concurrent writers (live turns, edit locks) queue on SQLite's busy timeout
instead of failing with "database is locked".
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from atelier_bot.config import settings
from atelier_bot.db.models import Base

SQLITE_BUSY_TIMEOUT_MS = 5000


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.close()


class Database:
    """Owns the engine; hands out transactional sessions."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.db_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    async def init(self) -> None:
        """Create engine and tables (idempotent)."""
        if self._engine is not None:
            return

        if self.is_sqlite:
            database = make_url(self.url).database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(self.url, echo=settings.debug)
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_pragmas)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine; the next session() re-initializes."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on success, rolled back on error."""
        if self._session_factory is None:
            await self.init()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Global database instance
db = Database()
