"""Async engine and session handling for the token store.

PostgreSQL is reached through asyncpg and SQLite through aiosqlite. A bare
``postgresql://`` URL is rewritten to the asyncpg driver so one
``DATABASE_URL`` serves both the tracker and the alembic migrations.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from launchpad_tracker.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_SYNC_POSTGRES = "postgresql://"
_ASYNC_POSTGRES = "postgresql+asyncpg://"


def async_database_url(url: str) -> str:
    """Point a PostgreSQL URL at the asyncpg driver; other URLs pass through."""
    if url.startswith(_SYNC_POSTGRES):
        return _ASYNC_POSTGRES + url[len(_SYNC_POSTGRES) :]
    return url


def is_sqlite(url: str | None) -> bool:
    return bool(url and url.startswith("sqlite"))


def _engine_options(url: str, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if not is_sqlite(url):
        return {"pool_size": pool_size, "max_overflow": max_overflow, "pool_pre_ping": True}
    if ":memory:" in url:
        # Every session must see the same in-memory database
        return {"poolclass": StaticPool}
    return {}


class DatabaseManager:
    """Lazily built async engine plus a transactional session scope.

    Args:
        url: ``DATABASE_URL`` for PostgreSQL or ``sqlite+aiosqlite``.
        pool_size: Pooled connections kept open (PostgreSQL only).
        max_overflow: Extra connections allowed under load (PostgreSQL only).
        echo: Log every SQL statement.
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        if url.startswith(_SYNC_POSTGRES):
            logger.warning("DATABASE_URL has no async driver, connecting through asyncpg")
        self.url = async_database_url(url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.url,
                echo=self._echo,
                **_engine_options(self.url, self._pool_size, self._max_overflow),
            )
            self._sessions = async_sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: committed on exit, rolled back if the block raises."""
        if self._sessions is None:
            _ = self.engine
        assert self._sessions is not None
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create missing tables. Alembic owns changes to existing ones."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Token store schema ready")

    async def dispose(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database connections closed")
