"""Persistence adapter used by the pipeline.

Wraps the repositories behind a small interface keyed by token address.
Each write runs in its own session so one bad record does not roll back
the others.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from launchpad_tracker.storage.repos import LaunchSignalRepository, TrackedTokenRepository

if TYPE_CHECKING:
    from launchpad_tracker.detector.models import LaunchSignal, TrackedToken
    from launchpad_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a record cannot be written to or read from storage."""

    def __init__(self, operation: str, key: str | None, reason: str) -> None:
        self.operation = operation
        self.key = key
        self.reason = reason
        target = f" {key}" if key else ""
        super().__init__(f"{operation}{target} failed: {reason}")


class TokenPersistence:
    """Durable store of tracked token records."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def init_schema(self) -> None:
        await self._db.create_schema()

    async def upsert(self, token: TrackedToken) -> None:
        """Write the full record of one token, replacing any previous one."""
        try:
            async with self._db.session() as session:
                await TrackedTokenRepository(session).upsert(token)
        except SQLAlchemyError as e:
            raise PersistenceError("upsert", token.address, str(e)) from e

    async def upsert_many(self, tokens: Iterable[TrackedToken]) -> list[str]:
        """Write several tokens; return the addresses that failed."""
        failed: list[str] = []
        for token in tokens:
            try:
                await self.upsert(token)
            except PersistenceError as e:
                logger.error("Failed to persist %s: %s", token.address, e.reason)
                failed.append(token.address)
        return failed

    async def fetch_all(self) -> list[TrackedToken]:
        """Every stored token, used to rebuild in-memory state on startup."""
        try:
            async with self._db.session() as session:
                return await TrackedTokenRepository(session).list_all()
        except SQLAlchemyError as e:
            raise PersistenceError("fetch_all", None, str(e)) from e

    async def save_signal(self, signal: LaunchSignal) -> None:
        try:
            async with self._db.session() as session:
                await LaunchSignalRepository(session).upsert(signal)
        except SQLAlchemyError as e:
            raise PersistenceError("save_signal", signal.token_address, str(e)) from e
