"""Repository pattern implementations for data access.

This module provides data access for tracked tokens and launch signals.
Repositories convert between the detector's domain records and the ORM
models; amounts cross the boundary as decimal strings.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from launchpad_tracker.detector.models import LaunchSignal, RiskLevel, TrackedToken
from launchpad_tracker.storage.models import LaunchSignalModel, TrackedTokenModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# Dataclass fields that map one-to-one onto tracked_tokens columns
_TOKEN_COLUMNS = tuple(f.name for f in fields(TrackedToken) if f.name != "risk")


def _token_values(token: TrackedToken) -> dict[str, Any]:
    """Column values for one token, taken from its serialized form."""
    values = token.to_dict()
    risk = values.pop("risk") or {"flags": [], "score": 0, "level": RiskLevel.NONE.value}
    values["risk_flags"] = risk["flags"]
    values["risk_score"] = risk["score"]
    values["risk_level"] = risk["level"]
    values["detected_at"] = token.detected_at
    return values


def _token_from_model(model: TrackedTokenModel) -> TrackedToken:
    data = {name: getattr(model, name) for name in _TOKEN_COLUMNS}
    # SQLite hands back naive datetimes
    if model.detected_at.tzinfo is None:
        data["detected_at"] = model.detected_at.replace(tzinfo=UTC)
    if model.risk_flags or model.risk_score:
        data["risk"] = {"flags": model.risk_flags, "score": model.risk_score, "level": model.risk_level}
    return TrackedToken.from_dict(data)


class TrackedTokenRepository:
    """Repository for tracked token records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _insert(self) -> Any:
        if self.session.get_bind().dialect.name == "postgresql":
            return pg_insert(TrackedTokenModel)
        return sqlite_insert(TrackedTokenModel)

    async def upsert(self, token: TrackedToken) -> None:
        """Insert or replace the full record of one token."""
        values = _token_values(token)
        now = datetime.now(UTC)
        stmt = self._insert().values(**values, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["address"],
            set_={
                **{k: getattr(stmt.excluded, k) for k in values if k != "address"},
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

    async def list_all(self) -> list[TrackedToken]:
        """All tracked tokens, oldest launch first."""
        result = await self.session.execute(
            select(TrackedTokenModel).order_by(TrackedTokenModel.creation_block, TrackedTokenModel.address)
        )
        return [_token_from_model(m) for m in result.scalars().all()]


class LaunchSignalRepository:
    """Repository for early-activity signals."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, signal: LaunchSignal) -> None:
        values = signal.to_dict()
        values["qualified_at"] = signal.qualified_at
        now = datetime.now(UTC)
        if self.session.get_bind().dialect.name == "postgresql":
            stmt = pg_insert(LaunchSignalModel).values(**values, created_at=now)
        else:
            stmt = sqlite_insert(LaunchSignalModel).values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["token_address"],
            set_={k: getattr(stmt.excluded, k) for k in values if k != "token_address"},
        )
        await self.session.execute(stmt)
