"""SQLAlchemy models for persistent storage.

This module defines the database schema for tracked tokens and their
early-activity signals. Token amounts are uint256-sized and may exceed what
every backend's numeric type holds exactly, so they are stored as decimal
strings.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Enough digits for a signed uint256
AMOUNT_LENGTH = 80


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TrackedTokenModel(Base):
    """SQLAlchemy model for a tracked token and its running aggregates."""

    __tablename__ = "tracked_tokens"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    symbol: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decimals: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_supply: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)

    creator: Mapped[str] = mapped_column(String(42), nullable=False)
    creation_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    creation_tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    mint_recipient: Mapped[str | None] = mapped_column(String(42), nullable=True)
    mint_log: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    allocation_log: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    issuer_residual_holding: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    allocation_found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    buy_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sell_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_buyers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    unique_sellers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    total_buy_volume: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False, default="0")
    total_sell_volume: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False, default="0")

    trades: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    wallet_transfers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    cross_platform_trades: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    data_errors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    risk_flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_tracked_tokens_creator", "creator"),
        Index("idx_tracked_tokens_creation_block", "creation_block"),
        Index("idx_tracked_tokens_risk_score", "risk_score"),
    )


class LaunchSignalModel(Base):
    """Early trading activity of a token, one row per token."""

    __tablename__ = "launch_signals"

    token_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    creation_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    analyzed_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_count: Mapped[int] = mapped_column(Integer, nullable=False)
    blocks_with_activity: Mapped[int] = mapped_column(Integer, nullable=False)
    unique_traders: Mapped[int] = mapped_column(Integer, nullable=False)
    buy_count: Mapped[int] = mapped_column(Integer, nullable=False)
    sell_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_buy_volume: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    total_sell_volume: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    qualified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_launch_signals_qualified_at", "qualified_at"),)
