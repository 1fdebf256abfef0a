"""Data models for the detector module.

All token amounts are raw integer units (``int``), never floats, so running
aggregates stay exact no matter how large the supply is. Serialization
writes them as decimal strings.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

DEFAULT_DECIMALS = 18


def format_token_amount(value: int, decimals: int | None = DEFAULT_DECIMALS) -> str:
    """Render raw units as a decimal string without trailing zeros."""
    scale = DEFAULT_DECIMALS if decimals is None else decimals
    text = format(Decimal(value).scaleb(-scale), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class TradeDirection(str, Enum):
    """Side of a platform trade."""

    BUY = "buy"
    SELL = "sell"


class RiskLevel(str, Enum):
    """Bucketed risk score."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class TradeRecord:
    """A buy from, or sell to, the launch platform.

    Attributes:
        direction: Buy or sell.
        counterparty: Buyer (for buys) or seller (for sells).
        amount: Raw token units.
        tx_hash: Transaction hash.
        block_number: Block of the transaction.
        timestamp: Block time, or processing time when unavailable.
        is_issuer: True when the counterparty is the token creator.
    """

    direction: TradeDirection
    counterparty: str
    amount: int
    tx_hash: str
    block_number: int
    timestamp: datetime
    is_issuer: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "counterparty": self.counterparty,
            "amount": str(self.amount),
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp.isoformat(),
            "is_issuer": self.is_issuer,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeRecord:
        return cls(
            direction=TradeDirection(data["direction"]),
            counterparty=str(data["counterparty"]),
            amount=int(data["amount"]),
            tx_hash=str(data["tx_hash"]),
            block_number=int(data["block_number"]),
            timestamp=_parse_ts(data["timestamp"]),
            is_issuer=bool(data.get("is_issuer", False)),
        )


@dataclass(frozen=True)
class WalletTransfer:
    """Peer-to-peer transfer from a known buyer.

    ``destination_count`` is how many wallet transfers the destination had
    received on this token including this one, a distribution signal.
    """

    source: str
    destination: str
    amount: int
    tx_hash: str
    block_number: int
    timestamp: datetime
    destination_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "destination": self.destination,
            "amount": str(self.amount),
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp.isoformat(),
            "destination_count": self.destination_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletTransfer:
        return cls(
            source=str(data["source"]),
            destination=str(data["destination"]),
            amount=int(data["amount"]),
            tx_hash=str(data["tx_hash"]),
            block_number=int(data["block_number"]),
            timestamp=_parse_ts(data["timestamp"]),
            destination_count=int(data.get("destination_count", 1)),
        )


@dataclass(frozen=True)
class CrossPlatformTrade:
    """Transfer of a tracked token from a known buyer to an external exchange.

    Attributes:
        source: Wallet moving the tokens.
        destination: Exchange contract address.
        platform: Exchange label from the address directory.
        amount: Raw token units moved.
        seconds_since_first_buy: Exit speed; None when the first buy had no
            usable timestamp.
        total_bought: Sum of the source's previous platform buys.
        buy_count: Number of the source's previous platform buys.
    """

    source: str
    destination: str
    platform: str
    amount: int
    tx_hash: str
    block_number: int
    timestamp: datetime
    seconds_since_first_buy: float | None
    total_bought: int
    buy_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "destination": self.destination,
            "platform": self.platform,
            "amount": str(self.amount),
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp.isoformat(),
            "seconds_since_first_buy": self.seconds_since_first_buy,
            "total_bought": str(self.total_bought),
            "buy_count": self.buy_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrossPlatformTrade:
        elapsed = data.get("seconds_since_first_buy")
        return cls(
            source=str(data["source"]),
            destination=str(data["destination"]),
            platform=str(data["platform"]),
            amount=int(data["amount"]),
            tx_hash=str(data["tx_hash"]),
            block_number=int(data["block_number"]),
            timestamp=_parse_ts(data["timestamp"]),
            seconds_since_first_buy=float(elapsed) if elapsed is not None else None,
            total_bought=int(data["total_bought"]),
            buy_count=int(data["buy_count"]),
        )


@dataclass(frozen=True)
class DataError:
    """A metadata read that failed during detection."""

    field: str
    error: str
    method: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "error": self.error, "method": self.method}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataError:
        return cls(field=str(data["field"]), error=str(data["error"]), method=str(data["method"]))


@dataclass(frozen=True)
class RiskAssessment:
    """Outcome of the risk rules for one token snapshot."""

    flags: tuple[str, ...]
    score: int
    level: RiskLevel

    @property
    def is_flagged(self) -> bool:
        return self.score > 0

    def to_dict(self) -> dict[str, Any]:
        return {"flags": list(self.flags), "score": self.score, "level": self.level.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RiskAssessment:
        return cls(
            flags=tuple(str(f) for f in data.get("flags", ())),
            score=int(data.get("score", 0)),
            level=RiskLevel(data.get("level", RiskLevel.NONE.value)),
        )


@dataclass
class TrackedToken:
    """Live aggregate record of a token launched through the platform.

    Created by the creation detector, mutated in place by the trade
    classifier. ``issuer_residual_holding`` is an approximation built from
    observed transfers, not a balance read from chain state.
    """

    address: str
    total_supply: int
    creator: str
    creation_block: int
    creation_tx_hash: str
    issuer_residual_holding: int
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    allocation_found: bool = True
    buy_count: int = 1
    sell_count: int = 0
    unique_buyers: set[str] = field(default_factory=set)
    unique_sellers: set[str] = field(default_factory=set)
    total_buy_volume: int = 0
    total_sell_volume: int = 0
    trades: list[TradeRecord] = field(default_factory=list)
    wallet_transfers: list[WalletTransfer] = field(default_factory=list)
    cross_platform_trades: list[CrossPlatformTrade] = field(default_factory=list)
    data_errors: list[DataError] = field(default_factory=list)
    mint_recipient: str | None = None
    mint_log: dict[str, Any] | None = None
    allocation_log: dict[str, Any] | None = None
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    risk: RiskAssessment | None = None

    @classmethod
    def create(
        cls,
        *,
        address: str,
        total_supply: int,
        creator: str,
        creation_block: int,
        creation_tx_hash: str,
        issuer_allocation: int | None,
        **kwargs: Any,
    ) -> TrackedToken:
        """Create a freshly launched token.

        The creator's initial allocation counts as the first buy, and the
        whole supply as the first buy volume.
        """
        return cls(
            address=address,
            total_supply=total_supply,
            creator=creator,
            creation_block=creation_block,
            creation_tx_hash=creation_tx_hash,
            issuer_residual_holding=issuer_allocation or 0,
            allocation_found=issuer_allocation is not None,
            buy_count=1,
            unique_buyers={creator},
            total_buy_volume=total_supply,
            **kwargs,
        )

    @property
    def issuer_holding_pct(self) -> Decimal:
        if self.total_supply <= 0:
            return Decimal(0)
        return Decimal(self.issuer_residual_holding) * 100 / Decimal(self.total_supply)

    def buys_by(self, address: str) -> list[TradeRecord]:
        return [t for t in self.trades if t.direction is TradeDirection.BUY and t.counterparty == address]

    def wallet_transfer_counts(self) -> Counter[str]:
        return Counter(t.destination for t in self.wallet_transfers)

    def trade_summary(self, limit: int = 5) -> dict[str, Any]:
        """Most recent trades plus counts and human-readable volumes."""
        return {
            "address": self.address,
            "symbol": self.symbol,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "unique_buyers": len(self.unique_buyers),
            "unique_sellers": len(self.unique_sellers),
            "total_buy_volume": format_token_amount(self.total_buy_volume, self.decimals),
            "total_sell_volume": format_token_amount(self.total_sell_volume, self.decimals),
            "issuer_holding_pct": f"{self.issuer_holding_pct:.2f}",
            "recent_trades": [t.to_dict() for t in self.trades[-limit:]],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": str(self.total_supply),
            "creator": self.creator,
            "creation_block": self.creation_block,
            "creation_tx_hash": self.creation_tx_hash,
            "issuer_residual_holding": str(self.issuer_residual_holding),
            "allocation_found": self.allocation_found,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "unique_buyers": sorted(self.unique_buyers),
            "unique_sellers": sorted(self.unique_sellers),
            "total_buy_volume": str(self.total_buy_volume),
            "total_sell_volume": str(self.total_sell_volume),
            "trades": [t.to_dict() for t in self.trades],
            "wallet_transfers": [t.to_dict() for t in self.wallet_transfers],
            "cross_platform_trades": [t.to_dict() for t in self.cross_platform_trades],
            "data_errors": [e.to_dict() for e in self.data_errors],
            "mint_recipient": self.mint_recipient,
            "mint_log": self.mint_log,
            "allocation_log": self.allocation_log,
            "detected_at": self.detected_at.isoformat(),
            "risk": self.risk.to_dict() if self.risk else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedToken:
        risk = data.get("risk")
        decimals = data.get("decimals")
        return cls(
            address=str(data["address"]),
            name=data.get("name"),
            symbol=data.get("symbol"),
            decimals=int(decimals) if decimals is not None else None,
            total_supply=int(data["total_supply"]),
            creator=str(data["creator"]),
            creation_block=int(data["creation_block"]),
            creation_tx_hash=str(data["creation_tx_hash"]),
            issuer_residual_holding=int(data["issuer_residual_holding"]),
            allocation_found=bool(data.get("allocation_found", True)),
            buy_count=int(data.get("buy_count", 0)),
            sell_count=int(data.get("sell_count", 0)),
            unique_buyers=set(data.get("unique_buyers") or ()),
            unique_sellers=set(data.get("unique_sellers") or ()),
            total_buy_volume=int(data.get("total_buy_volume", 0)),
            total_sell_volume=int(data.get("total_sell_volume", 0)),
            trades=[TradeRecord.from_dict(t) for t in data.get("trades") or ()],
            wallet_transfers=[WalletTransfer.from_dict(t) for t in data.get("wallet_transfers") or ()],
            cross_platform_trades=[
                CrossPlatformTrade.from_dict(t) for t in data.get("cross_platform_trades") or ()
            ],
            data_errors=[DataError.from_dict(e) for e in data.get("data_errors") or ()],
            mint_recipient=data.get("mint_recipient"),
            mint_log=data.get("mint_log"),
            allocation_log=data.get("allocation_log"),
            detected_at=_parse_ts(data["detected_at"]) if data.get("detected_at") else datetime.now(UTC),
            risk=RiskAssessment.from_dict(risk) if risk else None,
        )


@dataclass(frozen=True)
class LaunchSignal:
    """Early trading activity of a token a fixed number of blocks after launch."""

    token_address: str
    creation_block: int
    analyzed_block: int
    trade_count: int
    blocks_with_activity: int
    unique_traders: int
    buy_count: int
    sell_count: int
    total_buy_volume: int
    total_sell_volume: int
    qualified_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "creation_block": self.creation_block,
            "analyzed_block": self.analyzed_block,
            "trade_count": self.trade_count,
            "blocks_with_activity": self.blocks_with_activity,
            "unique_traders": self.unique_traders,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "total_buy_volume": str(self.total_buy_volume),
            "total_sell_volume": str(self.total_sell_volume),
            "qualified_at": self.qualified_at.isoformat(),
        }
