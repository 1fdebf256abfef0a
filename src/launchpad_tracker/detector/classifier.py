"""Trade classifier for tracked tokens.

Every transfer of a tracked token falls into one of these buckets:

- BUY: the platform sends tokens to a wallet.
- SELL: a wallet sends tokens to the platform.
- CROSS_PLATFORM: a previous buyer sends tokens to a known external
  exchange contract (an exit through another venue).
- WALLET_TRANSFER: a previous buyer sends tokens to another wallet in a
  transaction with no settlement-asset leg (otherwise it is part of a swap).
- IGNORED: zero amounts, mints and burns, other platform infrastructure,
  or unknown senders.

Transfers the creator sends or receives outside the platform adjust the
issuer residual holding whatever their bucket.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from launchpad_tracker.detector.addresses import ZERO_ADDRESS, normalize_address
from launchpad_tracker.detector.models import (
    CrossPlatformTrade,
    TradeDirection,
    TradeRecord,
    WalletTransfer,
)
from launchpad_tracker.ingestor.models import TRANSFER_TOPIC, MalformedEventError, to_hex
from launchpad_tracker.ledger.client import LedgerClientError

if TYPE_CHECKING:
    from launchpad_tracker.detector.addresses import PlatformAddressBook
    from launchpad_tracker.detector.models import TrackedToken
    from launchpad_tracker.ingestor.models import TransferEvent
    from launchpad_tracker.ledger.client import ChainClient
    from launchpad_tracker.state import TokenStateStore

logger = logging.getLogger(__name__)


class TransferKind(str, Enum):
    """Classification outcome of one transfer."""

    BUY = "buy"
    SELL = "sell"
    CROSS_PLATFORM = "cross_platform"
    WALLET_TRANSFER = "wallet_transfer"
    IGNORED = "ignored"


class TradeClassifier:
    """Updates tracked-token aggregates from transfer events.

    Example:
        ```python
        classifier = TradeClassifier(store, addresses)
        kind = await classifier.classify(transfer, tx_transfers=group)
        ```
    """

    def __init__(
        self,
        store: TokenStateStore,
        addresses: PlatformAddressBook,
        *,
        client: ChainClient | None = None,
        verify_settlement_with_receipt: bool = False,
        rpc_semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            store: Token state store holding the tracked tokens.
            addresses: Platform address book and exchange directory.
            client: Ledger client, needed only for receipt verification.
            verify_settlement_with_receipt: Also inspect the full receipt
                for a settlement-asset transfer before recording a wallet
                transfer.
            rpc_semaphore: Shared cap on concurrent enrichment calls.
        """
        self._store = store
        self._addresses = addresses
        self._client = client
        self._verify_with_receipt = verify_settlement_with_receipt and client is not None
        self._rpc_semaphore = rpc_semaphore or asyncio.Semaphore(5)

    async def classify(
        self,
        transfer: TransferEvent,
        *,
        tx_transfers: Sequence[TransferEvent] = (),
        timestamp: datetime | None = None,
    ) -> TransferKind:
        """Classify one transfer and apply it to its token.

        Args:
            transfer: Decoded transfer of a (possibly) tracked token.
            tx_transfers: All transfers of the same transaction, any token.
            timestamp: Block time of the transfer.

        Returns:
            The bucket the transfer fell into.
        """
        token = self._store.get(transfer.token_address)
        if token is None or transfer.amount == 0:
            return TransferKind.IGNORED

        source, destination = transfer.source, transfer.destination
        if ZERO_ADDRESS in (source, destination):
            return TransferKind.IGNORED
        if self._addresses.is_infrastructure(source) or self._addresses.is_infrastructure(destination):
            logger.debug("Skipping %s transfer touching platform infrastructure", token.address)
            return TransferKind.IGNORED

        ts = timestamp or datetime.now(UTC)
        async with self._store.lock(token.address):
            from_platform = self._addresses.is_platform(source)
            to_platform = self._addresses.is_platform(destination)
            if from_platform and to_platform:
                return TransferKind.IGNORED
            if from_platform:
                self._apply_buy(token, transfer, ts)
                kind = TransferKind.BUY
            elif to_platform:
                self._apply_sell(token, transfer, ts)
                kind = TransferKind.SELL
            else:
                kind = await self._apply_peer_transfer(token, transfer, tx_transfers, ts)

        return kind

    def _apply_buy(self, token: TrackedToken, transfer: TransferEvent, ts: datetime) -> None:
        buyer = transfer.destination
        is_issuer = buyer == token.creator
        token.buy_count += 1
        token.unique_buyers.add(buyer)
        token.total_buy_volume += transfer.amount
        token.trades.append(
            TradeRecord(
                direction=TradeDirection.BUY,
                counterparty=buyer,
                amount=transfer.amount,
                tx_hash=transfer.tx_hash,
                block_number=transfer.block_number,
                timestamp=ts,
                is_issuer=is_issuer,
            )
        )
        if is_issuer:
            token.issuer_residual_holding += transfer.amount
        self._store.mark_dirty(token.address)
        logger.debug("BUY %s amount=%d buyer=%s tx=%s", token.address, transfer.amount, buyer, transfer.tx_hash)

    def _apply_sell(self, token: TrackedToken, transfer: TransferEvent, ts: datetime) -> None:
        seller = transfer.source
        is_issuer = seller == token.creator
        token.sell_count += 1
        token.unique_sellers.add(seller)
        token.total_sell_volume += transfer.amount
        token.trades.append(
            TradeRecord(
                direction=TradeDirection.SELL,
                counterparty=seller,
                amount=transfer.amount,
                tx_hash=transfer.tx_hash,
                block_number=transfer.block_number,
                timestamp=ts,
                is_issuer=is_issuer,
            )
        )
        if is_issuer:
            token.issuer_residual_holding -= transfer.amount
        self._store.mark_dirty(token.address)
        logger.debug("SELL %s amount=%d seller=%s tx=%s", token.address, transfer.amount, seller, transfer.tx_hash)

    async def _apply_peer_transfer(
        self,
        token: TrackedToken,
        transfer: TransferEvent,
        tx_transfers: Sequence[TransferEvent],
        ts: datetime,
    ) -> TransferKind:
        source, destination = transfer.source, transfer.destination

        if source == token.creator:
            token.issuer_residual_holding -= transfer.amount
            self._store.mark_dirty(token.address)
        if destination == token.creator:
            token.issuer_residual_holding += transfer.amount
            self._store.mark_dirty(token.address)

        platform = self._addresses.exchange_label(destination)
        if platform is not None:
            return self._apply_cross_platform(token, transfer, platform, ts)

        if source not in token.unique_buyers:
            return TransferKind.IGNORED
        if await self._has_settlement_leg(transfer, tx_transfers):
            logger.debug("Transfer of %s in %s is a swap leg", token.address, transfer.tx_hash)
            return TransferKind.IGNORED

        count = token.wallet_transfer_counts()[destination] + 1
        token.wallet_transfers.append(
            WalletTransfer(
                source=source,
                destination=destination,
                amount=transfer.amount,
                tx_hash=transfer.tx_hash,
                block_number=transfer.block_number,
                timestamp=ts,
                destination_count=count,
            )
        )
        self._store.mark_dirty(token.address)
        if count > 1:
            logger.warning(
                "Repeated wallet transfers of %s to %s (%d so far)",
                token.symbol or token.address,
                destination,
                count,
            )
        return TransferKind.WALLET_TRANSFER

    def _apply_cross_platform(
        self,
        token: TrackedToken,
        transfer: TransferEvent,
        platform: str,
        ts: datetime,
    ) -> TransferKind:
        buys = token.buys_by(transfer.source)
        if not buys:
            return TransferKind.IGNORED

        first_buy = min(buys, key=lambda t: t.timestamp)
        elapsed = max(0.0, (ts - first_buy.timestamp).total_seconds())
        trade = CrossPlatformTrade(
            source=transfer.source,
            destination=transfer.destination,
            platform=platform,
            amount=transfer.amount,
            tx_hash=transfer.tx_hash,
            block_number=transfer.block_number,
            timestamp=ts,
            seconds_since_first_buy=elapsed,
            total_bought=sum(t.amount for t in buys),
            buy_count=len(buys),
        )
        token.cross_platform_trades.append(trade)
        self._store.mark_dirty(token.address)
        logger.info(
            "Cross-platform trade of %s on %s by %s after %.0fs (%d buys)",
            token.symbol or token.address,
            platform,
            transfer.source,
            elapsed,
            trade.buy_count,
        )
        return TransferKind.CROSS_PLATFORM

    async def _has_settlement_leg(
        self,
        transfer: TransferEvent,
        tx_transfers: Sequence[TransferEvent],
    ) -> bool:
        asset = self._addresses.settlement_asset
        if asset is None:
            return False
        if any(t.token_address == asset for t in tx_transfers):
            return True
        if not self._verify_with_receipt or self._client is None:
            return False

        try:
            async with self._rpc_semaphore:
                receipt = await self._client.get_transaction_receipt(transfer.tx_hash)
        except LedgerClientError as e:
            logger.warning("Receipt fetch for %s failed, assuming no swap leg: %s", transfer.tx_hash, e)
            return False

        for log in receipt.get("logs") or ():
            try:
                address = normalize_address(to_hex(log.get("address", "")))
                topics = [to_hex(t) for t in log.get("topics") or ()]
            except MalformedEventError:
                continue
            if address == asset and topics and topics[0] == TRANSFER_TOPIC:
                return True
        return False
