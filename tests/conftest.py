"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from launchpad_tracker.detector.addresses import PlatformAddressBook
from launchpad_tracker.detector.models import TrackedToken
from launchpad_tracker.ingestor.models import TRANSFER_TOPIC, TransferEvent
from launchpad_tracker.state import TokenStateStore

PLATFORM = "0x5c952063c7fc8610ffdb798152d69f0b9550762b"
HELPER = "0x48735904455eda3aa9a0c9e43ee9999c795e30b9"
SETTLEMENT_ASSET = "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c"
EXCHANGE = "0x10ed43c718714eb63d5aa57b78b54704e256024e"
TX_HASH = "0x" + "a" * 64


def _topic(address: str) -> str:
    return "0x" + address[2:].rjust(64, "0")


@pytest.fixture
def sample_token_address() -> str:
    """Sample launched token contract."""
    return "0x" + "7" * 40


@pytest.fixture
def address_book() -> PlatformAddressBook:
    """Address book with one helper contract and one external exchange."""
    return PlatformAddressBook.create(
        PLATFORM,
        infrastructure=[HELPER],
        settlement_asset=SETTLEMENT_ASSET,
        excluded_tokens=[SETTLEMENT_ASSET],
        exchange_contracts={EXCHANGE: "pancakeswap"},
    )


@pytest.fixture
def store() -> TokenStateStore:
    """Empty token state store."""
    return TokenStateStore()


@pytest.fixture
def make_transfer() -> Callable[..., TransferEvent]:
    """Factory for decoded transfers."""

    def _make(
        token: str,
        source: str,
        destination: str,
        amount: int,
        *,
        tx_hash: str = TX_HASH,
        block_number: int = 100,
        log_index: int = 0,
    ) -> TransferEvent:
        return TransferEvent(
            token_address=token,
            source=source,
            destination=destination,
            amount=amount,
            tx_hash=tx_hash,
            block_number=block_number,
            log_index=log_index,
        )

    return _make


@pytest.fixture
def make_token() -> Callable[..., TrackedToken]:
    """Factory for freshly launched tokens (supply 1,000,000, creator holds it all)."""

    def _make(
        address: str = "0x" + "7" * 40,
        *,
        creator: str = "0x" + "cafe".rjust(40, "0"),
        total_supply: int = 1_000_000,
        issuer_allocation: int | None = 1_000_000,
        creation_block: int = 100,
        **kwargs: Any,
    ) -> TrackedToken:
        return TrackedToken.create(
            address=address,
            total_supply=total_supply,
            creator=creator,
            creation_block=creation_block,
            creation_tx_hash="0x" + "c" * 64,
            issuer_allocation=issuer_allocation,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_raw_log() -> Callable[..., dict[str, Any]]:
    """Factory for raw Transfer logs shaped like a filter poll result."""

    def _make(
        token: str,
        source: str,
        destination: str,
        amount: int,
        *,
        tx_hash: str = TX_HASH,
        block_number: int = 100,
        log_index: int = 0,
    ) -> dict[str, Any]:
        return {
            "address": token,
            "topics": [TRANSFER_TOPIC, _topic(source), _topic(destination)],
            "data": "0x" + format(amount, "064x"),
            "transactionHash": tx_hash,
            "blockNumber": block_number,
            "logIndex": log_index,
        }

    return _make
