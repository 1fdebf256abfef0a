"""Tests for the ledger client."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import Web3Exception

from launchpad_tracker.ingestor.blocks import BlockWatcher
from launchpad_tracker.ingestor.filters import FilterManager
from launchpad_tracker.ledger.client import (
    ChainClient,
    FilterInvalidError,
    TransportError,
    is_filter_invalid_error,
)
from launchpad_tracker.retry import RetryPolicy

TOKEN = "0x" + "7" * 40


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    return redis


def _client(redis: AsyncMock | None = None, *, fallback: bool = False) -> ChainClient:
    client = ChainClient(
        "http://primary.invalid",
        fallback_rpc_url="http://fallback.invalid" if fallback else None,
        redis=redis,
        max_requests_per_second=1000,
        max_retries=2,
        retry_delay_seconds=0.0,
    )
    client._w3 = MagicMock()
    if fallback:
        client._w3_fallback = MagicMock()
    return client


class TestFilterInvalidMarkers:
    @pytest.mark.parametrize(
        "message",
        ["filter not found", "Invalid filter id", "filter timeout", "Filter 0x1 does not exist"],
    )
    def test_markers(self, message: str) -> None:
        assert is_filter_invalid_error(Exception(message))

    def test_other_errors(self) -> None:
        assert not is_filter_invalid_error(Exception("connection reset"))


class TestExecuteWithRetry:
    async def test_block_number(self) -> None:
        client = _client()
        client._w3.eth.get_block_number = AsyncMock(return_value=123)

        assert await client.current_block_number() == 123

    async def test_filter_invalid_is_not_retried(self) -> None:
        client = _client()
        client._w3.eth.get_filter_changes = AsyncMock(side_effect=Web3Exception("filter not found"))

        with pytest.raises(FilterInvalidError):
            await client.poll_filter_changes("0xf1")
        assert client._w3.eth.get_filter_changes.await_count == 1

    async def test_transport_error_after_retries(self) -> None:
        client = _client()
        client._w3.eth.get_block_number = AsyncMock(side_effect=OSError("connection refused"))

        with pytest.raises(TransportError):
            await client.current_block_number()
        assert client._w3.eth.get_block_number.await_count == 2

    async def test_fails_over_to_fallback(self) -> None:
        client = _client(fallback=True)
        client._w3.eth.get_block_number = AsyncMock(side_effect=OSError("down"))
        client._w3_fallback.eth.get_block_number = AsyncMock(return_value=7)

        assert await client.current_block_number() == 7
        assert client._primary_healthy is False


class TestFilters:
    async def test_create_and_poll(self) -> None:
        client = _client()
        log_filter = MagicMock(filter_id="0xabc")
        client._w3.eth.filter = AsyncMock(return_value=log_filter)
        client._w3.eth.get_filter_changes = AsyncMock(return_value=[{"logIndex": 0}])

        filter_id = await client.create_event_filter({"topics": []})
        logs = await client.poll_filter_changes(filter_id)

        assert filter_id == "0xabc"
        assert logs == [{"logIndex": 0}]
        client._w3.eth.get_filter_changes.assert_awaited_once_with("0xabc")


class TestCaching:
    async def test_get_block_cached(self, mock_redis: AsyncMock) -> None:
        client = _client(mock_redis)
        client._w3.eth.get_block = AsyncMock(return_value={"number": 5, "timestamp": 1700000000})

        block = await client.get_block(5)

        assert block["timestamp"] == 1700000000
        key, value = mock_redis.set.await_args.args
        assert key == "launchpad:block:5"
        assert json.loads(value)["number"] == 5

    async def test_receipt_from_cache(self, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(return_value=json.dumps({"from": "0x1", "logs": []}).encode())
        client = _client(mock_redis)
        client._w3.eth.get_transaction_receipt = AsyncMock()

        receipt = await client.get_transaction_receipt("0x" + "a" * 64)

        assert receipt == {"from": "0x1", "logs": []}
        client._w3.eth.get_transaction_receipt.assert_not_awaited()

    async def test_cache_failure_is_ignored(self, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        client = _client(mock_redis)
        client._w3.eth.get_block = AsyncMock(return_value={"number": 5, "timestamp": 1})

        assert (await client.get_block(5))["number"] == 5

    async def test_call_decodes_cached_ints(self, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(return_value=b"18")
        client = _client(mock_redis)

        assert await client.call(TOKEN, "decimals") == 18

    async def test_call_rejects_unknown_method(self) -> None:
        with pytest.raises(ValueError):
            await _client().call(TOKEN, "owner")

    async def test_call_failure_is_transport_error(self) -> None:
        client = _client()
        contract = MagicMock()
        contract.functions.symbol.return_value.call = AsyncMock(side_effect=Web3Exception("execution reverted"))
        client._w3.eth.contract = MagicMock(return_value=contract)

        with pytest.raises(TransportError):
            await client.call(TOKEN, "symbol")


class TestOutageRecovery:
    async def test_primary_is_retried_without_fallback(self) -> None:
        client = _client()
        client._w3.eth.get_block_number = AsyncMock(side_effect=[OSError("down"), OSError("down"), 42])

        with pytest.raises(TransportError):
            await client.current_block_number()

        assert client._primary_healthy is False
        assert await client.current_block_number() == 42
        assert client._primary_healthy is True

    async def test_unhealthy_primary_is_skipped_with_fallback(self) -> None:
        client = _client(fallback=True)
        client._w3.eth.get_block_number = AsyncMock(side_effect=OSError("down"))
        client._w3_fallback.eth.get_block_number = AsyncMock(return_value=7)

        await client.current_block_number()
        await client.current_block_number()

        assert client._w3.eth.get_block_number.await_count == 2

    async def test_head_read_survives_short_outage(self) -> None:
        client = _client()
        client._w3.eth.get_block_number = AsyncMock(side_effect=[OSError("down"), OSError("down"), 42])
        watcher = BlockWatcher(client, retry_policy=RetryPolicy(max_attempts=5, initial_delay=0, max_delay=0))

        assert await watcher._read_head() == 42
        assert client._w3.eth.get_block_number.await_count == 3

    async def test_filter_setup_survives_short_outage(self) -> None:
        client = _client()
        created = MagicMock(filter_id="0xf1")
        client._w3.eth.filter = AsyncMock(side_effect=[OSError("down"), OSError("down"), created])
        manager = FilterManager(client, retry_policy=RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0))

        assert await manager.ensure_filter() == "0xf1"
        assert client._w3.eth.filter.await_count == 3
