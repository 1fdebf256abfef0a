"""Tests for the block watcher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from launchpad_tracker.ingestor.blocks import BlockWatcher
from launchpad_tracker.ledger.client import TransportError
from launchpad_tracker.retry import RetryExhaustedError, RetryPolicy

FAST_RETRY = RetryPolicy(max_attempts=2, initial_delay=0.0, max_delay=0.0)


def _client_with_heads(*heads: int) -> AsyncMock:
    client = AsyncMock()
    values = iter(heads)

    async def head() -> int:
        try:
            return next(values)
        except StopIteration:
            return heads[-1]

    client.current_block_number = AsyncMock(side_effect=head)
    return client


class TestBlockWatcher:
    async def test_reports_each_new_head_once(self) -> None:
        client = _client_with_heads(10, 10, 11, 13)
        stop = asyncio.Event()
        seen: list[int] = []

        async def on_block(number: int) -> None:
            seen.append(number)
            if number == 13:
                stop.set()

        watcher = BlockWatcher(client, poll_interval=0.001, retry_policy=FAST_RETRY)
        await asyncio.wait_for(watcher.run(on_block, stop), timeout=2)

        assert seen == [10, 11, 13]
        assert watcher.last_block == 13

    async def test_handler_errors_do_not_stop_watching(self) -> None:
        client = _client_with_heads(1, 2)
        stop = asyncio.Event()
        errors: list[Exception] = []

        async def on_block(number: int) -> None:
            if number == 1:
                raise ValueError("boom")
            stop.set()

        async def on_error(error: Exception) -> None:
            errors.append(error)

        watcher = BlockWatcher(client, poll_interval=0.001, retry_policy=FAST_RETRY)
        await asyncio.wait_for(watcher.run(on_block, stop, on_error=on_error), timeout=2)

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        assert watcher.last_block == 2

    async def test_unreachable_ledger_is_fatal(self) -> None:
        client = AsyncMock()
        client.current_block_number = AsyncMock(side_effect=TransportError("down"))
        watcher = BlockWatcher(client, poll_interval=0.001, retry_policy=FAST_RETRY)

        with pytest.raises(RetryExhaustedError):
            await watcher.run(AsyncMock(), asyncio.Event())
        assert client.current_block_number.await_count == 2

    async def test_stops_when_event_set(self) -> None:
        client = _client_with_heads(5)
        stop = asyncio.Event()
        stop.set()

        watcher = BlockWatcher(client, poll_interval=0.001, retry_policy=FAST_RETRY)
        await watcher.run(AsyncMock(), stop)

        client.current_block_number.assert_not_awaited()
