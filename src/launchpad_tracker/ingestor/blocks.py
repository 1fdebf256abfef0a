"""New-block notifications built on block-number polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from launchpad_tracker.ledger.client import TransportError
from launchpad_tracker.retry import RetryPolicy, retry_with_backoff

if TYPE_CHECKING:
    from launchpad_tracker.ledger.client import ChainClient

logger = logging.getLogger(__name__)

BlockHandler = Callable[[int], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


class BlockWatcher:
    """Invokes a handler once per newly observed head block.

    Handlers run one at a time: a block is processed to completion before
    the next head is read. Blocks skipped between two reads are not
    reported individually; the log filter covers them.
    """

    def __init__(
        self,
        client: ChainClient,
        *,
        poll_interval: float = 3.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._policy = retry_policy or RetryPolicy()
        self.last_block: int | None = None

    async def _read_head(self) -> int:
        return await retry_with_backoff(
            self._client.current_block_number,
            self._policy,
            retry_on=(TransportError,),
            name="current_block_number",
        )

    async def run(
        self,
        on_block: BlockHandler,
        stop_event: asyncio.Event,
        *,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Watch the chain head until ``stop_event`` is set.

        Errors raised by ``on_block`` go to ``on_error`` (or the log) and
        watching continues.

        Raises:
            RetryExhaustedError: If the head could not be read within the
                retry policy.
        """
        while not stop_event.is_set():
            number = await self._read_head()
            if self.last_block is None or number > self.last_block:
                self.last_block = number
                try:
                    await on_block(number)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if on_error is not None:
                        await on_error(e)
                    else:
                        logger.exception("Block %d handler failed: %s", number, e)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass
