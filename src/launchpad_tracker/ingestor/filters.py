"""Lifecycle of the provider-side Transfer log filter.

Filters can expire or be dropped by the provider independently of the
chain. The manager owns the single live filter id, recreates it silently
when the provider rejects it, and retries creation with backoff. Logs
emitted between the invalidation and the recreation are not replayed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from launchpad_tracker.ingestor.models import TRANSFER_TOPIC
from launchpad_tracker.ledger.client import FilterInvalidError, LedgerClientError, TransportError
from launchpad_tracker.retry import RetryPolicy, retry_with_backoff

if TYPE_CHECKING:
    from launchpad_tracker.ledger.client import ChainClient

logger = logging.getLogger(__name__)

TRANSFER_FILTER_PARAMS: dict[str, Any] = {
    "fromBlock": "latest",
    "topics": [TRANSFER_TOPIC],
}


class FilterManager:
    """Owns one event filter on the ledger.

    Example:
        ```python
        manager = FilterManager(client, retry_policy=RetryPolicy())
        logs = await manager.poll_changes()
        await manager.release()
        ```
    """

    def __init__(
        self,
        client: ChainClient,
        *,
        filter_params: dict[str, Any] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._params = dict(filter_params or TRANSFER_FILTER_PARAMS)
        self._policy = retry_policy or RetryPolicy()
        self._filter_id: str | None = None
        self.recreated_count = 0

    @property
    def filter_id(self) -> str | None:
        return self._filter_id

    async def ensure_filter(self) -> str:
        """Return the live filter id, creating a filter if there is none.

        Raises:
            RetryExhaustedError: If creation kept failing with transport
                errors. The caller treats this as fatal.
        """
        if self._filter_id is not None:
            return self._filter_id

        filter_id = await retry_with_backoff(
            lambda: self._client.create_event_filter(self._params),
            self._policy,
            retry_on=(TransportError,),
            name="create_event_filter",
        )
        self._filter_id = filter_id
        logger.info("Created event filter %s", filter_id)
        return filter_id

    async def poll_changes(self) -> list[dict[str, Any]]:
        """Return new logs since the previous poll.

        An invalidated filter is replaced and an empty batch returned; the
        next poll reads from the new filter.

        Raises:
            TransportError: If polling failed; the filter is kept and the
                provider keeps accumulating logs for the next poll.
            RetryExhaustedError: If the filter could not be recreated.
        """
        filter_id = await self.ensure_filter()
        try:
            return await self._client.poll_filter_changes(filter_id)
        except FilterInvalidError as e:
            logger.warning("Event filter %s invalidated (%s), recreating", filter_id, e)
            self._filter_id = None
            self.recreated_count += 1
            await self.ensure_filter()
            return []

    async def release(self) -> None:
        """Uninstall the filter. Failures are logged, never raised."""
        if self._filter_id is None:
            return
        filter_id, self._filter_id = self._filter_id, None
        try:
            await self._client.uninstall_filter(filter_id)
            logger.info("Uninstalled event filter %s", filter_id)
        except LedgerClientError as e:
            logger.warning("Failed to uninstall event filter %s: %s", filter_id, e)
