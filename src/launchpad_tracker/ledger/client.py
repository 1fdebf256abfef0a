"""Blockchain client with rate limiting, failover and caching.

This module provides the ledger access used by the tracker:
- Block number and block headers
- Log filter registration, polling and removal
- Read-only ERC20 contract calls
- Transaction receipts

Immutable results (blocks, receipts, token metadata) are cached in Redis
when a client is supplied. Filter handles live on the provider that created
them, so a failover between primary and fallback RPC surfaces as
``FilterInvalidError`` on the next poll and is recovered by recreating the
filter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, cast

from redis.asyncio import Redis
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CACHE_TTL_SECONDS = 24 * 3600
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

# Provider messages meaning the filter id is no longer known server-side.
FILTER_INVALID_MARKERS = (
    "filter not found",
    "invalid filter",
    "filter timeout",
    "does not exist",
)

ERC20_VIEW_ABI: list[dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]
ERC20_VIEW_METHODS = frozenset(entry["name"] for entry in ERC20_VIEW_ABI)
_INT_METHODS = frozenset({"decimals", "totalSupply"})


def _json_default(value: object) -> object:
    """Serialize Web3 RPC objects that stdlib json can't encode."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_plain(value: Any) -> Any:
    """Convert nested AttributeDicts into plain dicts."""
    if hasattr(value, "items"):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def _decode_call_result(method: str, raw: str) -> Any:
    return int(raw) if method in _INT_METHODS else raw


def is_filter_invalid_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in FILTER_INVALID_MARKERS)


class LedgerClientError(Exception):
    """Base exception for ledger client errors."""


class TransportError(LedgerClientError):
    """Raised when an RPC call fails after retries and failover."""


class FilterInvalidError(LedgerClientError):
    """Raised when the provider no longer knows a filter id."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class ChainClient:
    """Ledger access facade with caching and rate limiting.

    Example:
        ```python
        redis = Redis.from_url("redis://localhost:6379")
        client = ChainClient("https://bsc-dataseed.binance.org", redis=redis)

        filter_id = await client.create_event_filter({"topics": [TRANSFER_TOPIC]})
        logs = await client.poll_filter_changes(filter_id)
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: Primary RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            redis: Optional Redis client for caching.
            cache_ttl_seconds: Cache TTL for immutable results.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Attempts per endpoint before giving up.
            retry_delay_seconds: Initial delay between retries.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

        self._w3 = self._new_web3_client(rpc_url)
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = self._new_web3_client(fallback_rpc_url)

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

        self._primary_healthy = True
        self._last_primary_check = 0.0
        self._primary_recovery_interval = 60.0

        self._cache_prefix = "launchpad:"

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        client = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        # BSC uses PoA-style extraData
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except ValueError as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", rpc_url, e)
        return client

    def _cache_key(self, key_type: str, identifier: str) -> str:
        return f"{self._cache_prefix}{key_type}:{identifier.lower()}"

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=ttl or self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > self._primary_recovery_interval:
            self._last_primary_check = now
            return True
        return False

    async def _execute_with_retry(
        self,
        func_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute a ``web3.eth`` call with retry and failover logic.

        Raises:
            FilterInvalidError: If the provider reports the filter unknown.
                Not retried; the caller recreates the filter.
            TransportError: If all retries and failover fail.
        """
        await self._rate_limiter.acquire()

        last_error: Exception | None = None
        endpoints: list[tuple[str, AsyncWeb3[AsyncHTTPProvider]]] = []
        # Without a fallback the primary is the only way out of an outage
        if self._w3_fallback is None or self._should_try_primary():
            endpoints.append(("Primary", self._w3))
        if self._w3_fallback is not None:
            endpoints.append(("Fallback", self._w3_fallback))

        for label, w3 in endpoints:
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    method = getattr(w3.eth, func_name)
                    result = await method(*args, **kwargs)
                    if w3 is self._w3:
                        self._primary_healthy = True
                    else:
                        logger.info("Fallback RPC succeeded for %s", func_name)
                    return result
                except (Web3Exception, OSError, TimeoutError) as e:
                    if is_filter_invalid_error(e):
                        raise FilterInvalidError(str(e)) from e
                    last_error = e
                    logger.warning(
                        "%s RPC %s failed (attempt %d/%d): %s",
                        label,
                        func_name,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2
            if w3 is self._w3:
                self._primary_healthy = False
                self._last_primary_check = time.monotonic()

        raise TransportError(f"RPC call {func_name} failed after all retries: {last_error}")

    async def current_block_number(self) -> int:
        """Get the latest block number."""
        return int(await self._execute_with_retry("get_block_number"))

    async def create_event_filter(self, filter_params: dict[str, Any]) -> str:
        """Register a log filter and return its provider-side id."""
        log_filter = await self._execute_with_retry("filter", filter_params)
        filter_id = getattr(log_filter, "filter_id", log_filter)
        return str(filter_id)

    async def poll_filter_changes(self, filter_id: str) -> list[dict[str, Any]]:
        """Return logs matched by the filter since the previous poll.

        Raises:
            FilterInvalidError: If the provider dropped the filter.
            TransportError: On persistent RPC failure.
        """
        logs = await self._execute_with_retry("get_filter_changes", filter_id)
        return [dict(log) for log in logs or []]

    async def uninstall_filter(self, filter_id: str) -> bool:
        return bool(await self._execute_with_retry("uninstall_filter", filter_id))

    async def call(self, contract_address: str, method: str) -> Any:
        """Call a read-only ERC20 method without arguments.

        Results are cached since token metadata never changes.

        Raises:
            ValueError: If ``method`` is not a supported ERC20 view.
            TransportError: If the call failed or reverted.
        """
        if method not in ERC20_VIEW_METHODS:
            raise ValueError(f"Unsupported contract method: {method}")

        cache_key = self._cache_key(f"call:{method}", contract_address)
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return _decode_call_result(method, cached)

        await self._rate_limiter.acquire()
        try:
            w3 = self._w3 if self._primary_healthy else (self._w3_fallback or self._w3)
            contract = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(contract_address),
                abi=ERC20_VIEW_ABI,
            )
            result = await getattr(contract.functions, method)().call()
        except (Web3Exception, OSError, TimeoutError) as e:
            raise TransportError(f"Call {method}() on {contract_address} failed: {e}") from e

        await self._set_cached(cache_key, str(result))
        return int(result) if method in _INT_METHODS else result

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        """Get a transaction receipt as a plain dict."""
        cache_key = self._cache_key("receipt", tx_hash)
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return cast(dict[str, Any], json.loads(cached))

        receipt = await self._execute_with_retry("get_transaction_receipt", tx_hash)
        receipt_dict = cast(dict[str, Any], _to_plain(receipt))
        await self._set_cached(cache_key, json.dumps(receipt_dict, default=_json_default))
        return receipt_dict

    async def get_block(self, block_number: int) -> dict[str, Any]:
        """Get a block header by number."""
        cache_key = f"{self._cache_prefix}block:{block_number}"
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return cast(dict[str, Any], json.loads(cached))

        block = await self._execute_with_retry("get_block", block_number)

        block_dict = cast(dict[str, Any], _to_plain(block))
        block_dict["timestamp"] = int(block_dict["timestamp"])

        # Blocks are immutable, use longer TTL
        await self._set_cached(cache_key, json.dumps(block_dict, default=_json_default), ttl=3600)
        return block_dict

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        providers = [self._w3.provider]
        if self._w3_fallback is not None:
            providers.append(self._w3_fallback.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
