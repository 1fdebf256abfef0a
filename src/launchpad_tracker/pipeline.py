"""Main pipeline orchestrator for the launchpad tracker.

This module provides the Pipeline class that wires the ledger client, the
event filter, the detectors and the persistence adapter together and drives
them from new-block notifications.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis

from launchpad_tracker.config import Settings, get_settings
from launchpad_tracker.detector.activity import ActivityQueue, summarize_activity
from launchpad_tracker.detector.addresses import PlatformAddressBook
from launchpad_tracker.detector.classifier import TradeClassifier, TransferKind
from launchpad_tracker.detector.creation import TokenCreationDetector, creator_strategy_for
from launchpad_tracker.detector.risk import RiskAnalyzer, RiskThresholds
from launchpad_tracker.ingestor.blocks import BlockWatcher
from launchpad_tracker.ingestor.filters import FilterManager
from launchpad_tracker.ingestor.grouping import group_by_transaction
from launchpad_tracker.ingestor.models import LogEvent, MalformedEventError, decode_transfer
from launchpad_tracker.ledger.client import ChainClient, LedgerClientError, TransportError
from launchpad_tracker.retry import RetryExhaustedError, RetryPolicy
from launchpad_tracker.state import TokenStateStore
from launchpad_tracker.storage.database import DatabaseManager
from launchpad_tracker.storage.persistence import PersistenceError, TokenPersistence

if TYPE_CHECKING:
    from launchpad_tracker.ingestor.models import TransferEvent

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    blocks_processed: int = 0
    logs_processed: int = 0
    tokens_detected: int = 0
    trades_classified: int = 0
    signals_recorded: int = 0
    errors: int = 0
    last_block: int | None = None
    last_error: str | None = None


class Pipeline:
    """Main pipeline orchestrator for the launchpad tracker.

    Pipeline flow per block:
        Filter poll → decode → group by transaction → creation detection
        → trade classification → risk analysis → early-activity signals
        → flush dirty tokens

    Blocks are handled one at a time. Within a block, tokens are classified
    concurrently while each token's transfers are applied in log order.

    Example:
        ```python
        from launchpad_tracker.config import get_settings
        from launchpad_tracker.pipeline import Pipeline

        pipeline = Pipeline(get_settings())
        await pipeline.run()  # until stop() is called
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: ChainClient | None = None,
        persistence: TokenPersistence | None = None,
        store: TokenStateStore | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            client: Ledger client to use instead of building one from settings.
            persistence: Persistence adapter to use instead of the database
                from settings.
            store: Token state store; a fresh one is created by default.
        """
        self._settings = settings or get_settings()

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()
        self._fatal_error: BaseException | None = None

        self._client = client
        self._persistence = persistence
        self._store = store or TokenStateStore()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._addresses: PlatformAddressBook | None = None
        self._detector: TokenCreationDetector | None = None
        self._classifier: TradeClassifier | None = None
        self._risk_analyzer: RiskAnalyzer | None = None
        self._activity_queue: ActivityQueue | None = None
        self._filter_manager: FilterManager | None = None
        self._block_watcher: BlockWatcher | None = None
        self._rpc_semaphore: asyncio.Semaphore | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def store(self) -> TokenStateStore:
        return self._store

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    async def start(self) -> None:
        """Start the pipeline.

        Initializes all components, reloads tracked tokens, installs the
        event filter and begins watching blocks.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        self._fatal_error = None
        logger.info("Starting pipeline...")

        try:
            self._initialize_components()
            await self._hydrate_store()
            assert self._filter_manager is not None
            await self._filter_manager.ensure_filter()
            self._watch_task = asyncio.create_task(self._watch())
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops watching blocks, flushes dirty tokens within the shutdown
        grace period, releases the event filter and closes connections.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
        self._watch_task = None

        grace = self._settings.shutdown_grace_seconds
        try:
            await asyncio.wait_for(self.flush(), timeout=grace)
        except TimeoutError:
            logger.warning(
                "Shutdown flush exceeded %.1fs, %d tokens left unsaved",
                grace,
                self._store.dirty_count,
            )

        if self._filter_manager:
            await self._filter_manager.release()

        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    def request_stop(self) -> None:
        """Ask a pipeline started with ``run()`` to shut down. Safe from signal handlers."""
        if self._stop_event:
            self._stop_event.set()

    def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if self._client is None:
            if settings.redis.enabled:
                logger.debug("Initializing Redis connection...")
                self._redis = Redis.from_url(settings.redis.url)

            logger.debug("Initializing ledger client...")
            self._client = ChainClient(
                settings.chain.rpc_url,
                fallback_rpc_url=settings.chain.fallback_rpc_url,
                redis=self._redis,
                max_requests_per_second=settings.chain.max_requests_per_second,
            )

        if self._persistence is None:
            logger.debug("Initializing database manager...")
            self._db_manager = DatabaseManager(settings.database.url)
            self._persistence = TokenPersistence(self._db_manager)

        retry_policy = RetryPolicy(
            max_attempts=settings.retry.max_attempts,
            initial_delay=settings.retry.initial_delay_seconds,
            max_delay=settings.retry.max_delay_seconds,
        )
        self._rpc_semaphore = asyncio.Semaphore(settings.chain.max_rpc_concurrency)
        self._addresses = PlatformAddressBook.from_settings(settings.platform)

        self._detector = TokenCreationDetector(
            self._store,
            self._addresses,
            client=self._client,
            creator_strategy=creator_strategy_for(settings.platform.creator_strategy, self._client),
            total_supply=settings.platform.total_supply,
            probe_metadata=settings.platform.probe_metadata,
            rpc_semaphore=self._rpc_semaphore,
        )
        self._classifier = TradeClassifier(
            self._store,
            self._addresses,
            client=self._client,
            verify_settlement_with_receipt=settings.platform.verify_settlement_with_receipt,
            rpc_semaphore=self._rpc_semaphore,
        )
        self._risk_analyzer = RiskAnalyzer(RiskThresholds.from_settings(settings.risk))
        if settings.activity.enabled:
            self._activity_queue = ActivityQueue(settings.activity.analysis_delay_blocks)

        self._filter_manager = FilterManager(self._client, retry_policy=retry_policy)
        self._block_watcher = BlockWatcher(
            self._client,
            poll_interval=settings.chain.block_poll_interval_seconds,
            retry_policy=retry_policy,
        )

    async def _hydrate_store(self) -> None:
        assert self._persistence is not None
        await self._persistence.init_schema()
        tokens = await self._persistence.fetch_all()
        self._store.hydrate(tokens)

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._client:
            await self._client.aclose()

        if self._db_manager:
            await self._db_manager.dispose()
            self._db_manager = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def _watch(self) -> None:
        assert self._block_watcher is not None and self._stop_event is not None
        try:
            await self._block_watcher.run(self._on_block, self._stop_event, on_error=self._on_block_error)
        except RetryExhaustedError as e:
            logger.critical("Ledger unreachable, stopping pipeline: %s", e)
            self._fatal_error = e
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            self._stop_event.set()

    async def _on_block_error(self, error: Exception) -> None:
        if isinstance(error, RetryExhaustedError):
            raise error
        self._stats.errors += 1
        self._stats.last_error = str(error)
        logger.exception("Block handler failed: %s", error)

    async def _on_block(self, block_number: int) -> None:
        """Process everything that happened up to ``block_number``.

        A failed poll skips this tick. The filter keeps accumulating logs on
        the provider, so the next successful poll returns them.
        """
        assert self._filter_manager is not None
        try:
            raw_logs = await self._filter_manager.poll_changes()
        except TransportError as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Filter poll at block %d failed, retrying next block: %s", block_number, e)
            return

        await self.process_logs(raw_logs)
        await self._emit_activity_signals(block_number)
        await self.flush()

        self._stats.blocks_processed += 1
        self._stats.last_block = block_number

    def _decode(self, raw_logs: Iterable[dict[str, Any]]) -> list[TransferEvent]:
        transfers: list[TransferEvent] = []
        for raw in raw_logs:
            try:
                transfers.append(decode_transfer(LogEvent.from_dict(raw)))
            except MalformedEventError as e:
                logger.debug("Skipping undecodable log: %s", e)
        transfers.sort(key=lambda t: (t.block_number, t.log_index))
        return transfers

    async def process_logs(self, raw_logs: Sequence[dict[str, Any]]) -> None:
        """Detect launches and classify trades in one batch of raw logs."""
        assert self._detector is not None
        self._stats.logs_processed += len(raw_logs)
        groups = group_by_transaction(self._decode(raw_logs))
        if not groups:
            return

        # Launch transfers of a new token are its creation, not trades
        created_in: set[tuple[str, str]] = set()
        results = await asyncio.gather(
            *(self._detector.detect(group) for group in groups.values()),
            return_exceptions=True,
        )
        for tx_hash, result in zip(groups, results, strict=True):
            if isinstance(result, BaseException):
                self._stats.errors += 1
                self._stats.last_error = str(result)
                logger.error("Creation detection failed for tx %s: %s", tx_hash, result)
                continue
            for token in result:
                created_in.add((token.address, tx_hash))
                self._stats.tokens_detected += 1
                if self._activity_queue is not None:
                    self._activity_queue.enqueue(token.address, token.creation_block)

        pending: dict[str, list[tuple[TransferEvent, list[TransferEvent]]]] = defaultdict(list)
        for tx_hash, group in groups.items():
            for transfer in group:
                if transfer.token_address not in self._store:
                    continue
                if (transfer.token_address, tx_hash) in created_in:
                    continue
                pending[transfer.token_address].append((transfer, group))
        if not pending:
            return

        timestamps = await self._block_timestamps(
            {t.block_number for items in pending.values() for t, _ in items}
        )
        await asyncio.gather(
            *(self._classify_token(address, items, timestamps) for address, items in pending.items())
        )

    async def _block_timestamps(self, block_numbers: set[int]) -> dict[int, datetime]:
        assert self._client is not None and self._rpc_semaphore is not None
        client, semaphore = self._client, self._rpc_semaphore

        async def fetch(number: int) -> tuple[int, datetime | None]:
            try:
                async with semaphore:
                    block = await client.get_block(number)
                return number, datetime.fromtimestamp(int(block["timestamp"]), tz=UTC)
            except (LedgerClientError, KeyError, TypeError, ValueError) as e:
                logger.debug("No timestamp for block %d, using processing time: %s", number, e)
                return number, None

        results = await asyncio.gather(*(fetch(n) for n in sorted(block_numbers)))
        return {number: ts for number, ts in results if ts is not None}

    async def _classify_token(
        self,
        token_address: str,
        items: list[tuple[TransferEvent, list[TransferEvent]]],
        timestamps: dict[int, datetime],
    ) -> None:
        assert self._classifier is not None
        for transfer, group in items:
            try:
                kind = await self._classifier.classify(
                    transfer,
                    tx_transfers=group,
                    timestamp=timestamps.get(transfer.block_number),
                )
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Failed to classify transfer in %s: %s", transfer.tx_hash, e)
                continue
            if kind is not TransferKind.IGNORED:
                self._stats.trades_classified += 1
        self._assess_risk(token_address)

    def _assess_risk(self, token_address: str) -> None:
        assert self._risk_analyzer is not None
        token = self._store.get(token_address)
        if token is None:
            return
        assessment = self._risk_analyzer.analyze(token)
        if assessment == token.risk:
            return
        previous = token.risk
        token.risk = assessment
        self._store.mark_dirty(token_address)
        if assessment.is_flagged and (previous is None or previous.level != assessment.level):
            summary = token.trade_summary()
            logger.warning(
                "Risk %s for %s (score %d): %s | buys=%d sells=%d bought=%s sold=%s issuer=%s%%",
                assessment.level.value,
                token.symbol or token.address,
                assessment.score,
                "; ".join(assessment.flags),
                summary["buy_count"],
                summary["sell_count"],
                summary["total_buy_volume"],
                summary["total_sell_volume"],
                summary["issuer_holding_pct"],
            )
            logger.debug("Recent trades for %s: %s", token.address, summary["recent_trades"])

    async def _emit_activity_signals(self, block_number: int) -> None:
        if self._activity_queue is None or self._persistence is None:
            return
        for address in self._activity_queue.due(block_number):
            token = self._store.get(address)
            if token is None:
                continue
            signal = summarize_activity(token, block_number)
            try:
                await self._persistence.save_signal(signal)
            except PersistenceError as e:
                self._stats.errors += 1
                logger.warning("Failed to record launch signal for %s: %s", address, e)
                continue
            self._stats.signals_recorded += 1

    async def flush(self) -> None:
        """Persist every token changed since the last flush.

        Tokens that fail to save are marked dirty again for the next flush,
        as are all drained tokens when the flush is cancelled midway.
        """
        if self._persistence is None:
            return
        tokens = self._store.drain_dirty()
        if not tokens:
            return
        try:
            failed = await self._persistence.upsert_many(tokens)
        except asyncio.CancelledError:
            for token in tokens:
                self._store.mark_dirty(token.address)
            raise
        for address in failed:
            self._store.mark_dirty(address)
        if failed:
            self._stats.errors += len(failed)
        logger.debug("Flushed %d tokens (%d failed)", len(tokens) - len(failed), len(failed))

    async def run(self) -> None:
        """Start the pipeline and run until stopped.

        Raises:
            RetryExhaustedError: If the ledger stayed unreachable and the
                pipeline shut itself down.
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

        if self._fatal_error is not None:
            raise self._fatal_error

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
