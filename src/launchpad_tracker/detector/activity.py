"""Early-activity signals.

A detected token is queued and summarized once the chain is a fixed number
of blocks past its creation block, giving a comparable snapshot of how each
launch traded in its first moments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from launchpad_tracker.detector.models import LaunchSignal

if TYPE_CHECKING:
    from launchpad_tracker.detector.models import TrackedToken

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DELAY_BLOCKS = 10


class ActivityQueue:
    """Tokens waiting for their early-activity summary."""

    def __init__(self, delay_blocks: int = DEFAULT_ANALYSIS_DELAY_BLOCKS) -> None:
        if delay_blocks < 1:
            raise ValueError("delay_blocks must be >= 1")
        self.delay_blocks = delay_blocks
        self._targets: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, address: object) -> bool:
        return address in self._targets

    def enqueue(self, token_address: str, creation_block: int) -> int:
        """Queue a token and return the block at which it becomes due."""
        target = creation_block + self.delay_blocks
        self._targets.setdefault(token_address, target)
        return self._targets[token_address]

    def due(self, current_block: int) -> list[str]:
        """Remove and return tokens whose target block has been reached."""
        ready = [a for a, target in self._targets.items() if current_block >= target]
        for address in ready:
            del self._targets[address]
        return ready


def summarize_activity(token: TrackedToken, analyzed_block: int) -> LaunchSignal:
    """Summarize trading between the creation block and ``analyzed_block``."""
    window = [t for t in token.trades if token.creation_block <= t.block_number <= analyzed_block]
    signal = LaunchSignal(
        token_address=token.address,
        creation_block=token.creation_block,
        analyzed_block=analyzed_block,
        trade_count=len(window),
        blocks_with_activity=len({t.block_number for t in window}),
        unique_traders=len({t.counterparty for t in window}),
        buy_count=token.buy_count,
        sell_count=token.sell_count,
        total_buy_volume=token.total_buy_volume,
        total_sell_volume=token.total_sell_volume,
    )
    logger.info(
        "Early activity for %s: %d trades in %d blocks by %d traders",
        token.symbol or token.address,
        signal.trade_count,
        signal.blocks_with_activity,
        signal.unique_traders,
    )
    return signal
