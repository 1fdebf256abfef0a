"""In-memory store of tracked tokens.

The store is the only owner of mutable token state. It is built at startup
(optionally hydrated from persistence), handed to the detector, the
classifier and the pipeline, and discarded at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from launchpad_tracker.detector.models import TrackedToken

logger = logging.getLogger(__name__)


class TokenStateStore:
    """Mapping from token address to its live ``TrackedToken``.

    Mutations of one token must hold ``lock(address)``; distinct tokens can
    be updated concurrently. Tokens touched since the last ``drain_dirty``
    are reported for persistence.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, TrackedToken] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._dirty: set[str] = set()

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, address: object) -> bool:
        return address in self._tokens

    def __iter__(self) -> Iterator[TrackedToken]:
        return iter(list(self._tokens.values()))

    def get(self, address: str) -> TrackedToken | None:
        return self._tokens.get(address)

    def add(self, token: TrackedToken) -> bool:
        """Insert a newly detected token.

        Returns:
            False if the address is already tracked; the existing record is
            left untouched.
        """
        if token.address in self._tokens:
            return False
        self._tokens[token.address] = token
        self._dirty.add(token.address)
        return True

    def hydrate(self, tokens: Iterable[TrackedToken]) -> int:
        """Load persisted tokens without marking them dirty."""
        loaded = 0
        for token in tokens:
            if token.address in self._tokens:
                continue
            self._tokens[token.address] = token
            loaded += 1
        logger.info("Hydrated %d tracked tokens", loaded)
        return loaded

    def lock(self, address: str) -> asyncio.Lock:
        """Lock serializing mutations of one token."""
        lock = self._locks.get(address)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[address] = lock
        return lock

    def mark_dirty(self, address: str) -> None:
        if address in self._tokens:
            self._dirty.add(address)

    @property
    def dirty_count(self) -> int:
        return len(self._dirty)

    def drain_dirty(self) -> list[TrackedToken]:
        """Return tokens touched since the previous drain and reset the set."""
        addresses, self._dirty = self._dirty, set()
        return [self._tokens[a] for a in sorted(addresses) if a in self._tokens]
