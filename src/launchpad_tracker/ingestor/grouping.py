"""Partition a batch of log events by transaction."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar


class _HasTxHash(Protocol):
    @property
    def tx_hash(self) -> str: ...


E = TypeVar("E", bound=_HasTxHash)


def group_by_transaction(events: Iterable[E]) -> dict[str, list[E]]:
    """Group events by transaction hash.

    Groups are ordered by the first appearance of each transaction and every
    group keeps the relative order of its events. Upstream delivers logs in
    (block, log index) order, which makes the last event of a contract inside
    a group its final redistribution step.
    """
    groups: dict[str, list[E]] = {}
    for event in events:
        groups.setdefault(event.tx_hash, []).append(event)
    return groups
