"""Address normalization and the launch platform's address book."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from launchpad_tracker.config import PlatformSettings

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Resolves a destination address to an external exchange label, or None.
ExchangeResolver = Callable[[str], str | None]


def normalize_address(address: str) -> str:
    """Return the lowercase 0x-prefixed form used for every comparison."""
    value = address.strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    return value


def exchange_directory(contracts: Mapping[str, str]) -> ExchangeResolver:
    """Build an allow-list resolver from ``address -> label`` pairs."""
    table = {normalize_address(a): label for a, label in contracts.items()}

    def resolve(address: str) -> str | None:
        return table.get(normalize_address(address))

    return resolve


@dataclass(frozen=True)
class PlatformAddressBook:
    """Addresses the detector and classifier reason about.

    Attributes:
        platform: Main launch-platform contract.
        infrastructure: Other platform contracts; transfers touching them
            are never classified.
        settlement_asset: Asset the platform pairs tokens against.
        excluded_tokens: Contracts that are never treated as launches.
        resolve_exchange: Strategy mapping an address to an external
            exchange label.
    """

    platform: str
    infrastructure: frozenset[str] = frozenset()
    settlement_asset: str | None = None
    excluded_tokens: frozenset[str] = frozenset()
    resolve_exchange: ExchangeResolver = field(default=lambda _address: None)

    @classmethod
    def create(
        cls,
        platform: str,
        *,
        infrastructure: Iterable[str] = (),
        settlement_asset: str | None = None,
        excluded_tokens: Iterable[str] = (),
        exchange_contracts: Mapping[str, str] | None = None,
        resolve_exchange: ExchangeResolver | None = None,
    ) -> PlatformAddressBook:
        """Create an address book with every address normalized."""
        platform = normalize_address(platform)
        if resolve_exchange is None:
            resolve_exchange = exchange_directory(exchange_contracts or {})
        return cls(
            platform=platform,
            infrastructure=frozenset(normalize_address(a) for a in infrastructure) - {platform},
            settlement_asset=normalize_address(settlement_asset) if settlement_asset else None,
            excluded_tokens=frozenset(normalize_address(a) for a in excluded_tokens),
            resolve_exchange=resolve_exchange,
        )

    @classmethod
    def from_settings(cls, settings: PlatformSettings) -> PlatformAddressBook:
        return cls.create(
            settings.address,
            infrastructure=settings.infrastructure_addresses,
            settlement_asset=settings.settlement_asset,
            excluded_tokens=settings.excluded_tokens,
            exchange_contracts=settings.exchange_contracts,
        )

    def is_platform(self, address: str) -> bool:
        return address == self.platform

    def is_infrastructure(self, address: str) -> bool:
        """True for platform contracts other than the main address."""
        return address in self.infrastructure

    def is_excluded_token(self, address: str) -> bool:
        return address in self.excluded_tokens or address in self.infrastructure

    def exchange_label(self, address: str) -> str | None:
        return self.resolve_exchange(address)
