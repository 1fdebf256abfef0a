"""Token creation detector.

A launch through the platform shows up inside one transaction as a mint of
the new token (from the zero address) plus a deposit of that token into
the platform contract, followed by the platform handing the creator their
allocation. The detector recognises that pattern, works out the creator,
reads best-effort metadata and seeds a ``TrackedToken``.

Creator attribution is heuristic. Two strategies are provided:

- ``last_log_recipient``: the destination of the token's last transfer in
  the transaction (the platform's final redistribution step).
- ``transaction_sender``: the account that signed the transaction, read from
  its receipt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from launchpad_tracker.detector.addresses import ZERO_ADDRESS, normalize_address
from launchpad_tracker.detector.models import DataError, TrackedToken
from launchpad_tracker.ledger.client import LedgerClientError

if TYPE_CHECKING:
    from launchpad_tracker.detector.addresses import PlatformAddressBook
    from launchpad_tracker.ingestor.models import TransferEvent
    from launchpad_tracker.ledger.client import ChainClient
    from launchpad_tracker.state import TokenStateStore

logger = logging.getLogger(__name__)

# (TrackedToken field, contract method)
METADATA_READS = (
    ("name", "name"),
    ("symbol", "symbol"),
    ("decimals", "decimals"),
    ("total_supply", "totalSupply"),
)


class MetadataProbeError(Exception):
    """Raised when a token contract does not answer an expected read."""

    def __init__(self, field: str, method: str, reason: str) -> None:
        super().__init__(f"{method}() failed: {reason}")
        self.field = field
        self.method = method
        self.reason = reason


@dataclass(frozen=True)
class CreationContext:
    """Everything one transaction tells us about a candidate launch.

    Attributes:
        token_address: Candidate token contract.
        tx_hash: Launch transaction.
        block_number: Block of the launch transaction.
        transfers: The contract's transfers in the transaction, log order.
        mint: First mint of the contract in the transaction.
        deposit: First transfer of the contract into the platform.
    """

    token_address: str
    tx_hash: str
    block_number: int
    transfers: tuple[TransferEvent, ...]
    mint: TransferEvent
    deposit: TransferEvent

    @property
    def minted_amount(self) -> int:
        return sum(t.amount for t in self.transfers if t.is_mint)


CreatorStrategy = Callable[[CreationContext], Awaitable[str | None]]


async def last_log_recipient(context: CreationContext) -> str | None:
    """Destination of the contract's last transfer in the transaction."""
    ordered = sorted(context.transfers, key=lambda t: t.log_index)
    return ordered[-1].destination if ordered else None


def transaction_sender(client: ChainClient) -> CreatorStrategy:
    """Build a strategy attributing the launch to the transaction signer."""

    async def resolve(context: CreationContext) -> str | None:
        receipt = await client.get_transaction_receipt(context.tx_hash)
        sender = receipt.get("from")
        return normalize_address(str(sender)) if sender else None

    return resolve


def creator_strategy_for(name: str, client: ChainClient | None) -> CreatorStrategy:
    """Resolve a configured strategy name."""
    if name == "last_log_recipient":
        return last_log_recipient
    if name == "transaction_sender":
        if client is None:
            raise ValueError("transaction_sender strategy needs a ledger client")
        return transaction_sender(client)
    raise ValueError(f"Unknown creator strategy: {name}")


class TokenCreationDetector:
    """Finds launches in a transaction's transfers and tracks them.

    Example:
        ```python
        detector = TokenCreationDetector(store, addresses, client=client)
        created = await detector.detect(group)
        ```
    """

    def __init__(
        self,
        store: TokenStateStore,
        addresses: PlatformAddressBook,
        *,
        client: ChainClient | None = None,
        creator_strategy: CreatorStrategy = last_log_recipient,
        total_supply: int | None = None,
        probe_metadata: bool = True,
        rpc_semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            store: Token state store receiving new tokens.
            addresses: Platform address book.
            client: Ledger client for metadata probes (optional).
            creator_strategy: How the creator is determined.
            total_supply: Fixed supply for launched tokens. When None the
                contract's totalSupply() is used, falling back to the
                amount minted in the launch transaction.
            probe_metadata: Read name/symbol/decimals/totalSupply after detection.
            rpc_semaphore: Shared cap on concurrent enrichment calls.
        """
        self._store = store
        self._addresses = addresses
        self._client = client
        self._creator_strategy = creator_strategy
        self._total_supply = total_supply
        self._probe_metadata = probe_metadata and client is not None
        self._rpc_semaphore = rpc_semaphore or asyncio.Semaphore(5)

    def find_candidates(self, transfers: Sequence[TransferEvent]) -> list[CreationContext]:
        """Find launch patterns in one transaction's transfers. No I/O."""
        if not transfers:
            return []

        candidates: list[CreationContext] = []
        seen: set[str] = set()
        for deposit in transfers:
            token = deposit.token_address
            if not self._addresses.is_platform(deposit.destination) or token in seen:
                continue
            seen.add(token)
            if token in self._store or self._addresses.is_excluded_token(token):
                continue

            token_transfers = tuple(t for t in transfers if t.token_address == token)
            mint = next((t for t in token_transfers if t.is_mint), None)
            if mint is None:
                logger.debug("Deposit of %s in %s has no mint, not a launch", token, deposit.tx_hash)
                continue

            candidates.append(
                CreationContext(
                    token_address=token,
                    tx_hash=deposit.tx_hash,
                    block_number=deposit.block_number,
                    transfers=token_transfers,
                    mint=mint,
                    deposit=deposit,
                )
            )
        return candidates

    async def _resolve_creator(self, context: CreationContext, errors: list[DataError]) -> str:
        try:
            creator = await self._creator_strategy(context)
        except LedgerClientError as e:
            errors.append(DataError(field="creator", error=str(e), method="creator_strategy"))
            creator = None

        if creator is None or self._addresses.is_platform(creator) or creator == ZERO_ADDRESS:
            errors.append(
                DataError(
                    field="creator",
                    error=f"strategy returned {creator!r}",
                    method="creator_strategy",
                )
            )
            logger.warning("Could not attribute creator of %s in %s", context.token_address, context.tx_hash)
            return ZERO_ADDRESS
        return creator

    async def _probe_field(self, token_address: str, field: str, method: str) -> Any:
        client = self._client
        if client is None:
            raise MetadataProbeError(field, method, "no ledger client")
        try:
            async with self._rpc_semaphore:
                value = await client.call(token_address, method)
        except LedgerClientError as e:
            raise MetadataProbeError(field, method, str(e)) from e

        if field == "decimals":
            if not isinstance(value, int) or not 0 <= value <= 255:
                raise MetadataProbeError(field, method, f"unexpected value {value!r}")
            return value
        if field == "total_supply":
            if not isinstance(value, int) or value <= 0:
                raise MetadataProbeError(field, method, f"unexpected value {value!r}")
            return value
        if not isinstance(value, str):
            raise MetadataProbeError(field, method, f"unexpected value {value!r}")
        return value.replace("\x00", "").strip()

    async def probe_metadata(self, token_address: str) -> tuple[dict[str, Any], list[DataError]]:
        """Read name, symbol, decimals and total supply, collecting failures instead of raising."""
        values: dict[str, Any] = {}
        errors: list[DataError] = []
        if not self._probe_metadata:
            return values, errors

        for field, method in METADATA_READS:
            try:
                values[field] = await self._probe_field(token_address, field, method)
            except MetadataProbeError as e:
                logger.warning("Metadata probe for %s failed: %s", token_address, e)
                errors.append(DataError(field=e.field, error=e.reason, method=e.method))
        return values, errors

    async def build_token(self, context: CreationContext) -> TrackedToken:
        """Turn a candidate into a populated ``TrackedToken``."""
        errors: list[DataError] = []
        creator = await self._resolve_creator(context, errors)
        metadata, probe_errors = await self.probe_metadata(context.token_address)
        errors.extend(probe_errors)

        allocation = next(
            (
                t
                for t in context.transfers
                if self._addresses.is_platform(t.source) and t.destination == creator
            ),
            None,
        )
        if allocation is None:
            logger.warning(
                "No platform allocation to creator %s for %s, residual holding starts at 0",
                creator,
                context.token_address,
            )

        total_supply = self._total_supply
        if total_supply is None:
            total_supply = metadata.get("total_supply") or context.minted_amount

        return TrackedToken.create(
            address=context.token_address,
            total_supply=total_supply,
            creator=creator,
            creation_block=context.block_number,
            creation_tx_hash=context.tx_hash,
            issuer_allocation=allocation.amount if allocation is not None else None,
            name=metadata.get("name"),
            symbol=metadata.get("symbol"),
            decimals=metadata.get("decimals"),
            data_errors=errors,
            mint_recipient=context.mint.destination,
            mint_log=context.mint.to_dict(),
            allocation_log=allocation.to_dict() if allocation is not None else None,
        )

    async def detect(self, transfers: Sequence[TransferEvent]) -> list[TrackedToken]:
        """Detect launches in one transaction and add them to the store.

        Returns:
            Tokens that were newly added. A token already tracked, including
            one added concurrently, is never added twice.
        """
        candidates = self.find_candidates(transfers)
        if not candidates:
            return []

        tokens = await asyncio.gather(*(self.build_token(c) for c in candidates))
        created: list[TrackedToken] = []
        for token in tokens:
            if not self._store.add(token):
                continue
            created.append(token)
            logger.info(
                "New token detected: %s (%s) creator=%s block=%d tx=%s",
                token.address,
                token.symbol or "?",
                token.creator,
                token.creation_block,
                token.creation_tx_hash,
            )
        return created
