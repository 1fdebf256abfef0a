"""Data models for the ingestor module.

Raw logs arrive from the ledger as loosely typed mappings (web3
``AttributeDict`` with ``HexBytes`` values, or plain dicts from a cache).
``LogEvent`` normalizes that shape once and ``decode_transfer`` turns it into
a ``TransferEvent``; nothing downstream looks at topic strings.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from launchpad_tracker.detector.addresses import ZERO_ADDRESS

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

_WORD_HEX_LEN = 64


class MalformedEventError(ValueError):
    """Raised when a log does not have the expected shape."""


def to_hex(value: Any) -> str:
    """Render bytes-like or string values as lowercase 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        text = value.lower()
        return text if text.startswith("0x") else "0x" + text
    hex_method = getattr(value, "hex", None)
    if callable(hex_method):
        return to_hex(hex_method())
    raise MalformedEventError(f"Cannot render {type(value).__name__} as hex")


def _field(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    raise MalformedEventError(f"Log is missing field {names[0]!r}")


@dataclass(frozen=True)
class LogEvent:
    """A raw log entry as delivered by the ledger."""

    address: str
    topics: tuple[str, ...]
    data: str
    tx_hash: str
    block_number: int
    log_index: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LogEvent:
        """Create a LogEvent from a web3 log or an equivalent plain dict.

        Raises:
            MalformedEventError: If a required field is missing or unreadable.
        """
        try:
            topics: Sequence[Any] = _field(data, "topics")
            return cls(
                address=to_hex(_field(data, "address")),
                topics=tuple(to_hex(t) for t in topics),
                data=to_hex(data.get("data") or "0x"),
                tx_hash=to_hex(_field(data, "transactionHash", "transaction_hash", "tx_hash")),
                block_number=int(_field(data, "blockNumber", "block_number")),
                log_index=int(_field(data, "logIndex", "log_index")),
            )
        except MalformedEventError:
            raise
        except (TypeError, ValueError) as e:
            raise MalformedEventError(f"Unreadable log: {e}") from e

    @property
    def topic0(self) -> str | None:
        return self.topics[0] if self.topics else None


@dataclass(frozen=True)
class TransferEvent:
    """A decoded ERC20 ``Transfer`` with normalized addresses.

    Attributes:
        token_address: Contract that emitted the event.
        source: Sender (the zero address for a mint).
        destination: Recipient.
        amount: Raw token units, exact.
        tx_hash: Transaction the log belongs to.
        block_number: Block the transaction was included in.
        log_index: Position of the log within the block.
    """

    token_address: str
    source: str
    destination: str
    amount: int
    tx_hash: str
    block_number: int
    log_index: int

    @property
    def is_mint(self) -> bool:
        return self.source == ZERO_ADDRESS

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "destination": self.destination,
            "amount": str(self.amount),
            "log_index": self.log_index,
        }


def _topic_to_address(topic: str) -> str:
    body = topic[2:]
    if len(body) != _WORD_HEX_LEN:
        raise MalformedEventError(f"Indexed address topic has {len(body)} hex chars")
    return "0x" + body[-40:]


def decode_transfer(log: LogEvent) -> TransferEvent:
    """Decode a ``Transfer(address,address,uint256)`` log.

    Raises:
        MalformedEventError: If the log is not a fungible-token transfer.
            ERC721 transfers (amount indexed as a fourth topic) are rejected
            here too.
    """
    if log.topic0 != TRANSFER_TOPIC:
        raise MalformedEventError(f"Not a Transfer log: topic0={log.topic0}")
    if len(log.topics) != 3:
        raise MalformedEventError(f"Transfer log has {len(log.topics)} topics, expected 3")
    payload = log.data[2:]
    if len(payload) != _WORD_HEX_LEN:
        raise MalformedEventError(f"Transfer data has {len(payload)} hex chars, expected {_WORD_HEX_LEN}")
    try:
        amount = int(payload, 16)
    except ValueError as e:
        raise MalformedEventError(f"Transfer amount is not hex: {payload!r}") from e

    return TransferEvent(
        token_address=log.address,
        source=_topic_to_address(log.topics[1]),
        destination=_topic_to_address(log.topics[2]),
        amount=amount,
        tx_hash=log.tx_hash,
        block_number=log.block_number,
        log_index=log.log_index,
    )
