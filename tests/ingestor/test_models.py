"""Tests for ingestor data models."""

from __future__ import annotations

import pytest
from hexbytes import HexBytes

from launchpad_tracker.detector.addresses import ZERO_ADDRESS
from launchpad_tracker.ingestor.models import (
    TRANSFER_TOPIC,
    LogEvent,
    MalformedEventError,
    decode_transfer,
    to_hex,
)

TOKEN = "0x" + "7" * 40
SENDER = "0x" + "1" * 40
RECIPIENT = "0x" + "2" * 40


class TestToHex:
    def test_bytes_and_strings(self) -> None:
        assert to_hex(b"\x01\xab") == "0x01ab"
        assert to_hex("0xABCD") == "0xabcd"
        assert to_hex("abcd") == "0xabcd"

    def test_hexbytes(self) -> None:
        assert to_hex(HexBytes("0x01ab")) == "0x01ab"

    def test_rejects_other_types(self) -> None:
        with pytest.raises(MalformedEventError):
            to_hex(12)


class TestLogEvent:
    def test_from_web3_shape(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 5, block_number=7, log_index=3)
        raw["topics"] = [HexBytes(t) for t in raw["topics"]]
        raw["transactionHash"] = HexBytes(raw["transactionHash"])

        log = LogEvent.from_dict(raw)

        assert log.address == TOKEN
        assert log.topic0 == TRANSFER_TOPIC
        assert log.tx_hash == "0x" + "a" * 64
        assert log.block_number == 7
        assert log.log_index == 3

    def test_from_snake_case_dict(self) -> None:
        log = LogEvent.from_dict(
            {
                "address": TOKEN,
                "topics": [],
                "data": "0x",
                "tx_hash": "0x01",
                "block_number": "12",
                "log_index": 0,
            }
        )
        assert log.block_number == 12
        assert log.topic0 is None

    def test_missing_field(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 5)
        del raw["logIndex"]
        with pytest.raises(MalformedEventError, match="logIndex"):
            LogEvent.from_dict(raw)

    def test_unreadable_block_number(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 5)
        raw["blockNumber"] = "not-a-number"
        with pytest.raises(MalformedEventError):
            LogEvent.from_dict(raw)


class TestDecodeTransfer:
    def test_decodes_addresses_and_amount(self, make_raw_log) -> None:
        amount = 10**27 + 1
        transfer = decode_transfer(LogEvent.from_dict(make_raw_log(TOKEN, SENDER, RECIPIENT, amount)))

        assert transfer.token_address == TOKEN
        assert transfer.source == SENDER
        assert transfer.destination == RECIPIENT
        assert transfer.amount == amount
        assert not transfer.is_mint

    def test_mint(self, make_raw_log) -> None:
        transfer = decode_transfer(LogEvent.from_dict(make_raw_log(TOKEN, ZERO_ADDRESS, RECIPIENT, 1)))
        assert transfer.is_mint

    def test_rejects_other_events(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 1)
        raw["topics"][0] = "0x" + "0" * 64
        with pytest.raises(MalformedEventError, match="Not a Transfer"):
            decode_transfer(LogEvent.from_dict(raw))

    def test_rejects_erc721_shape(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 1)
        raw["topics"].append("0x" + "0" * 63 + "1")
        raw["data"] = "0x"
        with pytest.raises(MalformedEventError, match="topics"):
            decode_transfer(LogEvent.from_dict(raw))

    def test_rejects_short_data(self, make_raw_log) -> None:
        raw = make_raw_log(TOKEN, SENDER, RECIPIENT, 1)
        raw["data"] = "0x01"
        with pytest.raises(MalformedEventError):
            decode_transfer(LogEvent.from_dict(raw))

    def test_to_dict_keeps_amount_exact(self, make_transfer) -> None:
        transfer = make_transfer(TOKEN, SENDER, RECIPIENT, 10**30, log_index=4)
        assert transfer.to_dict() == {
            "source": SENDER,
            "destination": RECIPIENT,
            "amount": str(10**30),
            "log_index": 4,
        }
