"""Tests for the platform address book."""

from __future__ import annotations

from launchpad_tracker.detector.addresses import (
    PlatformAddressBook,
    exchange_directory,
    normalize_address,
)

PLATFORM = "0x5c952063c7fc8610ffdb798152d69f0b9550762b"


class TestNormalizeAddress:
    def test_lowercases_and_prefixes(self) -> None:
        assert normalize_address(" 0xABCdef ") == "0xabcdef"
        assert normalize_address("ABCDEF") == "0xabcdef"


class TestExchangeDirectory:
    def test_lookup_is_case_insensitive(self) -> None:
        resolve = exchange_directory({"0xAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA": "router"})
        assert resolve("0x" + "a" * 40) == "router"
        assert resolve("0x" + "b" * 40) is None


class TestPlatformAddressBook:
    def test_create_normalizes(self) -> None:
        book = PlatformAddressBook.create(
            PLATFORM.upper().replace("0X", "0x"),
            infrastructure=["0x" + "B" * 40, PLATFORM],
            settlement_asset="0x" + "C" * 40,
            excluded_tokens=["0x" + "D" * 40],
        )

        assert book.platform == PLATFORM
        assert book.is_platform(PLATFORM)
        # The platform itself is never "other infrastructure"
        assert book.infrastructure == frozenset({"0x" + "b" * 40})
        assert book.settlement_asset == "0x" + "c" * 40

    def test_excluded_tokens_include_infrastructure(self, address_book: PlatformAddressBook) -> None:
        assert address_book.is_excluded_token("0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c")
        assert address_book.is_excluded_token("0x48735904455eda3aa9a0c9e43ee9999c795e30b9")
        assert not address_book.is_excluded_token("0x" + "7" * 40)

    def test_custom_exchange_strategy(self) -> None:
        book = PlatformAddressBook.create(
            PLATFORM,
            resolve_exchange=lambda address: "dex" if address.endswith("ff") else None,
        )
        assert book.exchange_label("0x" + "0" * 38 + "ff") == "dex"
        assert book.exchange_label("0x" + "0" * 40) is None

    def test_from_settings(self) -> None:
        from launchpad_tracker.config import PlatformSettings

        book = PlatformAddressBook.from_settings(PlatformSettings())

        assert book.platform == PLATFORM
        assert book.exchange_label("0x10ed43c718714eb63d5aa57b78b54704e256024e") == "pancakeswap"
        assert book.is_infrastructure("0x1de460f363af910f51726def188f9004276bf4bc")
