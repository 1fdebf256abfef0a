"""Tests for detector data models."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from launchpad_tracker.detector.models import (
    CrossPlatformTrade,
    DataError,
    RiskAssessment,
    RiskLevel,
    TrackedToken,
    TradeDirection,
    TradeRecord,
    WalletTransfer,
    format_token_amount,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
BUYER = "0x" + "beef".rjust(40, "0")


class TestFormatTokenAmount:
    @pytest.mark.parametrize(
        ("value", "decimals", "expected"),
        [
            (0, 18, "0"),
            (10**18, 18, "1"),
            (15 * 10**17, 18, "1.5"),
            (1, 18, "0.000000000000000001"),
            (12345, 0, "12345"),
            (10**18, None, "1"),
        ],
    )
    def test_format(self, value: int, decimals: int | None, expected: str) -> None:
        assert format_token_amount(value, decimals) == expected


class TestTrackedToken:
    def test_create_seeds_first_buy(self, make_token) -> None:
        token = make_token(total_supply=10**27, issuer_allocation=8 * 10**26)

        assert token.buy_count == 1
        assert token.unique_buyers == {token.creator}
        assert token.total_buy_volume == 10**27
        assert token.issuer_residual_holding == 8 * 10**26
        assert token.issuer_holding_pct == Decimal(80)

    def test_create_without_allocation(self, make_token) -> None:
        token = make_token(issuer_allocation=None)

        assert token.issuer_residual_holding == 0
        assert token.allocation_found is False

    def test_holding_pct_with_zero_supply(self, make_token) -> None:
        assert make_token(total_supply=0, issuer_allocation=0).issuer_holding_pct == Decimal(0)

    def test_dict_round_trip_keeps_large_amounts(self, make_token) -> None:
        token = make_token(total_supply=10**30 + 7, issuer_allocation=10**30, name="Cafe", decimals=18)
        token.trades.append(
            TradeRecord(TradeDirection.SELL, token.creator, 10**29 + 3, "0x01", 101, NOW, is_issuer=True)
        )
        token.wallet_transfers.append(WalletTransfer(BUYER, token.creator, 5, "0x02", 102, NOW, 2))
        token.cross_platform_trades.append(
            CrossPlatformTrade(BUYER, "0x" + "e" * 40, "pancakeswap", 9, "0x03", 103, NOW, None, 9, 1)
        )
        token.data_errors.append(DataError("symbol", "execution reverted", "symbol"))
        token.risk = RiskAssessment(("Issuer holds 99.99% of supply",), 2, RiskLevel.LOW)

        data = token.to_dict()
        restored = TrackedToken.from_dict(data)

        assert data["total_supply"] == str(10**30 + 7)
        assert data["trades"][0]["amount"] == str(10**29 + 3)
        assert restored == token

    def test_trade_summary(self, make_token) -> None:
        token = make_token(total_supply=4 * 10**18, issuer_allocation=10**18, symbol="CAFE", decimals=18)
        for i in range(7):
            token.trades.append(TradeRecord(TradeDirection.BUY, BUYER, 10**17, f"0x{i:02x}", 100 + i, NOW))
        token.buy_count += 7
        token.total_buy_volume += 7 * 10**17
        token.unique_buyers.add(BUYER)

        summary = token.trade_summary(limit=3)

        assert summary["symbol"] == "CAFE"
        assert summary["buy_count"] == 8
        assert summary["unique_buyers"] == 2
        assert summary["total_buy_volume"] == "4.7"
        assert summary["issuer_holding_pct"] == "25.00"
        assert [t["block_number"] for t in summary["recent_trades"]] == [104, 105, 106]

    def test_buys_by(self, make_token) -> None:
        token = make_token()
        token.trades.extend(
            [
                TradeRecord(TradeDirection.BUY, BUYER, 1, "0x01", 100, NOW),
                TradeRecord(TradeDirection.SELL, BUYER, 1, "0x02", 101, NOW),
                TradeRecord(TradeDirection.BUY, token.creator, 1, "0x03", 102, NOW),
            ]
        )

        assert [t.tx_hash for t in token.buys_by(BUYER)] == ["0x01"]


class TestRiskAssessment:
    def test_from_dict_defaults(self) -> None:
        assessment = RiskAssessment.from_dict({})

        assert assessment.score == 0
        assert assessment.level is RiskLevel.NONE
        assert not assessment.is_flagged
