"""Tests for the risk analyzer."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from launchpad_tracker.detector.models import (
    CrossPlatformTrade,
    RiskLevel,
    TradeDirection,
    TradeRecord,
    WalletTransfer,
)
from launchpad_tracker.detector.risk import RiskAnalyzer, RiskThresholds

CREATOR = "0x" + "cafe".rjust(40, "0")
BUYER = "0x" + "beef".rjust(40, "0")
NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _trade(direction: TradeDirection, amount: int, *, is_issuer: bool = False) -> TradeRecord:
    return TradeRecord(
        direction=direction,
        counterparty=CREATOR if is_issuer else BUYER,
        amount=amount,
        tx_hash="0x01",
        block_number=1,
        timestamp=NOW,
        is_issuer=is_issuer,
    )


def _wallet_transfer(destination: str) -> WalletTransfer:
    return WalletTransfer(
        source=BUYER, destination=destination, amount=1, tx_hash="0x02", block_number=1, timestamp=NOW
    )


def _exit(seconds: float | None) -> CrossPlatformTrade:
    return CrossPlatformTrade(
        source=BUYER,
        destination="0x" + "e" * 40,
        platform="pancakeswap",
        amount=10,
        tx_hash="0x03",
        block_number=2,
        timestamp=NOW,
        seconds_since_first_buy=seconds,
        total_bought=10,
        buy_count=1,
    )


@pytest.fixture
def analyzer() -> RiskAnalyzer:
    return RiskAnalyzer()


class TestLevels:
    @pytest.mark.parametrize(
        ("score", "level"),
        [(0, RiskLevel.NONE), (1, RiskLevel.LOW), (3, RiskLevel.LOW), (4, RiskLevel.MEDIUM), (7, RiskLevel.HIGH)],
    )
    def test_level_for(self, analyzer: RiskAnalyzer, score: int, level: RiskLevel) -> None:
        assert analyzer.level_for(score) is level


class TestRules:
    def test_quiet_token(self, analyzer: RiskAnalyzer, make_token) -> None:
        assessment = analyzer.analyze(make_token(issuer_allocation=400_000))

        assert assessment.score == 0
        assert assessment.level is RiskLevel.NONE
        assert not assessment.is_flagged

    def test_issuer_holding(self, analyzer: RiskAnalyzer, make_token) -> None:
        # Exactly half is not above the threshold
        assert analyzer.analyze(make_token(issuer_allocation=500_000)).score == 0

        assessment = analyzer.analyze(make_token(issuer_allocation=500_001))
        assert assessment.score == 2
        assert "Issuer holds" in assessment.flags[0]

    def test_large_issuer_sell(self, analyzer: RiskAnalyzer, make_token) -> None:
        token = make_token(issuer_allocation=0)
        token.trades.append(_trade(TradeDirection.SELL, 100_001, is_issuer=True))
        token.sell_count = 1

        assessment = analyzer.analyze(token)

        assert assessment.score == 3
        assert "10.00%" in assessment.flags[0]

    def test_sell_buy_ratio(self, analyzer: RiskAnalyzer, make_token) -> None:
        token = make_token(issuer_allocation=0)
        token.buy_count = 2
        token.sell_count = 5

        assessment = analyzer.analyze(token)

        assert assessment.score == 2
        assert assessment.flags == ("Sell/buy ratio 2.50",)

    def test_repeated_destinations(self, analyzer: RiskAnalyzer, make_token) -> None:
        token = make_token(issuer_allocation=0)
        a, b = "0x" + "a" * 40, "0x" + "b" * 40
        token.wallet_transfers.extend([_wallet_transfer(a)] * 4 + [_wallet_transfer(b)] * 3)

        assessment = analyzer.analyze(token)

        # Only a exceeds three transfers
        assert assessment.score == 1
        assert a in assessment.flags[0]

    def test_quick_exit(self, analyzer: RiskAnalyzer, make_token) -> None:
        token = make_token(issuer_allocation=0)
        token.cross_platform_trades.extend([_exit(None), _exit(600.0), _exit(120.0), _exit(30.0)])

        assessment = analyzer.analyze(token)

        assert assessment.score == 3
        assert "120s" in assessment.flags[0]

    def test_combined_high(self, analyzer: RiskAnalyzer, make_token) -> None:
        token = make_token(issuer_allocation=900_000)
        token.trades.append(_trade(TradeDirection.SELL, 200_000, is_issuer=True))
        token.sell_count = 3
        token.cross_platform_trades.append(_exit(10.0))

        assessment = analyzer.analyze(token)

        assert assessment.score == 2 + 3 + 2 + 3
        assert assessment.level is RiskLevel.HIGH

    def test_custom_thresholds(self, make_token) -> None:
        analyzer = RiskAnalyzer(RiskThresholds(issuer_holding_pct=30, issuer_holding_points=5))

        assessment = analyzer.analyze(make_token(issuer_allocation=400_000))

        assert assessment.score == 5
        assert assessment.level is RiskLevel.MEDIUM
