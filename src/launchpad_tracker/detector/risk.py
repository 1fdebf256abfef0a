"""Heuristic risk rules for tracked tokens.

The analyzer is a pure function of a token snapshot. Rules are additive:

    issuer holds more than N% of supply               +2
    any single issuer sell above M% of supply         +3
    sells / buys above R, with at least one sell      +2
    each address with more than K wallet transfers    +1 (per address)
    a cross-platform exit within S seconds of buying  +3

Levels: score >= 7 high, >= 4 medium, > 0 low, else none.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from launchpad_tracker.detector.models import RiskAssessment, RiskLevel, TradeDirection

if TYPE_CHECKING:
    from launchpad_tracker.config import RiskSettings
    from launchpad_tracker.detector.models import TrackedToken


@dataclass(frozen=True)
class RiskThresholds:
    """Thresholds and weights of the risk rules."""

    issuer_holding_pct: int = 50
    issuer_holding_points: int = 2
    issuer_sell_pct: int = 10
    issuer_sell_points: int = 3
    sell_buy_ratio: float = 2.0
    sell_buy_ratio_points: int = 2
    repeat_transfer_count: int = 3
    repeat_transfer_points: int = 1
    quick_exit_seconds: int = 300
    quick_exit_points: int = 3
    high_level_score: int = 7
    medium_level_score: int = 4

    @classmethod
    def from_settings(cls, settings: RiskSettings) -> RiskThresholds:
        return cls(
            issuer_holding_pct=settings.issuer_holding_pct,
            issuer_holding_points=settings.issuer_holding_points,
            issuer_sell_pct=settings.issuer_sell_pct,
            issuer_sell_points=settings.issuer_sell_points,
            sell_buy_ratio=settings.sell_buy_ratio,
            sell_buy_ratio_points=settings.sell_buy_ratio_points,
            repeat_transfer_count=settings.repeat_transfer_count,
            repeat_transfer_points=settings.repeat_transfer_points,
            quick_exit_seconds=settings.quick_exit_seconds,
            quick_exit_points=settings.quick_exit_points,
            high_level_score=settings.high_level_score,
            medium_level_score=settings.medium_level_score,
        )


class RiskAnalyzer:
    """Scores a ``TrackedToken`` snapshot against the risk rules."""

    def __init__(self, thresholds: RiskThresholds | None = None) -> None:
        self.thresholds = thresholds or RiskThresholds()

    def level_for(self, score: int) -> RiskLevel:
        t = self.thresholds
        if score >= t.high_level_score:
            return RiskLevel.HIGH
        if score >= t.medium_level_score:
            return RiskLevel.MEDIUM
        if score > 0:
            return RiskLevel.LOW
        return RiskLevel.NONE

    def analyze(self, token: TrackedToken) -> RiskAssessment:
        t = self.thresholds
        flags: list[str] = []
        score = 0
        supply = token.total_supply

        # Integer cross-multiplication keeps the percentage checks exact
        if supply > 0 and token.issuer_residual_holding * 100 > supply * t.issuer_holding_pct:
            flags.append(f"Issuer holds {token.issuer_holding_pct:.2f}% of supply")
            score += t.issuer_holding_points

        issuer_sells = [
            trade
            for trade in token.trades
            if trade.direction is TradeDirection.SELL and trade.is_issuer
        ]
        if supply > 0 and any(s.amount * 100 > supply * t.issuer_sell_pct for s in issuer_sells):
            largest = max(s.amount for s in issuer_sells)
            pct = Decimal(largest) * 100 / Decimal(supply)
            flags.append(f"Issuer sold {pct:.2f}% of supply in one trade")
            score += t.issuer_sell_points

        if token.sell_count > 0:
            ratio = token.sell_count / token.buy_count if token.buy_count else float("inf")
            if ratio > t.sell_buy_ratio:
                flags.append(f"Sell/buy ratio {ratio:.2f}")
                score += t.sell_buy_ratio_points

        for destination, count in sorted(token.wallet_transfer_counts().items()):
            if count > t.repeat_transfer_count:
                flags.append(f"{destination} received {count} wallet transfers")
                score += t.repeat_transfer_points

        quick_exits = [
            trade
            for trade in token.cross_platform_trades
            if trade.seconds_since_first_buy is not None
            and trade.seconds_since_first_buy < t.quick_exit_seconds
        ]
        if quick_exits:
            first = quick_exits[0]
            flags.append(
                f"Cross-platform exit on {first.platform} {first.seconds_since_first_buy:.0f}s after first buy"
            )
            score += t.quick_exit_points

        return RiskAssessment(flags=tuple(flags), score=score, level=self.level_for(score))
