"""Advisory replies — remote chat first, keyword templates as fallback."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import UpstreamUnavailable
from ..interfaces.advisory import AdvisoryService
from ..models import AggregateStats, AssessmentSource, Position

logger = logging.getLogger(__name__)

MAX_SAFE_LTV = 0.75

_TOPICS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("risk", ("risk", "health", "safe")),
    ("yield", ("apy", "return", "earn", "yield")),
    ("borrow", ("borrow", "loan")),
    ("liquidation", ("liquidation", "liquidate")),
    ("strategy", ("strategy", "optimize", "improve")),
    ("supply", ("supply", "deposit", "lend")),
)


@dataclass(frozen=True)
class AdvisoryReply:
    text: str
    source: AssessmentSource


def build_context(stats: AggregateStats, positions: tuple[Position, ...]) -> dict[str, Any]:
    """Serializable user context. Carries ``has_debt`` instead of infinity."""
    return {
        "user_stats": stats.to_dict(),
        "positions": [
            {
                "asset_id": p.asset_id,
                "supplied_amount": p.supplied_amount,
                "borrowed_amount": p.borrowed_amount,
            }
            for p in positions
        ],
    }


def match_topic(query: str) -> str | None:
    lowered = query.lower()
    for topic, keywords in _TOPICS:
        if any(k in lowered for k in keywords):
            return topic
    return None


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _hf_status(stats: AggregateStats) -> str:
    hf = stats.health_factor
    if not hf.has_debt:
        return "∞ (safe, no active borrows)"
    return f"{hf.value:.2f}"


def _risk_reply(stats: AggregateStats) -> str:
    hf = stats.health_factor
    supplied = stats.total_supplied
    borrowed = stats.total_borrowed

    if not hf.has_debt:
        return (
            "Your position is safe, no active borrows. With no debt your "
            "health factor is infinite, the safest position possible.\n\n"
            f"• You could borrow up to {_money(supplied * MAX_SAFE_LTV)} "
            "(75% of your supplied value)\n"
            "• Keep the health factor above 1.5 once you borrow"
        )
    if hf.value < 1.2:
        return (
            f"URGENT: your health factor is {hf.value:.2f}, which is critically low.\n\n"
            "You are at high risk of liquidation. Act now:\n"
            "1. Supply more collateral\n"
            "2. Repay part of your debt\n"
            "3. Aim for a health factor above 1.5\n\n"
            f"• Supplied: {_money(supplied)}\n"
            f"• Borrowed: {_money(borrowed)}\n"
            f"• Risk score: {stats.risk_score:.0f}/100"
        )
    if hf.value < 1.5:
        return (
            f"Your health factor is {hf.value:.2f}, a moderate risk zone.\n\n"
            "• Add collateral to get above 1.5\n"
            "• Do not borrow more before adding collateral\n"
            "• Check daily, price moves can push you toward liquidation\n\n"
            f"• Supplied: {_money(supplied)}\n"
            f"• Borrowed: {_money(borrowed)}\n"
            f"• Maximum safe borrow: {_money(supplied * MAX_SAFE_LTV)}"
        )
    headroom = max(0.0, supplied * MAX_SAFE_LTV - borrowed)
    return (
        f"Your health factor is {hf.value:.2f}, your position is healthy.\n\n"
        f"• Supplied: {_money(supplied)}\n"
        f"• Borrowed: {_money(borrowed)}\n"
        f"• Risk score: {stats.risk_score:.0f}/100\n\n"
        f"You can borrow up to {_money(headroom)} more while keeping a buffer."
    )


def _yield_reply(stats: AggregateStats) -> str:
    return (
        f"Your net APY is {stats.net_apy:.2f}% on {_money(stats.total_supplied)} supplied.\n\n"
        "To improve it:\n"
        "1. Supply stablecoins for steady returns\n"
        "2. Use supplied assets as collateral\n"
        "3. Only borrow when the deployed yield beats the borrow APY"
    )


def _borrow_reply(stats: AggregateStats) -> str:
    max_borrow = stats.total_supplied * MAX_SAFE_LTV
    available = max(0.0, max_borrow - stats.total_borrowed)
    return (
        "Your borrowing capacity:\n"
        f"• Total supplied: {_money(stats.total_supplied)}\n"
        f"• Already borrowed: {_money(stats.total_borrowed)}\n"
        f"• Available to borrow: {_money(available)}\n"
        f"• Max safe borrow: {_money(max_borrow)} (75% LTV)\n\n"
        "Keep the health factor above 1.5 when borrowing."
    )


def _liquidation_reply(stats: AggregateStats) -> str:
    hf = stats.health_factor
    at_risk = hf.is_below(1.5)
    return (
        "Liquidation happens when the health factor drops below 1.0, when "
        "collateral loses value or debt grows.\n\n"
        "Protection:\n"
        "1. Keep the health factor above 1.5\n"
        "2. Prefer low-volatility collateral\n"
        "3. Keep funds ready to add collateral\n\n"
        f"Your health factor: {_hf_status(stats)}\n"
        f"Status: {'Add more collateral' if at_risk else 'Safe'}"
    )


def _strategy_reply(stats: AggregateStats, positions: tuple[Position, ...]) -> str:
    active = [p for p in positions if not p.is_zero]
    if active:
        spread = (
            f"You hold {len(active)} position(s); "
            f"{'add more assets' if len(active) < 3 else 'rebalance them'} to spread risk."
        )
    else:
        spread = "Start with a mix of stablecoins and volatile assets."
    return (
        f"1. Diversify: {spread}\n"
        "2. Borrow 50-60% of supply value at most, health factor above 1.8\n"
        "3. Rebalance when the health factor falls under 1.5\n\n"
        f"Current health factor: {_hf_status(stats)}"
    )


def _supply_reply(stats: AggregateStats) -> str:
    tail = (
        "Start small to get familiar with the platform."
        if stats.total_supplied == 0
        else "Consider spreading supply across 3-4 assets."
    )
    return (
        f"You currently supply {_money(stats.total_supplied)}.\n\n"
        "Supplied assets earn interest immediately and can back borrows. "
        f"{tail}"
    )


def _help_reply(stats: AggregateStats) -> str:
    return (
        "I can help with portfolio health, borrowing limits, yields and "
        "liquidation prevention.\n\n"
        f"• Supplied: {_money(stats.total_supplied)}\n"
        f"• Borrowed: {_money(stats.total_borrowed)}\n"
        f"• Health factor: {_hf_status(stats)}"
    )


def fallback_reply(
    query: str, stats: AggregateStats, positions: tuple[Position, ...] = ()
) -> str:
    """Templated answer chosen by keyword, filled with the user's numbers."""
    topic = match_topic(query)
    if topic == "risk":
        return _risk_reply(stats)
    if topic == "yield":
        return _yield_reply(stats)
    if topic == "borrow":
        return _borrow_reply(stats)
    if topic == "liquidation":
        return _liquidation_reply(stats)
    if topic == "strategy":
        return _strategy_reply(stats, positions)
    if topic == "supply":
        return _supply_reply(stats)
    return _help_reply(stats)


class Advisor:
    """Answers free-text questions about a user's position."""

    def __init__(self, service: AdvisoryService | None = None) -> None:
        self._service = service

    async def ask(
        self,
        user_id: str,
        query: str,
        stats: AggregateStats,
        positions: tuple[Position, ...] = (),
    ) -> AdvisoryReply:
        if self._service is not None:
            try:
                text = await self._complete_remote(user_id, query, stats, positions)
                return AdvisoryReply(text=text, source=AssessmentSource.REMOTE)
            except UpstreamUnavailable as e:
                logger.warning("Advisory service unavailable, using templates: %s", e)

        return AdvisoryReply(
            text=fallback_reply(query, stats, positions),
            source=AssessmentSource.FALLBACK,
        )

    async def _complete_remote(
        self,
        user_id: str,
        query: str,
        stats: AggregateStats,
        positions: tuple[Position, ...],
    ) -> str:
        try:
            return await self._service.complete(
                user_id, query, build_context(stats, positions)
            )
        except UpstreamUnavailable:
            raise
        except Exception as e:
            raise UpstreamUnavailable(f"Advisory service error: {e}") from e
