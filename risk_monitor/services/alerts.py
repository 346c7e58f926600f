"""Threshold and alert engine."""
from __future__ import annotations

import logging
from typing import Iterable

from ..errors import StoreError
from ..interfaces.notifier import Notifier
from ..interfaces.stores import AlertStore, PositionStore
from ..models import (
    AggregateStats,
    AlertEvent,
    AlertKind,
    RiskAssessment,
    RiskLevel,
    Snapshot,
)

logger = logging.getLogger(__name__)

WARNING_SCORE = 60
CRITICAL_HEALTH_FACTOR = 1.2


class AlertEngine:
    """Decides which alerts a risk cycle or market event produces, then records
    and dispatches them.

    Alerts are additive: the store only ever receives new events. By default a
    liquidation warning is raised on every qualifying cycle; with
    ``transition_only`` it is raised only when the level differs from the last
    level notified for that user.
    """

    def __init__(
        self,
        alert_store: AlertStore,
        notifiers: list[Notifier] | None = None,
        position_store: PositionStore | None = None,
        transition_only: bool = False,
    ) -> None:
        self._alerts = alert_store
        self._notifiers = list(notifiers or [])
        self._positions = position_store
        self._transition_only = transition_only
        self._last_notified: dict[str, RiskLevel] = {}

    # ------------------------------------------------------------------
    # Risk alerts
    # ------------------------------------------------------------------

    @staticmethod
    def is_qualifying(stats: AggregateStats, assessment: RiskAssessment) -> bool:
        return assessment.score > WARNING_SCORE or stats.health_factor.is_below(
            CRITICAL_HEALTH_FACTOR
        )

    async def evaluate(
        self,
        user_id: str,
        stats: AggregateStats,
        assessment: RiskAssessment,
        previous: Snapshot | None = None,
    ) -> list[AlertEvent]:
        """Emit at most one liquidation warning for this cycle."""
        previous_level = previous.assessment.level if previous else None
        if previous_level is not None and previous_level != assessment.level:
            logger.info(
                "Risk level for %s changed: %s -> %s",
                user_id,
                previous_level.value,
                assessment.level.value,
            )

        if not self.is_qualifying(stats, assessment):
            self._last_notified.pop(user_id, None)
            return []

        last_level = self._last_notified.get(user_id)
        if self._transition_only and last_level == assessment.level:
            logger.debug(
                "Suppressing repeat %s alert for %s", assessment.level.value, user_id
            )
            return []

        event = self._build_liquidation_warning(
            user_id, stats, assessment, previous_level
        )
        await self._record(event)
        self._last_notified[user_id] = assessment.level
        return [event]

    @staticmethod
    def _build_liquidation_warning(
        user_id: str,
        stats: AggregateStats,
        assessment: RiskAssessment,
        previous_level: RiskLevel | None,
    ) -> AlertEvent:
        hf = stats.health_factor
        critical = hf.is_below(CRITICAL_HEALTH_FACTOR)
        payload = {
            "critical": critical,
            "risk_score": assessment.score,
            "health_factor": hf.value,
            "has_debt": hf.has_debt,
            "level": assessment.level.value,
            "source": assessment.source.value,
            "previous_level": previous_level.value if previous_level else None,
        }

        if critical:
            return AlertEvent(
                user_id=user_id,
                kind=AlertKind.LIQUIDATION_WARNING,
                title="Critical: Low Health Factor",
                message=(
                    f"Your health factor is {hf.value:.2f}. "
                    f"{assessment.recommended_action}. "
                    f"Estimated time to liquidation: "
                    f"{assessment.time_to_liquidation_estimate}."
                ),
                payload=payload,
            )

        return AlertEvent(
            user_id=user_id,
            kind=AlertKind.LIQUIDATION_WARNING,
            title="Liquidation Risk Alert",
            message=(
                f"Your position has a {assessment.score:.0f}% risk of liquidation. "
                f"{assessment.recommended_action}"
            ),
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Market and transaction events
    # ------------------------------------------------------------------

    async def rate_change(
        self, asset_id: str, supply_apy: float, borrow_apy: float, symbol: str = ""
    ) -> list[AlertEvent]:
        """Notify every user currently supplying ``asset_id`` of new rates."""
        if self._positions is None:
            raise RuntimeError("rate_change requires a position store")

        try:
            positions = await self._positions.get_positions_by_asset(asset_id)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to read positions for '{asset_id}': {e}") from e
        user_ids = _unique(p.user_id for p in positions if p.supplied_amount > 0)
        label = symbol or asset_id

        events: list[AlertEvent] = []
        for user_id in user_ids:
            event = AlertEvent(
                user_id=user_id,
                kind=AlertKind.RATE_CHANGE,
                title="Interest Rate Update",
                message=(
                    f"{label}: Supply APY is now {supply_apy}% "
                    f"and Borrow APY is {borrow_apy}%"
                ),
                payload={
                    "asset_id": asset_id,
                    "supply_apy": supply_apy,
                    "borrow_apy": borrow_apy,
                },
            )
            await self._record(event)
            events.append(event)
        logger.info("Rate change for %s notified to %d users", label, len(events))
        return events

    async def transaction_complete(
        self, user_id: str, tx_hash: str, status: str = "confirmed"
    ) -> AlertEvent:
        if status == "confirmed":
            title = "Transaction Confirmed"
            message = "Your transaction has been confirmed on the blockchain"
        else:
            title = "Transaction Failed"
            message = f"Your transaction finished with status '{status}'"

        event = AlertEvent(
            user_id=user_id,
            kind=AlertKind.TRANSACTION_COMPLETE,
            title=title,
            message=message,
            payload={"tx_hash": tx_hash, "status": status},
        )
        await self._record(event)
        return event

    async def liquidated(
        self,
        user_id: str,
        collateral_amount: float,
        tx_hash: str = "",
        health_factor_before: float | None = None,
    ) -> AlertEvent:
        """Tell a user their position was liquidated on-chain."""
        event = AlertEvent(
            user_id=user_id,
            kind=AlertKind.LIQUIDATION_WARNING,
            title="Position Liquidated",
            message=(
                f"Your position was liquidated. Collateral seized: {collateral_amount}"
            ),
            payload={
                "tx_hash": tx_hash,
                "collateral_amount": collateral_amount,
                "health_factor_before": health_factor_before,
            },
        )
        await self._record(event)
        return event

    async def system_message(
        self,
        title: str,
        message: str,
        user_ids: Iterable[str],
        severity: str = "info",
    ) -> list[AlertEvent]:
        """Broadcast the same message to every listed user."""
        events: list[AlertEvent] = []
        for user_id in _unique(user_ids):
            event = AlertEvent(
                user_id=user_id,
                kind=AlertKind.SYSTEM_MESSAGE,
                title=title,
                message=message,
                payload={"severity": severity},
            )
            await self._record(event)
            events.append(event)
        return events

    # ------------------------------------------------------------------
    # Recording and dispatch
    # ------------------------------------------------------------------

    async def _record(self, event: AlertEvent) -> None:
        try:
            await self._alerts.insert(event)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to record alert for '{event.user_id}': {e}") from e
        logger.info(
            "Alert %s [%s] for %s: %s",
            event.id,
            event.kind.value,
            event.user_id,
            event.title,
        )
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(event)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)


def _unique(user_ids: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for user_id in user_ids:
        seen.setdefault(user_id, None)
    return list(seen)
