"""Monitoring orchestration — wires the pipeline, scheduler and notifiers."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from ..clients import AdvisoryClient, ScoringClient
from ..config import AppConfig
from ..errors import StoreError, ValidationError
from ..feeds import PythVolatilityFeed, StaticVolatilityFeed
from ..interfaces.notifier import Notifier
from ..interfaces.stores import AlertStore, PositionStore
from ..interfaces.volatility import VolatilityFeed
from ..models import (
    AggregateStats,
    AlertEvent,
    AssetMetadata,
    Metric,
    PositionDelta,
    RiskLevel,
    Snapshot,
)
from ..notifications import EmailNotifier, TelegramNotifier
from ..stores import InMemoryAlertStore, InMemoryPositionStore
from .advisory import Advisor, AdvisoryReply
from .aggregator import PositionAggregator
from .alerts import AlertEngine
from .cache import SnapshotCache
from .pipeline import RiskPipeline
from .scheduler import Scheduler, Subscription
from .scoring import RiskScorer

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Any], Any]


def _build_volatility_feed(config: AppConfig) -> VolatilityFeed:
    if config.volatility.provider == "pyth":
        return PythVolatilityFeed(config.volatility.pyth)
    return StaticVolatilityFeed(config.volatility.static)


class Monitor:
    """Orchestrates risk evaluation, alerting and polling for configured users."""

    def __init__(
        self,
        config: AppConfig,
        position_store: PositionStore | None = None,
        alert_store: AlertStore | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config

        if position_store is None:
            if config.store.positions_file:
                position_store = InMemoryPositionStore.from_yaml(
                    config.store.positions_file
                )
            else:
                logger.warning("No positions file configured, starting empty")
                position_store = InMemoryPositionStore()
        self._positions = position_store
        self._alert_store = alert_store or InMemoryAlertStore()

        # Build notifiers
        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
            if config.notifications.email.enabled:
                notifiers.append(EmailNotifier(config.notifications.email))
        self._notifiers: list[Notifier] = list(notifiers)

        scoring_client = ScoringClient(config.scoring) if config.scoring.enabled else None
        advisory_client = (
            AdvisoryClient(config.advisory) if config.advisory.enabled else None
        )

        self._cache = SnapshotCache()
        self._alerts = AlertEngine(
            self._alert_store,
            notifiers=self._notifiers,
            position_store=self._positions,
            transition_only=config.alerts.transition_only,
        )
        self._pipeline = RiskPipeline(
            aggregator=PositionAggregator(self._positions),
            scorer=RiskScorer(scoring_client),
            alerts=self._alerts,
            cache=self._cache,
            volatility_feed=_build_volatility_feed(config),
            collateral_factor=config.monitor.collateral_factor,
            default_volatility=config.monitor.default_volatility,
        )
        self._advisor = Advisor(advisory_client)
        self._scheduler = Scheduler()
        self._assets: tuple[AssetMetadata, ...] = ()

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def assets(self) -> tuple[AssetMetadata, ...]:
        return self._assets

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_status(level: RiskLevel) -> str:
        if level is RiskLevel.CRITICAL:
            return "🚨 CRITICAL"
        if level is RiskLevel.HIGH:
            return "⚠️ HIGH RISK"
        if level is RiskLevel.MEDIUM:
            return "🟡 Watch"
        return "✅ Healthy"

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _label(self, user_id: str) -> str:
        for user in self._config.users:
            if user.user_id == user_id:
                return user.label or user_id
        return user_id

    def _build_log_message(self, snapshot: Snapshot) -> str:
        stats = snapshot.stats
        assessment = snapshot.assessment
        degraded = " (fallback)" if assessment.is_degraded else ""
        return (
            f"📊 {self._label(snapshot.user_id)}\n"
            f"\n"
            f"{self._get_status(assessment.level)}\n"
            f"\n"
            f"Supplied: {stats.total_supplied:,.2f} · Borrowed: {stats.total_borrowed:,.2f}\n"
            f"LTV: {stats.ltv:.2f}% · HF: {stats.health_factor.display()}\n"
            f"Risk: {assessment.score:.0f}/100{degraded} · "
            f"{assessment.recommended_action}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    async def _send_log(self, message: str, silent: bool = False) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self, user_id: str) -> Snapshot | None:
        """Run the pipeline once; on a store failure return the last good snapshot.

        ValidationError propagates: malformed data produces no result.
        """
        try:
            return await self._pipeline.run(user_id)
        except StoreError as e:
            cached = self._cache.get(user_id)
            logger.error(
                "Store failure evaluating %s, serving %s: %s",
                user_id,
                "cached snapshot" if cached else "nothing",
                e,
            )
            return cached

    async def check_and_alert(self) -> list[Snapshot]:
        """Evaluate every configured user once and log the results."""
        snapshots: list[Snapshot] = []
        for user in self._config.users:
            try:
                snapshot = await self.evaluate(user.user_id)
            except ValidationError as e:
                logger.error("Skipping %s: %s", user.label, e)
                continue

            if snapshot is None:
                continue
            if not snapshot.has_positions:
                await self._send_log(
                    f"📊 {user.label}\n\nNo active positions found.\n\n"
                    f"{self._now_str()} UTC"
                )
            else:
                await self._send_log(self._build_log_message(snapshot))
            snapshots.append(snapshot)
        return snapshots

    async def refresh_market_data(self) -> tuple[AssetMetadata, ...]:
        """Reload asset metadata; keeps the previous list on failure."""
        try:
            assets = await self._positions.get_assets()
        except Exception as e:
            logger.error(
                "Asset refresh failed, keeping %d cached assets: %s",
                len(self._assets),
                e,
            )
            return self._assets
        self._assets = tuple(a for a in assets if a.is_active)
        logger.debug("Refreshed %d active assets", len(self._assets))
        return self._assets

    async def generate_daily_report(self) -> str:
        """Evaluate every user and send one combined report."""
        sections: list[str] = []
        for user in self._config.users:
            try:
                snapshot = await self.evaluate(user.user_id)
            except ValidationError as e:
                sections.append(f"━━ {user.label} ━━\n\nEvaluation failed: {e}")
                continue
            if snapshot is None or not snapshot.has_positions:
                continue

            stats = snapshot.stats
            lines = [
                f"  {p.asset_id}: supplied {p.supplied_amount:,.4f} · "
                f"borrowed {p.borrowed_amount:,.4f}"
                for p in snapshot.positions
                if not p.is_zero
            ]
            sections.append(
                f"━━ {user.label} ━━\n"
                f"\n"
                f"{self._get_status(snapshot.assessment.level)}\n"
                + "\n".join(lines)
                + f"\n  HF: {stats.health_factor.display()} · "
                f"Risk: {snapshot.assessment.score:.0f}/100 · "
                f"Net APY: {stats.net_apy:.2f}%"
            )

        body = "\n\n".join(sections) if sections else "No active positions found."
        report = (
            f"📋 Daily Lending Risk Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )
        await self._send_log(report)
        logger.info("Daily report sent")
        return report

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def watch(
        self,
        consumer_id: str,
        user_id: str,
        metric: Metric,
        on_update: UpdateCallback | None = None,
        interval: float | None = None,
    ) -> Subscription:
        """Register a consumer that re-evaluates ``metric`` on its interval."""
        period = interval or self._config.monitor.intervals.for_metric(metric)

        async def job() -> None:
            if metric is Metric.MARKET_DATA:
                value: Any = await self.refresh_market_data()
            else:
                snapshot = await self.evaluate(user_id)
                if snapshot is None:
                    return
                value = _project(snapshot, metric)
            if on_update is not None:
                result = on_update(value)
                if asyncio.iscoroutine(result):
                    await result

        return self._scheduler.subscribe(consumer_id, period, job)

    async def unwatch(self, consumer_id: str) -> bool:
        return await self._scheduler.unsubscribe(consumer_id)

    async def shutdown(self) -> None:
        await self._scheduler.shutdown()

    async def run_continuous(self, interval: float | None = None) -> None:
        """Poll every configured user until cancelled."""
        intervals = self._config.monitor.intervals
        logger.info(
            "Starting continuous monitoring for %d users (risk every %.0fs)",
            len(self._config.users),
            interval or intervals.risk_assessment,
        )
        self.watch("market", "", Metric.MARKET_DATA)
        for user in self._config.users:
            self.watch(
                f"risk:{user.user_id}",
                user.user_id,
                Metric.RISK_ASSESSMENT,
                on_update=self._make_log_callback(user.user_id),
                interval=interval,
            )
        try:
            await asyncio.Event().wait()
        finally:
            await self.shutdown()

    def _make_log_callback(self, user_id: str) -> UpdateCallback:
        async def _log(_assessment: Any) -> None:
            snapshot = self._cache.get(user_id)
            if snapshot is not None:
                await self._send_log(self._build_log_message(snapshot), silent=True)

        return _log

    # ------------------------------------------------------------------
    # Upstream events and alert history
    # ------------------------------------------------------------------

    async def on_rate_update(
        self, asset_id: str, supply_apy: float, borrow_apy: float
    ) -> list[AlertEvent]:
        asset = await self._positions.update_asset_rates(asset_id, supply_apy, borrow_apy)
        return await self._alerts.rate_change(
            asset_id, supply_apy, borrow_apy, symbol=asset.symbol
        )

    async def on_transaction_confirmed(
        self, user_id: str, tx_hash: str, status: str = "confirmed"
    ) -> AlertEvent:
        return await self._alerts.transaction_complete(user_id, tx_hash, status)

    async def on_position_change(
        self, user_id: str, asset_id: str, delta: PositionDelta
    ) -> Snapshot | None:
        """Apply a supply/borrow/repay/withdraw and re-evaluate the user.

        A delta that would leave a negative balance raises ValidationError and
        leaves the stored position unchanged.
        """
        try:
            position = await self._positions.upsert_position(user_id, asset_id, delta)
        except (StoreError, ValidationError):
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to update position {user_id}/{asset_id}: {e}"
            ) from e
        logger.info(
            "Position %s/%s now supplied=%.4f borrowed=%.4f",
            user_id,
            asset_id,
            position.supplied_amount,
            position.borrowed_amount,
        )
        return await self.evaluate(user_id)

    async def on_price_update(self, asset_id: str, new_price: float) -> list[Snapshot]:
        """Re-evaluate every user borrowing ``asset_id`` after a price move."""
        try:
            positions = await self._positions.get_positions_by_asset(asset_id)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to read positions for '{asset_id}': {e}") from e

        borrowers = list(dict.fromkeys(p.user_id for p in positions if p.borrowed_amount > 0))
        logger.info(
            "Price of %s moved to %s, re-evaluating %d borrowers",
            asset_id,
            new_price,
            len(borrowers),
        )

        snapshots: list[Snapshot] = []
        for user_id in borrowers:
            try:
                snapshot = await self.evaluate(user_id)
            except ValidationError as e:
                logger.error("Skipping %s: %s", user_id, e)
                continue
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def on_liquidation(
        self,
        user_id: str,
        collateral_amount: float,
        tx_hash: str = "",
        health_factor_before: float | None = None,
    ) -> AlertEvent:
        """Notify a liquidation. Balance changes arrive via ``on_position_change``."""
        return await self._alerts.liquidated(
            user_id, collateral_amount, tx_hash, health_factor_before
        )

    async def broadcast(self, title: str, message: str, severity: str = "info") -> list[AlertEvent]:
        user_ids = [u.user_id for u in self._config.users]
        return await self._alerts.system_message(title, message, user_ids, severity)

    async def list_alerts(self, user_id: str, limit: int | None = None) -> list[AlertEvent]:
        return await self._alert_store.list(
            user_id, limit or self._config.alerts.history_limit
        )

    async def mark_read(self, alert_id: str) -> AlertEvent:
        return await self._alert_store.mark_read(alert_id)

    async def mark_all_read(self, user_id: str) -> int:
        return await self._alert_store.mark_all_read(user_id)

    async def ask(self, user_id: str, query: str) -> AdvisoryReply:
        """Answer a question using the freshest snapshot available."""
        snapshot = self._cache.get(user_id) or await self.evaluate(user_id)
        if snapshot is None:
            return await self._advisor.ask(user_id, query, AggregateStats())
        return await self._advisor.ask(
            user_id, query, snapshot.stats, snapshot.positions
        )


def _project(snapshot: Snapshot, metric: Metric) -> Any:
    if metric is Metric.PORTFOLIO:
        return snapshot.stats
    if metric is Metric.HEALTH_FACTOR:
        return snapshot.stats.health_factor
    return snapshot.assessment
