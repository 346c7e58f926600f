"""Integration tests for the evaluation pipeline — real stores, mocked remotes."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from risk_monitor.errors import StoreError, UpstreamUnavailable, ValidationError
from risk_monitor.feeds import StaticVolatilityFeed
from risk_monitor.models import AlertKind, AssessmentSource, RiskLevel
from risk_monitor.services.aggregator import PortfolioView, PositionAggregator
from risk_monitor.services.alerts import AlertEngine
from risk_monitor.services.cache import SnapshotCache
from risk_monitor.services.pipeline import RiskPipeline
from risk_monitor.services.scoring import RiskScorer
from risk_monitor.stores import InMemoryAlertStore, InMemoryPositionStore


def _pipeline(
    position_store: InMemoryPositionStore,
    alert_store: InMemoryAlertStore,
    scoring_service: AsyncMock | None = None,
    volatility_feed: object | None = None,
    transition_only: bool = False,
) -> RiskPipeline:
    return RiskPipeline(
        aggregator=PositionAggregator(position_store),
        scorer=RiskScorer(scoring_service),
        alerts=AlertEngine(alert_store, transition_only=transition_only),
        cache=SnapshotCache(),
        volatility_feed=volatility_feed or StaticVolatilityFeed({"eth": 0.6, "usdc": 0.01}),
    )


class TestRun:
    @pytest.mark.asyncio
    async def test_risky_user_end_to_end(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        pipeline = _pipeline(position_store, alert_store)

        snapshot = await pipeline.run("alice")

        assert snapshot.stats.total_supplied == 1000.0
        assert snapshot.stats.total_borrowed == 900.0
        assert snapshot.stats.health_factor.value == pytest.approx(0.8333, abs=1e-4)
        assert snapshot.assessment.score == 100
        assert snapshot.assessment.level is RiskLevel.CRITICAL
        assert snapshot.assessment.source is AssessmentSource.FALLBACK
        assert snapshot.stats.risk_score == snapshot.assessment.score
        assert pipeline.cache.get("alice") is snapshot

        alerts = await alert_store.list("alice")
        assert len(alerts) == 1
        assert alerts[0].kind is AlertKind.LIQUIDATION_WARNING
        assert alerts[0].title == "Critical: Low Health Factor"

    @pytest.mark.asyncio
    async def test_no_debt_user_is_safe(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        snapshot = await _pipeline(position_store, alert_store).run("bob")

        assert snapshot.stats.health_factor.is_infinite
        assert snapshot.assessment.source is AssessmentSource.FALLBACK
        assert not snapshot.assessment.is_degraded
        assert snapshot.assessment.score == 0
        assert await alert_store.list("bob") == []

    @pytest.mark.asyncio
    async def test_unknown_user_publishes_empty_snapshot(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        snapshot = await _pipeline(position_store, alert_store).run("carol")
        assert snapshot.positions == ()
        assert snapshot.assessment.source is AssessmentSource.FALLBACK
        assert not snapshot.assessment.is_degraded

    @pytest.mark.asyncio
    async def test_remote_receives_weighted_volatility(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        service = AsyncMock()
        service.predict = AsyncMock(
            return_value={"success": True, "prediction": {"risk_score": 70}}
        )

        snapshot = await _pipeline(position_store, alert_store, service).run("alice")

        _, inputs = service.predict.call_args.args
        # Only the eth position carries supply.
        assert inputs["volatility"] == pytest.approx(0.6)
        assert snapshot.assessment.source is AssessmentSource.REMOTE

    @pytest.mark.asyncio
    async def test_remote_failure_degrades(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        service = AsyncMock()
        service.predict = AsyncMock(side_effect=UpstreamUnavailable("timed out"))

        snapshot = await _pipeline(position_store, alert_store, service).run("alice")

        assert snapshot.assessment.is_degraded
        assert snapshot.assessment.confidence_score == 0.75

    @pytest.mark.asyncio
    async def test_volatility_feed_failure_uses_default(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        service = AsyncMock()
        service.predict = AsyncMock(
            return_value={"success": True, "prediction": {"risk_score": 50}}
        )
        feed = AsyncMock()
        feed.fetch_volatility = AsyncMock(side_effect=RuntimeError("feed down"))

        await _pipeline(position_store, alert_store, service, feed).run("alice")

        _, inputs = service.predict.call_args.args
        assert inputs["volatility"] == 0.2


class TestFailures:
    @pytest.mark.asyncio
    async def test_store_error_keeps_cache(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        pipeline = _pipeline(position_store, alert_store)
        first = await pipeline.run("alice")

        position_store.get_positions = AsyncMock(side_effect=StoreError("db down"))
        with pytest.raises(StoreError):
            await pipeline.run("alice")

        assert pipeline.cache.get("alice") is first

    @pytest.mark.asyncio
    async def test_validation_error_keeps_cache(self, alert_store: InMemoryAlertStore) -> None:
        aggregator = AsyncMock()
        aggregator.aggregate = AsyncMock(
            return_value=PortfolioView(
                user_id="alice", total_supplied=float("nan"), total_borrowed=1.0
            )
        )
        cache = SnapshotCache()
        pipeline = RiskPipeline(aggregator, RiskScorer(), AlertEngine(alert_store), cache)

        with pytest.raises(ValidationError):
            await pipeline.run("alice")

        assert cache.get("alice") is None

    @pytest.mark.asyncio
    async def test_alert_store_failure_still_publishes(
        self, position_store: InMemoryPositionStore
    ) -> None:
        broken_store = AsyncMock()
        broken_store.insert = AsyncMock(side_effect=StoreError("alerts table locked"))
        pipeline = _pipeline(position_store, broken_store)

        snapshot = await pipeline.run("alice")

        assert pipeline.cache.get("alice") is snapshot


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_overlapping_runs_alert_once(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        pipeline = _pipeline(position_store, alert_store, transition_only=True)

        await asyncio.gather(pipeline.run("alice"), pipeline.run("alice"))

        assert len(await alert_store.list("alice")) == 1

    @pytest.mark.asyncio
    async def test_repeat_cycles_realert_by_default(
        self, position_store: InMemoryPositionStore, alert_store: InMemoryAlertStore
    ) -> None:
        pipeline = _pipeline(position_store, alert_store)

        await pipeline.run("alice")
        await pipeline.run("alice")

        assert len(await alert_store.list("alice")) == 2
