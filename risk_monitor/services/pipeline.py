"""One evaluation cycle: aggregate → health factor → score → alert → publish."""
from __future__ import annotations

import asyncio
import logging
import math

from ..errors import StoreError, ValidationError
from ..interfaces.volatility import VolatilityFeed
from ..models import AggregateStats, Snapshot
from .aggregator import PortfolioView, PositionAggregator
from .alerts import AlertEngine
from .cache import SnapshotCache
from .health import DEFAULT_COLLATERAL_FACTOR, compute_health_factor
from .scoring import RiskScorer

logger = logging.getLogger(__name__)


class RiskPipeline:
    """Runs the evaluation steps strictly in order and publishes the result.

    Runs for the same user are serialized by a per-user lock, so overlapping
    ticks from different consumers cannot race two alerts for one transition.
    """

    def __init__(
        self,
        aggregator: PositionAggregator,
        scorer: RiskScorer,
        alerts: AlertEngine,
        cache: SnapshotCache,
        volatility_feed: VolatilityFeed | None = None,
        collateral_factor: float = DEFAULT_COLLATERAL_FACTOR,
        default_volatility: float = 0.2,
    ) -> None:
        self._aggregator = aggregator
        self._scorer = scorer
        self._alerts = alerts
        self._cache = cache
        self._volatility_feed = volatility_feed
        self._collateral_factor = collateral_factor
        self._default_volatility = default_volatility
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def run(self, user_id: str) -> Snapshot:
        """Evaluate ``user_id`` once.

        Raises:
            StoreError: positions could not be read; the cache is untouched.
            ValidationError: the position data is malformed; the cache is
                untouched.
        """
        async with self._lock_for(user_id):
            previous = self._cache.get(user_id)
            view = await self._aggregator.aggregate(user_id)

            try:
                health = compute_health_factor(
                    view.total_supplied, view.total_borrowed, self._collateral_factor
                )
                volatility = await self._volatility(view)
                assessment = await self._scorer.assess(
                    user_id,
                    health,
                    view.total_borrowed,
                    view.total_supplied,
                    volatility,
                )
            except ValidationError as e:
                logger.error("Risk evaluation aborted for %s: %s", user_id, e)
                raise

            stats = AggregateStats(
                total_supplied=view.total_supplied,
                total_borrowed=view.total_borrowed,
                health_factor=health,
                risk_score=assessment.score,
                net_apy=view.net_apy,
            )

            try:
                await self._alerts.evaluate(user_id, stats, assessment, previous)
            except StoreError as e:
                # The assessment is still valid; alerting retries next cycle.
                logger.error("Failed to record alerts for %s: %s", user_id, e)

            snapshot = Snapshot(
                user_id=user_id,
                stats=stats,
                assessment=assessment,
                positions=view.positions,
            )
            self._cache.publish(snapshot)
            logger.info(
                "Evaluated %s: HF=%s score=%.1f level=%s source=%s",
                user_id,
                health.display(4),
                assessment.score,
                assessment.level.value,
                assessment.source.value,
            )
            return snapshot

    async def _volatility(self, view: PortfolioView) -> float:
        """Supply-weighted volatility across the user's assets."""
        if self._volatility_feed is None or view.total_supplied <= 0:
            return self._default_volatility

        try:
            figures = await self._volatility_feed.fetch_volatility(view.asset_ids)
        except Exception as e:
            logger.warning("Volatility feed failed, using default: %s", e)
            return self._default_volatility

        weighted = 0.0
        for position in view.positions:
            vol = figures.get(position.asset_id, self._default_volatility)
            if not math.isfinite(vol) or vol < 0:
                logger.warning(
                    "Ignoring volatility %r for %s", vol, position.asset_id
                )
                vol = self._default_volatility
            weighted += position.supplied_amount * vol
        return weighted / view.total_supplied
