"""Unit tests for position aggregation."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from risk_monitor.errors import StoreError
from risk_monitor.models import AssetMetadata, Position
from risk_monitor.services.aggregator import PositionAggregator, compute_net_apy
from risk_monitor.stores import InMemoryPositionStore


class TestAggregate:
    @pytest.mark.asyncio
    async def test_sums_positions(self, position_store: InMemoryPositionStore) -> None:
        view = await PositionAggregator(position_store).aggregate("alice")
        assert view.total_supplied == 1000.0
        assert view.total_borrowed == 900.0
        assert sorted(view.asset_ids) == ["eth", "usdc"]
        assert view.has_positions

    @pytest.mark.asyncio
    async def test_net_apy(self, position_store: InMemoryPositionStore) -> None:
        view = await PositionAggregator(position_store).aggregate("alice")
        # (1000 * 2.0 - 900 * 6.0) / 1000
        assert view.net_apy == pytest.approx(-3.4)

    @pytest.mark.asyncio
    async def test_unknown_user_is_empty(self, position_store: InMemoryPositionStore) -> None:
        view = await PositionAggregator(position_store).aggregate("nobody")
        assert view.positions == ()
        assert view.total_supplied == 0.0
        assert view.total_borrowed == 0.0
        assert view.net_apy == 0.0
        assert not view.has_positions

    @pytest.mark.asyncio
    async def test_store_error_propagates(self) -> None:
        store = AsyncMock()
        store.get_positions = AsyncMock(side_effect=StoreError("db down"))
        with pytest.raises(StoreError, match="db down"):
            await PositionAggregator(store).aggregate("alice")

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self) -> None:
        store = AsyncMock()
        store.get_positions = AsyncMock(side_effect=ConnectionError("reset"))
        with pytest.raises(StoreError, match="Failed to read positions"):
            await PositionAggregator(store).aggregate("alice")

    @pytest.mark.asyncio
    async def test_asset_failure_keeps_totals(self, risky_positions: list[Position]) -> None:
        store = AsyncMock()
        store.get_positions = AsyncMock(return_value=risky_positions)
        store.get_assets = AsyncMock(side_effect=RuntimeError("no metadata"))

        view = await PositionAggregator(store).aggregate("alice")

        assert view.total_supplied == 1000.0
        assert view.net_apy == 0.0

    @pytest.mark.asyncio
    async def test_duplicate_asset_keeps_last(self) -> None:
        store = AsyncMock()
        store.get_positions = AsyncMock(
            return_value=[
                Position(user_id="u", asset_id="eth", supplied_amount=1.0),
                Position(user_id="u", asset_id="eth", supplied_amount=5.0),
            ]
        )
        store.get_assets = AsyncMock(return_value=[])

        view = await PositionAggregator(store).aggregate("u")

        assert view.total_supplied == 5.0
        assert len(view.positions) == 1


class TestComputeNetApy:
    def test_no_supply(self) -> None:
        assert compute_net_apy([], {}) == 0.0

    def test_unknown_asset_ignored(self) -> None:
        positions = [Position(user_id="u", asset_id="x", supplied_amount=100.0)]
        assets = {"eth": AssetMetadata(asset_id="eth", symbol="ETH", supply_apy=3.0)}
        assert compute_net_apy(positions, assets) == 0.0
