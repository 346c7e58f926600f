"""Position aggregation — sums a user's per-asset balances."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import StoreError
from ..interfaces.stores import PositionStore
from ..models import AssetMetadata, Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioView:
    """A user's positions and their summed totals."""

    user_id: str
    positions: tuple[Position, ...] = ()
    total_supplied: float = 0.0
    total_borrowed: float = 0.0
    net_apy: float = 0.0

    @property
    def has_positions(self) -> bool:
        return any(not p.is_zero for p in self.positions)

    @property
    def asset_ids(self) -> list[str]:
        return [p.asset_id for p in self.positions]


def compute_net_apy(
    positions: tuple[Position, ...] | list[Position],
    assets: dict[str, AssetMetadata],
) -> float:
    """Supply yield minus borrow cost, as a percentage of total supplied."""
    total_supplied = sum(p.supplied_amount for p in positions)
    if total_supplied <= 0:
        return 0.0

    earned = 0.0
    paid = 0.0
    for position in positions:
        asset = assets.get(position.asset_id)
        if asset is None:
            continue
        earned += position.supplied_amount * asset.supply_apy
        paid += position.borrowed_amount * asset.borrow_apy
    return (earned - paid) / total_supplied


class PositionAggregator:
    """Reads positions from the store and sums them per user."""

    def __init__(self, store: PositionStore) -> None:
        self._store = store

    async def aggregate(self, user_id: str) -> PortfolioView:
        try:
            raw = await self._store.get_positions(user_id)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to read positions for '{user_id}': {e}") from e

        # One position per asset; a duplicate from a misbehaving store keeps the last.
        by_asset: dict[str, Position] = {}
        for position in raw or []:
            if position.asset_id in by_asset:
                logger.warning(
                    "Duplicate position for %s/%s ignored",
                    user_id,
                    position.asset_id,
                )
            by_asset[position.asset_id] = position
        positions = tuple(by_asset.values())

        net_apy = 0.0
        if positions:
            net_apy = compute_net_apy(positions, await self._asset_index())

        view = PortfolioView(
            user_id=user_id,
            positions=positions,
            total_supplied=sum(p.supplied_amount for p in positions),
            total_borrowed=sum(p.borrowed_amount for p in positions),
            net_apy=net_apy,
        )
        logger.debug(
            "Aggregated %d positions for %s: supplied=%.4f borrowed=%.4f",
            len(positions),
            user_id,
            view.total_supplied,
            view.total_borrowed,
        )
        return view

    async def _asset_index(self) -> dict[str, AssetMetadata]:
        try:
            assets = await self._store.get_assets()
        except Exception as e:
            logger.warning("Asset metadata unavailable, net APY set to 0: %s", e)
            return {}
        return {a.asset_id: a for a in assets}
