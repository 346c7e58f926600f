"""Store protocols — keyed persistence for positions and alerts."""
from __future__ import annotations

from typing import Protocol

from ..models import AlertEvent, AssetMetadata, Position, PositionDelta


class PositionStore(Protocol):
    """Positions keyed by (user, asset), plus asset metadata."""

    async def get_positions(self, user_id: str) -> list[Position]: ...

    async def upsert_position(
        self, user_id: str, asset_id: str, delta: PositionDelta
    ) -> Position: ...

    async def get_positions_by_asset(self, asset_id: str) -> list[Position]: ...

    async def get_assets(self) -> list[AssetMetadata]: ...

    async def update_asset_rates(
        self, asset_id: str, supply_apy: float, borrow_apy: float
    ) -> AssetMetadata: ...


class AlertStore(Protocol):
    """Append-only alert log; only the read flag is mutable."""

    async def insert(self, event: AlertEvent) -> AlertEvent: ...

    async def mark_read(self, alert_id: str) -> AlertEvent: ...

    async def mark_all_read(self, user_id: str) -> int: ...

    async def list(self, user_id: str, limit: int = 20) -> list[AlertEvent]: ...
