"""In-memory keyed stores, optionally seeded from a YAML file."""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import StoreError, ValidationError
from ..models import AlertEvent, AssetMetadata, Position, PositionDelta

logger = logging.getLogger(__name__)


class InMemoryPositionStore:
    """Positions keyed by (user_id, asset_id). Positions are zeroed, never removed."""

    def __init__(
        self,
        positions: list[Position] | None = None,
        assets: list[AssetMetadata] | None = None,
    ) -> None:
        self._positions: dict[tuple[str, str], Position] = {}
        self._assets: dict[str, AssetMetadata] = {}
        for asset in assets or []:
            self._assets[asset.asset_id] = asset
        for position in positions or []:
            key = (position.user_id, position.asset_id)
            if key in self._positions:
                raise StoreError(
                    f"Duplicate position for user '{position.user_id}' "
                    f"and asset '{position.asset_id}'"
                )
            self._positions[key] = position

    @classmethod
    def from_yaml(cls, path: str | Path) -> InMemoryPositionStore:
        """Build a store from a YAML file with ``assets`` and ``positions`` lists."""
        path = Path(path)
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Cannot read positions file {path}: {e}") from e

        try:
            assets = [_asset_from_dict(a) for a in raw.get("assets", [])]
            positions = [_position_from_dict(p) for p in raw.get("positions", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Malformed positions file {path}: {e}") from e

        logger.info(
            "Loaded %d assets and %d positions from %s",
            len(assets),
            len(positions),
            path,
        )
        return cls(positions=positions, assets=assets)

    async def get_positions(self, user_id: str) -> list[Position]:
        return [p for (uid, _), p in self._positions.items() if uid == user_id]

    async def get_positions_by_asset(self, asset_id: str) -> list[Position]:
        return [p for (_, aid), p in self._positions.items() if aid == asset_id]

    async def upsert_position(
        self, user_id: str, asset_id: str, delta: PositionDelta
    ) -> Position:
        key = (user_id, asset_id)
        current = self._positions.get(key) or Position(user_id=user_id, asset_id=asset_id)
        try:
            updated = delta.apply(current)
        except ValidationError:
            logger.warning(
                "Rejected position update for %s/%s: %s", user_id, asset_id, delta
            )
            raise
        self._positions[key] = updated
        return updated

    async def get_assets(self) -> list[AssetMetadata]:
        return sorted(self._assets.values(), key=lambda a: a.symbol)

    async def update_asset_rates(
        self, asset_id: str, supply_apy: float, borrow_apy: float
    ) -> AssetMetadata:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise StoreError(f"Unknown asset '{asset_id}'")
        updated = dataclasses.replace(
            asset, supply_apy=supply_apy, borrow_apy=borrow_apy
        )
        self._assets[asset_id] = updated
        return updated


class InMemoryAlertStore:
    """Append-only alert log per user."""

    def __init__(self) -> None:
        self._events: dict[str, AlertEvent] = {}

    async def insert(self, event: AlertEvent) -> AlertEvent:
        if event.id in self._events:
            raise StoreError(f"Alert '{event.id}' already exists")
        self._events[event.id] = event
        return event

    async def mark_read(self, alert_id: str) -> AlertEvent:
        event = self._events.get(alert_id)
        if event is None:
            raise StoreError(f"Unknown alert '{alert_id}'")
        if not event.read:
            event = dataclasses.replace(event, read=True)
            self._events[alert_id] = event
        return event

    async def mark_all_read(self, user_id: str) -> int:
        unread = [
            e for e in self._events.values() if e.user_id == user_id and not e.read
        ]
        for event in unread:
            self._events[event.id] = dataclasses.replace(event, read=True)
        return len(unread)

    async def list(self, user_id: str, limit: int = 20) -> list[AlertEvent]:
        events = [e for e in self._events.values() if e.user_id == user_id]
        # Insertion order breaks ties between alerts created in the same instant.
        ordered = sorted(
            enumerate(events), key=lambda pair: (pair[1].created_at, pair[0]), reverse=True
        )
        return [e for _, e in ordered[:limit]]


# ---------------------------------------------------------------------------
# YAML → model builders
# ---------------------------------------------------------------------------


def _asset_from_dict(raw: dict[str, Any]) -> AssetMetadata:
    return AssetMetadata(
        asset_id=str(raw["asset_id"]),
        symbol=str(raw.get("symbol", raw["asset_id"])),
        decimals=int(raw.get("decimals", 18)),
        supply_apy=float(raw.get("supply_apy", 0.0)),
        borrow_apy=float(raw.get("borrow_apy", 0.0)),
        max_ltv=float(raw.get("max_ltv", 75.0)),
        liquidation_threshold=float(raw.get("liquidation_threshold", 80.0)),
        liquidation_penalty=float(raw.get("liquidation_penalty", 5.0)),
        is_active=bool(raw.get("is_active", True)),
    )


def _position_from_dict(raw: dict[str, Any]) -> Position:
    return Position(
        user_id=str(raw["user_id"]),
        asset_id=str(raw["asset_id"]),
        supplied_amount=float(raw.get("supplied_amount", 0.0)),
        borrowed_amount=float(raw.get("borrowed_amount", 0.0)),
        collateral_amount=float(raw.get("collateral_amount", 0.0)),
        interest_accrued=float(raw.get("interest_accrued", 0.0)),
    )
