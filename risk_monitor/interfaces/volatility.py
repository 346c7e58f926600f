"""Volatility feed protocol — per-asset market volatility."""
from typing import Protocol


class VolatilityFeed(Protocol):
    """Abstract interface for fetching per-asset volatility figures."""

    async def fetch_volatility(self, asset_ids: list[str]) -> dict[str, float]: ...
