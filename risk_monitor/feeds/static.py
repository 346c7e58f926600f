"""Fixed per-asset volatility figures from configuration."""
from __future__ import annotations


class StaticVolatilityFeed:
    """Serves configured volatility figures; unknown assets are omitted."""

    def __init__(self, figures: dict[str, float]) -> None:
        self._figures = dict(figures)

    async def fetch_volatility(self, asset_ids: list[str]) -> dict[str, float]:
        return {a: self._figures[a] for a in asset_ids if a in self._figures}
