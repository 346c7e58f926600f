"""Pyth Network volatility feed.

Hermes reports each price with a confidence interval. The interval relative
to the price is used as the per-asset volatility figure.
"""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig

logger = logging.getLogger(__name__)


def relative_confidence(price_raw: int, conf_raw: int) -> float | None:
    """Confidence interval as a fraction of price; None for a zero price.

    Both values share the same exponent, so it cancels out.
    """
    if price_raw == 0:
        return None
    return abs(conf_raw) / abs(price_raw)


class PythVolatilityFeed:
    """Fetch per-asset volatility proxies from Pyth Hermes."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.timeout = config.timeout_seconds

    async def fetch_volatility(self, asset_ids: list[str]) -> dict[str, float]:
        """Fetch volatility for the requested assets.

        Assets without a configured feed, and every asset on a failed request,
        are left out of the result.
        """
        figures: dict[str, float] = {}

        feeds = {k: v for k, v in self.price_feeds.items() if k in asset_ids}
        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return figures

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching volatility from Pyth: HTTP %s",
                            response.status,
                        )
                        return figures

                    data = await response.json()
                    parsed = data.get("parsed", [])

                    # Several assets may share one feed.
                    id_to_assets: dict[str, list[str]] = {}
                    for asset, feed_id in feeds.items():
                        id_to_assets.setdefault(feed_id, []).append(asset)

                    for item in parsed:
                        feed_id = item.get("id")
                        price_data = item.get("price", {})
                        ratio = relative_confidence(
                            int(price_data.get("price", 0)),
                            int(price_data.get("conf", 0)),
                        )
                        if ratio is None:
                            continue
                        for asset in id_to_assets.get(feed_id, []):
                            figures[asset] = ratio

                    for asset, vol in sorted(figures.items()):
                        logger.debug("  %s volatility: %.6f", asset, vol)

        except Exception as e:
            logger.error("Error fetching volatility from Pyth: %s", e)

        return figures
