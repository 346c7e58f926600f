"""Remote liquidation-risk scoring client."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import ServiceConfig
from ..errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

PREDICTION_TYPE = "liquidation_risk"


class ScoringClient:
    """HTTP client for the prediction service, with a bounded timeout.

    Every failure mode (timeout, transport error, non-2xx, ``success=false``,
    undecodable body) is raised as :class:`UpstreamUnavailable`. There is no
    retry; the next scheduled tick retries naturally.
    """

    def __init__(self, config: ServiceConfig) -> None:
        self.url = config.url
        self.api_key = config.api_key
        self.timeout = config.timeout_seconds

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def predict(self, user_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
        """POST a ``liquidation_risk`` prediction request and return the body."""
        payload = {
            "prediction_type": PREDICTION_TYPE,
            "user_id": user_id,
            "input": inputs,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        raise UpstreamUnavailable(
                            f"Scoring service returned HTTP {response.status}"
                        )
                    data = await response.json(content_type=None)
        except UpstreamUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Scoring service timed out after {self.timeout}s"
            ) from e
        except (aiohttp.ClientError, ValueError, OSError) as e:
            raise UpstreamUnavailable(f"Scoring service request failed: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable("Scoring service returned a non-object body")
        if not data.get("success"):
            raise UpstreamUnavailable(
                f"Scoring service reported failure: {data.get('error', 'unknown')}"
            )
        logger.debug("Remote risk prediction received for %s", user_id)
        return data
