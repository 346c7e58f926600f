"""Remote advisory chat client."""
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


class AdvisoryClient:
    """HTTP client for the conversational advisory endpoint."""

    def __init__(self, config: ServiceConfig) -> None:
        self.url = config.url
        self.api_key = config.api_key
        self.timeout = config.timeout_seconds

    async def complete(self, user_id: str, query: str, context: dict[str, Any]) -> str:
        """Send the query with the user's context and return the reply text."""
        payload = {"message": query, "user_id": user_id, "context": context}
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        raise UpstreamUnavailable(
                            f"Advisory service returned HTTP {response.status}"
                        )
                    data = await response.json(content_type=None)
        except UpstreamUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable("Advisory service timed out") from e
        except (aiohttp.ClientError, ValueError, OSError) as e:
            raise UpstreamUnavailable(f"Advisory service request failed: {e}") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise UpstreamUnavailable("Advisory service reported failure")
        reply = data.get("response")
        if not isinstance(reply, str) or not reply.strip():
            raise UpstreamUnavailable("Advisory service returned no response text")
        logger.debug("Advisory reply received for %s (%d chars)", user_id, len(reply))
        return reply
