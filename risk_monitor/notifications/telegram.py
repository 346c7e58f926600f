"""Telegram notification service."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import AlertEvent
from .formatting import format_alert

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Deliver alerts through the alert bot and status lines through the log bot."""

    def __init__(self, config: TelegramConfig) -> None:
        self.alert_bot_token = config.alert_bot_token
        self.log_bot_token = config.log_bot_token
        self.chat_id = config.chat_id

    async def _post(self, text: str, bot_token: str, silent: bool) -> bool:
        if not bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    logger.error(
                        "Telegram API rejected message: HTTP %s", response.status
                    )
                    return False
                return True

    async def send_alert(self, event: AlertEvent) -> bool:
        """Send an alert unmuted."""
        if await self._post(format_alert(event), self.alert_bot_token, silent=False):
            logger.info("Telegram alert %s delivered", event.id)
            return True
        return False

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Send a monitoring status line."""
        if await self._post(message, self.log_bot_token, silent=silent):
            logger.debug("Telegram log delivered")
            return True
        return False
