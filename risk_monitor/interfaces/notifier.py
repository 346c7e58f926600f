"""Notifier protocol — notification channel abstraction."""
from typing import Protocol

from ..models import AlertEvent


class Notifier(Protocol):
    """Abstract interface for delivering alerts and log messages."""

    async def send_alert(self, event: AlertEvent) -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
