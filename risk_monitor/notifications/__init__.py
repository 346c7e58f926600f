"""Notification channels."""
from .email import EmailNotifier
from .formatting import format_alert
from .telegram import TelegramNotifier

__all__ = ["EmailNotifier", "TelegramNotifier", "format_alert"]
