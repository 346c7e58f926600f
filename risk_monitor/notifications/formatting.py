"""Plain-text rendering of alerts for chat and email channels."""
from __future__ import annotations

from ..models import AlertEvent, AlertKind

_ICONS = {
    AlertKind.LIQUIDATION_WARNING: "🚨",
    AlertKind.RATE_CHANGE: "📈",
    AlertKind.TRANSACTION_COMPLETE: "✅",
    AlertKind.SYSTEM_MESSAGE: "📣",
}


def format_alert(event: AlertEvent) -> str:
    icon = _ICONS.get(event.kind, "🔔")
    critical = bool(event.payload.get("critical"))
    if event.kind is AlertKind.LIQUIDATION_WARNING and not critical:
        icon = "⚠️"
    return (
        f"{icon} {event.title}\n"
        f"\n"
        f"{event.message}\n"
        f"\n"
        f"User: {event.user_id}\n"
        f"{event.created_at.strftime('%Y-%m-%d %H:%M:%S')} UTC"
    )
