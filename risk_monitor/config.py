"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import Metric

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IntervalsConfig:
    """Re-evaluation interval per metric, in seconds."""

    market_data: float = 30.0
    portfolio: float = 15.0
    health_factor: float = 10.0
    risk_assessment: float = 60.0

    def for_metric(self, metric: Metric) -> float:
        return float(getattr(self, metric.value))


@dataclass(frozen=True)
class MonitorConfig:
    collateral_factor: float = 0.75
    default_volatility: float = 0.2
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)


@dataclass(frozen=True)
class UserConfig:
    user_id: str = ""
    label: str = ""


@dataclass(frozen=True)
class ServiceConfig:
    """Remote HTTP service (scoring model or advisory chat)."""

    enabled: bool = False
    url: str = ""
    api_key: str = ""
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class AlertsConfig:
    transition_only: bool = False
    history_limit: int = 20


@dataclass(frozen=True)
class StoreConfig:
    positions_file: str = ""


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class VolatilityConfig:
    provider: str = "static"
    static: dict[str, float] = field(default_factory=dict)
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    users: tuple[UserConfig, ...] = ()
    scoring: ServiceConfig = field(default_factory=ServiceConfig)
    advisory: ServiceConfig = field(default_factory=ServiceConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any, default: bool = False) -> bool:
    # "${FLAG}" interpolates to a string, so accept the usual spellings.
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_intervals(raw: dict[str, Any]) -> IntervalsConfig:
    defaults = IntervalsConfig()
    return IntervalsConfig(
        market_data=float(raw.get("market_data", defaults.market_data)),
        portfolio=float(raw.get("portfolio", defaults.portfolio)),
        health_factor=float(raw.get("health_factor", defaults.health_factor)),
        risk_assessment=float(raw.get("risk_assessment", defaults.risk_assessment)),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        collateral_factor=float(raw.get("collateral_factor", 0.75)),
        default_volatility=float(raw.get("default_volatility", 0.2)),
        intervals=_build_intervals(raw.get("intervals", {})),
    )


def _build_users(raw: list[dict[str, Any]]) -> tuple[UserConfig, ...]:
    users: list[UserConfig] = []
    for u in raw:
        user_id = str(u.get("user_id", ""))
        users.append(UserConfig(user_id=user_id, label=u.get("label", user_id)))
    return tuple(users)


def _build_service(raw: dict[str, Any], default_timeout: float) -> ServiceConfig:
    return ServiceConfig(
        enabled=_as_bool(raw.get("enabled"), False),
        url=raw.get("url", ""),
        api_key=raw.get("api_key", ""),
        timeout_seconds=float(raw.get("timeout_seconds", default_timeout)),
    )


def _build_alerts(raw: dict[str, Any]) -> AlertsConfig:
    return AlertsConfig(
        transition_only=_as_bool(raw.get("transition_only"), False),
        history_limit=int(raw.get("history_limit", 20)),
    )


def _build_volatility(raw: dict[str, Any]) -> VolatilityConfig:
    pyth_raw = raw.get("pyth", {})
    return VolatilityConfig(
        provider=raw.get("provider", "static"),
        static={k: float(v) for k, v in raw.get("static", {}).items()},
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            timeout_seconds=float(pyth_raw.get("timeout_seconds", 10.0)),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_as_bool(tg.get("enabled"), False),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=_as_bool(em.get("enabled"), False),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    store_raw = raw.get("store", {})
    positions_file = store_raw.get("positions_file", "")
    if positions_file and not Path(positions_file).is_absolute():
        positions_file = str(config_path.parent / positions_file)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        users=_build_users(raw.get("users", [])),
        scoring=_build_service(raw.get("scoring", {}), default_timeout=5.0),
        advisory=_build_service(raw.get("advisory", {}), default_timeout=15.0),
        alerts=_build_alerts(raw.get("alerts", {})),
        store=StoreConfig(positions_file=positions_file),
        volatility=_build_volatility(raw.get("volatility", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.users:
        raise ValueError("At least one user must be configured")

    seen: set[str] = set()
    for user in cfg.users:
        if not user.user_id:
            raise ValueError(f"User '{user.label}' has no user_id")
        if user.user_id in seen:
            raise ValueError(f"Duplicate user_id '{user.user_id}'")
        seen.add(user.user_id)

    if not 0 < cfg.monitor.collateral_factor <= 1:
        raise ValueError(
            f"collateral_factor must be in (0, 1], got {cfg.monitor.collateral_factor}"
        )
    if cfg.monitor.default_volatility < 0:
        raise ValueError("default_volatility must be non-negative")

    for metric in Metric:
        if cfg.monitor.intervals.for_metric(metric) <= 0:
            raise ValueError(f"Interval for '{metric.value}' must be positive")

    for name, service in (("scoring", cfg.scoring), ("advisory", cfg.advisory)):
        if service.enabled and not service.url:
            raise ValueError(f"{name} service is enabled but has no url")
        if service.timeout_seconds <= 0:
            raise ValueError(f"{name} timeout_seconds must be positive")

    if cfg.volatility.provider not in ("static", "pyth"):
        raise ValueError(
            f"Unknown volatility provider '{cfg.volatility.provider}'"
        )
