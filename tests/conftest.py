"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from risk_monitor.config import (
    AlertsConfig,
    AppConfig,
    EmailConfig,
    MonitorConfig,
    NotificationsConfig,
    ServiceConfig,
    TelegramConfig,
    UserConfig,
    VolatilityConfig,
)
from risk_monitor.models import AssetMetadata, Position
from risk_monitor.stores import InMemoryAlertStore, InMemoryPositionStore


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(collateral_factor=0.75, default_volatility=0.2),
        users=(
            UserConfig(user_id="alice", label="Alice"),
            UserConfig(user_id="bob", label="Bob"),
        ),
        scoring=ServiceConfig(enabled=False),
        advisory=ServiceConfig(enabled=False),
        alerts=AlertsConfig(transition_only=False, history_limit=20),
        volatility=VolatilityConfig(provider="static", static={"eth": 0.6, "usdc": 0.01}),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


@pytest.fixture()
def scoring_config() -> ServiceConfig:
    return ServiceConfig(
        enabled=True,
        url="https://scoring.example.com/predict",
        api_key="sk-test",
        timeout_seconds=5.0,
    )


@pytest.fixture()
def advisory_config() -> ServiceConfig:
    return ServiceConfig(
        enabled=True,
        url="https://advisory.example.com/chat",
        api_key="sk-test",
        timeout_seconds=15.0,
    )


# ---------------------------------------------------------------------------
# Model and store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_assets() -> list[AssetMetadata]:
    return [
        AssetMetadata(asset_id="eth", symbol="ETH", supply_apy=2.0, borrow_apy=3.0),
        AssetMetadata(
            asset_id="usdc", symbol="USDC", decimals=6, supply_apy=4.0, borrow_apy=6.0
        ),
    ]


@pytest.fixture()
def risky_positions() -> list[Position]:
    """1000 supplied against 900 borrowed: HF 0.8333."""
    return [
        Position(
            user_id="alice", asset_id="eth", supplied_amount=1000.0, collateral_amount=1000.0
        ),
        Position(user_id="alice", asset_id="usdc", borrowed_amount=900.0),
    ]


@pytest.fixture()
def safe_positions() -> list[Position]:
    """1000 supplied, nothing borrowed."""
    return [
        Position(
            user_id="bob", asset_id="usdc", supplied_amount=1000.0, collateral_amount=500.0
        ),
    ]


@pytest.fixture()
def position_store(
    sample_assets: list[AssetMetadata],
    risky_positions: list[Position],
    safe_positions: list[Position],
) -> InMemoryPositionStore:
    return InMemoryPositionStore(
        positions=risky_positions + safe_positions, assets=sample_assets
    )


@pytest.fixture()
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http_session() -> Callable[..., AsyncMock]:
    """Factory for an aiohttp.ClientSession stand-in returning one response."""

    def _factory(status: int = 200, json_data: Any = None, method: str = "post") -> AsyncMock:
        mock_response = AsyncMock()
        mock_response.status = status
        mock_response.json = AsyncMock(return_value=json_data)
        mock_response.__aenter__ = AsyncMock(return_value=mock_response)
        mock_response.__aexit__ = AsyncMock(return_value=None)

        mock_session = AsyncMock()
        setattr(mock_session, method, MagicMock(return_value=mock_response))
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)
        return mock_session

    return _factory


# ---------------------------------------------------------------------------
# YAML fixtures
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      collateral_factor: 0.8
      default_volatility: 0.25
      intervals:
        market_data: 20
        health_factor: 5
    users:
      - user_id: alice
        label: Alice
      - user_id: bob
    scoring:
      enabled: true
      url: "https://scoring.example.com"
      api_key: "key"
    alerts:
      transition_only: true
    store:
      positions_file: positions.yaml
    volatility:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {eth: "aaa", btc: "bbb"}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
""")

SAMPLE_POSITIONS_YAML = textwrap.dedent("""\
    assets:
      - asset_id: eth
        symbol: ETH
        supply_apy: 2.0
        borrow_apy: 3.0
      - asset_id: usdc
        symbol: USDC
        decimals: 6
        supply_apy: 4.0
        borrow_apy: 6.0
    positions:
      - user_id: alice
        asset_id: eth
        supplied_amount: 1000
        collateral_amount: 1000
      - user_id: alice
        asset_id: usdc
        borrowed_amount: 900
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_positions_path(tmp_path: Path) -> Path:
    path = tmp_path / "positions.yaml"
    path.write_text(SAMPLE_POSITIONS_YAML)
    return path
