"""Data models — all frozen (immutable)."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssessmentSource(str, Enum):
    """Where a risk assessment came from."""

    REMOTE = "remote"
    FALLBACK = "fallback"


class AlertKind(str, Enum):
    LIQUIDATION_WARNING = "liquidation_warning"
    RATE_CHANGE = "rate_change"
    TRANSACTION_COMPLETE = "transaction_complete"
    SYSTEM_MESSAGE = "system_message"


class Metric(str, Enum):
    """Metrics a consumer can subscribe to."""

    MARKET_DATA = "market_data"
    PORTFOLIO = "portfolio"
    HEALTH_FACTOR = "health_factor"
    RISK_ASSESSMENT = "risk_assessment"


@dataclass(frozen=True)
class AssetMetadata:
    """Lending market parameters for a single asset."""

    asset_id: str
    symbol: str
    decimals: int = 18
    supply_apy: float = 0.0
    borrow_apy: float = 0.0
    max_ltv: float = 75.0
    liquidation_threshold: float = 80.0
    liquidation_penalty: float = 5.0
    is_active: bool = True


@dataclass(frozen=True)
class Position:
    """One user's balances in one asset."""

    user_id: str
    asset_id: str
    supplied_amount: float = 0.0
    borrowed_amount: float = 0.0
    collateral_amount: float = 0.0
    interest_accrued: float = 0.0

    def __post_init__(self) -> None:
        _require_non_negative("supplied_amount", self.supplied_amount)
        _require_non_negative("borrowed_amount", self.borrowed_amount)
        _require_non_negative("collateral_amount", self.collateral_amount)
        _require_non_negative("interest_accrued", self.interest_accrued)
        if self.collateral_amount > self.supplied_amount:
            raise ValidationError(
                f"collateral_amount ({self.collateral_amount}) exceeds "
                f"supplied_amount ({self.supplied_amount}) for {self.asset_id}"
            )

    @property
    def is_zero(self) -> bool:
        return (
            self.supplied_amount == 0
            and self.borrowed_amount == 0
            and self.collateral_amount == 0
        )


@dataclass(frozen=True)
class PositionDelta:
    """Signed change applied to a position by supply/borrow/repay/withdraw."""

    supplied: float = 0.0
    borrowed: float = 0.0
    collateral: float = 0.0
    interest: float = 0.0

    def apply(self, position: Position) -> Position:
        return Position(
            user_id=position.user_id,
            asset_id=position.asset_id,
            supplied_amount=position.supplied_amount + self.supplied,
            borrowed_amount=position.borrowed_amount + self.borrowed,
            collateral_amount=position.collateral_amount + self.collateral,
            interest_accrued=position.interest_accrued + self.interest,
        )


@dataclass(frozen=True)
class HealthFactor:
    """Solvency ratio. ``has_debt=False`` means infinite; ``value`` is then 0."""

    value: float = 0.0
    has_debt: bool = False

    @property
    def is_infinite(self) -> bool:
        return not self.has_debt

    def is_below(self, threshold: float) -> bool:
        """True only for a finite ratio strictly under ``threshold``."""
        return self.has_debt and self.value < threshold

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "has_debt": self.has_debt}

    def display(self, precision: int = 2) -> str:
        return f"{self.value:.{precision}f}" if self.has_debt else "∞"


INFINITE_HEALTH = HealthFactor(value=0.0, has_debt=False)


@dataclass(frozen=True)
class AggregateStats:
    """Portfolio totals derived from the full position set."""

    total_supplied: float = 0.0
    total_borrowed: float = 0.0
    health_factor: HealthFactor = INFINITE_HEALTH
    risk_score: float = 0.0
    net_apy: float = 0.0

    @property
    def ltv(self) -> float:
        if self.total_supplied <= 0:
            return 0.0
        return self.total_borrowed / self.total_supplied * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_supplied": self.total_supplied,
            "total_borrowed": self.total_borrowed,
            "health_factor": self.health_factor.value,
            "has_debt": self.health_factor.has_debt,
            "risk_score": self.risk_score,
            "net_apy": self.net_apy,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Bounded risk score with a recommendation."""

    score: float
    level: RiskLevel
    liquidation_probability: float
    recommended_action: str
    time_to_liquidation_estimate: str
    confidence_score: float
    source: AssessmentSource

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValidationError(f"score out of range [0, 100]: {self.score}")
        if not 0 <= self.liquidation_probability <= 1:
            raise ValidationError(
                f"liquidation_probability out of range [0, 1]: "
                f"{self.liquidation_probability}"
            )
        if not 0 <= self.confidence_score <= 1:
            raise ValidationError(
                f"confidence_score out of range [0, 1]: {self.confidence_score}"
            )

    @property
    def is_degraded(self) -> bool:
        """A local estimate; exact local answers (no debt) carry confidence 1.0."""
        return self.source is AssessmentSource.FALLBACK and self.confidence_score < 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "liquidation_probability": self.liquidation_probability,
            "recommended_action": self.recommended_action,
            "time_to_liquidation_estimate": self.time_to_liquidation_estimate,
            "confidence_score": self.confidence_score,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class AlertEvent:
    """A user notification. Only ``read`` ever changes, via the alert store."""

    user_id: str
    kind: AlertKind
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    read: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class Snapshot:
    """One complete pipeline result for a user, published atomically."""

    user_id: str
    stats: AggregateStats
    assessment: RiskAssessment
    positions: tuple[Position, ...] = ()
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def has_positions(self) -> bool:
        """True when at least one position still holds a balance."""
        return any(not p.is_zero for p in self.positions)
