"""Unit tests for data models."""
from __future__ import annotations

import pytest

from risk_monitor.errors import ValidationError
from risk_monitor.models import (
    INFINITE_HEALTH,
    AggregateStats,
    AlertEvent,
    AlertKind,
    AssessmentSource,
    HealthFactor,
    Position,
    PositionDelta,
    RiskAssessment,
    RiskLevel,
)


def _assessment(**overrides: object) -> RiskAssessment:
    fields = dict(
        score=50.0,
        level=RiskLevel.MEDIUM,
        liquidation_probability=0.5,
        recommended_action="Watch",
        time_to_liquidation_estimate="> 1 week",
        confidence_score=0.8,
        source=AssessmentSource.REMOTE,
    )
    fields.update(overrides)
    return RiskAssessment(**fields)  # type: ignore[arg-type]


class TestPosition:
    def test_defaults_are_zero(self) -> None:
        p = Position(user_id="u", asset_id="eth")
        assert p.is_zero

    def test_frozen(self) -> None:
        p = Position(user_id="u", asset_id="eth", supplied_amount=1.0)
        with pytest.raises(AttributeError):
            p.supplied_amount = 2.0  # type: ignore[misc]

    @pytest.mark.parametrize(
        "field", ["supplied_amount", "borrowed_amount", "collateral_amount", "interest_accrued"]
    )
    def test_negative_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError, match=field):
            Position(user_id="u", asset_id="eth", **{field: -1.0})

    def test_collateral_cannot_exceed_supply(self) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            Position(
                user_id="u", asset_id="eth", supplied_amount=10.0, collateral_amount=11.0
            )

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Position(user_id="u", asset_id="eth", borrowed_amount=-5)


class TestPositionDelta:
    def test_apply_supply_then_withdraw(self) -> None:
        p = Position(user_id="u", asset_id="eth")
        p = PositionDelta(supplied=100.0, collateral=50.0).apply(p)
        p = PositionDelta(supplied=-20.0).apply(p)
        assert p.supplied_amount == 80.0
        assert p.collateral_amount == 50.0

    def test_overdraw_rejected(self) -> None:
        p = Position(user_id="u", asset_id="eth", borrowed_amount=10.0)
        with pytest.raises(ValidationError):
            PositionDelta(borrowed=-11.0).apply(p)


class TestHealthFactor:
    def test_infinite_sentinel(self) -> None:
        assert INFINITE_HEALTH.is_infinite
        assert not INFINITE_HEALTH.is_below(1e9)
        assert INFINITE_HEALTH.display() == "∞"

    def test_finite_comparison(self) -> None:
        hf = HealthFactor(value=1.1, has_debt=True)
        assert hf.is_below(1.2)
        assert not hf.is_below(1.1)
        assert hf.display(3) == "1.100"

    def test_to_dict_carries_has_debt(self) -> None:
        assert INFINITE_HEALTH.to_dict() == {"value": 0.0, "has_debt": False}


class TestAggregateStats:
    def test_ltv(self) -> None:
        stats = AggregateStats(total_supplied=1000.0, total_borrowed=250.0)
        assert stats.ltv == 25.0

    def test_ltv_without_supply(self) -> None:
        assert AggregateStats().ltv == 0.0

    def test_to_dict_has_no_infinity(self) -> None:
        d = AggregateStats(total_supplied=1.0).to_dict()
        assert d["has_debt"] is False
        assert d["health_factor"] == 0.0


class TestRiskAssessment:
    def test_valid(self) -> None:
        a = _assessment()
        assert a.to_dict()["source"] == "remote"
        assert not a.is_degraded

    def test_fallback_is_degraded(self) -> None:
        assert _assessment(source=AssessmentSource.FALLBACK).is_degraded

    def test_full_confidence_fallback_not_degraded(self) -> None:
        a = _assessment(source=AssessmentSource.FALLBACK, confidence_score=1.0)
        assert not a.is_degraded

    def test_only_two_sources(self) -> None:
        assert {s.value for s in AssessmentSource} == {"remote", "fallback"}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"score": 101.0},
            {"score": -1.0},
            {"liquidation_probability": 1.5},
            {"confidence_score": -0.1},
        ],
    )
    def test_out_of_range(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            _assessment(**overrides)


class TestAlertEvent:
    def test_defaults(self) -> None:
        e = AlertEvent(
            user_id="u", kind=AlertKind.SYSTEM_MESSAGE, title="t", message="m"
        )
        assert e.read is False
        assert e.payload == {}
        assert e.created_at.tzinfo is not None
        assert len(e.id) == 32

    def test_ids_unique(self) -> None:
        a = AlertEvent(user_id="u", kind=AlertKind.SYSTEM_MESSAGE, title="t", message="m")
        b = AlertEvent(user_id="u", kind=AlertKind.SYSTEM_MESSAGE, title="t", message="m")
        assert a.id != b.id
