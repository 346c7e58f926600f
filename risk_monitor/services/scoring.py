"""Risk scoring — remote model first, deterministic rule table as fallback.

The scorer always produces an assessment. A remote failure of any kind is
recovered locally and tagged ``source=fallback``; only malformed numeric
input (:class:`ValidationError`) stops a result from being produced.
"""
from __future__ import annotations

import logging
import math
from typing import Any

from ..errors import UpstreamUnavailable, ValidationError
from ..interfaces.scoring import ScoringService
from ..models import AssessmentSource, HealthFactor, RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.75
REMOTE_DEFAULT_CONFIDENCE = 0.85
LTV_SURCHARGE_THRESHOLD = 70.0
LTV_SURCHARGE = 10

# (upper bound exclusive, score, level, time to liquidation, recommended action)
# Evaluated top to bottom; first match wins.
_FALLBACK_BANDS: tuple[tuple[float, int, RiskLevel, str, str], ...] = (
    (1.0, 100, RiskLevel.CRITICAL, "< 1 hour",
     "URGENT: Add collateral or repay debt immediately"),
    (1.2, 85, RiskLevel.CRITICAL, "< 24 hours",
     "Add collateral immediately to avoid liquidation"),
    (1.5, 60, RiskLevel.HIGH, "1-3 days",
     "Monitor position closely and consider adding collateral"),
    (2.0, 35, RiskLevel.MEDIUM, "> 1 week",
     "Position is safe but watch for market volatility"),
    (math.inf, 15, RiskLevel.LOW, "> 1 month",
     "Position is healthy with good safety margin"),
)

NO_DEBT_ASSESSMENT = RiskAssessment(
    score=0,
    level=RiskLevel.LOW,
    liquidation_probability=0.0,
    recommended_action="No active borrows - position is safe",
    time_to_liquidation_estimate="N/A",
    confidence_score=1.0,
    source=AssessmentSource.FALLBACK,
)


def loan_to_value(total_borrowed: float, total_supplied: float) -> float:
    """Borrowed over supplied as a percentage; 0 when nothing is supplied."""
    if total_supplied <= 0:
        return 0.0
    return total_borrowed / total_supplied * 100


def level_for_score(score: float) -> RiskLevel:
    """Classify a remote score: >80 critical, >60 high, >30 medium."""
    if score > 80:
        return RiskLevel.CRITICAL
    if score > 60:
        return RiskLevel.HIGH
    if score > 30:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def fallback_assessment(
    health_factor: float, total_borrowed: float, total_supplied: float
) -> RiskAssessment:
    """Deterministic rule-table assessment. Pure function of its inputs."""
    if total_borrowed == 0:
        return NO_DEBT_ASSESSMENT

    for upper, score, level, estimate, action in _FALLBACK_BANDS:
        if health_factor < upper:
            break

    if loan_to_value(total_borrowed, total_supplied) > LTV_SURCHARGE_THRESHOLD:
        score = min(100, score + LTV_SURCHARGE)

    return RiskAssessment(
        score=score,
        level=level,
        liquidation_probability=score / 100,
        recommended_action=action,
        time_to_liquidation_estimate=estimate,
        confidence_score=FALLBACK_CONFIDENCE,
        source=AssessmentSource.FALLBACK,
    )


def parse_remote_prediction(data: dict[str, Any]) -> RiskAssessment:
    """Validate a scoring-service body and convert it to an assessment.

    Raises UpstreamUnavailable when the payload is missing or out of range.
    """
    prediction = data.get("prediction")
    if not isinstance(prediction, dict):
        raise UpstreamUnavailable("Scoring response has no prediction")

    try:
        score = float(prediction["risk_score"])
        probability = float(prediction.get("liquidation_probability") or 0.0)
        confidence = float(data.get("confidence_score") or REMOTE_DEFAULT_CONFIDENCE)
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamUnavailable(f"Malformed scoring prediction: {e}") from e

    if not all(math.isfinite(v) for v in (score, probability, confidence)):
        raise UpstreamUnavailable("Scoring prediction contains non-finite numbers")

    try:
        return RiskAssessment(
            score=score,
            level=level_for_score(score),
            liquidation_probability=probability,
            recommended_action=str(
                prediction.get("recommended_action") or "Position is healthy"
            ),
            time_to_liquidation_estimate=str(
                prediction.get("time_to_liquidation_estimate") or "> 1 week"
            ),
            confidence_score=confidence,
            source=AssessmentSource.REMOTE,
        )
    except ValidationError as e:
        raise UpstreamUnavailable(f"Scoring prediction out of range: {e}") from e


class RiskScorer:
    """Produces a risk assessment, preferring the remote scoring service."""

    def __init__(self, service: ScoringService | None = None) -> None:
        self._service = service

    async def assess(
        self,
        user_id: str,
        health_factor: HealthFactor,
        total_borrowed: float,
        total_supplied: float,
        volatility: float = 0.0,
    ) -> RiskAssessment:
        for name, value in (
            ("total_borrowed", total_borrowed),
            ("total_supplied", total_supplied),
            ("volatility", volatility),
        ):
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"{name} must be a non-negative number, got {value}")

        if total_borrowed == 0:
            return NO_DEBT_ASSESSMENT
        if not health_factor.has_debt or health_factor.value < 0:
            raise ValidationError(
                f"health factor {health_factor} inconsistent with "
                f"total_borrowed={total_borrowed}"
            )

        if self._service is not None:
            try:
                return await self._assess_remote(
                    user_id, health_factor, total_borrowed, total_supplied, volatility
                )
            except UpstreamUnavailable as e:
                logger.warning(
                    "Remote scoring unavailable for %s, using fallback: %s", user_id, e
                )

        return fallback_assessment(health_factor.value, total_borrowed, total_supplied)

    async def _assess_remote(
        self,
        user_id: str,
        health_factor: HealthFactor,
        total_borrowed: float,
        total_supplied: float,
        volatility: float,
    ) -> RiskAssessment:
        inputs = {
            "health_factor": health_factor.value,
            "has_debt": health_factor.has_debt,
            "volatility": volatility,
            "total_borrowed": total_borrowed,
            "total_supplied": total_supplied,
            "ltv": loan_to_value(total_borrowed, total_supplied),
        }
        try:
            data = await self._service.predict(user_id, inputs)
        except UpstreamUnavailable:
            raise
        except Exception as e:
            raise UpstreamUnavailable(f"Scoring service error: {e}") from e

        assessment = parse_remote_prediction(data)
        logger.info(
            "Remote risk for %s: score=%.1f level=%s confidence=%.2f",
            user_id,
            assessment.score,
            assessment.level.value,
            assessment.confidence_score,
        )
        return assessment
