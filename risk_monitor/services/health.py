"""Health factor calculation."""
from __future__ import annotations

import math

from ..errors import ValidationError
from ..models import INFINITE_HEALTH, HealthFactor

DEFAULT_COLLATERAL_FACTOR = 0.75


def _check_amount(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


def compute_health_factor(
    total_supplied: float,
    total_borrowed: float,
    collateral_factor: float = DEFAULT_COLLATERAL_FACTOR,
) -> HealthFactor:
    """Return ``total_supplied * collateral_factor / total_borrowed``.

    No debt yields the infinite sentinel (``has_debt=False``). The ratio is
    not rounded.
    """
    _check_amount("total_supplied", total_supplied)
    _check_amount("total_borrowed", total_borrowed)
    if not 0 < collateral_factor <= 1:
        raise ValidationError(
            f"collateral_factor must be in (0, 1], got {collateral_factor}"
        )

    if total_borrowed == 0:
        return INFINITE_HEALTH
    return HealthFactor(
        value=(total_supplied * collateral_factor) / total_borrowed,
        has_debt=True,
    )
