"""Volatility feeds."""
from .pyth import PythVolatilityFeed
from .static import StaticVolatilityFeed

__all__ = ["PythVolatilityFeed", "StaticVolatilityFeed"]
