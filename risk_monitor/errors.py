"""Error taxonomy shared across the monitor."""
from __future__ import annotations


class RiskMonitorError(Exception):
    """Base class for all monitor errors."""


class ValidationError(RiskMonitorError, ValueError):
    """Malformed or negative numeric input; aborts the single computation."""


class UpstreamUnavailable(RiskMonitorError):
    """A remote service was unreachable, timed out, or returned a bad payload."""


class StoreError(RiskMonitorError):
    """A position or alert store read/write failed."""
