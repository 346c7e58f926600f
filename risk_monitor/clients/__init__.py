"""HTTP clients for remote services."""
from .advisory import AdvisoryClient
from .scoring import ScoringClient

__all__ = ["AdvisoryClient", "ScoringClient"]
