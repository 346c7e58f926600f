"""Protocol interfaces for the risk monitor."""
from .advisory import AdvisoryService
from .notifier import Notifier
from .scoring import ScoringService
from .stores import AlertStore, PositionStore
from .volatility import VolatilityFeed

__all__ = [
    "AdvisoryService",
    "AlertStore",
    "Notifier",
    "PositionStore",
    "ScoringService",
    "VolatilityFeed",
]
