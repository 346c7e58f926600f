"""Service modules"""
from .advisory import Advisor, AdvisoryReply
from .aggregator import PortfolioView, PositionAggregator
from .alerts import AlertEngine
from .cache import SnapshotCache
from .monitor import Monitor
from .pipeline import RiskPipeline
from .scheduler import Scheduler, Subscription
from .scoring import RiskScorer

__all__ = [
    "Advisor",
    "AdvisoryReply",
    "AlertEngine",
    "Monitor",
    "PortfolioView",
    "PositionAggregator",
    "RiskPipeline",
    "RiskScorer",
    "Scheduler",
    "SnapshotCache",
    "Subscription",
]
