"""
                        Services Module

Business logic around the token store.

Services:
    - registry: Canteen registration and QR scan resolution
    - queue_engine: Token numbering, lifecycle and positions
    - statistics: Dashboard figures derived from the token log
    - estimation: Wait-time fallback chain around the predictor
    - predictor: Mock (development) and Gemini (production) predictors
"""

from smartqueue.services.estimation import WaitTimeEstimator
from smartqueue.services.queue_engine import QueueEngine
from smartqueue.services.registry import CanteenRegistry
from smartqueue.services.statistics import StatisticsAggregator

__all__ = [
    "CanteenRegistry",
    "QueueEngine",
    "StatisticsAggregator",
    "WaitTimeEstimator",
]
