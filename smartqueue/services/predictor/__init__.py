"""
Predictor Service Factory

Provides a single entry point for obtaining the wait-time predictor.
Automatically selects Mock or Gemini based on ENV_MODE configuration.

Unlike the other services, "no predictor" is a valid outcome: the
factory returns None when the capability is not configured, and the
estimator then uses the local heuristic.

Usage:
    from smartqueue.services.predictor import get_predictor

    predictor = get_predictor()  # MockPredictor, GeminiPredictor or None

Environment Switching:
    - ENV_MODE=development → MockPredictor
    - ENV_MODE=staging/production → GeminiPredictor if GEMINI_API_KEY is set
    - PREDICTOR_PROVIDER=mock|gemini|none overrides the environment default

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache
from typing import Optional

from smartqueue.core.config import PredictorProvider, get_settings
from smartqueue.services.predictor.base import (
    AdviceResult,
    BasePredictor,
    InsightResult,
    PredictionResult,
    PredictionStatus,
    QueueSnapshot,
)
from smartqueue.services.predictor.gemini import GeminiPredictor
from smartqueue.services.predictor.mock import MockPredictor

logger = logging.getLogger(__name__)


@lru_cache()
def get_predictor() -> Optional[BasePredictor]:
    """
    Get the configured predictor instance.

    Returns:
        BasePredictor or None: None when no predictor is configured
    """
    settings = get_settings()
    provider = settings.predictor_provider

    if provider == PredictorProvider.AUTO:
        if settings.is_development:
            provider = PredictorProvider.MOCK
        elif settings.gemini_api_key:
            provider = PredictorProvider.GEMINI
        else:
            provider = PredictorProvider.NONE

    if provider == PredictorProvider.MOCK:
        logger.info("Predictor: Using MockPredictor (development mode)")
        return MockPredictor(
            failure_rate=0.05,  # 5% simulated outages
            malformed_rate=0.05,
            min_latency=0.1,
            max_latency=0.5,
        )

    if provider == PredictorProvider.GEMINI:
        logger.info(f"Predictor: Using GeminiPredictor ({settings.env_mode.value} mode)")
        return GeminiPredictor()

    logger.warning("Predictor: None configured, using local heuristics")
    return None


def reset_predictor() -> None:
    """
    Clear the cached predictor instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_predictor.cache_clear()
    logger.debug("Predictor cache cleared")


__all__ = [
    "get_predictor",
    "reset_predictor",
    "BasePredictor",
    "PredictionResult",
    "PredictionStatus",
    "AdviceResult",
    "InsightResult",
    "QueueSnapshot",
    "MockPredictor",
    "GeminiPredictor",
]
