"""
Mock Predictor Implementation

Simulates the Gemini predictor without making real API calls.
Used in development mode (ENV_MODE=development) for local testing.

Behavior:
    - Produces plausible estimates from queue length and prep history
    - Simulates network latency (100-500ms)
    - Random UNAVAILABLE and MALFORMED outcomes to exercise the fallback chain

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import random
from typing import Optional, Sequence

from smartqueue.entities import HistoryRecord
from smartqueue.services.predictor.base import (
    AdviceResult,
    BasePredictor,
    InsightResult,
    PredictionResult,
    QueueSnapshot,
)
from smartqueue.services.predictor.rules import history_minutes, is_peak_hour

logger = logging.getLogger(__name__)


class MockPredictor(BasePredictor):
    """
    Mock implementation of the predictor.

    Attributes:
        failure_rate: Probability of a simulated UNAVAILABLE result (0.0-1.0)
        malformed_rate: Probability of a simulated MALFORMED result (0.0-1.0)
        min_latency: Minimum response time in seconds
        max_latency: Maximum response time in seconds

    Example:
        >>> predictor = MockPredictor(failure_rate=0.0, malformed_rate=0.0)
        >>> result = await predictor.predict_baseline(3, "Samosa")
        >>> result.success
        True
    """

    def __init__(
        self,
        failure_rate: float = 0.05,
        malformed_rate: float = 0.05,
        min_latency: float = 0.1,
        max_latency: float = 0.5,
    ):
        self.failure_rate = failure_rate
        self.malformed_rate = malformed_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        logger.info(
            f"MockPredictor initialized "
            f"(failure_rate={failure_rate:.0%}, malformed_rate={malformed_rate:.0%})"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    async def _simulate_latency(self) -> None:
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _simulated_failure(self) -> Optional[str]:
        """Return "unavailable"/"malformed" for a simulated failure, else None."""
        roll = random.random()
        if roll < self.failure_rate:
            return "unavailable"
        if roll < self.failure_rate + self.malformed_rate:
            return "malformed"
        return None

    async def predict_baseline(
        self,
        queue_length: int,
        food_item: str,
    ) -> PredictionResult:
        await self._simulate_latency()

        failure = self._simulated_failure()
        if failure == "unavailable":
            logger.debug("Mock: Simulated predictor outage")
            return PredictionResult.unavailable("Simulated predictor outage")
        if failure == "malformed":
            logger.debug("Mock: Simulated malformed response")
            return PredictionResult.malformed("Simulated malformed response")

        minutes = max(5, queue_length * 3) + random.randint(0, 2)
        return PredictionResult.ok(
            minutes=minutes,
            reasoning=f"{queue_length} ahead of you for {food_item}.",
        )

    async def predict_with_history(
        self,
        food_item: str,
        queue_length: int,
        history: Sequence[HistoryRecord],
        average_prep_minutes: int,
        hour_of_day: int,
    ) -> PredictionResult:
        await self._simulate_latency()

        failure = self._simulated_failure()
        if failure == "unavailable":
            return PredictionResult.unavailable("Simulated predictor outage")
        if failure == "malformed":
            return PredictionResult.malformed("Simulated malformed response")

        peak = is_peak_hour(hour_of_day)
        minutes = history_minutes(average_prep_minutes, queue_length, hour_of_day)

        if history:
            reasoning = f"{food_item} usually takes {average_prep_minutes} min"
        else:
            reasoning = f"No history for {food_item} yet, assuming {average_prep_minutes} min"
        if peak:
            reasoning += " and it's rush hour."
        else:
            reasoning += "."

        return PredictionResult.ok(
            minutes=max(1, minutes),
            reasoning=reasoning,
            is_peak_hour=peak,
        )

    async def advise_completion(
        self,
        food_item: str,
        estimated_minutes: int,
        actual_minutes: float,
        is_ready: bool,
    ) -> AdviceResult:
        await self._simulate_latency()

        if self._simulated_failure():
            return AdviceResult.unavailable("Simulated advisor outage")

        should_complete = is_ready and actual_minutes >= estimated_minutes
        if should_complete:
            reasoning = f"{food_item} was ready and the estimate has elapsed."
        elif not is_ready:
            reasoning = f"{food_item} has not been marked ready yet."
        else:
            reasoning = f"{food_item} finished ahead of the {estimated_minutes} min estimate."
        return AdviceResult.ok(should_complete=should_complete, reasoning=reasoning)

    async def summarize_queue(self, snapshot: QueueSnapshot) -> InsightResult:
        await self._simulate_latency()

        if self._simulated_failure():
            return InsightResult.unavailable("Simulated insight outage")

        return InsightResult.ok(
            f"• {snapshot.active_queue_length} orders waiting right now\n"
            f"• Average wait is {snapshot.average_wait_minutes:g} min\n"
            f"• Staff up before the {snapshot.peak_hour} rush"
        )

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        logger.debug("Mock: Predictor health check passed")
        return True
