"""
Wait-Time Estimation

Wraps the optional predictor in a strict fallback chain:

    1. History-informed prediction
    2. Queue-length baseline prediction
    3. Local heuristic

When no predictor is configured at all, the chain starts and ends at the
queue-length heuristic ``max(5, queue_length * 3)``. When a configured
predictor fails both tiers, the local estimate uses prep history and the
rush-hour surcharge instead.

Exceptions and timeouts from the predictor are treated exactly like an
UNAVAILABLE result. Nothing in this module raises to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from smartqueue.entities import HistoryRecord
from smartqueue.services.predictor.base import (
    AdviceResult,
    BasePredictor,
    InsightResult,
    PredictionResult,
    QueueSnapshot,
)
from smartqueue.services.predictor import rules

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", PredictionResult, AdviceResult, InsightResult)


class EstimateSource(str, Enum):
    """Which tier produced an estimate."""
    HISTORY = "history"
    BASELINE = "baseline"
    LOCAL_HISTORY = "local_history"
    LOCAL_QUEUE = "local_queue"


@dataclass
class WaitEstimate:
    minutes: int
    reasoning: str
    is_peak_hour: bool
    source: EstimateSource


@dataclass
class CompletionAdvice:
    should_complete: bool
    reasoning: str
    from_predictor: bool


class WaitTimeEstimator:
    """
    Fallback-chain orchestration around an optional predictor.

    Args:
        predictor: The predictor, or None when not configured
        timeout: Seconds allowed for each predictor call
        default_prep_minutes: Average prep time assumed without history
    """

    def __init__(
        self,
        predictor: Optional[BasePredictor],
        timeout: float = 8.0,
        default_prep_minutes: int = 8,
    ):
        self.predictor = predictor
        self.timeout = timeout
        self.default_prep_minutes = default_prep_minutes

    @property
    def provider_name(self) -> str:
        return self.predictor.provider_name if self.predictor else "local"

    async def _call(
        self,
        call: Callable[[], Awaitable[ResultT]],
        on_error: Callable[[str], ResultT],
        label: str,
    ) -> ResultT:
        """Run one predictor call; exceptions and timeouts become UNAVAILABLE."""
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Predictor {label} timed out after {self.timeout}s")
            return on_error(f"timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"Predictor {label} raised {type(e).__name__}: {e}")
            return on_error(str(e))

    async def estimate(
        self,
        food_item: str,
        queue_length: int,
        history: Sequence[HistoryRecord],
        now: Optional[datetime] = None,
    ) -> WaitEstimate:
        """
        Estimate the wait for a new order.

        Args:
            food_item: Ordered item
            queue_length: Active (WAITING and READY) tokens in the canteen
            history: Retained history records for this food item
            now: Current local time

        Returns:
            WaitEstimate: Always returns an estimate
        """
        now = now or datetime.now()
        hour = now.hour
        peak = rules.is_peak_hour(hour)

        if self.predictor is None:
            return WaitEstimate(
                minutes=rules.queue_length_minutes(queue_length),
                reasoning=rules.QUEUE_LENGTH_REASONING,
                is_peak_hour=peak,
                source=EstimateSource.LOCAL_QUEUE,
            )

        average_prep = rules.average_prep_minutes(history, self.default_prep_minutes)

        result = await self._call(
            lambda: self.predictor.predict_with_history(
                food_item, queue_length, history, average_prep, hour
            ),
            PredictionResult.unavailable,
            "predict_with_history",
        )
        if result.success:
            return WaitEstimate(
                minutes=result.minutes,
                reasoning=result.reasoning,
                is_peak_hour=result.is_peak_hour if result.is_peak_hour is not None else peak,
                source=EstimateSource.HISTORY,
            )
        logger.info(
            f"History prediction for {food_item} {result.status.value}: "
            f"{result.error_message}; trying baseline"
        )

        result = await self._call(
            lambda: self.predictor.predict_baseline(queue_length, food_item),
            PredictionResult.unavailable,
            "predict_baseline",
        )
        if result.success:
            return WaitEstimate(
                minutes=result.minutes,
                reasoning=result.reasoning,
                is_peak_hour=peak,
                source=EstimateSource.BASELINE,
            )
        logger.warning(
            f"Baseline prediction for {food_item} {result.status.value}: "
            f"{result.error_message}; using local heuristic"
        )

        return WaitEstimate(
            minutes=rules.history_minutes(average_prep, queue_length, hour),
            reasoning=rules.history_reasoning(average_prep, hour),
            is_peak_hour=peak,
            source=EstimateSource.LOCAL_HISTORY,
        )

    async def advise_completion(
        self,
        food_item: str,
        estimated_minutes: int,
        actual_minutes: float,
        is_ready: bool,
    ) -> CompletionAdvice:
        """Non-binding recommendation on whether to complete an order now."""
        if self.predictor is None:
            return CompletionAdvice(
                should_complete=actual_minutes >= estimated_minutes,
                reasoning=rules.COMPLETION_THRESHOLD_REASONING,
                from_predictor=False,
            )

        result = await self._call(
            lambda: self.predictor.advise_completion(
                food_item, estimated_minutes, actual_minutes, is_ready
            ),
            AdviceResult.unavailable,
            "advise_completion",
        )
        if result.success:
            return CompletionAdvice(
                should_complete=result.should_complete,
                reasoning=result.reasoning,
                from_predictor=True,
            )

        return CompletionAdvice(
            should_complete=is_ready and actual_minutes >= estimated_minutes,
            reasoning=rules.STANDARD_COMPLETION_REASONING,
            from_predictor=False,
        )

    async def summarize(self, snapshot: QueueSnapshot) -> str:
        """Admin insight text, with a local summary when the predictor fails."""
        if snapshot.total_orders_today == 0 or snapshot.active_queue_length == 0:
            return (
                "✓ Queue Clear\n"
                "• No active orders in queue\n"
                "• Perfect time to restock and prepare for next rush\n"
                "• System ready for incoming orders"
            )

        if self.predictor is not None:
            result = await self._call(
                lambda: self.predictor.summarize_queue(snapshot),
                InsightResult.unavailable,
                "summarize_queue",
            )
            if result.success:
                return result.text

        return (
            "Queue Summary\n"
            f"• Total Orders: {snapshot.total_orders_today}\n"
            f"• Avg Wait: {snapshot.average_wait_minutes:g}m\n"
            f"• Peak: {snapshot.peak_hour}"
        )
