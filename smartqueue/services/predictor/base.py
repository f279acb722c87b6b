"""
Wait-Time Predictor Abstract Base Class

Defines the interface contract for all predictor implementations.
Both MockPredictor and GeminiPredictor must implement these methods.

Results are tagged rather than pattern-matched: every call returns a
result whose ``status`` is OK, UNAVAILABLE or MALFORMED. Callers never
inspect free text to decide whether a prediction failed.

Design Pattern: Strategy Pattern
    - The queue engine depends only on this contract
    - A missing predictor is a valid configuration (local heuristic)
    - Tests drive every fallback tier with small fake subclasses

Author: Khalil_Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from smartqueue.entities import HistoryRecord


class PredictionStatus(str, Enum):
    """Outcome tag of a predictor call."""
    OK = "ok"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"


@dataclass
class PredictionResult:
    """
    Standardized result from a wait-time prediction.

    Attributes:
        status: Outcome tag
        minutes: Predicted wait in whole minutes (OK only)
        reasoning: One-sentence explanation for the student (OK only)
        is_peak_hour: Whether the predictor considers now a rush hour
        error_message: Failure description (UNAVAILABLE/MALFORMED only)
    """
    status: PredictionStatus
    minutes: Optional[int] = None
    reasoning: Optional[str] = None
    is_peak_hour: Optional[bool] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PredictionStatus.OK

    @classmethod
    def ok(
        cls,
        minutes: int,
        reasoning: str,
        is_peak_hour: Optional[bool] = None,
    ) -> "PredictionResult":
        return cls(
            status=PredictionStatus.OK,
            minutes=minutes,
            reasoning=reasoning,
            is_peak_hour=is_peak_hour,
        )

    @classmethod
    def unavailable(cls, error_message: str) -> "PredictionResult":
        return cls(status=PredictionStatus.UNAVAILABLE, error_message=error_message)

    @classmethod
    def malformed(cls, error_message: str) -> "PredictionResult":
        return cls(status=PredictionStatus.MALFORMED, error_message=error_message)


@dataclass
class AdviceResult:
    """Result from the completion advisor."""
    status: PredictionStatus
    should_complete: Optional[bool] = None
    reasoning: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PredictionStatus.OK

    @classmethod
    def ok(cls, should_complete: bool, reasoning: str) -> "AdviceResult":
        return cls(
            status=PredictionStatus.OK,
            should_complete=should_complete,
            reasoning=reasoning,
        )

    @classmethod
    def unavailable(cls, error_message: str) -> "AdviceResult":
        return cls(status=PredictionStatus.UNAVAILABLE, error_message=error_message)

    @classmethod
    def malformed(cls, error_message: str) -> "AdviceResult":
        return cls(status=PredictionStatus.MALFORMED, error_message=error_message)


@dataclass
class InsightResult:
    """Result from the admin insight summary."""
    status: PredictionStatus
    text: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PredictionStatus.OK

    @classmethod
    def ok(cls, text: str) -> "InsightResult":
        return cls(status=PredictionStatus.OK, text=text)

    @classmethod
    def unavailable(cls, error_message: str) -> "InsightResult":
        return cls(status=PredictionStatus.UNAVAILABLE, error_message=error_message)

    @classmethod
    def malformed(cls, error_message: str) -> "InsightResult":
        return cls(status=PredictionStatus.MALFORMED, error_message=error_message)


@dataclass
class QueueSnapshot:
    """Dashboard figures handed to the insight summary."""
    total_orders_today: int
    active_queue_length: int
    average_wait_minutes: float
    peak_hour: str


class BasePredictor(ABC):
    """
    Abstract base class for wait-time predictors.

    Implementations should return UNAVAILABLE/MALFORMED results instead of
    raising, but the estimator treats a raised exception or a timeout the
    same way, so a misbehaving implementation cannot break order placement.

    Example:
        >>> predictor = get_predictor()
        >>> result = await predictor.predict_baseline(4, "Vada Pav")
        >>> if result.success:
        ...     print(result.minutes, result.reasoning)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the predictor provider.

        Returns:
            str: Provider name (e.g., "mock", "gemini")
        """
        pass

    @abstractmethod
    async def predict_baseline(
        self,
        queue_length: int,
        food_item: str,
    ) -> PredictionResult:
        """
        Estimate the wait from the queue length alone.

        Args:
            queue_length: Tokens currently WAITING in the canteen
            food_item: Ordered item

        Returns:
            PredictionResult: minutes and reasoning on success
        """
        pass

    @abstractmethod
    async def predict_with_history(
        self,
        food_item: str,
        queue_length: int,
        history: Sequence[HistoryRecord],
        average_prep_minutes: int,
        hour_of_day: int,
    ) -> PredictionResult:
        """
        Estimate the wait using recorded prep times.

        Args:
            food_item: Ordered item
            queue_length: Tokens currently WAITING in the canteen
            history: Retained records for this food item, oldest first
            average_prep_minutes: Mean prep time of ``history``
                (the configured default when empty)
            hour_of_day: Current local hour

        Returns:
            PredictionResult: minutes, reasoning and is_peak_hour on success
        """
        pass

    @abstractmethod
    async def advise_completion(
        self,
        food_item: str,
        estimated_minutes: int,
        actual_minutes: float,
        is_ready: bool,
    ) -> AdviceResult:
        """
        Recommend whether an order should be marked complete now.

        Args:
            food_item: Ordered item
            estimated_minutes: Current estimate on the token
            actual_minutes: Minutes elapsed since creation
            is_ready: Whether the token is READY for pickup

        Returns:
            AdviceResult: should_complete and reasoning on success
        """
        pass

    @abstractmethod
    async def summarize_queue(self, snapshot: QueueSnapshot) -> InsightResult:
        """
        Produce short efficiency insights for the admin dashboard.

        Returns:
            InsightResult: text on success
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the predictor.

        Returns:
            bool: True if the predictor is operational
        """
        pass

    async def close(self) -> None:
        """Release any held client resources."""
        return None
