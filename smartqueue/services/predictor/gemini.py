"""
Gemini Predictor Implementation

Production predictor calling the Google Gemini REST API.
Used when ENV_MODE=production or ENV_MODE=staging and GEMINI_API_KEY is set.

Requirements:
    - GEMINI_API_KEY must be set in environment
    - The Generative Language API must be enabled for the key

Every structured call asks for a JSON response with an explicit schema and
validates the answer with pydantic. Transport failures and non-2xx answers
become UNAVAILABLE; anything that parses but does not fit the schema
becomes MALFORMED.

API Documentation:
    https://ai.google.dev/api/generate-content

Author: Khalil_Bannouri
Version: 1.0.0
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from smartqueue.core.config import get_settings
from smartqueue.core.exceptions import (
    MalformedPredictorResponseError,
    PredictorUnavailableError,
)
from smartqueue.entities import HistoryRecord
from smartqueue.services.predictor.base import (
    AdviceResult,
    BasePredictor,
    InsightResult,
    PredictionResult,
    QueueSnapshot,
)

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


# =============================================================================
# RESPONSE PAYLOADS
# =============================================================================

class EstimatePayload(BaseModel):
    estimatedMinutes: int = Field(..., ge=1, le=240)
    reasoning: str = Field(..., min_length=1, max_length=300)


class HistoryEstimatePayload(EstimatePayload):
    isPeakHour: bool


class CompletionPayload(BaseModel):
    shouldComplete: bool
    reasoning: str = Field(..., min_length=1, max_length=300)


ESTIMATE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "estimatedMinutes": {"type": "INTEGER"},
        "reasoning": {"type": "STRING"},
    },
    "required": ["estimatedMinutes", "reasoning"],
}

HISTORY_ESTIMATE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "estimatedMinutes": {"type": "INTEGER"},
        "reasoning": {"type": "STRING"},
        "isPeakHour": {"type": "BOOLEAN"},
    },
    "required": ["estimatedMinutes", "reasoning", "isPeakHour"],
}

COMPLETION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "shouldComplete": {"type": "BOOLEAN"},
        "reasoning": {"type": "STRING"},
    },
    "required": ["shouldComplete", "reasoning"],
}


class GeminiPredictor(BasePredictor):
    """
    Production Gemini predictor implementation.

    Configuration:
        Requires GEMINI_API_KEY environment variable.

    Example:
        >>> predictor = GeminiPredictor()
        >>> result = await predictor.predict_baseline(6, "Masala Dosa")
        >>> print(result.minutes, result.reasoning)
        18 "It's lunch rush, so the tawa is busy!"
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Raises:
            ValueError: If no API key is configured
        """
        settings = get_settings()

        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY is required for the Gemini predictor. "
                "Set it in your .env file or environment variables."
            )

        self.model = model or settings.predictor_model
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.predictor_base_url,
            headers={"x-goog-api-key": api_key},
            timeout=timeout or settings.predictor_timeout_seconds,
            transport=transport,
        )

        logger.info(f"GeminiPredictor initialized (model={self.model})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "gemini"

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _generate(self, prompt: str, schema: Optional[dict] = None) -> str:
        """
        Call generateContent and return the first candidate's text.

        Raises:
            PredictorUnavailableError: Transport error or non-2xx status
            MalformedPredictorResponseError: No text in the response
        """
        body: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if schema is not None:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            }

        try:
            response = await self._client.post(
                f"/models/{self.model}:generateContent",
                json=body,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise PredictorUnavailableError("Gemini request timed out", cause=e) from e
        except httpx.HTTPStatusError as e:
            raise PredictorUnavailableError(
                f"Gemini returned HTTP {e.response.status_code}", cause=e
            ) from e
        except httpx.HTTPError as e:
            raise PredictorUnavailableError(f"Unable to reach Gemini: {e}", cause=e) from e

        try:
            data = response.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedPredictorResponseError(f"Unexpected Gemini envelope: {e}") from e

    async def _generate_json(
        self,
        prompt: str,
        schema: dict,
        payload_cls: Type[PayloadT],
    ) -> PayloadT:
        text = await self._generate(prompt, schema)
        try:
            return payload_cls.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            raise MalformedPredictorResponseError(
                f"Gemini answer does not match {payload_cls.__name__}: {e}"
            ) from e

    # =========================================================================
    # PREDICTIONS
    # =========================================================================

    async def predict_baseline(
        self,
        queue_length: int,
        food_item: str,
    ) -> PredictionResult:
        now = datetime.now()
        prompt = f"""
            You are an AI managing a university canteen queue.
            Context:
            - Queue: {queue_length} people
            - Item: "{food_item}"
            - Time: {now.strftime("%A, %I:%M %p")}

            Task: Estimate wait time and give a 1-sentence friendly reason for the student.
            Example Reason: "It's lunch rush, so grills are busy!" or "Smoothies are quick today."
        """

        try:
            payload = await self._generate_json(prompt, ESTIMATE_SCHEMA, EstimatePayload)
        except PredictorUnavailableError as e:
            logger.warning(f"Gemini: Baseline prediction unavailable - {e}")
            return PredictionResult.unavailable(str(e))
        except MalformedPredictorResponseError as e:
            logger.warning(f"Gemini: Baseline prediction malformed - {e}")
            return PredictionResult.malformed(str(e))

        return PredictionResult.ok(
            minutes=payload.estimatedMinutes,
            reasoning=payload.reasoning,
        )

    async def predict_with_history(
        self,
        food_item: str,
        queue_length: int,
        history: Sequence[HistoryRecord],
        average_prep_minutes: int,
        hour_of_day: int,
    ) -> PredictionResult:
        day_of_week = datetime.now().strftime("%A")
        if history:
            history_summary = f"- Average preparation: {average_prep_minutes} min"
        else:
            history_summary = "- No historical data available"

        prompt = f"""
            You are an AI that predicts food preparation times in a university canteen.

            Context:
            - Food Item: "{food_item}"
            - Queue Length: {queue_length} people
            - Current Time: {hour_of_day}:00 on {day_of_week}
            - Avg Prep Time (Historical): {average_prep_minutes} minutes
            - Peak Hours: 12-1 PM, 6-7 PM (usually)

            Historical Data Summary:
            - Total historical orders for this item: {len(history)}
            {history_summary}

            Task: Predict wait time considering:
            1. Current time (peak hours add 30-50% to wait time)
            2. Queue length (each person adds ~2-3 min base, {average_prep_minutes} min to prepare)
            3. Historical patterns for this specific food

            Return JSON with:
            - estimatedMinutes: number (final prediction)
            - reasoning: string (1-sentence explanation)
            - isPeakHour: boolean (true if current hour is likely peak)
        """

        try:
            payload = await self._generate_json(
                prompt, HISTORY_ESTIMATE_SCHEMA, HistoryEstimatePayload
            )
        except PredictorUnavailableError as e:
            logger.warning(f"Gemini: History prediction unavailable - {e}")
            return PredictionResult.unavailable(str(e))
        except MalformedPredictorResponseError as e:
            logger.warning(f"Gemini: History prediction malformed - {e}")
            return PredictionResult.malformed(str(e))

        return PredictionResult.ok(
            minutes=payload.estimatedMinutes,
            reasoning=payload.reasoning,
            is_peak_hour=payload.isPeakHour,
        )

    async def advise_completion(
        self,
        food_item: str,
        estimated_minutes: int,
        actual_minutes: float,
        is_ready: bool,
    ) -> AdviceResult:
        prompt = f"""
            You are a smart queue management AI for a university canteen.

            Order Details:
            - Food Item: "{food_item}"
            - Estimated Wait: {estimated_minutes} minutes
            - Actual Wait: {actual_minutes:.0f} minutes
            - Currently Ready for Pickup: {is_ready}

            Task: Determine if this order should be marked as COMPLETE based on the time and readiness.
            Consider: If ready for pickup and actual time >= estimated time, it's likely complete.

            Respond with a JSON containing:
            - shouldComplete: boolean (true if order should be marked complete)
            - reasoning: string (1-sentence explanation for the decision)
        """

        try:
            payload = await self._generate_json(prompt, COMPLETION_SCHEMA, CompletionPayload)
        except PredictorUnavailableError as e:
            logger.warning(f"Gemini: Completion advice unavailable - {e}")
            return AdviceResult.unavailable(str(e))
        except MalformedPredictorResponseError as e:
            logger.warning(f"Gemini: Completion advice malformed - {e}")
            return AdviceResult.malformed(str(e))

        return AdviceResult.ok(
            should_complete=payload.shouldComplete,
            reasoning=payload.reasoning,
        )

    async def summarize_queue(self, snapshot: QueueSnapshot) -> InsightResult:
        prompt = f"""
            Analyze these canteen stats and provide brief insights:
            - Total Orders Today: {snapshot.total_orders_today}
            - Avg Wait Time: {snapshot.average_wait_minutes} minutes
            - Active Queue: {snapshot.active_queue_length}
            - Peak Hour: {snapshot.peak_hour}

            Provide 3 bullet points about queue efficiency and suggestions.
            Keep each point under 20 words.
        """

        try:
            text = await self._generate(prompt)
        except PredictorUnavailableError as e:
            logger.warning(f"Gemini: Insights unavailable - {e}")
            return InsightResult.unavailable(str(e))
        except MalformedPredictorResponseError as e:
            logger.warning(f"Gemini: Insights malformed - {e}")
            return InsightResult.malformed(str(e))

        if not text.strip():
            return InsightResult.malformed("Empty insight text")
        return InsightResult.ok(text.strip())

    async def health_check(self) -> bool:
        """
        Verify Gemini API connectivity.

        Fetches the model metadata to verify credentials and connectivity.
        """
        try:
            response = await self._client.get(f"/models/{self.model}")
            if response.status_code == 200:
                logger.debug("Gemini: Health check passed")
                return True
            return False
        except httpx.HTTPError as e:
            logger.error(f"Gemini: Health check failed - {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
