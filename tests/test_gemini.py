"""
Gemini Predictor Tests

The HTTP layer is replaced with httpx.MockTransport; no network access.
"""
import json

import httpx
import pytest
import pytest_asyncio

from smartqueue.core.config import Settings
from smartqueue.services.predictor.base import PredictionStatus, QueueSnapshot
from smartqueue.services.predictor.gemini import GeminiPredictor


def envelope(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeGemini:
    """Serves queued responses and records the requests it saw."""

    def __init__(self):
        self.responses: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    def reply_json(self, payload: dict) -> None:
        self.responses.append(httpx.Response(200, json=envelope(json.dumps(payload))))

    def reply(self, response: httpx.Response) -> None:
        self.responses.append(response)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


@pytest.fixture
def fake() -> FakeGemini:
    return FakeGemini()


@pytest_asyncio.fixture
async def predictor(fake):
    instance = GeminiPredictor(
        api_key="test-key",
        model="gemini-test",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(fake),
    )
    yield instance
    await instance.close()


def test_missing_api_key_is_rejected(monkeypatch):
    monkeypatch.setattr(
        "smartqueue.services.predictor.gemini.get_settings",
        lambda: Settings(_env_file=None, gemini_api_key=None),
    )
    with pytest.raises(ValueError):
        GeminiPredictor()


@pytest.mark.asyncio
async def test_history_prediction_parses_structured_answer(predictor, fake):
    fake.reply_json({"estimatedMinutes": 14, "reasoning": "Lunch rush.", "isPeakHour": True})

    result = await predictor.predict_with_history("Masala Dosa", 3, [], 8, 12)

    assert result.status == PredictionStatus.OK
    assert (result.minutes, result.reasoning, result.is_peak_hour) == (14, "Lunch rush.", True)

    request = fake.requests[0]
    assert request.url.path == "/v1beta/models/gemini-test:generateContent"
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert "Masala Dosa" in body["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_baseline_prediction(predictor, fake):
    fake.reply_json({"estimatedMinutes": 6, "reasoning": "Samosas are quick."})

    result = await predictor.predict_baseline(2, "Samosa")

    assert result.success
    assert result.minutes == 6


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "answer",
    [
        "not json at all",
        json.dumps({"reasoning": "forgot the minutes"}),
        json.dumps({"estimatedMinutes": 0, "reasoning": "instant"}),
        json.dumps({"estimatedMinutes": "ten", "reasoning": "words"}),
    ],
)
async def test_schema_mismatch_is_malformed(predictor, fake, answer):
    fake.reply(httpx.Response(200, json=envelope(answer)))

    result = await predictor.predict_baseline(2, "Samosa")

    assert result.status == PredictionStatus.MALFORMED


@pytest.mark.asyncio
async def test_bad_envelope_is_malformed(predictor, fake):
    fake.reply(httpx.Response(200, json={"candidates": []}))

    result = await predictor.predict_baseline(2, "Samosa")

    assert result.status == PredictionStatus.MALFORMED


@pytest.mark.asyncio
async def test_http_error_is_unavailable(predictor, fake):
    fake.reply(httpx.Response(503, json={"error": {"message": "overloaded"}}))

    result = await predictor.predict_with_history("Samosa", 1, [], 8, 9)

    assert result.status == PredictionStatus.UNAVAILABLE
    assert "503" in result.error_message


@pytest.mark.asyncio
async def test_transport_failure_is_unavailable():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    predictor = GeminiPredictor(api_key="k", transport=httpx.MockTransport(refuse))
    try:
        result = await predictor.predict_baseline(1, "Samosa")
    finally:
        await predictor.close()

    assert result.status == PredictionStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_completion_advice(predictor, fake):
    fake.reply_json({"shouldComplete": True, "reasoning": "Ready and past estimate."})

    result = await predictor.advise_completion("Samosa", 5, 6.0, True)

    assert result.success
    assert result.should_complete is True


@pytest.mark.asyncio
async def test_insight_text(predictor, fake):
    fake.reply(httpx.Response(200, json=envelope("• Queue moving well\n")))

    result = await predictor.summarize_queue(QueueSnapshot(10, 2, 6.0, "12:00 PM - 1:00 PM"))

    assert result.success
    assert result.text == "• Queue moving well"
    assert "generationConfig" not in json.loads(fake.requests[0].content)


@pytest.mark.asyncio
async def test_health_check(predictor, fake):
    fake.reply(httpx.Response(200, json={"name": "models/gemini-test"}))
    fake.reply(httpx.Response(403, json={}))

    assert await predictor.health_check() is True
    assert await predictor.health_check() is False
