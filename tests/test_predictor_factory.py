"""
Predictor Factory & Mock Predictor Tests
"""
import pytest

from smartqueue.core.config import EnvironmentMode, PredictorProvider, Settings
from smartqueue.services.predictor import (
    GeminiPredictor,
    MockPredictor,
    PredictionStatus,
    QueueSnapshot,
    get_predictor,
    reset_predictor,
)


@pytest.fixture
def configure(monkeypatch):
    """Point the factory at a given Settings instance."""

    def _configure(**overrides) -> None:
        values = {"_env_file": None, "gemini_api_key": None}
        values.update(overrides)
        settings = Settings(**values)
        monkeypatch.setattr("smartqueue.services.predictor.get_settings", lambda: settings)
        monkeypatch.setattr("smartqueue.services.predictor.gemini.get_settings", lambda: settings)
        reset_predictor()

    yield _configure
    reset_predictor()


@pytest.fixture
def reliable() -> MockPredictor:
    return MockPredictor(failure_rate=0.0, malformed_rate=0.0, min_latency=0.0, max_latency=0.0)


# ─── Factory ───────────────────────────────────────────────────────────────────
def test_development_defaults_to_mock(configure):
    configure(env_mode=EnvironmentMode.DEVELOPMENT, predictor_provider=PredictorProvider.AUTO)

    assert isinstance(get_predictor(), MockPredictor)


def test_production_without_key_has_no_predictor(configure):
    configure(env_mode=EnvironmentMode.PRODUCTION, predictor_provider=PredictorProvider.AUTO)

    assert get_predictor() is None


@pytest.mark.asyncio
async def test_production_with_key_uses_gemini(configure):
    configure(
        env_mode=EnvironmentMode.PRODUCTION,
        predictor_provider=PredictorProvider.AUTO,
        gemini_api_key="secret",
    )

    predictor = get_predictor()
    try:
        assert isinstance(predictor, GeminiPredictor)
    finally:
        await predictor.close()


def test_explicit_none_overrides_environment(configure):
    configure(env_mode=EnvironmentMode.DEVELOPMENT, predictor_provider=PredictorProvider.NONE)

    assert get_predictor() is None


def test_predictor_is_cached_until_reset(configure):
    configure(env_mode=EnvironmentMode.DEVELOPMENT, predictor_provider=PredictorProvider.MOCK)

    first = get_predictor()
    assert get_predictor() is first

    reset_predictor()
    assert get_predictor() is not first


# ─── Mock predictor ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_mock_history_prediction_uses_local_formula(reliable):
    result = await reliable.predict_with_history("Masala Dosa", 2, [], 10, 12)

    # (10 + 2 * 2.5) * 1.4 = 21
    assert result.status == PredictionStatus.OK
    assert result.minutes == 21
    assert result.is_peak_hour is True
    assert result.reasoning.endswith("rush hour.")


@pytest.mark.asyncio
async def test_mock_baseline_stays_near_heuristic(reliable):
    result = await reliable.predict_baseline(4, "Samosa")

    assert 12 <= result.minutes <= 14


@pytest.mark.asyncio
async def test_mock_advice(reliable):
    late = await reliable.advise_completion("Samosa", 5, 7.0, True)
    not_ready = await reliable.advise_completion("Samosa", 5, 7.0, False)

    assert late.should_complete is True
    assert not_ready.should_complete is False


@pytest.mark.asyncio
async def test_mock_outages_are_reported_not_raised():
    flaky = MockPredictor(failure_rate=1.0, malformed_rate=0.0, min_latency=0.0, max_latency=0.0)

    result = await flaky.predict_baseline(1, "Samosa")
    insight = await flaky.summarize_queue(QueueSnapshot(3, 1, 4.0, "12:00 PM - 1:00 PM"))

    assert result.status == PredictionStatus.UNAVAILABLE
    assert not insight.success
    assert await flaky.health_check() is True
