"""
Shared fixtures: a frozen clock, an opened in-memory store, test settings
and scripted predictors that drive each fallback tier.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional, Union

import pytest
import pytest_asyncio

from smartqueue.core.config import Settings
from smartqueue.events import ChangeSignal
from smartqueue.services.estimation import WaitTimeEstimator
from smartqueue.services.predictor.base import (
    AdviceResult,
    BasePredictor,
    InsightResult,
    PredictionResult,
)
from smartqueue.services.queue_engine import QueueEngine
from smartqueue.services.registry import CanteenRegistry
from smartqueue.store.memory import MemoryStore

# Off-peak weekday morning
START = datetime(2024, 3, 4, 9, 30)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, moment: datetime) -> None:
        self.now = moment


Scripted = Union[PredictionResult, AdviceResult, InsightResult, Exception]


class ScriptedPredictor(BasePredictor):
    """Predictor returning (or raising) pre-set answers and recording calls."""

    def __init__(
        self,
        history: Optional[Scripted] = None,
        baseline: Optional[Scripted] = None,
        advice: Optional[Scripted] = None,
        insight: Optional[Scripted] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.history = history or PredictionResult.unavailable("history not scripted")
        self.baseline = baseline or PredictionResult.unavailable("baseline not scripted")
        self.advice = advice or AdviceResult.unavailable("advice not scripted")
        self.insight = insight or InsightResult.unavailable("insight not scripted")
        self.gate = gate
        self.calls: list[tuple] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def _answer(self, answer: Scripted):
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def predict_baseline(self, queue_length, food_item):
        self.calls.append(("baseline", queue_length, food_item))
        return await self._answer(self.baseline)

    async def predict_with_history(
        self, food_item, queue_length, history, average_prep_minutes, hour_of_day
    ):
        self.calls.append(("history", food_item, queue_length, average_prep_minutes, hour_of_day))
        return await self._answer(self.history)

    async def advise_completion(self, food_item, estimated_minutes, actual_minutes, is_ready):
        self.calls.append(("advice", food_item, estimated_minutes, actual_minutes, is_ready))
        return await self._answer(self.advice)

    async def summarize_queue(self, snapshot):
        self.calls.append(("insight", snapshot))
        return await self._answer(self.insight)

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        env_mode="development",
        store_backend="memory",
        predictor_provider="none",
        snapshot_enabled=False,
        publish_changes=False,
        use_celery_refinement=False,
    )


@pytest_asyncio.fixture
async def store():
    async with MemoryStore() as opened:
        yield opened


@pytest.fixture
def signal() -> ChangeSignal:
    return ChangeSignal()


@pytest.fixture
def events(signal: ChangeSignal) -> list[str]:
    """Events broadcast on ``signal`` during the test."""
    received: list[str] = []
    signal.subscribe(received.append)
    return received


@pytest.fixture
def registry(store, signal, clock) -> CanteenRegistry:
    return CanteenRegistry(store, signal, base_url="http://canteen.test", clock=clock)


@pytest_asyncio.fixture
async def make_engine(store, signal, settings, clock):
    """Build a QueueEngine around an optional predictor."""
    engines: list[QueueEngine] = []

    def _make(predictor: Optional[BasePredictor] = None, **kwargs) -> QueueEngine:
        estimator = WaitTimeEstimator(predictor, timeout=kwargs.pop("timeout", 1.0))
        engine = QueueEngine(store, signal, estimator, settings=settings, clock=clock, **kwargs)
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.close()


@pytest_asyncio.fixture
async def canteen(registry):
    return await registry.register("North Block Canteen", "Main Campus")
