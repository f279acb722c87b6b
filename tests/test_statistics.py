"""
Statistics Aggregator Tests
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional

import pytest

from smartqueue.entities import Token
from smartqueue.models import TokenStatus
from smartqueue.services.statistics import (
    StatisticsAggregator,
    average_wait_minutes,
    hour_label,
    peak_window_label,
)

TODAY = datetime(2024, 3, 4, 15, 0)


async def add_token(
    store,
    canteen_id: str,
    created_at: datetime,
    status: TokenStatus = TokenStatus.WAITING,
    wait: Optional[int] = None,
) -> Token:
    token = Token(
        id=uuid.uuid4().hex,
        canteen_id=canteen_id,
        token_number="A-000",
        food_item="Samosa",
        status=TokenStatus.WAITING,
        created_at=created_at,
        estimated_wait_minutes=5,
    )
    await store.append(token)
    if status == TokenStatus.COMPLETED:
        await store.update_status(
            token.id, status, completed_at=created_at + timedelta(minutes=wait)
        )
    elif status != TokenStatus.WAITING:
        await store.update_status(token.id, status)
    return token


@pytest.fixture
def aggregator(store, clock, settings):
    clock.set(TODAY)
    return StatisticsAggregator(
        store,
        business_hours=settings.business_hours,
        default_peak_window=settings.default_peak_window,
        clock=clock,
    )


def test_labels():
    assert [hour_label(h) for h in (0, 9, 12, 13, 23)] == ["12 AM", "9 AM", "12 PM", "1 PM", "11 PM"]
    assert peak_window_label(12) == "12:00 PM - 1:00 PM"
    assert peak_window_label(9) == "9:00 AM - 10:00 AM"


def test_average_wait_of_nothing_is_zero():
    assert average_wait_minutes([]) == 0.0


@pytest.mark.asyncio
async def test_stats_for_busy_day(aggregator, store, canteen):
    base = TODAY.replace(hour=12)
    for wait in (3, 5, 7, 9):
        await add_token(store, canteen.id, base, TokenStatus.COMPLETED, wait)
    await add_token(store, canteen.id, base, TokenStatus.READY)
    await add_token(store, canteen.id, base, TokenStatus.CANCELLED)
    for _ in range(4):
        await add_token(store, canteen.id, TODAY.replace(hour=13))

    stats = await aggregator.get_stats(canteen.id)

    assert stats.total_orders_today == 10
    assert stats.average_wait_minutes == 6
    assert stats.active_queue_length == 4
    assert stats.completed_today == 4
    assert stats.cancelled_today == 1
    assert stats.peak_hour == "12:00 PM - 1:00 PM"


@pytest.mark.asyncio
async def test_empty_canteen_stats(aggregator, canteen):
    stats = await aggregator.get_stats(canteen.id)

    assert stats.total_orders_today == 0
    assert stats.active_queue_length == 0
    assert stats.average_wait_minutes == 0
    assert stats.peak_hour == "12:00 PM - 1:00 PM"


@pytest.mark.asyncio
async def test_total_orders_counts_only_today(aggregator, store, canteen):
    await add_token(store, canteen.id, TODAY - timedelta(days=1))
    await add_token(store, canteen.id, TODAY.replace(hour=10))

    stats = await aggregator.get_stats(canteen.id)

    assert stats.total_orders_today == 1
    # Yesterday's token is still waiting
    assert stats.active_queue_length == 2


@pytest.mark.asyncio
async def test_stats_are_scoped_to_canteen(aggregator, store, registry, canteen):
    other = await registry.register("South Block Canteen", "Main Campus")
    await add_token(store, other.id, TODAY.replace(hour=10))

    stats = await aggregator.get_stats(canteen.id)

    assert stats.total_orders_today == 0


@pytest.mark.asyncio
async def test_hourly_traffic_has_business_hour_scaffold(aggregator, canteen):
    traffic = await aggregator.hourly_traffic(canteen.id)

    assert [p.hour for p in traffic] == list(range(9, 19))
    assert all(p.orders == 0 for p in traffic)
    assert traffic[0].label == "9 AM"
    assert traffic[-1].label == "6 PM"


@pytest.mark.asyncio
async def test_hourly_traffic_includes_outlier_hours(aggregator, store, canteen):
    await add_token(store, canteen.id, TODAY.replace(hour=7, minute=45))
    await add_token(store, canteen.id, TODAY.replace(hour=12, minute=5))
    await add_token(store, canteen.id, TODAY.replace(hour=12, minute=50))
    await add_token(store, canteen.id, TODAY.replace(hour=21))
    await add_token(store, canteen.id, TODAY - timedelta(days=1))

    traffic = {p.hour: p.orders for p in await aggregator.hourly_traffic(canteen.id)}

    assert list(traffic) == [7] + list(range(9, 19)) + [21]
    assert traffic[7] == 1
    assert traffic[12] == 2
    assert traffic[21] == 1
    assert sum(traffic.values()) == 4
