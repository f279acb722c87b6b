"""
Statistics Aggregator

Read-only dashboard figures derived from the token store on every call.
No counters are kept, so reported numbers can never drift from the
stored tokens.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from smartqueue.entities import Token
from smartqueue.models import TokenStatus
from smartqueue.services.predictor.base import QueueSnapshot
from smartqueue.store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_HOURS = list(range(9, 19))


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def hour_label(hour: int) -> str:
    """12-hour clock label, e.g. 0 -> "12 AM", 13 -> "1 PM"."""
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12} {suffix}"


def peak_window_label(hour: int) -> str:
    """Label for the hour-long window starting at ``hour``."""
    start = datetime(2000, 1, 1, hour)
    end = start + timedelta(hours=1)
    return f"{start.strftime('%I:%M %p').lstrip('0')} - {end.strftime('%I:%M %p').lstrip('0')}"


def average_wait_minutes(tokens: Sequence[Token]) -> float:
    """Mean creation-to-completion minutes of completed tokens; 0 if none."""
    waits = [
        t.wait_minutes
        for t in tokens
        if t.status == TokenStatus.COMPLETED and t.completed_at is not None
    ]
    if not waits:
        return 0.0
    return round(sum(waits) / len(waits), 1)


@dataclass
class HourlyTraffic:
    hour: int
    label: str
    orders: int


@dataclass
class QueueStats:
    """
    Dashboard figures for one canteen.

    Attributes:
        total_orders_today: Tokens created today (all statuses)
        active_queue_length: Tokens currently WAITING
        average_wait_minutes: Mean wait of completed tokens
        peak_hour: Busiest hour window today
        completed_today: Tokens created today that are COMPLETED
        cancelled_today: Tokens created today that are CANCELLED
    """
    total_orders_today: int
    active_queue_length: int
    average_wait_minutes: float
    peak_hour: str
    completed_today: int = 0
    cancelled_today: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            total_orders_today=self.total_orders_today,
            active_queue_length=self.active_queue_length,
            average_wait_minutes=self.average_wait_minutes,
            peak_hour=self.peak_hour,
        )


class StatisticsAggregator:
    """Pure read-side computations over a canteen's tokens."""

    def __init__(
        self,
        store: BaseStore,
        business_hours: Optional[Sequence[int]] = None,
        default_peak_window: str = "12:00 PM - 1:00 PM",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.business_hours = list(business_hours or DEFAULT_BUSINESS_HOURS)
        self.default_peak_window = default_peak_window
        self.clock = clock

    async def _todays_tokens(self, canteen_id: str) -> list[Token]:
        today = start_of_day(self.clock())
        return await self.store.list_by_canteen(canteen_id, created_since=today)

    async def get_stats(self, canteen_id: str) -> QueueStats:
        tokens = await self.store.list_by_canteen(canteen_id)
        today = start_of_day(self.clock())
        todays = [t for t in tokens if t.created_at >= today]

        return QueueStats(
            total_orders_today=len(todays),
            active_queue_length=sum(1 for t in tokens if t.status == TokenStatus.WAITING),
            average_wait_minutes=average_wait_minutes(tokens),
            peak_hour=self._peak_hour(todays),
            completed_today=sum(1 for t in todays if t.status == TokenStatus.COMPLETED),
            cancelled_today=sum(1 for t in todays if t.status == TokenStatus.CANCELLED),
        )

    def _peak_hour(self, todays: Sequence[Token]) -> str:
        counts = Counter(t.created_at.hour for t in todays)
        if not counts:
            return self.default_peak_window
        # Earliest hour wins ties
        busiest = min(counts, key=lambda hour: (-counts[hour], hour))
        return peak_window_label(busiest)

    async def hourly_traffic(self, canteen_id: str) -> list[HourlyTraffic]:
        """
        Today's orders per creation hour.

        Business hours are always present (with zero counts) so the chart
        axis is stable; hours outside them appear when they have orders.
        """
        counts = Counter(t.created_at.hour for t in await self._todays_tokens(canteen_id))
        hours = sorted(set(self.business_hours) | set(counts))
        return [
            HourlyTraffic(hour=hour, label=hour_label(hour), orders=counts.get(hour, 0))
            for hour in hours
        ]
