"""
Domain Records

Plain dataclasses passed between the store, the queue engine and the API.
Stores hand out copies, so mutating a returned record never changes
stored state.

The ``to_dict``/``from_dict`` pair defines the JSON layout of the
persisted ``canteens``, ``tokens`` and ``history`` collections.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from smartqueue.models import TokenStatus


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Canteen:
    """
    An independently queued service point.

    Attributes:
        id: Opaque unique identifier
        name: Display name
        campus: Campus the canteen belongs to
        theme_tag: UI theme (gradient class) chosen at registration
        created_at: Registration time
    """
    id: str
    name: str
    campus: str
    theme_tag: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "campus": self.campus,
            "theme_tag": self.theme_tag,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Canteen":
        return cls(
            id=data["id"],
            name=data["name"],
            campus=data["campus"],
            theme_tag=data["theme_tag"],
            created_at=_parse(data["created_at"]),
        )


@dataclass
class Token:
    """
    One placed order's queue ticket.

    Attributes:
        id: Globally unique identifier
        canteen_id: Owning canteen
        token_number: Per-canteen, per-day display label (A-001, A-002, ...)
        food_item: Ordered item name
        status: Lifecycle status
        created_at: Creation time, the lifecycle clock origin
        estimated_wait_minutes: Current estimate, frozen once not WAITING
        completed_at: Set once on transition into COMPLETED
        estimation_reasoning: Explanation attached to the latest estimate
            or to the completion
    """
    id: str
    canteen_id: str
    token_number: str
    food_item: str
    status: TokenStatus
    created_at: datetime
    estimated_wait_minutes: int
    completed_at: Optional[datetime] = None
    estimation_reasoning: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def wait_minutes(self) -> Optional[float]:
        """Minutes from creation to completion, if completed."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds() / 60

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "canteen_id": self.canteen_id,
            "token_number": self.token_number,
            "food_item": self.food_item,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "estimation_reasoning": self.estimation_reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Token":
        return cls(
            id=data["id"],
            canteen_id=data["canteen_id"],
            token_number=data["token_number"],
            food_item=data["food_item"],
            status=TokenStatus(data["status"]),
            created_at=_parse(data["created_at"]),
            completed_at=_parse(data.get("completed_at")),
            estimated_wait_minutes=data["estimated_wait_minutes"],
            estimation_reasoning=data.get("estimation_reasoning"),
        )


@dataclass
class HistoryRecord:
    """Prep time of one completed order."""
    id: str
    food_item: str
    prep_time_minutes: int
    hour_of_day: int
    recorded_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "food_item": self.food_item,
            "prep_time_minutes": self.prep_time_minutes,
            "hour_of_day": self.hour_of_day,
            "recorded_at": _iso(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryRecord":
        return cls(
            id=data["id"],
            food_item=data["food_item"],
            prep_time_minutes=data["prep_time_minutes"],
            hour_of_day=data["hour_of_day"],
            recorded_at=_parse(data["recorded_at"]),
        )
