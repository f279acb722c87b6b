"""
SQLAlchemy Database Models

Tables backing the SQL token store:
- canteens: registry of queue service points
- tokens: order tickets and their lifecycle status
- history: bounded log of completed-order prep times

Every table carries an autoincrement ``seq`` column. Insertion order is
part of the store contract (queue position ties are broken by it), so
all ordered reads sort on ``seq``.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from smartqueue.database import Base


class TokenStatus(str, enum.Enum):
    """Token lifecycle status."""
    WAITING = "WAITING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TokenStatus.COMPLETED, TokenStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[TokenStatus, frozenset[TokenStatus]] = {
    TokenStatus.WAITING: frozenset(
        {TokenStatus.READY, TokenStatus.COMPLETED, TokenStatus.CANCELLED}
    ),
    TokenStatus.READY: frozenset({TokenStatus.COMPLETED, TokenStatus.CANCELLED}),
    TokenStatus.COMPLETED: frozenset(),
    TokenStatus.CANCELLED: frozenset(),
}


def can_transition(current: TokenStatus, requested: TokenStatus) -> bool:
    """Whether ``current -> requested`` is an edge of the lifecycle graph."""
    return requested in ALLOWED_TRANSITIONS[current]


class CanteenRow(Base):
    """A registered canteen."""
    __tablename__ = "canteens"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    campus = Column(String(100), nullable=False)
    theme_tag = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<Canteen {self.id} - {self.name} ({self.campus})>"


class TokenRow(Base):
    """
    One placed order's queue ticket.

    ``service_date`` is the calendar day of ``created_at``; together with the
    canteen it scopes the uniqueness of ``token_number``.
    """
    __tablename__ = "tokens"
    __table_args__ = (
        UniqueConstraint(
            "canteen_id", "service_date", "token_number",
            name="uq_tokens_canteen_day_number",
        ),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, index=True)
    canteen_id = Column(
        String(36),
        ForeignKey("canteens.id"),
        nullable=False,
        index=True,
    )
    token_number = Column(String(16), nullable=False)
    service_date = Column(Date, nullable=False, index=True)
    food_item = Column(String(100), nullable=False)

    status = Column(
        Enum(TokenStatus, name="token_status"),
        default=TokenStatus.WAITING,
        nullable=False,
        index=True,
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # =========================================================================
    # ESTIMATION
    # =========================================================================
    estimated_wait_minutes = Column(Integer, nullable=False)
    estimation_reasoning = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Token {self.token_number} - {self.food_item} - {self.status.value}>"


class HistoryRow(Base):
    """Prep time of one completed order, used as estimation signal."""
    __tablename__ = "history"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)
    food_item = Column(String(100), nullable=False, index=True)
    prep_time_minutes = Column(Integer, nullable=False)
    hour_of_day = Column(Integer, nullable=False)
    recorded_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<History {self.food_item} - {self.prep_time_minutes}m @ {self.hour_of_day}h>"
