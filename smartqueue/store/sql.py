"""
SQL Token Store

Production store on SQLAlchemy's async engine.
Used when ENV_MODE=production or ENV_MODE=staging (or STORE_BACKEND=sql).

Requirements:
    - DATABASE_URL must point at a reachable database
    - PostgreSQL via psycopg in production, SQLite via aiosqlite in tests

Status changes read the row with ``SELECT ... FOR UPDATE`` and check the
lifecycle graph inside the same transaction. Estimate updates are a single
conditional UPDATE on ``status = WAITING``, so a late predictor response
can never overwrite a terminal token, even from another process.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from smartqueue.core.exceptions import TokenNotFoundError
from smartqueue.database import build_engine, build_session_maker, init_db
from smartqueue.entities import Canteen, HistoryRecord, Token
from smartqueue.models import CanteenRow, HistoryRow, TokenRow, TokenStatus
from smartqueue.store.base import BaseStore, ensure_transition

logger = logging.getLogger(__name__)


def _canteen_from_row(row: CanteenRow) -> Canteen:
    return Canteen(
        id=row.id,
        name=row.name,
        campus=row.campus,
        theme_tag=row.theme_tag,
        created_at=row.created_at,
    )


def _token_from_row(row: TokenRow) -> Token:
    return Token(
        id=row.id,
        canteen_id=row.canteen_id,
        token_number=row.token_number,
        food_item=row.food_item,
        status=row.status,
        created_at=row.created_at,
        completed_at=row.completed_at,
        estimated_wait_minutes=row.estimated_wait_minutes,
        estimation_reasoning=row.estimation_reasoning,
    )


def _history_from_row(row: HistoryRow) -> HistoryRecord:
    return HistoryRecord(
        id=row.id,
        food_item=row.food_item,
        prep_time_minutes=row.prep_time_minutes,
        hour_of_day=row.hour_of_day,
        recorded_at=row.recorded_at,
    )


class SqlStore(BaseStore):
    """
    SQLAlchemy-backed store.

    Example:
        >>> store = SqlStore("sqlite+aiosqlite:///./data/smartqueue.db")
        >>> await store.open()
        >>> token = await store.get("3f2c...")
        >>> await store.close()
    """

    def __init__(
        self,
        database_url: str,
        history_retention: int = 1000,
        echo: bool = False,
    ):
        super().__init__(history_retention=history_retention)
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_maker = None

    @property
    def provider_name(self) -> str:
        return "sql"

    async def open(self) -> None:
        self._engine = build_engine(self.database_url, echo=self.echo)
        self._session_maker = build_session_maker(self._engine)
        await init_db(self._engine)
        logger.info(f"SqlStore opened ({self._engine.url.render_as_string(hide_password=True)})")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
        logger.info("SqlStore closed")

    def _session(self):
        if self._session_maker is None:
            raise RuntimeError("SqlStore is not open")
        return self._session_maker()

    # =========================================================================
    # CANTEENS
    # =========================================================================

    async def add_canteen(self, canteen: Canteen) -> None:
        async with self._session() as session:
            session.add(CanteenRow(
                id=canteen.id,
                name=canteen.name,
                campus=canteen.campus,
                theme_tag=canteen.theme_tag,
                created_at=canteen.created_at,
            ))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ValueError(f"Canteen {canteen.id} already exists") from e

    async def get_canteen(self, canteen_id: str) -> Optional[Canteen]:
        async with self._session() as session:
            result = await session.execute(
                select(CanteenRow).where(CanteenRow.id == canteen_id)
            )
            row = result.scalar_one_or_none()
            return _canteen_from_row(row) if row else None

    async def list_canteens(self) -> list[Canteen]:
        async with self._session() as session:
            result = await session.execute(select(CanteenRow).order_by(CanteenRow.seq))
            return [_canteen_from_row(row) for row in result.scalars().all()]

    # =========================================================================
    # TOKENS
    # =========================================================================

    async def append(self, token: Token) -> None:
        async with self._session() as session:
            session.add(TokenRow(
                id=token.id,
                canteen_id=token.canteen_id,
                token_number=token.token_number,
                service_date=token.created_at.date(),
                food_item=token.food_item,
                status=token.status,
                created_at=token.created_at,
                completed_at=token.completed_at,
                estimated_wait_minutes=token.estimated_wait_minutes,
                estimation_reasoning=token.estimation_reasoning,
            ))
            await session.commit()

    async def get(self, token_id: str) -> Optional[Token]:
        async with self._session() as session:
            result = await session.execute(select(TokenRow).where(TokenRow.id == token_id))
            row = result.scalar_one_or_none()
            return _token_from_row(row) if row else None

    async def list_by_canteen(
        self,
        canteen_id: str,
        statuses: Optional[Iterable[TokenStatus]] = None,
        created_since: Optional[datetime] = None,
    ) -> list[Token]:
        query = select(TokenRow).where(TokenRow.canteen_id == canteen_id)

        if statuses is not None:
            query = query.where(TokenRow.status.in_(list(statuses)))
        if created_since is not None:
            query = query.where(TokenRow.created_at >= created_since)

        async with self._session() as session:
            result = await session.execute(query.order_by(TokenRow.seq))
            return [_token_from_row(row) for row in result.scalars().all()]

    async def update_status(
        self,
        token_id: str,
        new_status: TokenStatus,
        completed_at: Optional[datetime] = None,
        reasoning: Optional[str] = None,
    ) -> Token:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(
                    select(TokenRow).where(TokenRow.id == token_id).with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise TokenNotFoundError(token_id)

                ensure_transition(token_id, row.status, new_status)

                row.status = new_status
                if new_status == TokenStatus.COMPLETED:
                    row.completed_at = completed_at
                if reasoning:
                    row.estimation_reasoning = reasoning

            return _token_from_row(row)

    async def update_estimate(
        self,
        token_id: str,
        minutes: int,
        reasoning: Optional[str] = None,
    ) -> bool:
        values = {"estimated_wait_minutes": minutes}
        if reasoning:
            values["estimation_reasoning"] = reasoning

        async with self._session() as session:
            async with session.begin():
                result = await session.execute(
                    update(TokenRow)
                    .where(TokenRow.id == token_id, TokenRow.status == TokenStatus.WAITING)
                    .values(**values)
                )
                if result.rowcount:
                    return True

                exists = await session.execute(
                    select(func.count(TokenRow.seq)).where(TokenRow.id == token_id)
                )
                if not exists.scalar():
                    raise TokenNotFoundError(token_id)
                return False

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def append_history(self, record: HistoryRecord) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(HistoryRow(
                    id=record.id,
                    food_item=record.food_item,
                    prep_time_minutes=record.prep_time_minutes,
                    hour_of_day=record.hour_of_day,
                    recorded_at=record.recorded_at,
                ))
                await session.flush()

                # Newest `history_retention` rows survive
                cutoff_result = await session.execute(
                    select(HistoryRow.seq)
                    .order_by(HistoryRow.seq.desc())
                    .offset(self.history_retention)
                    .limit(1)
                )
                cutoff = cutoff_result.scalar_one_or_none()
                if cutoff is not None:
                    await session.execute(delete(HistoryRow).where(HistoryRow.seq <= cutoff))

    async def list_history(self, food_item: Optional[str] = None) -> list[HistoryRecord]:
        query = select(HistoryRow)
        if food_item is not None:
            query = query.where(HistoryRow.food_item == food_item)

        async with self._session() as session:
            result = await session.execute(query.order_by(HistoryRow.seq))
            return [_history_from_row(row) for row in result.scalars().all()]
