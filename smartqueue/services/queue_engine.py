"""
Queue Engine

Owns the token lifecycle of every canteen:

    WAITING ──► READY ──► COMPLETED
       │          │
       └──────────┴─────► CANCELLED

Every mutation of a canteen's tokens runs under that canteen's lock, so
token numbers are assigned from a live count without gaps or repeats.
The Change Signal is broadcast after each committed mutation, outside
the lock.

Wait estimates start as a fixed placeholder and are refined in the
background. A refinement that lands after the token left WAITING is
dropped by the store's status guard.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import math
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable, Optional

from smartqueue.core.config import Settings, get_settings
from smartqueue.core.exceptions import (
    InvalidTransitionError,
    TokenNotFoundError,
    UnknownCanteenError,
)
from smartqueue.entities import HistoryRecord, Token
from smartqueue.events import ChangeSignal
from smartqueue.models import TokenStatus
from smartqueue.services.estimation import CompletionAdvice, WaitTimeEstimator
from smartqueue.services.statistics import start_of_day
from smartqueue.store.base import BaseStore

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (TokenStatus.WAITING, TokenStatus.READY)


def format_token_number(prefix: str, sequence: int) -> str:
    """Display label of the ``sequence``-th token of the day, e.g. A-007."""
    return f"{prefix}-{sequence:03d}"


class QueueEngine:
    """
    Token creation, transitions, positions and estimate refinement.

    Args:
        store: Opened token store
        signal: Change Signal fired after each mutation
        estimator: Wait-time fallback chain
        settings: Token prefix and placeholder estimate
        clock: Local time source
        refresh_dispatcher: Hands a token id to an out-of-process worker
            instead of refining in a local task
    """

    def __init__(
        self,
        store: BaseStore,
        signal: ChangeSignal,
        estimator: WaitTimeEstimator,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        refresh_dispatcher: Optional[Callable[[str], None]] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.signal = signal
        self.estimator = estimator
        self.token_prefix = settings.token_prefix
        self.placeholder_minutes = settings.default_estimate_minutes
        self.clock = clock
        self.refresh_dispatcher = refresh_dispatcher

        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._background: set[asyncio.Task] = set()

    def _lock_for(self, canteen_id: str) -> asyncio.Lock:
        return self._locks[canteen_id]

    async def _require_token(self, token_id: str) -> Token:
        token = await self.store.get(token_id)
        if token is None:
            raise TokenNotFoundError(token_id)
        return token

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_token(self, canteen_id: str, food_item: str) -> Token:
        """
        Place an order and assign the next token number of the day.

        Raises:
            UnknownCanteenError: If the canteen is not registered
            ValueError: If the food item is blank
        """
        food_item = (food_item or "").strip()
        if not food_item:
            raise ValueError("Food item is required")

        # Canteens are never removed
        if await self.store.get_canteen(canteen_id) is None:
            raise UnknownCanteenError(canteen_id)

        async with self._lock_for(canteen_id):
            now = self.clock()
            todays = await self.store.list_by_canteen(
                canteen_id, created_since=start_of_day(now)
            )
            token = Token(
                id=uuid.uuid4().hex,
                canteen_id=canteen_id,
                token_number=format_token_number(self.token_prefix, len(todays) + 1),
                food_item=food_item,
                status=TokenStatus.WAITING,
                created_at=now,
                estimated_wait_minutes=self.placeholder_minutes,
            )
            await self.store.append(token)

        logger.info(f"Token {token.token_number} created for {food_item} ({canteen_id})")
        await self.signal.broadcast()
        self._schedule_refresh(token.id)
        return token

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def _transition(
        self,
        token_id: str,
        new_status: TokenStatus,
        reasoning: Optional[str] = None,
    ) -> Token:
        token = await self._require_token(token_id)
        async with self._lock_for(token.canteen_id):
            updated = await self.store.update_status(token_id, new_status, reasoning=reasoning)
        logger.info(f"Token {updated.token_number}: {token.status.value} -> {new_status.value}")
        await self.signal.broadcast()
        return updated

    async def mark_ready(self, token_id: str) -> Token:
        """
        WAITING -> READY.

        Raises:
            TokenNotFoundError: Unknown token
            InvalidTransitionError: Token is not WAITING
        """
        token = await self._require_token(token_id)
        if token.status != TokenStatus.WAITING:
            raise InvalidTransitionError(token_id, token.status.value, TokenStatus.READY.value)
        return await self._transition(token_id, TokenStatus.READY)

    async def cancel_order(self, token_id: str, reasoning: Optional[str] = None) -> Token:
        """Cancel a WAITING or READY token."""
        return await self._transition(token_id, TokenStatus.CANCELLED, reasoning)

    async def complete_order(self, token_id: str, reasoning: Optional[str] = None) -> Token:
        """
        Mark an order COMPLETED and record its prep time.

        The completion advisor is consulted first, but staff intent always
        wins: a "defer" recommendation is only logged. The advisor's
        reasoning is stored when the caller supplies none.

        Raises:
            TokenNotFoundError: Unknown token
            InvalidTransitionError: Token is already COMPLETED or CANCELLED
        """
        token = await self._require_token(token_id)
        if token.is_terminal:
            raise InvalidTransitionError(
                token_id, token.status.value, TokenStatus.COMPLETED.value
            )

        advice = await self._advise(token)
        if not advice.should_complete:
            logger.info(
                f"Advisor suggested deferring {token.token_number} "
                f"({advice.reasoning}); completing as requested"
            )

        async with self._lock_for(token.canteen_id):
            completed_at = self.clock()
            updated = await self.store.update_status(
                token_id,
                TokenStatus.COMPLETED,
                completed_at=completed_at,
                reasoning=reasoning or advice.reasoning,
            )
            await self.store.append_history(HistoryRecord(
                id=uuid.uuid4().hex,
                food_item=updated.food_item,
                prep_time_minutes=math.floor(updated.wait_minutes + 0.5),
                hour_of_day=updated.created_at.hour,
                recorded_at=completed_at,
            ))

        logger.info(
            f"Token {updated.token_number} completed after {updated.wait_minutes:.1f} min"
        )
        await self.signal.broadcast()
        return updated

    async def _advise(self, token: Token) -> CompletionAdvice:
        actual = (self.clock() - token.created_at).total_seconds() / 60
        advice = await self.estimator.advise_completion(
            token.food_item,
            token.estimated_wait_minutes,
            actual,
            token.status == TokenStatus.READY,
        )
        source = "predictor" if advice.from_predictor else "local rule"
        logger.debug(
            f"Completion advice for {token.token_number} ({source}): "
            f"complete={advice.should_complete} - {advice.reasoning}"
        )
        return advice

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_token(self, token_id: str) -> Token:
        return await self._require_token(token_id)

    async def _ordered(
        self,
        canteen_id: str,
        statuses: Iterable[TokenStatus],
    ) -> list[Token]:
        tokens = await self.store.list_by_canteen(canteen_id, statuses=statuses)
        # Stable sort keeps insertion order for equal timestamps
        return sorted(tokens, key=lambda t: t.created_at)

    async def queue_position(self, canteen_id: str, token_id: str) -> int:
        """1-based rank among the canteen's WAITING tokens, or 0."""
        waiting = await self._ordered(canteen_id, [TokenStatus.WAITING])
        for index, token in enumerate(waiting):
            if token.id == token_id:
                return index + 1
        return 0

    async def waiting_queue(self, canteen_id: str) -> list[Token]:
        return await self._ordered(canteen_id, [TokenStatus.WAITING])

    async def active_queue(self, canteen_id: str) -> list[Token]:
        """WAITING and READY tokens in creation order (kitchen view)."""
        return await self._ordered(canteen_id, ACTIVE_STATUSES)

    # =========================================================================
    # ESTIMATE REFINEMENT
    # =========================================================================

    def _schedule_refresh(self, token_id: str) -> None:
        if self.refresh_dispatcher is not None:
            try:
                self.refresh_dispatcher(token_id)
                return
            except Exception as e:
                logger.warning(f"Refresh dispatch failed for {token_id}, refining locally: {e}")

        task = asyncio.create_task(self._refresh_in_background(token_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_in_background(self, token_id: str) -> None:
        try:
            await self.refresh_estimate(token_id)
        except Exception:
            logger.exception(f"Estimate refresh failed for {token_id}")

    async def refresh_estimate(self, token_id: str) -> bool:
        """
        Replace the placeholder estimate of a WAITING token.

        Returns:
            bool: True if the new estimate was applied
        """
        token = await self.store.get(token_id)
        if token is None or token.status != TokenStatus.WAITING:
            logger.debug(f"Skipping estimate refresh for {token_id}: not waiting")
            return False

        # Everything the kitchen still holds, this order included
        queue_length = len(await self.active_queue(token.canteen_id))
        history = await self.store.list_history(token.food_item)
        estimate = await self.estimator.estimate(
            token.food_item, queue_length, history, now=self.clock()
        )

        applied = await self.store.update_estimate(token_id, estimate.minutes, estimate.reasoning)
        if not applied:
            logger.debug(f"Stale estimate for {token.token_number} dropped")
            return False

        logger.info(
            f"Token {token.token_number} estimate: {estimate.minutes} min "
            f"({estimate.source.value})"
        )
        await self.signal.broadcast()
        return True

    async def drain(self) -> None:
        """Wait for in-flight background refreshes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        self._background.clear()
