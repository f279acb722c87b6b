"""
Token Store Abstract Base Class

Defines the interface contract for all store implementations.
Both MemoryStore and SqlStore must implement these methods.

The store holds three ordered collections:
    - canteens: owned by the canteen registry
    - tokens: owned by the queue engine
    - history: owned by the queue engine, bounded FIFO retention

Guarantees every implementation must uphold:
    1. Reads reflect the latest committed writes
    2. Insertion order is preserved and returned by every listing
    3. Status changes are checked against the lifecycle graph
    4. Estimate updates only apply while the token is WAITING

Author: Khalil_Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from smartqueue.core.exceptions import InvalidTransitionError
from smartqueue.entities import Canteen, HistoryRecord, Token
from smartqueue.models import TokenStatus, can_transition


def ensure_transition(token_id: str, current: TokenStatus, requested: TokenStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> requested`` is allowed."""
    if not can_transition(current, requested):
        raise InvalidTransitionError(token_id, current.value, requested.value)


class BaseStore(ABC):
    """
    Abstract base class for token stores.

    Stores have an explicit lifecycle: ``open()`` at service start and
    ``close()`` at shutdown. They also work as async context managers.

    Example:
        >>> async with MemoryStore() as store:
        ...     await store.add_canteen(canteen)
        ...     await store.append(token)
        ...     waiting = await store.list_by_canteen(
        ...         canteen.id, statuses=[TokenStatus.WAITING]
        ...     )
    """

    def __init__(self, history_retention: int = 1000):
        self.history_retention = history_retention

    async def __aenter__(self) -> "BaseStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the store backend.

        Returns:
            str: Backend name (e.g., "memory", "sql")
        """
        pass

    @abstractmethod
    async def open(self) -> None:
        """Acquire resources and load any persisted state."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        pass

    # =========================================================================
    # CANTEENS
    # =========================================================================

    @abstractmethod
    async def add_canteen(self, canteen: Canteen) -> None:
        """
        Insert a canteen.

        Raises:
            ValueError: If a canteen with the same id already exists
        """
        pass

    @abstractmethod
    async def get_canteen(self, canteen_id: str) -> Optional[Canteen]:
        """Return the canteen, or None if unknown."""
        pass

    @abstractmethod
    async def list_canteens(self) -> list[Canteen]:
        """All canteens in registration order."""
        pass

    # =========================================================================
    # TOKENS
    # =========================================================================

    @abstractmethod
    async def append(self, token: Token) -> None:
        """Insert a new token at the end of the log."""
        pass

    @abstractmethod
    async def get(self, token_id: str) -> Optional[Token]:
        """Return the token, or None if unknown."""
        pass

    @abstractmethod
    async def list_by_canteen(
        self,
        canteen_id: str,
        statuses: Optional[Iterable[TokenStatus]] = None,
        created_since: Optional[datetime] = None,
    ) -> list[Token]:
        """
        Tokens of one canteen in insertion order.

        Args:
            canteen_id: Canteen to list
            statuses: Only include tokens in one of these statuses
            created_since: Only include tokens created at or after this time

        Returns:
            list[Token]: Matching tokens, oldest first
        """
        pass

    @abstractmethod
    async def update_status(
        self,
        token_id: str,
        new_status: TokenStatus,
        completed_at: Optional[datetime] = None,
        reasoning: Optional[str] = None,
    ) -> Token:
        """
        Move a token along the lifecycle graph.

        Args:
            token_id: Token to update
            new_status: Requested status
            completed_at: Completion time (COMPLETED only)
            reasoning: Replaces the stored reasoning when given

        Returns:
            Token: The updated token

        Raises:
            TokenNotFoundError: If the token is unknown
            InvalidTransitionError: If the edge is not allowed
        """
        pass

    @abstractmethod
    async def update_estimate(
        self,
        token_id: str,
        minutes: int,
        reasoning: Optional[str] = None,
    ) -> bool:
        """
        Replace the wait estimate of a WAITING token.

        Returns:
            bool: True if applied, False if the token already left WAITING

        Raises:
            TokenNotFoundError: If the token is unknown
        """
        pass

    # =========================================================================
    # HISTORY
    # =========================================================================

    @abstractmethod
    async def append_history(self, record: HistoryRecord) -> None:
        """Append a record, evicting the oldest beyond the retention limit."""
        pass

    @abstractmethod
    async def list_history(self, food_item: Optional[str] = None) -> list[HistoryRecord]:
        """Retained records, oldest first, optionally for one food item."""
        pass

    async def health_check(self) -> bool:
        """
        Verify the store is usable.

        Returns:
            bool: True if the store answers reads
        """
        await self.list_canteens()
        return True
