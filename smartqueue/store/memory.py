"""
In-Memory Token Store

Development store holding all collections in process memory.
Used when ENV_MODE=development (or STORE_BACKEND=memory).

Optionally persists a JSON snapshot after every committed write,
guarded by a file lock so that a second process (a CLI, a worker)
never reads a half-written file. The snapshot layout is:

    {
        "canteens": [...],
        "tokens": [...],
        "history": [...]
    }

each an ordered list of records keyed by ``id``.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import json
import logging
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from filelock import FileLock, Timeout

from smartqueue.core.exceptions import TokenNotFoundError
from smartqueue.entities import Canteen, HistoryRecord, Token
from smartqueue.models import TokenStatus
from smartqueue.store.base import BaseStore, ensure_transition

logger = logging.getLogger(__name__)


class MemoryStore(BaseStore):
    """
    Thread-safe in-memory store.

    Tokens are kept in a dict, which preserves insertion order; history
    lives in a bounded deque so eviction of the oldest record is implicit.

    Attributes:
        snapshot_path: JSON file mirroring the store, or None
        lock_timeout: Seconds to wait for the snapshot file lock
    """

    def __init__(
        self,
        history_retention: int = 1000,
        snapshot_path: Optional[Path] = None,
        lock_timeout: int = 30,
    ):
        super().__init__(history_retention=history_retention)
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self.lock_timeout = lock_timeout

        self._lock = threading.RLock()
        self._snapshot_lock = asyncio.Lock()
        self._canteens: dict[str, Canteen] = {}
        self._tokens: dict[str, Token] = {}
        self._history: deque[HistoryRecord] = deque(maxlen=history_retention)

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def _file_lock(self) -> FileLock:
        return FileLock(f"{self.snapshot_path}.lock", timeout=self.lock_timeout)

    async def open(self) -> None:
        if self.snapshot_path is None:
            logger.info("MemoryStore opened (no snapshot)")
            return

        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        if self.snapshot_path.exists():
            await asyncio.to_thread(self._load_snapshot)

        logger.info(
            f"MemoryStore opened (snapshot={self.snapshot_path}, "
            f"canteens={len(self._canteens)}, tokens={len(self._tokens)})"
        )

    async def close(self) -> None:
        await self._commit()
        logger.info("MemoryStore closed")

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def _load_snapshot(self) -> None:
        with self._file_lock:
            data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))

        with self._lock:
            self._canteens = {
                c["id"]: Canteen.from_dict(c) for c in data.get("canteens", [])
            }
            self._tokens = {
                t["id"]: Token.from_dict(t) for t in data.get("tokens", [])
            }
            self._history = deque(
                (HistoryRecord.from_dict(h) for h in data.get("history", [])),
                maxlen=self.history_retention,
            )

    def _snapshot_data(self) -> dict:
        with self._lock:
            return {
                "canteens": [c.to_dict() for c in self._canteens.values()],
                "tokens": [t.to_dict() for t in self._tokens.values()],
                "history": [h.to_dict() for h in self._history],
            }

    def _write_snapshot(self, data: dict) -> None:
        try:
            with self._file_lock:
                tmp_path = self.snapshot_path.with_suffix(".tmp")
                tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
                tmp_path.replace(self.snapshot_path)
        except Timeout:
            logger.error(f"Snapshot lock timeout ({self.lock_timeout}s)")
            raise

    async def _commit(self) -> None:
        """Mirror the current state to the snapshot file, off the event loop."""
        if self.snapshot_path is None:
            return
        async with self._snapshot_lock:
            await asyncio.to_thread(self._write_snapshot, self._snapshot_data())

    # =========================================================================
    # CANTEENS
    # =========================================================================

    async def add_canteen(self, canteen: Canteen) -> None:
        with self._lock:
            if canteen.id in self._canteens:
                raise ValueError(f"Canteen {canteen.id} already exists")
            self._canteens[canteen.id] = replace(canteen)
        await self._commit()

    async def get_canteen(self, canteen_id: str) -> Optional[Canteen]:
        with self._lock:
            canteen = self._canteens.get(canteen_id)
            return replace(canteen) if canteen else None

    async def list_canteens(self) -> list[Canteen]:
        with self._lock:
            return [replace(c) for c in self._canteens.values()]

    # =========================================================================
    # TOKENS
    # =========================================================================

    async def append(self, token: Token) -> None:
        with self._lock:
            if token.id in self._tokens:
                raise ValueError(f"Token {token.id} already exists")
            self._tokens[token.id] = replace(token)
        await self._commit()

    async def get(self, token_id: str) -> Optional[Token]:
        with self._lock:
            token = self._tokens.get(token_id)
            return replace(token) if token else None

    async def list_by_canteen(
        self,
        canteen_id: str,
        statuses: Optional[Iterable[TokenStatus]] = None,
        created_since: Optional[datetime] = None,
    ) -> list[Token]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                replace(t)
                for t in self._tokens.values()
                if t.canteen_id == canteen_id
                and (wanted is None or t.status in wanted)
                and (created_since is None or t.created_at >= created_since)
            ]

    async def update_status(
        self,
        token_id: str,
        new_status: TokenStatus,
        completed_at: Optional[datetime] = None,
        reasoning: Optional[str] = None,
    ) -> Token:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                raise TokenNotFoundError(token_id)

            ensure_transition(token_id, token.status, new_status)

            token.status = new_status
            if new_status == TokenStatus.COMPLETED:
                token.completed_at = completed_at
            if reasoning:
                token.estimation_reasoning = reasoning
            updated = replace(token)

        await self._commit()
        return updated

    async def update_estimate(
        self,
        token_id: str,
        minutes: int,
        reasoning: Optional[str] = None,
    ) -> bool:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                raise TokenNotFoundError(token_id)
            if token.status != TokenStatus.WAITING:
                return False

            token.estimated_wait_minutes = minutes
            if reasoning:
                token.estimation_reasoning = reasoning

        await self._commit()
        return True

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def append_history(self, record: HistoryRecord) -> None:
        with self._lock:
            self._history.append(replace(record))
        await self._commit()

    async def list_history(self, food_item: Optional[str] = None) -> list[HistoryRecord]:
        with self._lock:
            return [
                replace(h)
                for h in self._history
                if food_item is None or h.food_item == food_item
            ]
