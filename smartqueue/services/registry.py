"""
Canteen Registry

Registers canteens, looks them up, and resolves QR scan payloads.

A canteen's QR code encodes ``{app_base_url}/?canteenId=<id>``. Scanners
hand over the decoded text; a bare canteen id is accepted as well.
"""

import logging
import random
import uuid
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from smartqueue.core.exceptions import UnknownCanteenError
from smartqueue.entities import Canteen
from smartqueue.events import ChangeSignal
from smartqueue.store.base import BaseStore

logger = logging.getLogger(__name__)

THEME_TAGS = [
    "from-blue-500 to-indigo-600",
    "from-amber-600 to-orange-600",
    "from-red-500 to-pink-600",
    "from-green-500 to-emerald-600",
    "from-purple-500 to-violet-600",
]

SCAN_QUERY_PARAM = "canteenId"


class CanteenRegistry:
    """Owns the canteen collection of the store."""

    def __init__(
        self,
        store: BaseStore,
        signal: ChangeSignal,
        base_url: str = "http://localhost:8001",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.signal = signal
        self.base_url = base_url.rstrip("/")
        self.clock = clock

    async def register(self, name: str, campus: str) -> Canteen:
        """Create a canteen with a fresh id and a random theme."""
        name = name.strip()
        campus = campus.strip()
        if not name or not campus:
            raise ValueError("Canteen name and campus are required")

        canteen = Canteen(
            id=uuid.uuid4().hex[:12],
            name=name,
            campus=campus,
            theme_tag=random.choice(THEME_TAGS),
            created_at=self.clock(),
        )
        await self.store.add_canteen(canteen)
        await self.signal.broadcast()

        logger.info(f"Canteen registered: {canteen.name} ({canteen.campus}) -> {canteen.id}")
        return canteen

    async def get(self, canteen_id: str) -> Optional[Canteen]:
        return await self.store.get_canteen(canteen_id)

    async def require(self, canteen_id: str) -> Canteen:
        """Return the canteen or raise UnknownCanteenError."""
        canteen = await self.store.get_canteen(canteen_id)
        if canteen is None:
            raise UnknownCanteenError(canteen_id)
        return canteen

    async def list_all(self) -> list[Canteen]:
        return await self.store.list_canteens()

    def scan_payload(self, canteen_id: str) -> str:
        """Text to encode in the canteen's QR code."""
        return f"{self.base_url}/?{urlencode({SCAN_QUERY_PARAM: canteen_id})}"

    async def resolve_scan_payload(self, raw_payload: str) -> Optional[str]:
        """
        Resolve decoded QR text to a registered canteen id.

        Args:
            raw_payload: A canteen URL carrying ``canteenId`` or a bare id

        Returns:
            str or None: The canteen id, or None when it does not resolve
        """
        payload = (raw_payload or "").strip()
        if not payload:
            return None

        candidate = payload
        parsed = urlparse(payload)
        if parsed.scheme and parsed.netloc:
            values = parse_qs(parsed.query).get(SCAN_QUERY_PARAM)
            if not values:
                logger.info(f"Scan payload has no {SCAN_QUERY_PARAM}: {payload}")
                return None
            candidate = values[0].strip()

        canteen = await self.store.get_canteen(candidate)
        if canteen is None:
            logger.info(f"Scan payload did not resolve: {payload}")
            return None
        return canteen.id
