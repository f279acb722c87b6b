"""
Queue Change Signal

A zero-payload "queue-updated" broadcast fired after every committed
mutation. Listeners re-fetch whatever they need; nothing is pushed
except the event name.

Listeners may be plain callables or coroutine functions. Plain listeners
run inline; coroutine listeners are scheduled as tracked tasks bounded by
``listener_timeout``, so ``broadcast`` returns without waiting on them.
A listener that raises is logged and skipped so the remaining listeners
still run.

Across processes, ``RedisChangePublisher`` forwards events to a Redis
channel and ``RedisChangeRelay`` feeds events published by other
processes (Celery workers, other API instances) back into the local
signal.

Usage:
    signal = ChangeSignal()
    unsubscribe = signal.subscribe(lambda event: print(event))
    await signal.broadcast()
    unsubscribe()
"""

import asyncio
import inspect
import json
import logging
import uuid
from typing import Awaitable, Callable, Iterable, Optional, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

QUEUE_UPDATED = "queue-updated"

REDIS_SOCKET_TIMEOUT = 2.0

Listener = Callable[[str], Union[None, Awaitable[None]]]


class ChangeSignal:
    """
    Explicit observer registry for queue-updated events.

    Args:
        listener_timeout: Seconds an async listener may take per event
    """

    def __init__(self, listener_timeout: float = 5.0):
        self.listener_timeout = listener_timeout
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that unsubscribes the listener
        """
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def pending_deliveries(self) -> int:
        return len(self._pending)

    async def broadcast(
        self,
        event: str = QUEUE_UPDATED,
        exclude: Iterable[Listener] = (),
    ) -> None:
        """Deliver ``event`` to every listener not in ``exclude``."""
        skipped = list(exclude)
        for listener in list(self._listeners):
            if listener in skipped:
                continue
            try:
                result = listener(event)
            except Exception:
                logger.exception(f"Change listener {listener!r} failed")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._deliver(listener, result))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, listener: Listener, result: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(result, timeout=self.listener_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Change listener {listener!r} timed out after {self.listener_timeout}s"
            )
        except Exception:
            logger.exception(f"Change listener {listener!r} failed")

    async def drain(self) -> None:
        """Wait for in-flight async deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight async deliveries."""
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()


class QueueEventStream:
    """
    Per-connection buffer bridging the signal to a server-sent event stream.

    Coalesces bursts: at most one pending notification is held, which is
    all a re-fetching consumer needs.
    """

    def __init__(self, signal: ChangeSignal):
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=1)
        self._unsubscribe = signal.subscribe(self._on_event)

    def _on_event(self, event: str) -> None:
        if self._queue.empty():
            self._queue.put_nowait(event)

    async def next_event(self, timeout: float) -> Optional[str]:
        """Wait for the next event, or None after ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self._unsubscribe()


# =============================================================================
# CROSS-PROCESS FAN-OUT
# =============================================================================

def encode_change(event: str, origin: str) -> str:
    """Wire format of a change published on the Redis channel."""
    return json.dumps({"event": event, "origin": origin})


def decode_change(data: str) -> tuple[str, Optional[str]]:
    """
    Parse a channel message into ``(event, origin)``.

    Bare strings are accepted as an event with no origin.
    """
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        return data, None
    if not isinstance(payload, dict):
        return data, None
    return payload.get("event") or QUEUE_UPDATED, payload.get("origin")


class RedisChangePublisher:
    """
    Listener forwarding queue-updated events to a Redis pub/sub channel.

    Lets other processes (dashboards, API instances) observe the queue.
    Every message carries this publisher's ``origin`` so a relay in the
    same process can recognise its own publishes.
    """

    def __init__(self, redis_url: str, channel: str, origin: Optional[str] = None):
        self.channel = channel
        self.origin = origin or uuid.uuid4().hex
        self._client: aioredis.Redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            socket_timeout=REDIS_SOCKET_TIMEOUT,
        )

    async def __call__(self, event: str) -> None:
        await self._client.publish(self.channel, encode_change(event, self.origin))

    async def close(self) -> None:
        await self._client.aclose()


class RedisChangeRelay:
    """
    Re-broadcasts changes published by other processes on the local signal.

    Messages from ``publisher`` (this process) are ignored. Relayed events
    skip ``publisher`` so they are not published a second time.

    Args:
        redis_url: Redis connection URL
        channel: Pub/sub channel to follow
        signal: Local Change Signal
        publisher: This process's publisher, if any
        retry_delay: Seconds between reconnect attempts
    """

    def __init__(
        self,
        redis_url: str,
        channel: str,
        signal: ChangeSignal,
        publisher: Optional[RedisChangePublisher] = None,
        retry_delay: float = 2.0,
    ):
        self.redis_url = redis_url
        self.channel = channel
        self.signal = signal
        self.publisher = publisher
        self.retry_delay = retry_delay
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def handle_message(self, data: str) -> bool:
        """
        Relay one channel message.

        Returns:
            bool: False if the message was this process's own publish
        """
        event, origin = decode_change(data)
        if self.publisher is not None and origin == self.publisher.origin:
            return False

        exclude = (self.publisher,) if self.publisher is not None else ()
        await self.signal.broadcast(event, exclude=exclude)
        return True

    async def _listen(self) -> None:
        client = aioredis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
        )
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info(f"Relaying changes from Redis channel {self.channel}")
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "message":
                    await self.handle_message(message["data"])
        finally:
            await pubsub.aclose()
            await client.aclose()

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except (RedisError, OSError) as e:
                logger.warning(
                    f"Change relay lost Redis ({e}); reconnecting in {self.retry_delay}s"
                )
                await asyncio.sleep(self.retry_delay)

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
