"""
Change Signal Tests
"""
import asyncio

import pytest

from smartqueue.events import (
    QUEUE_UPDATED,
    ChangeSignal,
    QueueEventStream,
    RedisChangePublisher,
    RedisChangeRelay,
    decode_change,
    encode_change,
)


@pytest.mark.asyncio
async def test_broadcast_reaches_sync_and_async_listeners():
    signal = ChangeSignal()
    received: list[str] = []

    async def async_listener(event: str) -> None:
        received.append(f"async:{event}")

    signal.subscribe(lambda event: received.append(f"sync:{event}"))
    signal.subscribe(async_listener)

    await signal.broadcast()
    await signal.drain()

    assert sorted(received) == ["async:queue-updated", "sync:queue-updated"]


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others():
    signal = ChangeSignal()
    received: list[str] = []

    def broken(event: str) -> None:
        raise RuntimeError("dashboard crashed")

    signal.subscribe(broken)
    signal.subscribe(received.append)

    await signal.broadcast()

    assert received == [QUEUE_UPDATED]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    signal = ChangeSignal()
    received: list[str] = []
    unsubscribe = signal.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    await signal.broadcast()

    assert received == []
    assert signal.listener_count == 0


@pytest.mark.asyncio
async def test_event_stream_coalesces_bursts():
    signal = ChangeSignal()
    stream = QueueEventStream(signal)

    for _ in range(5):
        await signal.broadcast()

    assert await stream.next_event(timeout=0.1) == QUEUE_UPDATED
    assert await stream.next_event(timeout=0.05) is None

    stream.close()
    assert signal.listener_count == 0


@pytest.mark.asyncio
async def test_event_stream_wakes_waiting_consumer():
    signal = ChangeSignal()
    stream = QueueEventStream(signal)

    waiter = asyncio.create_task(stream.next_event(timeout=1.0))
    await asyncio.sleep(0)
    await signal.broadcast()

    assert await waiter == QUEUE_UPDATED
    stream.close()


@pytest.mark.asyncio
async def test_hanging_async_listener_does_not_hold_up_broadcast():
    signal = ChangeSignal(listener_timeout=0.05)
    received: list[str] = []
    never = asyncio.Event()

    async def stuck(event: str) -> None:
        await never.wait()

    signal.subscribe(stuck)
    signal.subscribe(received.append)

    await asyncio.wait_for(signal.broadcast(), timeout=0.5)

    assert received == [QUEUE_UPDATED]
    assert signal.pending_deliveries == 1

    await asyncio.wait_for(signal.drain(), timeout=1.0)
    assert signal.pending_deliveries == 0


@pytest.mark.asyncio
async def test_failing_async_listener_is_contained():
    signal = ChangeSignal()

    async def broken(event: str) -> None:
        raise ConnectionError("redis down")

    signal.subscribe(broken)

    await signal.broadcast()
    await signal.drain()

    assert signal.pending_deliveries == 0


@pytest.mark.asyncio
async def test_close_cancels_pending_deliveries():
    signal = ChangeSignal(listener_timeout=30.0)
    never = asyncio.Event()

    async def stuck(event: str) -> None:
        await never.wait()

    signal.subscribe(stuck)
    await signal.broadcast()

    await asyncio.wait_for(signal.close(), timeout=1.0)

    assert signal.pending_deliveries == 0


@pytest.mark.asyncio
async def test_excluded_listener_is_skipped():
    signal = ChangeSignal()
    kept: list[str] = []
    skipped: list[str] = []
    signal.subscribe(kept.append)
    signal.subscribe(skipped.append)

    await signal.broadcast(exclude=[skipped.append])

    assert kept == [QUEUE_UPDATED]
    assert skipped == []


# ─── Redis fan-out ─────────────────────────────────────────────────────────────
class FakeRedis:
    """Records publishes instead of talking to a server."""

    def __init__(self):
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    async def aclose(self) -> None:
        pass


@pytest.fixture
def publisher() -> RedisChangePublisher:
    instance = RedisChangePublisher("redis://localhost:6379/0", "queue-changes", origin="api-1")
    instance._client = FakeRedis()
    return instance


def test_change_messages_carry_their_origin():
    assert decode_change(encode_change(QUEUE_UPDATED, "worker-7")) == (QUEUE_UPDATED, "worker-7")
    assert decode_change("queue-updated") == (QUEUE_UPDATED, None)
    assert decode_change("[1, 2]") == ("[1, 2]", None)


@pytest.mark.asyncio
async def test_publisher_sends_origin_tagged_events(publisher):
    signal = ChangeSignal()
    signal.subscribe(publisher)

    await signal.broadcast()
    await signal.drain()

    assert publisher._client.published == [
        ("queue-changes", encode_change(QUEUE_UPDATED, "api-1"))
    ]


@pytest.mark.asyncio
async def test_relay_rebroadcasts_worker_changes_without_republishing(publisher):
    signal = ChangeSignal()
    stream = QueueEventStream(signal)
    signal.subscribe(publisher)
    relay = RedisChangeRelay("redis://localhost:6379/0", "queue-changes", signal, publisher)

    relayed = await relay.handle_message(encode_change(QUEUE_UPDATED, "worker-7"))
    await signal.drain()

    assert relayed is True
    assert await stream.next_event(timeout=0.1) == QUEUE_UPDATED
    assert publisher._client.published == []
    stream.close()


@pytest.mark.asyncio
async def test_relay_ignores_its_own_publishes(publisher):
    signal = ChangeSignal()
    stream = QueueEventStream(signal)
    relay = RedisChangeRelay("redis://localhost:6379/0", "queue-changes", signal, publisher)

    relayed = await relay.handle_message(encode_change(QUEUE_UPDATED, "api-1"))

    assert relayed is False
    assert await stream.next_event(timeout=0.05) is None
    stream.close()


@pytest.mark.asyncio
async def test_relay_without_publisher_forwards_everything():
    signal = ChangeSignal()
    received: list[str] = []
    signal.subscribe(received.append)
    relay = RedisChangeRelay("redis://localhost:6379/0", "queue-changes", signal)

    assert await relay.handle_message("queue-updated") is True
    assert received == [QUEUE_UPDATED]


@pytest.mark.asyncio
async def test_relay_reconnects_until_closed(monkeypatch):
    attempts: list[int] = []

    async def refuse(self) -> None:
        attempts.append(1)
        raise ConnectionError("connection refused")

    monkeypatch.setattr(RedisChangeRelay, "_listen", refuse)
    relay = RedisChangeRelay(
        "redis://localhost:6379/0", "queue-changes", ChangeSignal(), retry_delay=0.01
    )

    relay.start()
    await asyncio.sleep(0.05)
    assert relay.running

    await relay.close()
    assert not relay.running
    assert len(attempts) >= 2
