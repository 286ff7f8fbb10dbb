from __future__ import annotations

"""In-process pub/sub feeding the Server-Sent Events relay.

publish() may be called from any thread: each subscriber's queue is bound to
the event loop that subscribed, and items are handed over with
call_soon_threadsafe. A slow subscriber loses its oldest items, never blocks
the publisher.
"""

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

RELAY_EVENT_TYPES = ("rating", "share", "active")

DEFAULT_QUEUE_SIZE = 100
DEFAULT_HEARTBEAT_SECONDS = 15.0

Event = Tuple[str, Any]


@dataclass(eq=False)
class Subscription:
    queue: "asyncio.Queue[Event]"
    loop: asyncio.AbstractEventLoop
    dropped: int = field(default=0)

    def _offer(self, item: Event) -> None:
        # Runs on the subscriber's loop.
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(item)

    async def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class EventBroker:
    def __init__(self, *, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = max(1, int(queue_size))
        self._subs: Set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        """Register a subscriber on the running event loop."""
        loop = asyncio.get_running_loop()
        sub = Subscription(queue=asyncio.Queue(maxsize=self._queue_size), loop=loop)
        with self._lock:
            self._subs.add(sub)
        logger.debug("sse subscriber added (total=%d)", len(self._subs))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subs.discard(sub)
        logger.debug("sse subscriber removed (total=%d)", len(self._subs))

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, event: str, data: Any) -> int:
        """Fan out one event. Returns the number of subscribers it was handed to."""
        with self._lock:
            subs = list(self._subs)
        delivered = 0
        for sub in subs:
            try:
                sub.loop.call_soon_threadsafe(sub._offer, (event, data))
                delivered += 1
            except RuntimeError:
                # Loop already closed: the client is gone.
                self.unsubscribe(sub)
        return delivered


def format_sse(event: str, data: Any) -> str:
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)
    return f"event: {event}\ndata: {payload}\n\n"


async def sse_stream(
    broker: EventBroker,
    is_disconnected: Callable[[], Awaitable[bool]],
    *,
    heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
    max_events: Optional[int] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames until the client disconnects (or max_events is reached)."""
    sub = broker.subscribe()
    sent = 0
    try:
        yield ": connected\n\n"
        while True:
            if await is_disconnected():
                break
            item = await sub.get(timeout=heartbeat_seconds)
            if item is None:
                yield ": keep-alive\n\n"
                continue
            event, data = item
            yield format_sse(event, data)
            sent += 1
            if max_events is not None and sent >= max_events:
                break
    finally:
        broker.unsubscribe(sub)
