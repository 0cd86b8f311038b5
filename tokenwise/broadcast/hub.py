"""
Broadcast hub: fan-out of new events and snapshot updates to live subscribers.

Each subscriber owns a bounded asyncio.Queue. publish() never awaits: when a
subscriber's queue is full its oldest message is dropped (slow subscriber),
and closed subscribers are unregistered, so neither can stall the producer or
delivery to other subscribers.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Iterable

from tokenwise.database.models import TransactionEvent, WalletSnapshot
from tokenwise.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_QUEUE = 256

KIND_TRANSACTION = "transaction"
KIND_WALLETS = "wallets"

_subscription_ids = itertools.count(1)
# Wakes a consumer blocked in get() after close()
_CLOSED = object()


class Subscription:
    """Live subscriber handle. Consume with `await sub.get()` or `async for msg in sub`."""

    def __init__(self, hub: "BroadcastHub", maxsize: int = DEFAULT_MAX_QUEUE) -> None:
        self.id = next(_subscription_ids)
        self._hub = hub
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(1, maxsize))
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def _force_put(self, item: Any) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(item)

    def offer(self, message: dict[str, Any]) -> bool:
        """Enqueue without blocking; drop the oldest message if full. False if closed."""
        if self._closed:
            return False
        self._force_put(message)
        return True

    async def get(self) -> dict[str, Any] | None:
        """Next message, or None once the subscription is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Unregister from the hub and wake any pending get()."""
        if self._closed:
            return
        self._closed = True
        self._hub.unsubscribe(self)
        self._force_put(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> dict[str, Any]:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message


class BroadcastHub:
    """Registry of live subscriber handles with explicit unregister-on-disconnect."""

    def __init__(self, max_queue: int = DEFAULT_MAX_QUEUE) -> None:
        self._max_queue = max(1, max_queue)
        self._subscribers: dict[int, Subscription] = {}
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._max_queue)
        self._subscribers[sub.id] = sub
        logger.info("hub_subscribed", subscription_id=sub.id, subscribers=len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if self._subscribers.pop(sub.id, None) is not None:
            logger.info("hub_unsubscribed", subscription_id=sub.id, subscribers=len(self._subscribers))
        if not sub.closed:
            sub.close()

    def publish(self, kind: str, payload: dict[str, Any]) -> int:
        """Deliver {"type": kind, **payload} to every live subscriber. Returns delivered count."""
        message = {"type": kind, **payload}
        delivered = 0
        for sub in list(self._subscribers.values()):
            if sub.closed:
                self._subscribers.pop(sub.id, None)
                continue
            before = sub.dropped
            if sub.offer(message):
                delivered += 1
            if sub.dropped > before:
                logger.debug("hub_slow_subscriber", subscription_id=sub.id, dropped=sub.dropped)
        self.published += 1
        return delivered

    def publish_event(self, event: TransactionEvent) -> int:
        return self.publish(KIND_TRANSACTION, {"transaction": event.to_dict()})

    def publish_snapshot(
        self,
        wallets: Iterable[WalletSnapshot],
        *,
        generation: int,
        placeholder: bool = False,
    ) -> int:
        return self.publish(
            KIND_WALLETS,
            {
                "wallets": [w.to_dict() for w in wallets],
                "generation": generation,
                "placeholder": placeholder,
            },
        )

    def close(self) -> None:
        """Close every subscription (shutdown)."""
        for sub in list(self._subscribers.values()):
            sub.close()
        self._subscribers.clear()
