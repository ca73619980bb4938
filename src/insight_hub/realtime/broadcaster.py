"""Publish/subscribe registry pushing monitor events to live observers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel

from insight_hub.domain.models import BroadcastMessage

DEFAULT_QUEUE_SIZE = 100

SendFn = Callable[[str], Awaitable[Any]]


class Subscription:
    """One observer's bounded outbound queue.

    When the queue is full the oldest pending message is discarded to make
    room for the newest one, so a stalled observer never grows memory.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        *,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be greater than zero")
        self.id = uuid4().hex
        self.dropped = 0
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, message: str) -> None:
        if self._closed:
            return
        self._put(message)

    async def receive(self) -> Optional[str]:
        """Wait for the next message; ``None`` once the subscription is closed."""

        if self._closed and self._queue.empty():
            return None
        message = await self._queue.get()
        if message is None:
            return None
        return message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # wake any pending receive()
        self._put(None)
        if self._on_close is not None:
            self._on_close(self)

    async def pump(self, send: SendFn) -> None:
        """Forward messages to ``send`` until closed or the transport fails."""

        async for message in self:
            try:
                await send(message)
            except Exception:
                logging.getLogger(__name__).info(
                    "subscriber_send_failed", extra={"subscription": self.id}
                )
                self.close()
                return

    def _put(self, message: Optional[str]) -> None:
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            message = await self.receive()
            if message is None:
                return
            yield message


class LiveBroadcaster:
    """Fans ``{type, data}`` envelopes out to every open subscription."""

    def __init__(
        self,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._queue_size = queue_size
        self._subscriptions: Dict[str, Subscription] = {}
        self.logger = logger or logging.getLogger(__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, initial: Optional[Tuple[str, Any]] = None) -> Subscription:
        """Register an observer; ``initial`` is queued ahead of live events."""

        subscription = Subscription(self._queue_size, on_close=self._discard)
        if initial is not None:
            message = self._encode(*initial)
            if message is not None:
                subscription.deliver(message)
        self._subscriptions[subscription.id] = subscription
        self.logger.info(
            "subscriber_connected",
            extra={"subscription": subscription.id, "subscribers": self.subscriber_count},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        self._discard(subscription)

    def broadcast(self, event_type: str, payload: Any) -> int:
        """Queue the event on every open subscription; returns the fan-out count."""

        message = self._encode(event_type, payload)
        if message is None:
            return 0
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.closed:
                self._subscriptions.pop(subscription.id, None)
                continue
            subscription.deliver(message)
            delivered += 1
        return delivered

    def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            self.unsubscribe(subscription)

    def _discard(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is not None:
            self.logger.info(
                "subscriber_disconnected",
                extra={
                    "subscription": subscription.id,
                    "dropped": subscription.dropped,
                },
            )

    def _encode(self, event_type: str, payload: Any) -> Optional[str]:
        try:
            data = (
                payload.model_dump(mode="json", by_alias=True)
                if isinstance(payload, BaseModel)
                else payload
            )
            return BroadcastMessage(type=event_type, data=data).model_dump_json()
        except (TypeError, ValueError):
            self.logger.exception("broadcast_encode_failed", extra={"type": event_type})
            return None
