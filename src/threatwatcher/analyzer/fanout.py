"""Розсилка нових аномалій живим підписникам."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from threatwatcher.logging import logger

ANOMALY_DETECTED = "ANOMALY_DETECTED"


class Subscription:
    """Черга одного підписника; читається як асинхронний ітератор."""

    def __init__(self, maxsize: int) -> None:
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, payload: dict[str, Any]) -> None:
        if self.queue.full():
            # Повільний підписник втрачає найстаріше повідомлення, а не блокує видавця.
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning("Черга підписника переповнена, найстаріше повідомлення відкинуто", dropped=self.dropped)
        self.queue.put_nowait(payload)

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self.queue.get()


class AnomalyBroadcaster:
    """Канал "anomaly detected" з довільною кількістю слухачів."""

    def __init__(self, queue_size: int = 1000, channel: str = ANOMALY_DETECTED) -> None:
        self.channel = channel
        self.queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, payload: dict[str, Any]) -> int:
        """Ставить payload у черги всіх поточних підписників, не чекаючи їх."""

        for subscription in list(self._subscribers):
            subscription.deliver(payload)
        return len(self._subscribers)

    def attach(self) -> Subscription:
        subscription = Subscription(self.queue_size)
        self._subscribers.add(subscription)
        return subscription

    def detach(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[Subscription]:
        """Підписка, що автоматично знімається при виході з контексту."""

        subscription = self.attach()
        try:
            yield subscription
        finally:
            self.detach(subscription)


__all__ = ["AnomalyBroadcaster", "Subscription", "ANOMALY_DETECTED"]
