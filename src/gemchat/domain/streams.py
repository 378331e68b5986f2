"""Live value streams with explicit subscribe/unsubscribe."""

import asyncio
from typing import Generic, List, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One subscriber's view of a Subject.

    Yields the value current at subscription time, then every value published
    afterwards, in order. Iteration stops once the subscription is closed.
    """

    def __init__(self, subject: "Subject[T]", initial: T) -> None:
        self._subject = subject
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._queue.put_nowait(initial)

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, value: T) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    async def get(self) -> T:
        """Wait for the next value."""
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        return await self.get()

    def close(self) -> None:
        """Detach from the subject and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._subject._detach(self)
        self._queue.put_nowait(_CLOSED)

    unsubscribe = close


class Subject(Generic[T]):
    """Holds a current value and pushes replacements to subscribers."""

    def __init__(self, initial: T, name: str = "subject") -> None:
        self._value = initial
        self._name = name
        self._subscribers: List[Subscription[T]] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, value: T) -> None:
        self._value = value
        for subscription in list(self._subscribers):
            subscription._push(value)

    def subscribe(self) -> Subscription[T]:
        subscription = Subscription(self, self._value)
        self._subscribers.append(subscription)
        logger.debug("stream_subscribed", stream=self._name, subscribers=len(self._subscribers))
        return subscription

    def close(self) -> None:
        """End every open subscription."""
        for subscription in list(self._subscribers):
            subscription.close()

    def _detach(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug("stream_unsubscribed", stream=self._name, subscribers=len(self._subscribers))
