"""Notification hub for real-time status updates via SSE and in-process observers."""
import asyncio
import inspect
from collections.abc import Awaitable, Callable
from itertools import count
from typing import Any, Generic, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Observer = Callable[[T], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


def _default_key(payload: Any) -> str:
    return str(payload.id)


class NotificationHub(Generic[T]):
    """
    Pub/sub registry keyed by entity identity (e.g. a deployment id).

    Each key holds its own set of observers and its own lock. Publishing
    for a key delivers the payload to every observer subscribed at that
    moment, one publish at a time, so every observer sees the same linear
    history. Different keys publish concurrently.
    """

    def __init__(self, key_func: Callable[[T], str] = _default_key):
        """Initialize the hub."""
        self._key_func = key_func
        self._observers: dict[str, dict[int, Observer]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tokens = count(1)

    def subscribe(self, key: str, observer: Observer) -> Unsubscribe:
        """
        Register an observer for one key.

        Returns an idempotent handle that removes exactly this registration.
        """
        key = str(key)
        token = next(self._tokens)
        self._observers.setdefault(key, {})[token] = observer

        def unsubscribe() -> None:
            observers = self._observers.get(key)
            if observers is None or observers.pop(token, None) is None:
                return
            if not observers:
                self._release(key)

        return unsubscribe

    def subscribe_queue(self, key: str, maxsize: int = 0) -> tuple[asyncio.Queue, Unsubscribe]:
        """
        Subscribe a queue to a key.

        Returns a queue that will receive all future payloads for the key
        and the handle that stops delivery.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        return queue, self.subscribe(key, queue.put)

    async def publish(self, payload: T) -> int:
        """
        Deliver a payload to the current observers of its key.

        Returns:
            Number of observers the payload was delivered to
        """
        key = self._key_func(payload)
        if not self._observers.get(key):
            return 0

        lock = self._locks.setdefault(key, asyncio.Lock())
        delivered = 0
        async with lock:
            observers = self._observers.get(key, {})
            for token, observer in list(observers.items()):
                # Skip observers removed while earlier ones were running
                if token not in observers:
                    continue
                try:
                    result = observer(payload)
                    if inspect.isawaitable(result):
                        await result
                    delivered += 1
                except Exception:
                    logger.exception("Observer failed", key=key)

        if not self._observers.get(key):
            self._release(key)
        return delivered

    def _release(self, key: str) -> None:
        """Drop bookkeeping for a key once nobody observes it."""
        if self._observers.get(key):
            return
        self._observers.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def subscriber_count(self, key: str) -> int:
        """Get the current number of observers for a key."""
        return len(self._observers.get(str(key), {}))

    @property
    def active_keys(self) -> list[str]:
        """Keys that currently have at least one observer."""
        return [key for key, observers in self._observers.items() if observers]
