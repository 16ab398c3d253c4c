"""Push-based progress channel."""

import inspect
import logging
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], Awaitable[None] | None]


class EventChannel(Generic[T]):
    """
    Fan-out of state snapshots to subscribers.

    Listeners may be plain or async callables. A listener that raises is
    logged and skipped; it never interrupts the producer.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self.history: list[T] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def latest(self) -> T | None:
        return self.history[-1] if self.history else None

    async def emit(self, value: T) -> None:
        self.history.append(value)
        for listener in list(self._listeners):
            try:
                result = listener(value)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener %r failed", listener)
