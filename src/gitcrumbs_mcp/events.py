"""In-process publish/subscribe for state and process notifications.

Each component owns its emitters and exposes them as attributes; there is no
global dispatch. Callbacks run synchronously, in subscription order, on the
thread that emits.

Usage:
    emitter: EventEmitter[bool] = EventEmitter("tracking.running")
    unsubscribe = emitter.subscribe(lambda running: print(running))
    emitter.emit(True)
    unsubscribe()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class _Subscription(Generic[T]):
    __slots__ = ("callback",)

    def __init__(self, callback: Callable[[T], None]) -> None:
        self.callback = callback


class EventEmitter(Generic[T]):
    """Synchronous, ordered fan-out of one event type."""

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._subscriptions: list[_Subscription[T]] = []

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        """Register ``callback`` and return a handle that removes it again.

        The same callable may be subscribed more than once; each handle only
        removes its own registration and calling it twice is harmless.
        """

        subscription = _Subscription(callback)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, payload: T) -> int:
        """Deliver ``payload`` to every current subscriber.

        A failing callback is logged and does not stop delivery to the rest.
        Returns the number of callbacks that completed.
        """

        notified = 0
        for subscription in list(self._subscriptions):
            try:
                subscription.callback(payload)
                notified += 1
            except Exception:
                logger.warning(
                    "Subscriber for %s failed (callback: %s)",
                    self._name,
                    getattr(subscription.callback, "__name__", repr(subscription.callback)),
                    exc_info=True,
                )
        return notified


__all__ = ["EventEmitter", "Unsubscribe"]
