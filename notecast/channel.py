from __future__ import annotations

from threading import Lock
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Subscriber = Callable[[T], None]


class BroadcastChannel(Generic[T]):
    """
    Multi-subscriber publish point with no buffering.

    `emit()` delivers to whoever is subscribed at that moment; with no
    subscribers the value is dropped. A subscriber that raises does not stop
    delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber[T]] = []
        self._lock = Lock()

    def subscribe(self, fn: Subscriber[T]) -> Callable[[], None]:
        """Register `fn`; returns a callable that unsubscribes it."""
        with self._lock:
            self._subscribers.append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(fn)
                except ValueError:
                    pass

        return _unsubscribe

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def emit(self, value: T) -> int:
        """Deliver `value`; returns how many subscribers received it."""
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        errors: list[BaseException] = []
        for fn in targets:
            try:
                fn(value)
                delivered += 1
            except Exception as e:
                errors.append(e)

        if errors:
            raise SubscriberError(errors)
        return delivered


class SubscriberError(RuntimeError):
    """Raised after delivery when one or more subscribers failed."""

    def __init__(self, errors: list[BaseException]) -> None:
        super().__init__(f"{len(errors)} subscriber(s) raised: {errors[0]!r}")
        self.errors = errors
