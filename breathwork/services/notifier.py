"""
Observer fabric for the session core.

Notifier delivers a payload to every subscriber. EventNotifier does the same
for a family of named events (the scheduler's start/update/cycle_complete/...).

Delivery rules shared by both:
    - Payloads are delivered in the order they were published. Publishing
      from inside a subscriber callback queues the payload; it is delivered
      after the current pass finishes, never nested inside it.
    - The queue is drained by a loop, not by recursion.
    - A subscriber that raises is logged and skipped; the remaining
      subscribers still receive the payload and the publisher never sees
      the exception.
    - Each pass iterates over a copy of the subscriber list, so callbacks may
      subscribe or unsubscribe while being notified.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Deque, Dict, Generic, Hashable, List, Tuple, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")

Callback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class _FifoDispatcher(ABC):
    """Queue + reentrancy flag shared by Notifier and EventNotifier."""

    def __init__(self, name: str):
        self.name = name
        self._queue: Deque[Tuple[Hashable, Any]] = deque()
        self._notifying = False

    @property
    def is_notifying(self) -> bool:
        return self._notifying

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @abstractmethod
    def _listeners_for(self, key: Hashable) -> List[Callback]:
        ...

    def _dispatch(self, key: Hashable, payload: Any) -> None:
        self._queue.append((key, payload))
        if self._notifying:
            log.debug(
                "notification_queued",
                notifier=self.name,
                event_key=key,
                pending=len(self._queue),
            )
            return

        self._notifying = True
        try:
            while self._queue:
                current_key, current_payload = self._queue.popleft()
                for callback in list(self._listeners_for(current_key)):
                    self._deliver(callback, current_key, current_payload)
        finally:
            self._notifying = False

    def _deliver(self, callback: Callback, key: Hashable, payload: Any) -> None:
        try:
            callback(payload)
        except Exception as e:
            log.error(
                "observer_failed",
                notifier=self.name,
                event_key=key,
                callback=getattr(callback, "__qualname__", repr(callback)),
                error=str(e),
                exc_info=True,
            )


class Notifier(_FifoDispatcher, Generic[T]):
    """Publish one payload type to a set of subscribers.

    Example:
        notifier: Notifier[StateChange] = Notifier("session_state")
        unsubscribe = notifier.subscribe(lambda change: print(change.changes))
        notifier.notify(change)
        unsubscribe()
    """

    def __init__(self, name: str = "notifier"):
        super().__init__(name)
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        """Register a callback; returns a function that removes it again.

        Subscribing the same callback twice has no effect.
        """
        if not callable(callback):
            raise TypeError(f"Subscriber must be callable, got {type(callback).__name__}")
        if callback not in self._subscribers:
            self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def notify(self, payload: T) -> None:
        """Deliver payload to every current subscriber."""
        self._dispatch(None, payload)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()

    def _listeners_for(self, key: Hashable) -> List[Callback]:
        return self._subscribers


class EventNotifier(_FifoDispatcher):
    """Named-event variant of Notifier with one queue for all events.

    Because the queue is shared, an `update` listener that causes a
    `cycle_complete` emission sees both events in emission order.
    """

    def __init__(self, name: str = "events"):
        super().__init__(name)
        self._listeners: Dict[str, List[Callback]] = {}

    def on(self, event: str, callback: Callback) -> Unsubscribe:
        """Register a listener for one event; returns an unsubscribe function."""
        if not callable(callback):
            raise TypeError(f"Listener must be callable, got {type(callback).__name__}")
        listeners = self._listeners.setdefault(event, [])
        if callback not in listeners:
            listeners.append(callback)
        return lambda: self.off(event, callback)

    def off(self, event: str, callback: Callback) -> None:
        listeners = self._listeners.get(event)
        if listeners and callback in listeners:
            listeners.remove(callback)
            if not listeners:
                del self._listeners[event]

    def emit(self, event: str, payload: Any) -> None:
        self._dispatch(event, payload)

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def clear(self) -> None:
        self._listeners.clear()

    def _listeners_for(self, key: Hashable) -> List[Callback]:
        return self._listeners.get(key, [])  # type: ignore[arg-type]
