"""A typed in-process event bus and a broadcast emitter built on it."""

from __future__ import annotations

import collections
import threading
import time
from typing import Any, Iterable, Iterator


class _Wildcard:
    def __repr__(self) -> str:
        return "WILDCARD"


WILDCARD = _Wildcard()
DEFAULT_BUFFER_SIZE = 16


class Subscription:
    """A stream of events of the subscribed types, delivered in order."""

    def __init__(self, bus: EventBus, event_types: frozenset | None, buffer_size: int | None):
        self._bus = bus
        self._types = event_types
        self._buffer_size = buffer_size
        self._events: collections.deque = collections.deque()
        self._cond = threading.Condition()
        self._closed = False

    def _accepts(self, event_type: type) -> bool:
        return self._types is None or event_type in self._types

    def _push(self, event: Any) -> None:
        with self._cond:
            while (
                not self._closed
                and self._buffer_size is not None
                and len(self._events) >= self._buffer_size
            ):
                self._cond.wait()
            if self._closed:
                return
            self._events.append(event)
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: float | None = None) -> Any:
        """Return the next event, or None once the subscription is closed.

        Raises TimeoutError if no event arrives within ``timeout`` seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._events:
                if self._closed:
                    return None
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise TimeoutError("no event received in time")
                self._cond.wait(remaining)
            event = self._events.popleft()
            self._cond.notify_all()
            return event

    def close(self) -> None:
        """Close the subscription; pending events are dropped."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._events.clear()
            self._cond.notify_all()
        self._bus._remove(self)

    def __iter__(self) -> Iterator[Any]:
        while True:
            event = self.get()
            if event is None and self._closed:
                return
            yield event

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class Emitter:
    """Publishes events of a single type on a bus."""

    def __init__(self, bus: EventBus, event_type: type, stateful: bool):
        self._bus = bus
        self.event_type = event_type
        self.stateful = stateful
        self._closed = False

    def emit(self, event: Any) -> None:
        if self._closed:
            raise RuntimeError("emitter is closed")
        if not isinstance(event, self.event_type):
            raise TypeError(
                f"emit called with wrong type: expected {self.event_type.__name__}, "
                f"got {type(event).__name__}"
            )
        self._bus._publish(self.event_type, event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._release(self)

    def __enter__(self) -> Emitter:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class EventBus:
    """Routes events from emitters to the subscriptions of their type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._stateful: collections.Counter = collections.Counter()
        self._last: dict[type, Any] = {}

    def subscribe(
        self,
        event_types: type | Iterable[type] | _Wildcard,
        buffer_size: int | None = DEFAULT_BUFFER_SIZE,
    ) -> Subscription:
        """Subscribe to one type, several types or WILDCARD for every event.

        A ``buffer_size`` of None gives an unbounded buffer; otherwise emitters
        wait while the buffer is full.
        """
        if buffer_size is not None and buffer_size < 1:
            raise ValueError("buffer size must be positive")
        if event_types is WILDCARD:
            types = None
        elif isinstance(event_types, type):
            types = frozenset([event_types])
        else:
            types = frozenset(event_types)
            if not types:
                raise ValueError("at least one event type is required")
        subscription = Subscription(self, types, buffer_size)
        with self._lock:
            subscription._events.extend(
                event for event_type, event in self._last.items()
                if subscription._accepts(event_type)
            )
            self._subscriptions.append(subscription)
        return subscription

    def emitter(self, event_type: type, stateful: bool = False) -> Emitter:
        """Create an emitter; a stateful one replays its last event to new subscribers."""
        if not isinstance(event_type, type):
            raise TypeError("event type must be a class")
        if stateful:
            with self._lock:
                self._stateful[event_type] += 1
        return Emitter(self, event_type, stateful)

    def _publish(self, event_type: type, event: Any) -> None:
        with self._lock:
            if self._stateful[event_type] > 0:
                self._last[event_type] = event
            targets = [sub for sub in self._subscriptions if sub._accepts(event_type)]
        for subscription in targets:
            subscription._push(event)

    def _release(self, emitter: Emitter) -> None:
        if not emitter.stateful:
            return
        with self._lock:
            self._stateful[emitter.event_type] -= 1
            if self._stateful[emitter.event_type] <= 0:
                del self._stateful[emitter.event_type]
                self._last.pop(emitter.event_type, None)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)


class EventEmitter:
    """Broadcasts arbitrary events to every listener of its bus."""

    def __init__(self, bus: EventBus | None = None):
        self._lock = threading.Lock()
        self._bus = bus
        self._emitter: Emitter | None = None
        self._global: Subscription | None = None
        self._subscriptions: list[Subscription] = []

    def _get_bus(self) -> EventBus:
        if self._bus is None:
            self._bus = EventBus()
        return self._bus

    @property
    def bus(self) -> EventBus:
        with self._lock:
            return self._get_bus()

    def set_bus(self, bus: EventBus) -> None:
        """Use the given bus; fails if one is already in use."""
        with self._lock:
            if self._bus is not None:
                raise RuntimeError("bus is already init")
            self._bus = bus

    def emit(self, event: Any) -> None:
        with self._lock:
            if self._emitter is None:
                self._emitter = self._get_bus().emitter(object)
            emitter = self._emitter
        emitter.emit(event)

    def subscribe(self) -> Subscription:
        """Return a new subscription receiving every later event."""
        with self._lock:
            subscription = self._get_bus().subscribe(WILDCARD, buffer_size=None)
            self._subscriptions.append(subscription)
        return subscription

    def global_channel(self) -> Subscription:
        """Return the subscription shared by every caller."""
        with self._lock:
            if self._global is None:
                self._global = self._get_bus().subscribe(WILDCARD, buffer_size=None)
                self._subscriptions.append(self._global)
            return self._global

    def unsubscribe_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()