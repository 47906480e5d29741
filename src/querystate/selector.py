"""Selector — a cached, listener-bearing view of a Store.

A selector pairs a projection with a filter condition. Its value is computed
lazily, cached, and recomputed only when the store tells it (notify_all())
that one of the paths it depends on has changed. Listeners are called with
the new value, in registration order, only when it actually differs from
the previous one.

Usage:
    selector = store.select({"firstName": 1})
    unsubscribe = selector.listen(lambda value: print(value["firstName"]))
    store.update({"$set": {"firstName": "John"}})  # prints "John"
    unsubscribe()

Listener failures never reach the caller of Store.update(): the failing
listener is logged and removed, and the round continues with the next one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, TypeVar

from querystate.errors import ListenerError
from querystate.evaluator import Query, equals

logger = logging.getLogger("querystate.selector")

T = TypeVar("T")

Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]
StateFn = Callable[[dict, Query], Any]


class _Unknown:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNKNOWN"


# Previous value of a selector that was never computed; equal to nothing.
_UNKNOWN = _Unknown()


class _Registration:
    """One subscription. Identity distinguishes re-registrations of a listener."""

    __slots__ = ("once",)

    def __init__(self, once: bool) -> None:
        self.once = once


class Selector(Generic[T]):
    """Observable view of the store's document.

    Created by Store.select(); not meant to be constructed directly.
    """

    __slots__ = ("_state_fn", "_query", "_projection", "_paths", "_listeners", "_value", "_cached")

    def __init__(
        self,
        state_fn: StateFn,
        query: Query,
        projection: dict,
        paths: frozenset[str] = frozenset(),
    ) -> None:
        self._state_fn = state_fn
        self._query = query
        self._projection = projection
        self._paths = paths
        self._listeners: dict[Listener, _Registration] = {}
        self._value: T | None = None
        self._cached = False

    @property
    def projection(self) -> dict:
        return self._projection

    @property
    def condition(self) -> dict:
        return self._query.condition

    @property
    def paths(self) -> frozenset[str]:
        """Dependency set. Empty means the selector observes every change."""
        return self._paths

    @property
    def size(self) -> int:
        """Number of registered listeners."""
        return len(self._listeners)

    def get(self) -> T | None:
        """Return the current view, or None when the condition does not hold.

        The value is cached until the store reports a change to one of the
        selector's dependency paths.
        """
        if not self._cached:
            self._value = self._state_fn(self._projection, self._query)
            self._cached = True
        return self._value

    def notify_all(self) -> int:
        """Recompute and call every listener if the value changed.

        Returns the number of listeners invoked. A listener that raises is
        removed; a once-only listener is removed after its call either way.
        """
        if not self._listeners:
            self._cached = False
            return 0
        previous = self._value if self._cached else _UNKNOWN
        self._cached = False
        value = self.get()
        if previous is not _UNKNOWN and equals(previous, value):
            return 0

        invoked = 0
        for listener, registration in list(self._listeners.items()):
            # removed by an earlier listener in this round
            if self._listeners.get(listener) is not registration:
                continue
            invoked += 1
            try:
                listener(value)
            except Exception:
                logger.exception("Listener %r failed; removing it", listener)
                self._discard(listener, registration)
            finally:
                if registration.once:
                    self._discard(listener, registration)
            # a nested update already delivered a newer value
            if self._cached and self._value is not value and not equals(self._value, value):
                break
        return invoked

    def remove_all(self) -> None:
        self._listeners.clear()

    def _discard(self, listener: Listener, registration: _Registration) -> None:
        if self._listeners.get(listener) is registration:
            del self._listeners[listener]

    def subscribe(
        self,
        listener: Listener,
        *,
        run_once: bool = False,
        run_immediately: bool = False,
    ) -> Unsubscribe:
        """Register listener and return a function that unregisters it.

        run_once: remove the listener after its first call.
        run_immediately: call the listener now with the current value (if the
            condition holds). An exception from that call unregisters the
            listener and propagates.
        """
        existing = self._listeners.get(listener)
        if existing is not None:
            if existing.once and not run_once:
                raise ListenerError("Already subscribed to listen once.")
            if not existing.once and run_once:
                raise ListenerError("Already subscribed to listen repeatedly.")
            raise ListenerError("Listener already subscribed.")

        # later rounds compare against the value seen at subscription
        value = self.get()
        registration = _Registration(run_once)
        self._listeners[listener] = registration

        def unsubscribe() -> None:
            self._discard(listener, registration)

        if run_immediately and value is not None:
            try:
                listener(value)
            except Exception:
                unsubscribe()
                raise
            if run_once:
                unsubscribe()
        return unsubscribe

    def listen(self, listener: Listener) -> Unsubscribe:
        return self.subscribe(listener)

    def listen_once(self, listener: Listener) -> Unsubscribe:
        return self.subscribe(listener, run_once=True)

    def listen_now(self, listener: Listener) -> Unsubscribe:
        return self.subscribe(listener, run_immediately=True)

    def listen_now_once(self, listener: Listener) -> Unsubscribe:
        return self.subscribe(listener, run_once=True, run_immediately=True)

    def __repr__(self) -> str:
        return f"Selector(projection={self._projection!r}, condition={self.condition!r}, listeners={self.size})"
