"""Textual integration for querystate. Opt-in — requires textual.

Selector listeners that touch widgets need three guards: skip while the app
is not running or is rebuilding its widget tree, ignore NoMatches from
queries against widgets that are gone, and hop to the app thread when the
update came from a worker. bind() applies all three.

Usage:
    unbind = bind(app, store.select({"count": 1}), lambda v: app.query_one("#count").update(str(v["count"])))

selector_hook() is the component-side helper: one call returns the current
value plus a stable subscribe function for that view.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable

from textual.css.query import NoMatches

from querystate.selector import Listener, Selector, Unsubscribe
from querystate.store import Store

# Keyed by id(app) so multiple apps work in tests; present only inside pause().
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound listeners during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(
    app,
    selector: Selector,
    effect_fn: Callable[[Any], None],
    *,
    fire_immediately: bool = False,
) -> Unsubscribe:
    """Subscribe effect_fn to selector, guarded for use with Textual widgets.

    Calls are dropped while the app is paused or not running, NoMatches is
    swallowed, and calls from other threads go through app.call_from_thread.
    """
    main = threading.get_ident()

    def safe(value):
        try:
            effect_fn(value)
        except NoMatches:
            pass

    def guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(safe, value)
        else:
            safe(value)

    return selector.subscribe(guarded, run_immediately=fire_immediately)


def selector_hook(store: Store) -> Callable[..., tuple[Any, Callable[[Listener], Unsubscribe]]]:
    """Return use(projection, condition=None) -> (value, subscribe).

    subscribe is memoised per selector, so repeated calls with the same view
    return the identical function and callers can use it as a stable key.
    """
    subscribers: dict[int, Callable[[Listener], Unsubscribe]] = {}

    def use(projection: dict, condition: dict | None = None):
        selector = store.select(projection, condition)
        subscribe = subscribers.get(id(selector))
        if subscribe is None:
            subscribe = subscribers[id(selector)] = selector.listen
        return selector.get(), subscribe

    return use
