"""Store — a single document, mutated only by update expressions.

The store keeps a private deep copy of its initial state. Reads hand out
frozen clones; writes go through MongoDB-style update operators. After every
modifying update the store notifies the selectors whose dependency paths
overlap the changed fields, and only those.

Usage:
    store = Store({"firstName": "Kwame", "age": 30})
    name = store.select({"firstName": 1})
    name.listen(print)
    store.update({"$set": {"firstName": "John"}})  # prints {'firstName': 'John'}

Selectors are memoised: select() with structurally equal arguments returns
the same Selector.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from querystate._frozen import clone_frozen
from querystate._paths import same_ancestor
from querystate.dependencies import PROJECTION_OPERATORS, WHOLE_DOCUMENT, get_dependent_paths
from querystate.errors import InvalidProjectionError
from querystate.evaluator import Query, is_inclusion, is_operator, project, validate_expression
from querystate.operators import apply_update_expression
from querystate.selector import Selector

logger = logging.getLogger("querystate.store")

_UNSET = object()


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of Store.update().

    fields: sorted changed paths, None when nothing changed.
    notify_count: listener invocations performed, None when nothing changed.
    """

    modified: bool
    fields: list[str] | None = None
    notify_count: int | None = None


def _validate_projection(projection: Any, prefix: str = "") -> None:
    if not isinstance(projection, dict):
        raise InvalidProjectionError(f"Projection must be a dict, got {type(projection).__name__}")
    for key, spec in projection.items():
        path = f"{prefix}{key}"
        if is_operator(key):
            raise InvalidProjectionError(f"Invalid projection field: {path}")
        if is_inclusion(spec):
            continue
        if spec is False or spec == 0:
            raise InvalidProjectionError(f"Exclusion is not supported in projections: {path}")
        if isinstance(spec, str) and spec.startswith("$"):
            continue
        if isinstance(spec, list):
            validate_expression(spec)
            continue
        if isinstance(spec, dict) and spec:
            if any(is_operator(k) for k in spec):
                op = next(iter(spec))
                shaped = PROJECTION_OPERATORS.get(op)
                if len(spec) == 1 and shaped and shaped(spec[op]):
                    if op == "$elemMatch":
                        Query({key: spec})
                    continue
                validate_expression(spec)
            else:
                _validate_projection(spec, f"{path}.")
            continue
        raise InvalidProjectionError(f"Invalid projection value for {path!r}: {spec!r}")


def _cache_key(projection: dict, condition: dict) -> str:
    return json.dumps({"c": condition, "p": projection}, sort_keys=True, default=repr)


class Store:
    """Owns one document and the selectors observing it.

    clock: zero-argument callable used by $currentDate, defaults to UTC now.
    """

    def __init__(self, initial_state: dict, *, clock: Callable[[], Any] | None = None) -> None:
        if not isinstance(initial_state, dict):
            raise TypeError(f"Store state must be a dict, got {type(initial_state).__name__}")
        self._state = copy.deepcopy(initial_state)
        self._clock = clock
        self._selectors: dict[str, Selector] = {}
        self._snapshot: Any = _UNSET

    def select(self, projection: dict | None = None, condition: dict | None = None) -> Selector:
        """Return the selector for a projection and optional filter condition.

        An empty projection selects the whole document.
        """
        projection = projection or {}
        condition = condition or {}
        _validate_projection(projection)
        projection = clone_frozen(projection)
        condition = clone_frozen(condition)

        key = _cache_key(projection, condition)
        selector = self._selectors.get(key)
        if selector is not None:
            return selector

        query = Query(condition)
        paths = get_dependent_paths(condition, include_root_fields=True) | get_dependent_paths(projection)
        if WHOLE_DOCUMENT in paths:
            paths = set()
        selector = Selector(self._compute, query, projection, frozenset(paths))
        self._selectors[key] = selector
        logger.debug("Created selector %r depending on %s", selector, sorted(paths) or "everything")
        return selector

    def get_state(self, projection: dict | None = None, condition: dict | None = None) -> Any:
        """Return a frozen view of the document, or None if condition fails."""
        if not projection and not condition:
            if self._snapshot is _UNSET:
                self._snapshot = clone_frozen(self._state)
            return self._snapshot
        if projection:
            _validate_projection(projection)
        return self._compute(projection or {}, Query(condition))

    def update(
        self,
        expr: dict,
        array_filters: list[dict] | None = None,
        condition: dict | None = None,
    ) -> UpdateResult:
        """Apply an update expression and notify affected selectors."""
        fields = apply_update_expression(self._state, expr, array_filters, condition, clock=self._clock)
        if not fields:
            return UpdateResult(modified=False)

        self._snapshot = _UNSET
        notify_count = 0
        # listeners may select or update re-entrantly
        for selector in list(self._selectors.values()):
            if selector.paths and not any(same_ancestor(selector.paths, f) for f in fields):
                continue
            try:
                notify_count += selector.notify_all()
            except Exception:
                # the failed selector stays uncached and recomputes on get()
                logger.exception("Selector %r failed to recompute", selector)

        logger.debug("Updated %s, notified %d listener(s)", fields, notify_count)
        return UpdateResult(modified=True, fields=fields, notify_count=notify_count)

    def _compute(self, projection: dict, query: Query) -> Any:
        if not query.test(self._state):
            return None
        return clone_frozen(project(self._state, projection))

    def __repr__(self) -> str:
        return f"Store(selectors={len(self._selectors)})"


def create_store(initial_state: dict, *, clock: Callable[[], Any] | None = None) -> Store:
    return Store(initial_state, clock=clock)
