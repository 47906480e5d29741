"""Update operators — the only way the store's document changes.

Each operator mutates the document in place through walk_expression() and
apply_update(), and reports the path of every location it actually changed
through options.emit. Operators never emit for a no-op.

The operator set is closed: UpdateOperator enumerates it and OPERATORS maps
every member to its implementation. Unknown keys are rejected by
parse_update() before anything is mutated.
"""

from __future__ import annotations

import copy
import enum
import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from querystate.errors import InvalidUpdateError
from querystate.evaluator import MISSING, Query, compare, equals, is_operator_doc, resolve
from querystate.updater import apply_update, tokenize_path, walk_expression


class UpdateOperator(str, enum.Enum):
    SET = "$set"
    UNSET = "$unset"
    INC = "$inc"
    MUL = "$mul"
    MIN = "$min"
    MAX = "$max"
    CURRENT_DATE = "$currentDate"
    PUSH = "$push"
    ADD_TO_SET = "$addToSet"
    POP = "$pop"
    PULL = "$pull"
    PULL_ALL = "$pullAll"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UpdateOptions:
    emit: Callable[[str], None]
    clock: Callable[[], Any] = field(default=_utcnow)


def _get(container: Any, key: Any) -> Any:
    if isinstance(container, list):
        return container[key] if key < len(container) else MISSING
    return container.get(key, MISSING)


def _absent(value: Any) -> bool:
    return value is MISSING or value is None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _run(obj, expr, array_filters, options, mutate_for, **walk_options) -> None:
    """Apply mutate_for(value)(container, key) -> changed at every target of expr."""

    def action(value, node, predicates):
        mutate = mutate_for(value)
        changed = []
        apply_update(obj, node, predicates, lambda o, k: changed.append(mutate(o, k)), **walk_options)
        if any(changed):
            options.emit(node.parent)

    walk_expression(expr, array_filters, action)


def _array_at(container: Any, key: Any, op: str, create: bool = False) -> list | None:
    current = _get(container, key)
    if _absent(current):
        if not create:
            return None
        container[key] = []
        return container[key]
    if not isinstance(current, list):
        raise InvalidUpdateError(f"{op} requires an array field, found {type(current).__name__}")
    return current


# ─── Field operators ─────────────────────────────────────────────────────────


def _set(obj, expr, array_filters, options):
    """Replace the value of a field."""

    def mutate_for(value):
        def mutate(o, k):
            current = _get(o, k)
            if current is not MISSING and equals(current, value):
                return False
            o[k] = copy.deepcopy(value)
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


def _unset(obj, expr, array_filters, options):
    """Delete a field. Array slots are set to None instead of removed."""

    def mutate_for(_):
        def mutate(o, k):
            if isinstance(o, list):
                if o[k] is None:
                    return False
                o[k] = None
                return True
            if k not in o:
                return False
            del o[k]
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for)


def _inc(obj, expr, array_filters, options):
    """Increment a field by a number. A missing field is set to the amount."""

    def mutate_for(amount):
        def mutate(o, k):
            current = _get(o, k)
            if current is MISSING:
                o[k] = amount
            elif _is_number(current):
                o[k] = current + amount
            else:
                raise InvalidUpdateError(f"$inc requires a numeric field, found {type(current).__name__}")
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


def _mul(obj, expr, array_filters, options):
    """Multiply a field by a number. A missing or null field becomes 0."""

    def mutate_for(factor):
        def mutate(o, k):
            current = _get(o, k)
            if _absent(current):
                o[k] = 0
                return True
            if not _is_number(current):
                raise InvalidUpdateError(f"$mul requires a numeric field, found {type(current).__name__}")
            o[k] = current * factor
            return o[k] != current

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


def _set_if(obj, expr, array_filters, options, sign: int) -> None:
    def mutate_for(value):
        def mutate(o, k):
            current = _get(o, k)
            if current is not MISSING and compare(value, current) * sign <= 0:
                return False
            o[k] = copy.deepcopy(value)
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


def _max(obj, expr, array_filters, options):
    """Set a field only if the new value is greater than the current one."""
    _set_if(obj, expr, array_filters, options, 1)


def _min(obj, expr, array_filters, options):
    """Set a field only if the new value is less than the current one."""
    _set_if(obj, expr, array_filters, options, -1)


def _current_date(obj, expr, array_filters, options):
    """Set a field to the current time."""
    now = options.clock()

    def mutate_for(spec):
        value = now
        if isinstance(spec, dict) and spec.get("$type") == "timestamp":
            value = int(now.timestamp() * 1000) if isinstance(now, datetime) else now

        def mutate(o, k):
            o[k] = value
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


# ─── Array operators ─────────────────────────────────────────────────────────

_PUSH_MODIFIERS = ("$each", "$slice", "$sort", "$position")


def _sort_key(spec) -> Callable:
    if isinstance(spec, dict):
        path, order = list(spec.items())[-1]
        return functools.cmp_to_key(lambda a, b: order * compare(resolve(a, path), resolve(b, path)))
    return functools.cmp_to_key(lambda a, b: spec * compare(a, b))


def _push(obj, expr, array_filters, options):
    """Append values to an array, honouring $each, $position, $sort and $slice."""

    def mutate_for(value):
        args = {"$each": [value]}
        if isinstance(value, dict) and any(m in value for m in _PUSH_MODIFIERS):
            args.update(value)

        def mutate(o, k):
            created = _absent(_get(o, k))
            arr = _array_at(o, k, "$push", create=True)
            prev = list(arr)
            position = args.get("$position", len(arr))
            arr[position:position] = copy.deepcopy(args["$each"])
            if "$sort" in args:
                arr.sort(key=_sort_key(args["$sort"]))
            if "$slice" in args:
                n = args["$slice"]
                arr[:] = arr[n:] if n < 0 else arr[:n]
            return created or not equals(arr, prev)

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True, descend_array=True)


def _add_to_set(obj, expr, array_filters, options):
    """Append values to an array unless they are already present."""

    def mutate_for(value):
        items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]

        def mutate(o, k):
            created = _absent(_get(o, k))
            arr = _array_at(o, k, "$addToSet", create=True)
            added = False
            for item in items:
                if not any(equals(x, item) for x in arr):
                    arr.append(copy.deepcopy(item))
                    added = True
            return created or added

        return mutate

    _run(obj, expr, array_filters, options, mutate_for, build_graph=True)


def _pop(obj, expr, array_filters, options):
    """Remove the first (-1) or last (1) element of an array."""

    def mutate_for(end):
        def mutate(o, k):
            arr = _array_at(o, k, "$pop")
            if not arr:
                return False
            arr.pop(0 if end == -1 else -1)
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for)


def _pull_predicate(value) -> Callable[[Any], bool]:
    if is_operator_doc(value):
        query = Query({"k": value})
        return lambda elem: query.test({"k": elem})
    if isinstance(value, dict):
        query = Query(value)
        return lambda elem: isinstance(elem, dict) and query.test(elem)
    return lambda elem: equals(elem, value)


def _pull(obj, expr, array_filters, options):
    """Remove every element matching a value or condition."""

    def mutate_for(value):
        matches = _pull_predicate(value)

        def mutate(o, k):
            arr = _array_at(o, k, "$pull")
            if not arr:
                return False
            kept = [elem for elem in arr if not matches(elem)]
            if len(kept) == len(arr):
                return False
            arr[:] = kept
            return True

        return mutate

    _run(obj, expr, array_filters, options, mutate_for)


def _pull_all(obj, expr, array_filters, options):
    """Remove every element equal to one of the listed values."""
    _pull(obj, {k: {"$in": v} for k, v in expr.items()}, array_filters, options)


OPERATORS: dict[UpdateOperator, Callable[[dict, dict, list, UpdateOptions], None]] = {
    UpdateOperator.SET: _set,
    UpdateOperator.UNSET: _unset,
    UpdateOperator.INC: _inc,
    UpdateOperator.MUL: _mul,
    UpdateOperator.MIN: _min,
    UpdateOperator.MAX: _max,
    UpdateOperator.CURRENT_DATE: _current_date,
    UpdateOperator.PUSH: _push,
    UpdateOperator.ADD_TO_SET: _add_to_set,
    UpdateOperator.POP: _pop,
    UpdateOperator.PULL: _pull,
    UpdateOperator.PULL_ALL: _pull_all,
}


# ─── Parsing ─────────────────────────────────────────────────────────────────


def _check_argument(op: UpdateOperator, selector: str, arg: Any) -> None:
    if op in (UpdateOperator.INC, UpdateOperator.MUL) and not _is_number(arg):
        raise InvalidUpdateError(f"{op.value} requires a number for {selector!r}")
    if op is UpdateOperator.POP and arg not in (1, -1):
        raise InvalidUpdateError(f"$pop value must be 1 or -1 for {selector!r}")
    if op is UpdateOperator.PULL_ALL and not isinstance(arg, list):
        raise InvalidUpdateError(f"$pullAll requires an array for {selector!r}")
    if op is UpdateOperator.PUSH and isinstance(arg, dict) and any(m in arg for m in _PUSH_MODIFIERS):
        if not isinstance(arg.get("$each"), list):
            raise InvalidUpdateError(f"$push modifiers require an $each array for {selector!r}")
        if "$sort" in arg and not (arg["$sort"] in (1, -1) or isinstance(arg["$sort"], dict)):
            raise InvalidUpdateError(f"$sort must be 1, -1 or a sort document for {selector!r}")


def parse_update(expr: Any) -> list[tuple[UpdateOperator, dict]]:
    """Validate an update expression and resolve its operator keys."""
    if not isinstance(expr, dict) or not expr:
        raise InvalidUpdateError("Update must be a non-empty dict of operators.")
    parsed = []
    for key, value in expr.items():
        try:
            op = UpdateOperator(key)
        except ValueError:
            raise InvalidUpdateError(f"Unsupported update operator: {key}") from None
        if not isinstance(value, dict):
            raise InvalidUpdateError(f"{key} requires an object of field selectors.")
        for selector, arg in value.items():
            tokenize_path(selector)
            _check_argument(op, selector, arg)
        parsed.append((op, value))
    return parsed


def _check_array_filters(array_filters: Any) -> list[dict]:
    if array_filters is None:
        return []
    if not isinstance(array_filters, list) or not all(isinstance(f, dict) for f in array_filters):
        raise InvalidUpdateError("arrayFilters must be a list of objects.")
    for spec in array_filters:
        for key in spec:
            identifier = key.split(".", 1)[0]
            tokenize_path(f"x.$[{identifier}]")
    return array_filters


def apply_update_expression(
    obj: dict,
    expr: dict,
    array_filters: list[dict] | None = None,
    condition: dict | None = None,
    *,
    clock: Callable[[], Any] | None = None,
) -> list[str]:
    """Apply an update expression to obj in place.

    Returns the sorted paths that changed; empty when nothing did or when
    condition does not hold.
    """
    parsed = parse_update(expr)
    array_filters = _check_array_filters(array_filters)
    if condition and not Query(condition).test(obj):
        return []

    changed: set[str] = set()
    options = UpdateOptions(emit=changed.add, clock=clock or _utcnow)
    for op, value in parsed:
        OPERATORS[op](obj, value, array_filters, options)
    return sorted(changed)
