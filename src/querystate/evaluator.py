"""Expression evaluator — MongoDB-style filters, projections and expressions.

The notification engine treats this module as a black box: it builds
predicates from filter conditions and shapes documents through projections.
Everything here is pure; inputs are never mutated.
"""

from __future__ import annotations

import copy
import math
import re
from datetime import date, datetime
from typing import Any, Callable

from querystate.errors import InvalidExpressionError, InvalidQueryError


class _Missing:
    """Marker for a path that does not exist in a document."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})


def is_operator(key: object) -> bool:
    return isinstance(key, str) and key.startswith("$")


def is_operator_doc(value: object) -> bool:
    """True for a non-empty dict whose keys are all operators."""
    return isinstance(value, dict) and bool(value) and all(is_operator(k) for k in value)


# ─── Ordering ────────────────────────────────────────────────────────────────


def _rank(value: Any) -> int:
    if value is None or value is MISSING:
        return 1
    if isinstance(value, bool):
        return 8
    if isinstance(value, int | float):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, dict):
        return 4
    if isinstance(value, list | tuple):
        return 5
    if isinstance(value, datetime | date):
        return 9
    return 10


def compare(a: Any, b: Any) -> int:
    """Total order across types: null < numbers < strings < objects < arrays < bools < dates."""
    ra, rb = _rank(a), _rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra == 1:
        return 0
    if ra == 4:
        for (ka, va), (kb, vb) in zip(a.items(), b.items()):
            c = compare(ka, kb) or compare(va, vb)
            if c:
                return c
        return compare(len(a), len(b))
    if ra == 5:
        for va, vb in zip(a, b):
            c = compare(va, vb)
            if c:
                return c
        return compare(len(a), len(b))
    if ra == 10:
        a, b = repr(a), repr(b)
    return (a > b) - (a < b)


def equals(a: Any, b: Any) -> bool:
    if a is MISSING:
        return b is None
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(equals(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(equals(x, y) for x, y in zip(a, b))
    return a == b


# ─── Path resolution ─────────────────────────────────────────────────────────


def _resolve(obj: Any, parts: list[str]) -> Any:
    cur = obj
    for i, part in enumerate(parts):
        if isinstance(cur, dict):
            if part not in cur:
                return MISSING
            cur = cur[part]
        elif isinstance(cur, list):
            if part.isdigit():
                index = int(part)
                if index >= len(cur):
                    return MISSING
                cur = cur[index]
            else:
                rest = parts[i:]
                values = [_resolve(e, rest) for e in cur if isinstance(e, dict | list)]
                return [v for v in values if v is not MISSING]
        else:
            return MISSING
    return cur


def resolve(obj: Any, path: str, default: Any = None) -> Any:
    """Look up a dotted path. Lists fan out over their elements unless indexed."""
    value = _resolve(obj, path.split(".")) if path else obj
    return default if value is MISSING else value


def _lookup_all(obj: Any, parts: list[str]) -> list:
    """Every value a query path can reach, MISSING when none."""
    if not parts:
        return [obj]
    part, rest = parts[0], parts[1:]
    if isinstance(obj, dict):
        return _lookup_all(obj[part], rest) if part in obj else [MISSING]
    if isinstance(obj, list):
        out = []
        if part.isdigit() and int(part) < len(obj):
            out.extend(_lookup_all(obj[int(part)], rest))
        for elem in obj:
            if isinstance(elem, dict):
                out.extend(v for v in _lookup_all(elem, parts) if v is not MISSING)
        return out or [MISSING]
    return [MISSING]


def _expand(values: list):
    for value in values:
        yield value
        if isinstance(value, list):
            yield from value


# ─── Queries ─────────────────────────────────────────────────────────────────


def _regex(pattern: Any, options: str = "") -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    if "i" in options:
        flags |= re.IGNORECASE
    if "m" in options:
        flags |= re.MULTILINE
    if "s" in options:
        flags |= re.DOTALL
    if "x" in options:
        flags |= re.VERBOSE
    return re.compile(pattern, flags)


def _eq(values: list, arg: Any) -> bool:
    if isinstance(arg, re.Pattern):
        return any(isinstance(v, str) and arg.search(v) for v in _expand(values))
    return any(equals(v, arg) for v in _expand(values))


def _cmp(test: Callable[[int], bool]) -> Callable[[list, Any, dict], bool]:
    def op(values: list, arg: Any, cond: dict) -> bool:
        return any(
            v is not MISSING and _rank(v) == _rank(arg) and test(compare(v, arg))
            for v in _expand(values)
        )

    return op


def _in(values: list, arg: Any, cond: dict) -> bool:
    if not isinstance(arg, list):
        raise InvalidQueryError("$in/$nin requires an array.")
    return any(_eq(values, a) for a in arg)


def _exists(values: list, arg: Any, cond: dict) -> bool:
    return any(v is not MISSING for v in values) == bool(arg)


def _regex_op(values: list, arg: Any, cond: dict) -> bool:
    rx = _regex(arg, cond.get("$options", ""))
    return any(isinstance(v, str) and rx.search(v) for v in _expand(values))


def _size(values: list, arg: Any, cond: dict) -> bool:
    return any(isinstance(v, list) and len(v) == arg for v in values)


def _all_item(arr: list, item: Any) -> bool:
    if isinstance(item, dict) and list(item) == ["$elemMatch"]:
        return any(_elem_match(x, item["$elemMatch"]) for x in arr)
    return any(equals(x, item) for x in arr)


def _all(values: list, arg: Any, cond: dict) -> bool:
    if not isinstance(arg, list):
        raise InvalidQueryError("$all requires an array.")
    if not arg:
        return False
    return any(isinstance(v, list) and all(_all_item(v, a) for a in arg) for v in values)


def _elem_match(elem: Any, arg: dict) -> bool:
    if is_operator_doc(arg) and not LOGICAL_OPERATORS.intersection(arg):
        return _match_ops([elem], arg)
    return isinstance(elem, dict) and _match_doc(elem, arg)


def _elem_match_op(values: list, arg: Any, cond: dict) -> bool:
    if not isinstance(arg, dict):
        raise InvalidQueryError("$elemMatch requires an object.")
    return any(isinstance(v, list) and any(_elem_match(e, arg) for e in v) for v in values)


def _not(values: list, arg: Any, cond: dict) -> bool:
    if isinstance(arg, dict):
        return not _match_ops(values, arg)
    return not _regex_op(values, arg, {})


_TYPE_NAMES: dict[str, Callable[[Any], bool]] = {
    "null": lambda v: v is None,
    "bool": lambda v: isinstance(v, bool),
    "int": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "long": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "double": lambda v: isinstance(v, float),
    "number": lambda v: isinstance(v, int | float) and not isinstance(v, bool),
    "string": lambda v: isinstance(v, str),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
    "date": lambda v: isinstance(v, datetime | date),
}


def _type(values: list, arg: Any, cond: dict) -> bool:
    names = arg if isinstance(arg, list) else [arg]
    for name in names:
        check = _TYPE_NAMES.get(name)
        if check is None:
            raise InvalidQueryError(f"Unsupported $type: {name!r}")
        if any(v is not MISSING and check(v) for v in values):
            return True
    return False


def _mod(values: list, arg: Any, cond: dict) -> bool:
    if not (isinstance(arg, list) and len(arg) == 2):
        raise InvalidQueryError("$mod requires [divisor, remainder].")
    divisor, remainder = arg
    return any(
        isinstance(v, int | float) and not isinstance(v, bool) and v % divisor == remainder
        for v in _expand(values)
    )


FIELD_OPERATORS: dict[str, Callable[[list, Any, dict], bool]] = {
    "$eq": lambda values, arg, cond: _eq(values, arg),
    "$ne": lambda values, arg, cond: not _eq(values, arg),
    "$gt": _cmp(lambda c: c > 0),
    "$gte": _cmp(lambda c: c >= 0),
    "$lt": _cmp(lambda c: c < 0),
    "$lte": _cmp(lambda c: c <= 0),
    "$in": _in,
    "$nin": lambda values, arg, cond: not _in(values, arg, cond),
    "$exists": _exists,
    "$regex": _regex_op,
    "$options": lambda values, arg, cond: True,
    "$size": _size,
    "$all": _all,
    "$elemMatch": _elem_match_op,
    "$not": _not,
    "$type": _type,
    "$mod": _mod,
}


def _match_ops(values: list, ops: dict) -> bool:
    for op, arg in ops.items():
        handler = FIELD_OPERATORS.get(op)
        if handler is None:
            raise InvalidQueryError(f"Unsupported operator: {op}")
        if not handler(values, arg, ops):
            return False
    return True


def _match_doc(obj: Any, condition: dict) -> bool:
    for key, cond in condition.items():
        if key == "$and":
            if not all(_match_doc(obj, c) for c in cond):
                return False
        elif key == "$or":
            if not any(_match_doc(obj, c) for c in cond):
                return False
        elif key == "$nor":
            if any(_match_doc(obj, c) for c in cond):
                return False
        elif key == "$expr":
            if not truthy(evaluate(cond, obj)):
                return False
        else:
            values = _lookup_all(obj, key.split("."))
            if is_operator_doc(cond):
                if not _match_ops(values, cond):
                    return False
            elif not _eq(values, cond):
                return False
    return True


def _validate_ops(ops: dict) -> None:
    for op, arg in ops.items():
        if op not in FIELD_OPERATORS:
            raise InvalidQueryError(f"Unsupported operator: {op}")
        if op == "$elemMatch":
            if not isinstance(arg, dict):
                raise InvalidQueryError("$elemMatch requires an object.")
            if is_operator_doc(arg) and not LOGICAL_OPERATORS.intersection(arg):
                _validate_ops(arg)
            else:
                validate_condition(arg)
        elif op == "$not" and isinstance(arg, dict):
            _validate_ops(arg)


def validate_condition(condition: Any) -> None:
    """Raise InvalidQueryError for malformed filter conditions."""
    if not isinstance(condition, dict):
        raise InvalidQueryError("Query must be a dict.")
    for key, cond in condition.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(cond, list) or not cond:
                raise InvalidQueryError(f"{key} requires a non-empty list of clauses.")
            for clause in cond:
                validate_condition(clause)
        elif key == "$expr":
            validate_expression(cond)
        elif is_operator(key):
            raise InvalidQueryError(f"Unsupported top-level operator: {key}")
        elif isinstance(cond, dict) and any(is_operator(k) for k in cond):
            if not is_operator_doc(cond):
                raise InvalidQueryError(f"Cannot mix operators and fields under {key!r}.")
            _validate_ops(cond)


class Query:
    """A compiled filter condition.

    Usage:
        q = Query({"age": {"$gt": 30}})
        q.test({"age": 31})  # True
    """

    __slots__ = ("condition",)

    def __init__(self, condition: dict | None = None) -> None:
        condition = condition or {}
        validate_condition(condition)
        self.condition = condition

    def test(self, obj: Any) -> bool:
        return _match_doc(obj, self.condition)

    def __repr__(self) -> str:
        return f"Query({self.condition!r})"


def compile_predicate(condition: dict | None) -> Callable[[Any], bool]:
    """Return a reusable test-against-document function for a condition."""
    return Query(condition).test


# ─── Aggregation expressions ─────────────────────────────────────────────────


def truthy(value: Any) -> bool:
    """Expression truthiness: only null, missing, false and zero are false."""
    if value is None or value is MISSING or value is False:
        return False
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value != 0
    return True


def _value(value: Any) -> Any:
    return None if value is MISSING else value


def _eval(expr: Any, obj: Any, variables: dict) -> Any:
    if isinstance(expr, str):
        if expr.startswith("$$"):
            name, _, path = expr[2:].partition(".")
            if name not in variables:
                raise InvalidExpressionError(f"Undefined variable: $${name}")
            value = variables[name]
            return _value(_resolve(value, path.split("."))) if path else value
        if expr.startswith("$"):
            return _value(_resolve(obj, expr[1:].split(".")))
        return expr
    if isinstance(expr, list):
        return [_eval(e, obj, variables) for e in expr]
    if isinstance(expr, dict):
        if len(expr) == 1:
            op = next(iter(expr))
            if is_operator(op):
                handler = EXPRESSION_OPERATORS.get(op)
                if handler is None:
                    raise InvalidExpressionError(f"Unsupported expression operator: {op}")
                return handler(obj, expr[op], variables)
        if any(is_operator(k) for k in expr):
            raise InvalidExpressionError(f"Invalid expression object: {list(expr)}")
        return {k: _eval(v, obj, variables) for k, v in expr.items()}
    return expr


def evaluate(expr: Any, obj: Any, variables: dict | None = None) -> Any:
    """Evaluate an aggregation expression against obj."""
    scope = {"ROOT": obj, "CURRENT": obj}
    if variables:
        scope.update(variables)
    return _eval(expr, obj, scope)


def _args(obj: Any, arg: Any, variables: dict) -> list:
    if isinstance(arg, list):
        return [_eval(a, obj, variables) for a in arg]
    return [_eval(arg, obj, variables)]


def _number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _arith(fn: Callable[[list], Any]):
    def op(obj, arg, variables):
        values = _args(obj, arg, variables)
        if any(v is None for v in values):
            return None
        return fn(values)

    return op


def _product(values: list) -> Any:
    out = 1
    for v in values:
        out *= v
    return out


def _trunc(obj, arg, variables):
    values = _args(obj, arg, variables)
    number, place = values[0], (values[1] if len(values) > 1 else 0)
    if number is None:
        return None
    if place:
        scale = 10 ** place
        return math.trunc(number * scale) / scale
    return math.trunc(number)


def _to_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def _concat(obj, arg, variables):
    values = _args(obj, arg, variables)
    if any(v is None for v in values):
        return None
    return "".join(values)


def _single(obj, arg, variables):
    value = _args(obj, arg, variables)
    return value[0]


def _size_expr(obj, arg, variables):
    value = _single(obj, arg, variables)
    if not isinstance(value, list):
        raise InvalidExpressionError("$size requires an array.")
    return len(value)


def _array_elem_at(obj, arg, variables):
    arr, index = _args(obj, arg, variables)
    if arr is None:
        return None
    if -len(arr) <= index < len(arr):
        return arr[index]
    return None


def _slice_expr(obj, arg, variables):
    values = _args(obj, arg, variables)
    arr = values[0]
    if arr is None:
        return None
    if len(values) == 2:
        n = values[1]
        return arr[n:] if n < 0 else arr[:n]
    position, n = values[1], values[2]
    if position < 0:
        position = max(len(arr) + position, 0)
    return arr[position:position + n]


def _concat_arrays(obj, arg, variables):
    values = _args(obj, arg, variables)
    if any(v is None for v in values):
        return None
    out = []
    for v in values:
        out.extend(v)
    return out


def _first(obj, arg, variables):
    value = _single(obj, arg, variables)
    return value[0] if isinstance(value, list) and value else None


def _last(obj, arg, variables):
    value = _single(obj, arg, variables)
    return value[-1] if isinstance(value, list) and value else None


def _in_expr(obj, arg, variables):
    value, arr = _args(obj, arg, variables)
    if not isinstance(arr, list):
        raise InvalidExpressionError("$in requires an array as its second argument.")
    return any(equals(value, a) for a in arr)


def _filter(obj, arg, variables):
    arr = _eval(arg["input"], obj, variables)
    if arr is None:
        return None
    name = arg.get("as", "this")
    limit = _eval(arg.get("limit"), obj, variables)
    out = []
    for item in arr:
        if limit is not None and len(out) >= limit:
            break
        if truthy(_eval(arg["cond"], obj, {**variables, name: item})):
            out.append(item)
    return out


def _map(obj, arg, variables):
    arr = _eval(arg["input"], obj, variables)
    if arr is None:
        return None
    name = arg.get("as", "this")
    return [_eval(arg["in"], obj, {**variables, name: item}) for item in arr]


def _cond(obj, arg, variables):
    if isinstance(arg, list):
        if_, then, else_ = arg
    else:
        if_, then, else_ = arg["if"], arg["then"], arg["else"]
    return _eval(then if truthy(_eval(if_, obj, variables)) else else_, obj, variables)


def _switch(obj, arg, variables):
    for branch in arg["branches"]:
        if truthy(_eval(branch["case"], obj, variables)):
            return _eval(branch["then"], obj, variables)
    if "default" not in arg:
        raise InvalidExpressionError("$switch found no matching branch and has no default.")
    return _eval(arg["default"], obj, variables)


def _if_null(obj, arg, variables):
    values = _args(obj, arg, variables)
    for v in values[:-1]:
        if v is not None:
            return v
    return values[-1]


def _compare_expr(test: Callable[[int], bool]):
    def op(obj, arg, variables):
        a, b = _args(obj, arg, variables)
        return test(compare(a, b))

    return op


def _accumulate(fn: Callable[[list], Any]):
    def op(obj, arg, variables):
        values = _args(obj, arg, variables)
        if not isinstance(arg, list) and isinstance(values[0], list):
            values = values[0]
        return fn(values)

    return op


def _sum(values: list) -> Any:
    return sum(v for v in values if _number(v))


def _avg(values: list) -> Any:
    numbers = [v for v in values if _number(v)]
    return sum(numbers) / len(numbers) if numbers else None


def _extreme(sign: int):
    def fn(values: list) -> Any:
        out = None
        for v in values:
            if v is None:
                continue
            if out is None or compare(v, out) * sign > 0:
                out = v
        return out

    return fn


EXPRESSION_OPERATORS: dict[str, Callable[[Any, Any, dict], Any]] = {
    "$literal": lambda obj, arg, variables: arg,
    "$add": _arith(sum),
    "$subtract": _arith(lambda v: v[0] - v[1]),
    "$multiply": _arith(_product),
    "$divide": _arith(lambda v: v[0] / v[1]),
    "$mod": _arith(lambda v: v[0] % v[1]),
    "$abs": _arith(lambda v: abs(v[0])),
    "$trunc": _trunc,
    "$concat": _concat,
    "$toUpper": lambda obj, arg, variables: (_to_string(_single(obj, arg, variables)) or "").upper(),
    "$toLower": lambda obj, arg, variables: (_to_string(_single(obj, arg, variables)) or "").lower(),
    "$toString": lambda obj, arg, variables: _to_string(_single(obj, arg, variables)),
    "$size": _size_expr,
    "$arrayElemAt": _array_elem_at,
    "$slice": _slice_expr,
    "$concatArrays": _concat_arrays,
    "$isArray": lambda obj, arg, variables: isinstance(_single(obj, arg, variables), list),
    "$first": _first,
    "$last": _last,
    "$in": _in_expr,
    "$filter": _filter,
    "$map": _map,
    "$cond": _cond,
    "$switch": _switch,
    "$ifNull": _if_null,
    "$eq": _compare_expr(lambda c: c == 0),
    "$ne": _compare_expr(lambda c: c != 0),
    "$gt": _compare_expr(lambda c: c > 0),
    "$gte": _compare_expr(lambda c: c >= 0),
    "$lt": _compare_expr(lambda c: c < 0),
    "$lte": _compare_expr(lambda c: c <= 0),
    "$cmp": _compare_expr(lambda c: c),
    "$and": lambda obj, arg, variables: all(truthy(v) for v in _args(obj, arg, variables)),
    "$or": lambda obj, arg, variables: any(truthy(v) for v in _args(obj, arg, variables)),
    "$not": lambda obj, arg, variables: not truthy(_single(obj, arg, variables)),
    "$sum": _accumulate(_sum),
    "$avg": _accumulate(_avg),
    "$min": _accumulate(_extreme(-1)),
    "$max": _accumulate(_extreme(1)),
}


def validate_expression(expr: Any) -> None:
    """Raise InvalidExpressionError for unknown operators anywhere in expr."""
    if isinstance(expr, list):
        for e in expr:
            validate_expression(e)
    elif isinstance(expr, dict):
        for key, value in expr.items():
            if key == "$literal":
                continue
            if is_operator(key) and key not in EXPRESSION_OPERATORS:
                raise InvalidExpressionError(f"Unsupported expression operator: {key}")
            validate_expression(value)


# ─── Projection ──────────────────────────────────────────────────────────────


def is_inclusion(spec: Any) -> bool:
    return spec is True or (_number(spec) and spec == 1)


def is_projection_slice(arg: Any) -> bool:
    """$slice in projection form: n or [skip, n]."""
    if isinstance(arg, list):
        return len(arg) == 2 and all(isinstance(a, int) and not isinstance(a, bool) for a in arg)
    return isinstance(arg, int) and not isinstance(arg, bool)


def _set_path(out: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    cur = out
    for part in parts[:-1]:
        if not isinstance(cur.get(part), dict):
            cur[part] = {}
        cur = cur[part]
    cur[parts[-1]] = value


def _merge(target: Any, source: Any) -> Any:
    if isinstance(target, dict) and isinstance(source, dict):
        for key, value in source.items():
            target[key] = _merge(target[key], value) if key in target else value
        return target
    if isinstance(target, list) and isinstance(source, list):
        merged = [_merge(t, s) for t, s in zip(target, source)]
        return merged + target[len(source):] + source[len(target):]
    return source


def _include(value: Any, parts: list[str]) -> Any:
    if not parts:
        return copy.deepcopy(value)
    if isinstance(value, dict):
        if parts[0] not in value:
            return MISSING
        sub = _include(value[parts[0]], parts[1:])
        return MISSING if sub is MISSING else {parts[0]: sub}
    if isinstance(value, list):
        items = [_include(e, parts) for e in value if isinstance(e, dict | list)]
        return [i for i in items if i is not MISSING]
    return MISSING


def _project_into(out: dict, obj: Any, projection: dict, root: Any) -> None:
    for key, spec in projection.items():
        if is_inclusion(spec):
            included = _include(obj, key.split("."))
            if included is not MISSING:
                _merge(out, included)
        elif isinstance(spec, dict) and len(spec) == 1 and "$slice" in spec and is_projection_slice(spec["$slice"]):
            value = _resolve(obj, key.split("."))
            if value is MISSING:
                continue
            if isinstance(value, list):
                arg = spec["$slice"]
                if isinstance(arg, list):
                    skip, n = arg
                    if skip < 0:
                        skip = max(len(value) + skip, 0)
                    value = value[skip:skip + n]
                else:
                    value = value[arg:] if arg < 0 else value[:arg]
            _set_path(out, key, copy.deepcopy(value))
        elif isinstance(spec, dict) and len(spec) == 1 and "$elemMatch" in spec:
            value = _resolve(obj, key.split("."))
            if isinstance(value, list):
                for elem in value:
                    if _elem_match(elem, spec["$elemMatch"]):
                        _set_path(out, key, [copy.deepcopy(elem)])
                        break
        elif isinstance(spec, dict) and spec and not any(is_operator(k) for k in spec):
            value = _resolve(obj, key.split("."))
            if isinstance(value, dict):
                sub: dict = {}
                _project_into(sub, value, spec, root)
                _set_path(out, key, sub)
            elif isinstance(value, list):
                items = []
                for elem in value:
                    if isinstance(elem, dict):
                        sub = {}
                        _project_into(sub, elem, spec, root)
                        items.append(sub)
                _set_path(out, key, items)
        elif isinstance(spec, str) and spec.startswith("$") and not spec.startswith("$$"):
            value = _resolve(root, spec[1:].split("."))
            if value is not MISSING:
                _set_path(out, key, copy.deepcopy(value))
        else:
            _set_path(out, key, copy.deepcopy(evaluate(spec, root)))


def project(obj: Any, projection: dict | None) -> Any:
    """Shape obj through a projection. An empty projection returns a full copy."""
    if not projection:
        return copy.deepcopy(obj)
    out: dict = {}
    _project_into(out, obj, projection, obj)
    return out
