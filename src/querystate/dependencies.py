"""Dependency analysis — which document paths an expression reads or writes.

Selectors use this once, at creation, to decide which updates can affect
them. The analysis is static: it looks only at the expression tree.

    get_dependent_paths({"age": {"$gt": 30}}, include_root_fields=True)  # {"age"}
    get_dependent_paths({"fullName": {"$concat": ["$first", " ", "$last"]}})  # {"first", "last"}

Two modes:
- include_root_fields=True (conditions, updates): every field key is a path.
- include_root_fields=False (projections): a root key only counts when its
  value selects from the document (1, True, a field reference, a nested
  projection, or a projection-shaping operator). Computed root fields
  contribute the paths their expression references, not their own name.
"""

from __future__ import annotations

from typing import Any, Callable

from querystate._paths import join_path
from querystate.evaluator import is_inclusion, is_operator, is_projection_slice, resolve
from querystate.operators import UpdateOperator

FIELD_MARKER = "$"
VARIABLE_MARKER = "$$"
LITERAL = "$literal"

# Marks an expression that reads the whole document.
WHOLE_DOCUMENT = "$$ROOT"
DOCUMENT_VARIABLES = frozenset({"ROOT", "CURRENT"})

UPDATE_OPERATORS = frozenset(op.value for op in UpdateOperator)

# Operators whose argument names roles, not fields. Only these role values
# are analysed.
KEYED_OPERATORS: dict[str, tuple[str, ...]] = {
    "$cond": ("if", "then", "else", "0", "1", "2"),
    "$switch": ("branches.case", "branches.then", "default"),
    "$filter": ("input", "cond", "limit"),
    "$map": ("input", "in"),
}

# Projection-shaping operators, each with the argument shape that tells it
# apart from an expression operator of the same name.
PROJECTION_OPERATORS: dict[str, Callable[[Any], bool]] = {
    "$elemMatch": lambda arg: isinstance(arg, dict),
    "$slice": is_projection_slice,
}


def _is_projection_like(value: Any) -> bool:
    if is_inclusion(value) or isinstance(value, dict | list):
        return True
    return isinstance(value, str) and value.startswith(FIELD_MARKER)


def _is_computed(value: Any) -> bool:
    """A single-operator object that computes a value rather than shaping a field."""
    if not (isinstance(value, dict) and len(value) == 1):
        return False
    op, arg = next(iter(value.items()))
    if not is_operator(op):
        return False
    shaped = PROJECTION_OPERATORS.get(op)
    return not (shaped and shaped(arg))


def _role_values(arg: Any, roles: tuple[str, ...]) -> list:
    return [v for v in (resolve(arg, role) for role in roles) if v]


def _walk(expr: Any, ancestor: str | None, include_root: bool, top: bool) -> set[str]:
    if isinstance(expr, str):
        if expr.startswith(VARIABLE_MARKER):
            name, _, rest = expr[2:].partition(".")
            if name not in DOCUMENT_VARIABLES:
                return set()
            return {rest} if rest else {WHOLE_DOCUMENT}
        if expr.startswith(FIELD_MARKER):
            return {expr[1:]} if len(expr) > 1 else set()
        return {ancestor} if ancestor else set()

    if isinstance(expr, list):
        paths: set[str] = set()
        for item in expr:
            paths |= _walk(item, ancestor, include_root, False)
        return paths

    if isinstance(expr, dict):
        paths = set()
        for key, value in expr.items():
            if key == LITERAL:
                continue
            if is_operator(key):
                if top and ancestor is None and key in UPDATE_OPERATORS:
                    # update selectors are written paths, literal values included
                    paths |= _walk(value, None, True, False)
                    continue
                roles = KEYED_OPERATORS.get(key)
                if roles and isinstance(value, dict | list):
                    value = _role_values(value, roles)
                paths |= _walk(value, ancestor, include_root, False)
                continue
            if ancestor is None and not include_root:
                if not _is_projection_like(value):
                    continue
                if _is_computed(value):
                    paths |= _walk(value, None, include_root, False)
                    continue
            paths |= _walk(value, join_path(ancestor, key), include_root, False)
        return paths

    return {ancestor} if ancestor else set()


def get_dependent_paths(expr: Any, *, include_root_fields: bool = False) -> set[str]:
    """Return the document paths expr depends on.

    Loop variables ($$name) and anything under $literal never contribute.
    $$ROOT and $$CURRENT contribute their sub-path, or WHOLE_DOCUMENT when
    used bare.
    """
    return _walk(expr, None, include_root_fields, True)
