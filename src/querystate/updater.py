"""Update application engine — locates the targets of an update selector.

An update selector is a dotted field path that may embed array-filter
placeholders:

    "grades.$[elem].mean"   -> every element of grades matching filter `elem`
    "grades.$[]"            -> every element of grades

tokenize_path() turns a selector into a chain of PathNodes, apply_update()
walks that chain through the document and calls the mutation callback at
every matched location, and walk_expression() ties both to the array
filters given with an update.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from querystate.errors import InvalidUpdateError
from querystate.evaluator import Query

ALL_ELEMENTS = "$"

_IDENTIFIER = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_PLACEHOLDER = ".$["

Mutator = Callable[[Any, Any], None]
Predicate = Callable[[Any], bool]


@dataclass(frozen=True)
class PathNode:
    """One link of a tokenized selector.

    parent: path before the placeholder (relative to the previous node's element)
    child: placeholder identifier, "$" for `$[]`, None when there is no placeholder
    next: node for the path that continues inside each matched element
    """

    parent: str
    child: str | None = None
    next: PathNode | None = None


def tokenize_path(path: str) -> tuple[PathNode, list[str]]:
    """Split a selector on array-filter placeholders.

    Returns the head node and the named identifiers in order of appearance.
    """
    if path.startswith("$["):
        start, offset = 0, 2
    else:
        start, offset = path.find(_PLACEHOLDER), len(_PLACEHOLDER)
        if start == -1:
            return PathNode(path), []

    end = path.find("]", start)
    if end == -1:
        raise InvalidUpdateError(f"Unterminated array filter placeholder in {path!r}")
    parent = path[:start]
    identifier = path[start + offset:end]
    rest = path[end + 1:]

    identifiers = []
    if identifier:
        if not _IDENTIFIER.match(identifier):
            raise InvalidUpdateError(
                f"Array filter identifier must match {_IDENTIFIER.pattern}: {identifier!r}"
            )
        identifiers.append(identifier)
    else:
        identifier = ALL_ELEMENTS

    next_node = None
    if rest:
        if not rest.startswith("."):
            raise InvalidUpdateError(f"Invalid path after placeholder in {path!r}")
        next_node, more = tokenize_path(rest[1:])
        identifiers.extend(more)

    return PathNode(parent, identifier, next_node), identifiers


def _is_index(key: str) -> bool:
    return key.isdigit()


def walk(
    obj: Any,
    selector: str,
    fn: Mutator,
    *,
    build_graph: bool = False,
    descend_array: bool = False,
) -> None:
    """Resolve selector in obj and call fn(container, key) at its last segment.

    build_graph creates missing intermediate objects. descend_array fans out
    over list elements when the next segment is not an index.
    """
    key, _, rest = selector.partition(".")

    if isinstance(obj, list):
        if not _is_index(key):
            if descend_array:
                for elem in obj:
                    walk(elem, selector, fn, build_graph=build_graph, descend_array=descend_array)
            return
        key = int(key)
    elif not isinstance(obj, dict):
        return

    if not rest:
        if isinstance(obj, dict) or key < len(obj):
            fn(obj, key)
        return

    if isinstance(obj, dict):
        if build_graph and obj.get(key) is None:
            obj[key] = {}
        item = obj.get(key)
    else:
        item = obj[key] if key < len(obj) else None

    if isinstance(item, dict | list):
        walk(item, rest, fn, build_graph=build_graph, descend_array=descend_array)


def apply_update(
    obj: Any,
    node: PathNode,
    predicates: dict[str, Predicate],
    mutate: Mutator,
    **walk_options: bool,
) -> None:
    """Call mutate at every location node addresses inside obj."""
    if node.child is None:
        walk(obj, node.parent, mutate, **walk_options)
        return

    def visit(arr: Any) -> None:
        if not isinstance(arr, list):
            return
        test = predicates.get(node.child)
        for index, elem in enumerate(arr):
            if test is not None and not test(elem):
                continue
            if node.next is not None:
                apply_update(elem, node.next, predicates, mutate, **walk_options)
            else:
                mutate(arr, index)

    if not node.parent:
        visit(obj)
    else:
        walk(obj, node.parent, lambda container, key: visit(_get(container, key)))


def _get(container: Any, key: Any) -> Any:
    if isinstance(container, list):
        return container[key]
    return container.get(key)


def _build_predicates(identifiers: list[str], array_filters: list[dict]) -> dict[str, Predicate]:
    predicates = {}
    for identifier in identifiers:
        condition = {}
        for spec in array_filters:
            for key, value in spec.items():
                if key == identifier or key.startswith(identifier + "."):
                    condition[key] = value
        if not condition:
            continue
        query = Query(condition)
        predicates[identifier] = lambda elem, q=query, name=identifier: q.test({name: elem})
    return predicates


def walk_expression(
    expr: dict,
    array_filters: list[dict] | None,
    callback: Callable[[Any, PathNode, dict[str, Predicate]], None],
) -> None:
    """Call callback(value, node, predicates) for every selector in expr."""
    for selector, value in expr.items():
        node, identifiers = tokenize_path(selector)
        if node.child is None:
            callback(value, node, {})
        else:
            callback(value, node, _build_predicates(identifiers, array_filters or []))
