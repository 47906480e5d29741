"""Read-only snapshots of store data.

Values handed out by the store are deep clones built from FrozenDict and
FrozenList. Both subclass the builtin containers so they compare equal to
plain dicts and lists, but every mutator raises TypeError.
Copying one yields plain mutable containers again.
"""

from __future__ import annotations

import copy
from typing import Any


def _readonly(self, *args, **kwargs):
    raise TypeError(f"{type(self).__name__} is read-only")


class FrozenDict(dict):
    __slots__ = ()

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

    def __hash__(self):
        return hash(tuple(sorted(self.items(), key=lambda kv: kv[0])))

    def __copy__(self):
        return dict(self)

    def __deepcopy__(self, memo):
        return {k: copy.deepcopy(v, memo) for k, v in self.items()}

    def __repr__(self) -> str:
        return f"FrozenDict({dict.__repr__(self)})"


class FrozenList(list):
    __slots__ = ()

    __setitem__ = _readonly
    __delitem__ = _readonly
    __iadd__ = _readonly
    __imul__ = _readonly
    append = _readonly
    clear = _readonly
    extend = _readonly
    insert = _readonly
    pop = _readonly
    remove = _readonly
    reverse = _readonly
    sort = _readonly

    def __hash__(self):
        return hash(tuple(self))

    def __copy__(self):
        return list(self)

    def __deepcopy__(self, memo):
        return [copy.deepcopy(v, memo) for v in self]

    def __repr__(self) -> str:
        return f"FrozenList({list.__repr__(self)})"


def clone_frozen(value: Any) -> Any:
    """Return a deep, read-only clone of value. Scalars come back unchanged."""
    if isinstance(value, FrozenDict | FrozenList):
        return value
    if isinstance(value, dict):
        return FrozenDict((k, clone_frozen(v)) for k, v in value.items())
    if isinstance(value, list | tuple):
        return FrozenList(clone_frozen(v) for v in value)
    return value
