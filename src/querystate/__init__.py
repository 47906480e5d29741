"""querystate: a single-document store with MongoDB-style queries and dependency-aware selectors."""

from importlib.metadata import version as _version

__version__ = _version("querystate")

from querystate._frozen import FrozenDict, FrozenList, clone_frozen
from querystate._paths import same_ancestor
from querystate.dependencies import get_dependent_paths
from querystate.errors import (
    InvalidExpressionError,
    InvalidProjectionError,
    InvalidQueryError,
    InvalidUpdateError,
    ListenerError,
    QueryStateError,
)
from querystate.evaluator import Query
from querystate.operators import UpdateOperator
from querystate.selector import Listener, Selector, Unsubscribe
from querystate.store import Store, UpdateResult, create_store
# textual NOT auto-imported — opt-in only

__all__ = [
    "Store",
    "create_store",
    "UpdateResult",
    "Selector",
    "Listener",
    "Unsubscribe",
    "Query",
    "UpdateOperator",
    "get_dependent_paths",
    "same_ancestor",
    "clone_frozen",
    "FrozenDict",
    "FrozenList",
    "QueryStateError",
    "InvalidProjectionError",
    "InvalidQueryError",
    "InvalidExpressionError",
    "InvalidUpdateError",
    "ListenerError",
]
