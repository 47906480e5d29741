"""Error types raised by querystate.

Everything here is a construction error: it is raised synchronously at the
offending call and leaves the store usable.
"""


class QueryStateError(Exception):
    """Base class for querystate errors."""


class InvalidProjectionError(QueryStateError):
    """Raised when a projection passed to select() is malformed."""


class InvalidQueryError(QueryStateError):
    """Raised when a filter condition uses unsupported syntax."""


class InvalidExpressionError(QueryStateError):
    """Raised when an aggregation expression uses unsupported syntax."""


class InvalidUpdateError(QueryStateError):
    """Raised when an update expression or array filter is invalid."""


class ListenerError(QueryStateError):
    """Raised when a listener is registered twice or in conflicting modes."""
