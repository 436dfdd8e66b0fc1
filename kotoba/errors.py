"""
Exceptions raised by kotoba.

Parse and validation errors are raised synchronously, before any query
reaches the worker pool. Execution errors (timeouts, worker faults) are
captured by the search operation that owns the failing tier and replayed
to every page request that depends on rows it never produced.
"""

from typing import Optional


class KotobaError(Exception):
    """Base class for all kotoba errors."""
    pass


class QuerySyntaxError(KotobaError):
    """
    Raised when a query cannot be parsed.

    Attributes:
        token: The offending token, or None at end of input
        position: Character offset of the token in the normalized query
    """

    def __init__(self, message: str, token: Optional[str] = None, position: int = 0):
        self.token = token
        self.position = position
        if token is None:
            super().__init__(f"{message} at end of query (position {position})")
        else:
            super().__init__(f"{message} at {token!r} (position {position})")


class ValidationError(KotobaError, ValueError):
    """Raised for invalid paging arguments or configuration values."""
    pass


class QueryTimeout(KotobaError):
    """Raised when an index job exceeds its deadline."""

    def __init__(self, timeout: float, sql: Optional[str] = None):
        self.timeout = timeout
        self.sql = sql
        super().__init__(f"Query timed out after {timeout}s")


class WorkerFault(KotobaError):
    """Raised when a pool worker's database connection fails mid-job."""
    pass


class DictionaryNotFound(KotobaError, FileNotFoundError):
    """Raised when the dictionary database does not exist."""
    pass
