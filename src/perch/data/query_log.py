"""Per-request record of queries that reached the entity store.

Every cache miss (and every lookup while caching is disabled) is recorded
under its query name. The list lives in a ContextVar, so each request
task sees only its own entries.

Usage::

    from perch.data.query_log import query_log

    users.find(42)
    query_log.count        # 1 on a miss, 0 on a hit
    query_log.requests     # ("repository:User:one:42",)
"""

import logging
from contextvars import ContextVar

logger = logging.getLogger("perch.data")


class QueryLog:
    """Names of store requests made during the current request."""

    __slots__ = ("_store",)

    def __init__(self) -> None:
        self._store: ContextVar[list[str] | None] = ContextVar("perch_query_log", default=None)

    def _entries(self) -> list[str]:
        entries = self._store.get()
        if entries is None:
            entries = []
            self._store.set(entries)
        return entries

    def record(self, query_name: str) -> None:
        self._entries().append(query_name)
        logger.debug("store request: %s", query_name)

    @property
    def requests(self) -> tuple[str, ...]:
        return tuple(self._entries())

    @property
    def count(self) -> int:
        return len(self._entries())

    def reset(self) -> None:
        """Start a fresh log for the current context."""
        self._store.set([])

    def __repr__(self) -> str:
        return f"<QueryLog {self.count} requests>"


query_log = QueryLog()
"""Default query log shared by repositories that are not given their own."""
