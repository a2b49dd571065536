"""SQL warehouse connection contracts.

These types describe what the collection core needs from an upstream
warehouse session: run a query with a timeout, answer a cheap health probe,
and be closed when replaced. They are intentionally free of Databricks SDK
types so that collectors and tests can work against any implementation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterator, Protocol, Sequence

from dbexporter.core.config import ScrapeConfig

PROBE_QUERY = "SELECT 1"


class ConnectError(RuntimeError):
    """Raised when a warehouse session cannot be established."""


class QueryError(RuntimeError):
    """Raised when a statement fails upstream; the message carries the upstream error."""


class QueryTimeout(QueryError):
    """Raised when a statement does not finish before its timeout."""


@dataclass(frozen=True)
class QueryResult:
    """Column names plus rows, in the order returned by the warehouse."""

    columns: tuple[str, ...]
    rows: Sequence[Sequence[Any]] = field(default_factory=tuple)

    def records(self) -> Iterator[dict[str, Any]]:
        """Yield each row as a column-name keyed dict."""
        for row in self.rows:
            yield dict(zip(self.columns, row))

    def __len__(self) -> int:
        return len(self.rows)


class WarehouseConnection(Protocol):
    """A live, reusable warehouse session."""

    def query(self, sql: str, timeout: float) -> QueryResult:
        """Run a statement and return its full result, or raise QueryError."""
        ...

    def ping(self, timeout: float) -> None:
        """Run a minimal health probe, raising on failure."""
        ...

    def close(self) -> None:
        """Release the session; further queries must fail."""
        ...


class Connector(Protocol):
    """Factory for warehouse sessions (the Connect collaborator)."""

    def connect(self, config: ScrapeConfig) -> WarehouseConnection:
        """Open a new session or raise ConnectError."""
        ...


class Deadline:
    """
    Monotonic deadline shared by all queries of one scrape.

    Each query gets the smaller of its own timeout and the time left on the
    scrape; once the deadline has passed no further query is started.
    """

    def __init__(self, budget: timedelta):
        self.budget = budget
        self._expires_at = time.monotonic() + budget.total_seconds()

    def remaining(self) -> float:
        """Return seconds left, never negative."""
        return max(self._expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def timeout_for(self, per_query: timedelta) -> float:
        """
        Return the timeout to use for the next query.

        Raises:
            QueryTimeout: If the scrape deadline has already passed.
        """
        remaining = self.remaining()
        if remaining <= 0.0:
            raise QueryTimeout(
                f"scrape deadline of {self.budget.total_seconds():.0f}s exceeded"
            )
        return min(per_query.total_seconds(), remaining)
