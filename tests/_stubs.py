"""Hand-written warehouse stubs shared by the tests."""

from __future__ import annotations

import threading
import time

from dbexporter.core.warehouse import QueryResult


def result(columns, *rows) -> QueryResult:
    return QueryResult(columns=tuple(columns), rows=[list(r) for r in rows])


class StubConnection:
    """
    Answers queries by substring match on the SQL text.

    `responses` maps a needle to a QueryResult or an exception instance;
    the first needle found in the statement wins. Unmatched statements
    return an empty result.
    """

    def __init__(self, responses=None, *, ping_error=None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.ping_error = ping_error
        self.delay = delay
        self.queries: list[str] = []
        self.pings = 0
        self.closed = False
        self._lock = threading.Lock()

    def query(self, sql: str, timeout: float) -> QueryResult:
        with self._lock:
            self.queries.append(sql)
        if self.delay:
            time.sleep(self.delay)
        for needle, response in self.responses.items():
            if needle in sql:
                if isinstance(response, Exception):
                    raise response
                return response
        return QueryResult(columns=())

    def ping(self, timeout: float) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    def close(self) -> None:
        self.closed = True


class StubConnector:
    """Hands out the given connections in order, or raises `error`."""

    def __init__(self, *connections, error=None):
        self.connections = list(connections)
        self.error = error
        self.calls = 0

    def connect(self, config):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.connections.pop(0)
