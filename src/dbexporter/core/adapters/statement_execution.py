from __future__ import annotations

import threading
import time

import structlog
from databricks.sdk import WorkspaceClient
from databricks.sdk.service.sql import (
    Disposition,
    ExecuteStatementRequestOnWaitTimeout,
    Format,
    StatementResponse,
    StatementState,
)

from dbexporter.core.auth import get_client
from dbexporter.core.config import ScrapeConfig
from dbexporter.core.warehouse import (
    PROBE_QUERY,
    ConnectError,
    QueryError,
    QueryResult,
    QueryTimeout,
)

logger = structlog.get_logger()

_TERMINAL_STATES = {
    StatementState.SUCCEEDED,
    StatementState.FAILED,
    StatementState.CANCELED,
    StatementState.CLOSED,
}
# The API only accepts 0 (async) or 5-50 seconds for the synchronous wait.
_MIN_WAIT_SECONDS = 5
_MAX_WAIT_SECONDS = 50


def _wait_timeout(timeout: float) -> str:
    """Return the wait_timeout argument for a statement with the given timeout."""
    if timeout < _MIN_WAIT_SECONDS:
        return "0s"
    return f"{min(int(timeout), _MAX_WAIT_SECONDS)}s"


class DatabricksWarehouseConnection:
    """Warehouse session backed by the Databricks SQL Statement Execution API."""

    def __init__(
        self,
        client: WorkspaceClient,
        warehouse_id: str,
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.warehouse_id = warehouse_id
        self.poll_interval = poll_interval
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def query(self, sql: str, timeout: float) -> QueryResult:
        """
        Execute a statement and return all of its rows.

        The statement is polled until it reaches a terminal state. When the
        timeout expires first the statement is cancelled upstream.

        Raises:
            QueryTimeout: If the statement did not finish in time.
            QueryError: If the statement failed or the API call itself failed.
        """
        if self.closed:
            raise QueryError("connection is closed")

        started = time.monotonic()
        api = self.client.statement_execution
        try:
            response = api.execute_statement(
                statement=sql,
                warehouse_id=self.warehouse_id,
                disposition=Disposition.INLINE,
                format=Format.JSON_ARRAY,
                wait_timeout=_wait_timeout(timeout),
                on_wait_timeout=ExecuteStatementRequestOnWaitTimeout.CONTINUE,
            )
            while not self._is_terminal(response):
                left = timeout - (time.monotonic() - started)
                if left <= 0:
                    self._cancel(response.statement_id)
                    raise QueryTimeout(f"statement did not finish within {timeout:.0f}s")
                time.sleep(min(self.poll_interval, left))
                response = api.get_statement(response.statement_id)
        except QueryError:
            raise
        except Exception as exc:  # SDK/transport errors
            raise QueryError(str(exc)) from exc

        state = response.status.state
        if state != StatementState.SUCCEEDED:
            error = response.status.error
            message = getattr(error, "message", None) or f"statement {state.value}"
            raise QueryError(message)

        return self._read_result(response)

    def ping(self, timeout: float) -> None:
        self.query(PROBE_QUERY, timeout)

    def close(self) -> None:
        self._closed.set()

    @staticmethod
    def _is_terminal(response: StatementResponse) -> bool:
        status = response.status
        return bool(status and status.state in _TERMINAL_STATES)

    def _cancel(self, statement_id: str | None) -> None:
        if not statement_id:
            return
        try:
            self.client.statement_execution.cancel_execution(statement_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to cancel statement", statement_id=statement_id, error=str(exc))

    def _read_result(self, response: StatementResponse) -> QueryResult:
        """Collect the column names and every result chunk into a QueryResult."""
        columns: tuple[str, ...] = ()
        manifest = response.manifest
        if manifest and manifest.schema and manifest.schema.columns:
            columns = tuple(c.name for c in manifest.schema.columns)

        rows: list[list] = []
        chunk = response.result
        while chunk is not None:
            rows.extend(chunk.data_array or [])
            if chunk.next_chunk_index is None:
                break
            try:
                chunk = self.client.statement_execution.get_statement_result_chunk_n(
                    response.statement_id, chunk.next_chunk_index
                )
            except Exception as exc:
                raise QueryError(str(exc)) from exc

        return QueryResult(columns=columns, rows=rows)


class DatabricksConnector:
    """Opens DatabricksWarehouseConnection sessions for the configured warehouse."""

    def connect(self, config: ScrapeConfig) -> DatabricksWarehouseConnection:
        """
        Authenticate, bind to the warehouse and probe it once.

        The probe makes sure the OAuth handshake and a warehouse wake-up
        happen here rather than in the first metric query, so it is allowed
        the full query timeout.

        Raises:
            ConnectError: If authentication or the initial probe fails.
        """
        log = logger.bind(host=config.server_hostname, warehouse_id=config.warehouse_id)
        try:
            client = get_client(config)
            connection = DatabricksWarehouseConnection(client, config.warehouse_id)
            connection.ping(config.query_timeout.total_seconds())
        except Exception as exc:
            log.debug("Connect failed", error=str(exc))
            raise ConnectError(str(exc)) from exc
        log.debug("Connected to SQL warehouse")
        return connection
