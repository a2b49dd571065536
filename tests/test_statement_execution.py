from types import SimpleNamespace

import pytest
from databricks.sdk.service.sql import Disposition, Format, StatementState

from dbexporter.core.adapters import statement_execution as se
from dbexporter.core.adapters.statement_execution import (
    DatabricksConnector,
    DatabricksWarehouseConnection,
    _wait_timeout,
)
from dbexporter.core.warehouse import ConnectError, QueryError, QueryTimeout


def _response(state, *, rows=None, columns=(), next_chunk=None, error=None):
    return SimpleNamespace(
        statement_id="stmt-1",
        status=SimpleNamespace(
            state=state,
            error=SimpleNamespace(message=error) if error else None,
        ),
        manifest=SimpleNamespace(
            schema=SimpleNamespace(columns=[SimpleNamespace(name=c) for c in columns])
        ),
        result=(
            SimpleNamespace(data_array=rows, next_chunk_index=next_chunk)
            if rows is not None
            else None
        ),
    )


class _StatementAPIStub:
    def __init__(self, *responses, chunks=None, error=None):
        self.responses = list(responses)
        self.chunks = chunks or {}
        self.error = error
        self.executed = []
        self.polled = 0
        self.cancelled = []

    def execute_statement(self, **kwargs):
        self.executed.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    def get_statement(self, statement_id):
        self.polled += 1
        if self.responses:
            return self.responses.pop(0)
        return _response(StatementState.RUNNING)

    def get_statement_result_chunk_n(self, statement_id, chunk_index):
        return self.chunks[chunk_index]

    def cancel_execution(self, statement_id):
        self.cancelled.append(statement_id)


def _connection(api) -> DatabricksWarehouseConnection:
    return DatabricksWarehouseConnection(
        SimpleNamespace(statement_execution=api), "abc123", poll_interval=0.0
    )


@pytest.mark.parametrize(
    "timeout, expected",
    [(0.5, "0s"), (4.9, "0s"), (5, "5s"), (30, "30s"), (300, "50s")],
)
def test_wait_timeout(timeout, expected):
    assert _wait_timeout(timeout) == expected


def test_inline_result():
    api = _StatementAPIStub(
        _response(StatementState.SUCCEEDED, columns=("a", "b"), rows=[["1", "x"], ["2", "y"]])
    )

    res = _connection(api).query("SELECT a, b FROM t", 30)

    assert res.columns == ("a", "b")
    assert list(res.records()) == [{"a": "1", "b": "x"}, {"a": "2", "b": "y"}]
    call = api.executed[0]
    assert call["warehouse_id"] == "abc123"
    assert call["statement"] == "SELECT a, b FROM t"
    assert call["disposition"] == Disposition.INLINE
    assert call["format"] == Format.JSON_ARRAY
    assert call["wait_timeout"] == "30s"


def test_polls_until_terminal():
    api = _StatementAPIStub(
        _response(StatementState.PENDING),
        _response(StatementState.RUNNING),
        _response(StatementState.SUCCEEDED, columns=("n",), rows=[["1"]]),
    )

    res = _connection(api).query("SELECT 1", 10)

    assert api.polled == 2
    assert len(res) == 1


def test_follows_result_chunks():
    api = _StatementAPIStub(
        _response(StatementState.SUCCEEDED, columns=("n",), rows=[["1"]], next_chunk=1),
        chunks={
            1: SimpleNamespace(data_array=[["2"]], next_chunk_index=2),
            2: SimpleNamespace(data_array=[["3"]], next_chunk_index=None),
        },
    )

    res = _connection(api).query("SELECT n FROM t", 10)

    assert [r["n"] for r in res.records()] == ["1", "2", "3"]


def test_empty_result():
    api = _StatementAPIStub(_response(StatementState.SUCCEEDED, columns=("n",)))

    res = _connection(api).query("SELECT n FROM t WHERE false", 10)

    assert res.columns == ("n",)
    assert len(res) == 0


def test_failed_statement_raises_upstream_message():
    api = _StatementAPIStub(
        _response(StatementState.FAILED, error="[TABLE_OR_VIEW_NOT_FOUND] t cannot be found")
    )

    with pytest.raises(QueryError, match="TABLE_OR_VIEW_NOT_FOUND"):
        _connection(api).query("SELECT 1 FROM t", 10)


def test_timeout_cancels_statement():
    api = _StatementAPIStub(_response(StatementState.RUNNING))

    with pytest.raises(QueryTimeout):
        _connection(api).query("SELECT sleep()", 0.05)

    assert api.cancelled == ["stmt-1"]
    assert api.executed[0]["wait_timeout"] == "0s"


def test_sdk_errors_become_query_errors():
    api = _StatementAPIStub(error=RuntimeError("503 Service Unavailable"))

    with pytest.raises(QueryError, match="503"):
        _connection(api).query("SELECT 1", 10)


def test_closed_connection_refuses_queries():
    api = _StatementAPIStub()
    conn = _connection(api)

    conn.close()

    assert conn.closed is True
    with pytest.raises(QueryError, match="closed"):
        conn.query("SELECT 1", 10)
    assert api.executed == []


def test_connector_pings_once(config, monkeypatch):
    api = _StatementAPIStub(_response(StatementState.SUCCEEDED, columns=("1",), rows=[["1"]]))
    monkeypatch.setattr(se, "get_client", lambda cfg: SimpleNamespace(statement_execution=api))

    conn = DatabricksConnector().connect(config)

    assert conn.warehouse_id == "abc123"
    assert [c["statement"] for c in api.executed] == ["SELECT 1"]


def test_connector_wraps_failures(config, monkeypatch):
    api = _StatementAPIStub(error=RuntimeError("invalid_client"))
    monkeypatch.setattr(se, "get_client", lambda cfg: SimpleNamespace(statement_execution=api))

    with pytest.raises(ConnectError, match="invalid_client"):
        DatabricksConnector().connect(config)
