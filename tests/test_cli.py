from datetime import timedelta

import pytest
from typer.testing import CliRunner

import dbexporter.cli.cli as cli_mod
import dbexporter.cli.commands.check as check_cmd
from _stubs import StubConnection, StubConnector
from dbexporter.cli.cli import app
from dbexporter.cli.commands.serve import parse_listen_address
from dbexporter.cli.common.context import build_config
from dbexporter.core.config import (
    DEFAULT_SLA_THRESHOLD_SECONDS,
    DEFAULT_TABLE_CHECK_INTERVAL,
    ScrapeConfig,
)
from dbexporter.core.queries import SYSTEM_TABLES
from dbexporter.core.warehouse import ConnectError, QueryError

runner = CliRunner()

ARGS = [
    "check",
    "--server-hostname",
    "dbc-abc123.cloud.databricks.com",
    "--warehouse-http-path",
    "/sql/1.0/warehouses/abc123",
    "--client-id",
    "client-id",
    "--client-secret",
    "client-secret",
]


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    monkeypatch.setattr(cli_mod, "configure_logging", lambda level, fmt: None)
    for var in (
        "SERVER_HOSTNAME",
        "WAREHOUSE_HTTP_PATH",
        "CLIENT_ID",
        "CLIENT_SECRET",
        "QUERY_TIMEOUT",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(f"DATABRICKS_EXPORTER_{var}", raising=False)


def _use(monkeypatch, connector):
    monkeypatch.setattr(check_cmd, "DatabricksConnector", lambda: connector)


def test_check_probes_every_system_table(monkeypatch):
    conn = StubConnection(
        {"pipeline_update_timeline": QueryError("[TABLE_OR_VIEW_NOT_FOUND] cannot be found")}
    )
    _use(monkeypatch, StubConnector(conn))

    res = runner.invoke(app, ARGS)

    assert res.exit_code == 0, res.output
    assert "Connected" in res.output
    assert "not readable" in res.output
    assert len(conn.queries) == len(SYSTEM_TABLES)
    assert conn.closed is True


def test_check_all_tables_ok(monkeypatch):
    _use(monkeypatch, StubConnector(StubConnection()))

    res = runner.invoke(app, ARGS)

    assert res.exit_code == 0, res.output
    assert "not readable" not in res.output
    assert "Check complete" in res.output


def test_check_connection_failure_exits_1(monkeypatch):
    _use(monkeypatch, StubConnector(error=ConnectError("invalid_client")))

    res = runner.invoke(app, ARGS)

    assert res.exit_code == 1
    assert "Connection failed" in res.output


def test_check_reads_environment(monkeypatch):
    _use(monkeypatch, StubConnector(StubConnection()))
    monkeypatch.setenv("DATABRICKS_EXPORTER_SERVER_HOSTNAME", "dbc-env.cloud.databricks.com")
    monkeypatch.setenv("DATABRICKS_EXPORTER_WAREHOUSE_HTTP_PATH", "/sql/1.0/warehouses/env")
    monkeypatch.setenv("DATABRICKS_EXPORTER_CLIENT_ID", "id")
    monkeypatch.setenv("DATABRICKS_EXPORTER_CLIENT_SECRET", "secret")

    res = runner.invoke(app, ["check"])

    assert res.exit_code == 0, res.output
    assert "dbc-env.cloud.databricks.com" in res.output


def test_missing_required_option_exits_1(monkeypatch):
    _use(monkeypatch, StubConnector(StubConnection()))

    res = runner.invoke(app, ["check", "--client-id", "x"])

    assert res.exit_code == 1
    assert "server_hostname must be specified" in res.output


def test_bad_duration_exits_1(monkeypatch):
    _use(monkeypatch, StubConnector(StubConnection()))

    res = runner.invoke(app, [*ARGS, "--query-timeout", "soon"])

    assert res.exit_code == 1
    assert "--query-timeout" in res.output


def test_bad_log_format_exits_1(monkeypatch):
    def _reject(level, fmt):
        raise ValueError(f"Unknown log format: {fmt}")

    monkeypatch.setattr(cli_mod, "configure_logging", _reject)

    res = runner.invoke(app, ["--log-format", "xml", *ARGS])

    assert res.exit_code == 1
    assert "Unknown log format" in res.output


@pytest.mark.parametrize(
    "address, expected",
    [
        (":9976", ("0.0.0.0", 9976)),
        ("127.0.0.1:8080", ("127.0.0.1", 8080)),
        ("[::1]:9976", ("::1", 9976)),
    ],
)
def test_parse_listen_address(address, expected):
    assert parse_listen_address(address) == expected


@pytest.mark.parametrize("address", ["9976", "host:", "host:http", ":70000"])
def test_parse_listen_address_rejects(address):
    with pytest.raises(ValueError):
        parse_listen_address(address)


def test_infinite_duration_exits_1(monkeypatch):
    _use(monkeypatch, StubConnector(StubConnection()))

    res = runner.invoke(app, [*ARGS, "--query-timeout", "inf"])

    assert res.exit_code == 1
    assert "out of range" in res.output


def test_build_config_keeps_core_defaults():
    cfg = build_config(
        server_hostname="dbc-abc123.cloud.databricks.com",
        warehouse_http_path="/sql/1.0/warehouses/abc123",
        client_id="client-id",
        client_secret="client-secret",
        query_timeout="30s",
    )

    defaults = ScrapeConfig()
    assert cfg.query_timeout == timedelta(seconds=30)
    assert cfg.billing_lookback == defaults.billing_lookback
    assert cfg.jobs_lookback == defaults.jobs_lookback
    assert cfg.pipelines_lookback == defaults.pipelines_lookback
    assert cfg.queries_lookback == defaults.queries_lookback
    assert cfg.sla_threshold_seconds == DEFAULT_SLA_THRESHOLD_SECONDS
    assert cfg.table_check_interval == DEFAULT_TABLE_CHECK_INTERVAL
