"""One-off connectivity check against the configured SQL warehouse."""

from __future__ import annotations

from dbexporter.cli.common.context import build_config
from dbexporter.cli.common.exits import die, ok_exit
from dbexporter.cli.common.options import (
    ClientIdOpt,
    ClientSecretOpt,
    QueryTimeoutOpt,
    ServerHostnameOpt,
    WarehouseHttpPathOpt,
)
from dbexporter.cli.common.output import out
from dbexporter.core.adapters.statement_execution import DatabricksConnector
from dbexporter.core.availability import table_probe_query
from dbexporter.core.queries import SYSTEM_TABLES
from dbexporter.core.warehouse import ConnectError, Deadline


def check(
    server_hostname: str = ServerHostnameOpt,
    warehouse_http_path: str = WarehouseHttpPathOpt,
    client_id: str = ClientIdOpt,
    client_secret: str = ClientSecretOpt,
    query_timeout: str = QueryTimeoutOpt,
):
    """
    Connect to the SQL warehouse and probe every system table the exporter reads.
    """
    config = build_config(
        server_hostname=server_hostname,
        warehouse_http_path=warehouse_http_path,
        client_id=client_id,
        client_secret=client_secret,
        query_timeout=query_timeout,
    )

    out.header("Databricks exporter check")
    out.kv({"Host": config.server_hostname, "Warehouse": config.warehouse_id})

    try:
        with out.status("Connecting to SQL warehouse..."):
            connection = DatabricksConnector().connect(config)
    except ConnectError as e:
        die(f"Connection failed: {e}", code=1)
    out.success("Connected to SQL warehouse")

    results: list[tuple[str, str | None]] = []
    deadline = Deadline(config.query_timeout)
    try:
        with out.status("Probing system tables..."):
            for table in SYSTEM_TABLES:
                try:
                    connection.query(
                        table_probe_query(table), deadline.timeout_for(config.query_timeout)
                    )
                except Exception as e:  # noqa: BLE001
                    results.append((table, str(e)))
                else:
                    results.append((table, None))
    finally:
        connection.close()

    out.table_checks_table(results)

    missing = [table for table, error in results if error is not None]
    if missing:
        out.warn(f"{len(missing)} system table(s) not readable; dependent metrics will be skipped")
    ok_exit("Check complete")
