"""Run the exporter HTTP server."""

from __future__ import annotations

import signal
import threading

import structlog
import typer
from prometheus_client import CollectorRegistry, start_http_server

from dbexporter.cli.common.context import build_config
from dbexporter.cli.common.exits import die
from dbexporter.cli.common.options import (
    BillingLookbackOpt,
    ClientIdOpt,
    ClientSecretOpt,
    CollectTaskRetriesOpt,
    JobsLookbackOpt,
    ListenAddressOpt,
    PipelinesLookbackOpt,
    QueriesLookbackOpt,
    QueryTimeoutOpt,
    ServerHostnameOpt,
    SlaThresholdOpt,
    TableCheckIntervalOpt,
    WarehouseHttpPathOpt,
)
from dbexporter.core.adapters.statement_execution import DatabricksConnector
from dbexporter.core.collector import Collector
from dbexporter.core.exposition import PrometheusCollector

logger = structlog.get_logger()


def parse_listen_address(address: str) -> tuple[str, int]:
    """
    Split a '[host]:port' listen address.

    An empty host means all interfaces; IPv6 hosts may be bracketed.

    Raises:
        ValueError: If the port is missing or not a valid port number.
    """
    host, sep, port = address.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r} (expected [host]:port)")
    number = int(port)
    if not 0 < number < 65536:
        raise ValueError(f"Invalid port in listen address: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, number


def serve(
    server_hostname: str = ServerHostnameOpt,
    warehouse_http_path: str = WarehouseHttpPathOpt,
    client_id: str = ClientIdOpt,
    client_secret: str = ClientSecretOpt,
    query_timeout: str = QueryTimeoutOpt,
    billing_lookback: str = BillingLookbackOpt,
    jobs_lookback: str = JobsLookbackOpt,
    pipelines_lookback: str = PipelinesLookbackOpt,
    queries_lookback: str = QueriesLookbackOpt,
    sla_threshold: int = SlaThresholdOpt,
    collect_task_retries: bool = CollectTaskRetriesOpt,
    table_check_interval: int = TableCheckIntervalOpt,
    listen_address: str = ListenAddressOpt,
):
    """
    Expose Databricks metrics for Prometheus until interrupted.
    """
    config = build_config(
        server_hostname=server_hostname,
        warehouse_http_path=warehouse_http_path,
        client_id=client_id,
        client_secret=client_secret,
        query_timeout=query_timeout,
        billing_lookback=billing_lookback,
        jobs_lookback=jobs_lookback,
        pipelines_lookback=pipelines_lookback,
        queries_lookback=queries_lookback,
        sla_threshold=sla_threshold,
        collect_task_retries=collect_task_retries,
        table_check_interval=table_check_interval,
    )
    try:
        host, port = parse_listen_address(listen_address)
    except ValueError as e:
        die(str(e), code=1)

    collector = Collector(config, DatabricksConnector())
    registry = CollectorRegistry()
    registry.register(PrometheusCollector(collector))

    try:
        server, _ = start_http_server(port, addr=host, registry=registry)
    except OSError as e:
        die(f"Cannot listen on {listen_address}: {e}", code=1)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    logger.info(
        "Starting databricks exporter",
        listen_address=listen_address,
        server_hostname=config.server_hostname,
        warehouse_id=config.warehouse_id,
        collect_task_retries=config.collect_task_retries,
    )
    try:
        stop.wait()
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down databricks exporter")
        server.shutdown()
        collector.close()

    raise typer.Exit(0)
