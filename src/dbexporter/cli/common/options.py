"""Common CLI options for the exporter.

Every option can also be set through a DATABRICKS_EXPORTER_* environment
variable.
"""

import typer

from dbexporter.core.config import DEFAULT_SLA_THRESHOLD_SECONDS, DEFAULT_TABLE_CHECK_INTERVAL

_ENV = "DATABRICKS_EXPORTER_"

ServerHostnameOpt = typer.Option(
    "",
    "--server-hostname",
    envvar=f"{_ENV}SERVER_HOSTNAME",
    help="Databricks workspace hostname (e.g. dbc-abc123-def456.cloud.databricks.com)",
    show_default=False,
)

WarehouseHttpPathOpt = typer.Option(
    "",
    "--warehouse-http-path",
    envvar=f"{_ENV}WAREHOUSE_HTTP_PATH",
    help="HTTP path of the SQL warehouse (e.g. /sql/1.0/warehouses/abc123def456)",
    show_default=False,
)

ClientIdOpt = typer.Option(
    "",
    "--client-id",
    envvar=f"{_ENV}CLIENT_ID",
    help="OAuth client id of the service principal",
    show_default=False,
)

ClientSecretOpt = typer.Option(
    "",
    "--client-secret",
    envvar=f"{_ENV}CLIENT_SECRET",
    help="OAuth client secret of the service principal",
    show_default=False,
)

QueryTimeoutOpt = typer.Option(
    "5m",
    "--query-timeout",
    envvar=f"{_ENV}QUERY_TIMEOUT",
    help="Deadline for all queries of one scrape",
)

BillingLookbackOpt = typer.Option(
    "24h",
    "--billing-lookback",
    envvar=f"{_ENV}BILLING_LOOKBACK",
    help="How far back to look for billing data",
)

JobsLookbackOpt = typer.Option(
    "2h",
    "--jobs-lookback",
    envvar=f"{_ENV}JOBS_LOOKBACK",
    help="How far back to look for job runs",
)

PipelinesLookbackOpt = typer.Option(
    "2h",
    "--pipelines-lookback",
    envvar=f"{_ENV}PIPELINES_LOOKBACK",
    help="How far back to look for pipeline updates",
)

QueriesLookbackOpt = typer.Option(
    "1h",
    "--queries-lookback",
    envvar=f"{_ENV}QUERIES_LOOKBACK",
    help="How far back to look for SQL warehouse queries",
)

SlaThresholdOpt = typer.Option(
    DEFAULT_SLA_THRESHOLD_SECONDS,
    "--sla-threshold",
    envvar=f"{_ENV}SLA_THRESHOLD",
    help="Job duration in seconds above which a run counts as an SLA miss",
)

CollectTaskRetriesOpt = typer.Option(
    False,
    "--collect-task-retries/--no-collect-task-retries",
    envvar=f"{_ENV}COLLECT_TASK_RETRIES",
    help="Collect task retry metrics (high cardinality due to the task_key label)",
)

TableCheckIntervalOpt = typer.Option(
    DEFAULT_TABLE_CHECK_INTERVAL,
    "--table-check-interval",
    envvar=f"{_ENV}TABLE_CHECK_INTERVAL",
    help="Scrapes between re-checks of an unavailable optional table",
)

ListenAddressOpt = typer.Option(
    ":9976",
    "--listen-address",
    envvar=f"{_ENV}WEB_LISTEN_ADDRESS",
    help="Address to expose metrics on ([host]:port)",
)

LogLevelOpt = typer.Option(
    "info",
    "--log-level",
    envvar=f"{_ENV}LOG_LEVEL",
    help="Log level: debug, info, warning or error",
)

LogFormatOpt = typer.Option(
    "console",
    "--log-format",
    envvar=f"{_ENV}LOG_FORMAT",
    help="Log format: console or json",
)
