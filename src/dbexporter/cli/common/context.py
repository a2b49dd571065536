"""Build the scrape configuration from CLI options."""

from __future__ import annotations

from dbexporter.cli.common.exits import die
from dbexporter.core.config import (
    DEFAULT_SLA_THRESHOLD_SECONDS,
    DEFAULT_TABLE_CHECK_INTERVAL,
    ConfigError,
    ScrapeConfig,
    parse_duration,
)


def build_config(
    *,
    server_hostname: str,
    warehouse_http_path: str,
    client_id: str,
    client_secret: str,
    query_timeout: str | None = None,
    billing_lookback: str | None = None,
    jobs_lookback: str | None = None,
    pipelines_lookback: str | None = None,
    queries_lookback: str | None = None,
    sla_threshold: int = DEFAULT_SLA_THRESHOLD_SECONDS,
    collect_task_retries: bool = False,
    table_check_interval: int = DEFAULT_TABLE_CHECK_INTERVAL,
) -> ScrapeConfig:
    """
    Parse and validate CLI options into a ScrapeConfig.

    Durations left as None keep the ScrapeConfig defaults. Exits with code 1
    on the first invalid value.
    """
    durations = {}
    for field, raw in (
        ("query_timeout", query_timeout),
        ("billing_lookback", billing_lookback),
        ("jobs_lookback", jobs_lookback),
        ("pipelines_lookback", pipelines_lookback),
        ("queries_lookback", queries_lookback),
    ):
        if raw is None:
            continue
        try:
            durations[field] = parse_duration(raw)
        except ValueError as e:
            die(f"--{field.replace('_', '-')}: {e}", code=1)

    config = ScrapeConfig(
        server_hostname=server_hostname,
        warehouse_http_path=warehouse_http_path,
        client_id=client_id,
        client_secret=client_secret,
        sla_threshold_seconds=sla_threshold,
        collect_task_retries=collect_task_retries,
        table_check_interval=table_check_interval,
        **durations,
    )
    try:
        config.validate()
    except ConfigError as e:
        die(f"Invalid configuration: {e}", code=1)
    return config
