"""Scrape configuration for the Databricks exporter.

The configuration is built once at process start (usually from CLI flags or
environment variables) and is read-only afterwards: every collection cycle
reads the same ScrapeConfig instance.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_QUERY_TIMEOUT = timedelta(minutes=5)
DEFAULT_BILLING_LOOKBACK = timedelta(hours=24)
DEFAULT_JOBS_LOOKBACK = timedelta(hours=2)
DEFAULT_PIPELINES_LOOKBACK = timedelta(hours=2)
DEFAULT_QUERIES_LOOKBACK = timedelta(hours=1)
DEFAULT_SLA_THRESHOLD_SECONDS = 3600
DEFAULT_TABLE_CHECK_INTERVAL = 10

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


class ConfigError(ValueError):
    """Raised when the exporter configuration is invalid."""


def parse_duration(text: str) -> timedelta:
    """
    Convert a duration string into a timedelta.

    Accepts single-unit values ('500ms', '30s', '5m', '2h', '1d'), compound
    values in the Go style ('1h30m') and bare numbers, which are seconds.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    raw = (text or "").strip().lower()
    if not raw:
        raise ValueError("Empty duration")

    try:
        seconds = float(raw)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(raw):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos != len(raw):
            raise ValueError(f"Unrecognized duration format: {text}") from None

    if not math.isfinite(seconds):
        raise ValueError(f"Duration out of range: {text}")
    try:
        return timedelta(seconds=seconds)
    except OverflowError as exc:
        raise ValueError(f"Duration out of range: {text}") from exc


@dataclass(frozen=True)
class ScrapeConfig:
    """
    Immutable configuration shared by every collection cycle.

    Attributes:
        server_hostname: Databricks workspace hostname.
        warehouse_http_path: HTTP path (or bare id) of the SQL warehouse.
        client_id: Service principal OAuth client id.
        client_secret: Service principal OAuth client secret.
        query_timeout: Deadline for the query phase of one scrape.
        billing_lookback: Window scanned by billing queries.
        jobs_lookback: Window scanned by job queries.
        pipelines_lookback: Window scanned by pipeline queries.
        queries_lookback: Window scanned by SQL warehouse query-history queries.
        sla_threshold_seconds: Job duration above which a run counts as an SLA miss.
        collect_task_retries: Enable the high-cardinality task retry metric.
        table_check_interval: Scrapes between re-probes of an unavailable table.
    """

    server_hostname: str = ""
    warehouse_http_path: str = ""
    client_id: str = ""
    client_secret: str = ""
    query_timeout: timedelta = DEFAULT_QUERY_TIMEOUT
    billing_lookback: timedelta = DEFAULT_BILLING_LOOKBACK
    jobs_lookback: timedelta = DEFAULT_JOBS_LOOKBACK
    pipelines_lookback: timedelta = DEFAULT_PIPELINES_LOOKBACK
    queries_lookback: timedelta = DEFAULT_QUERIES_LOOKBACK
    sla_threshold_seconds: int = DEFAULT_SLA_THRESHOLD_SECONDS
    collect_task_retries: bool = False
    table_check_interval: int = DEFAULT_TABLE_CHECK_INTERVAL

    @property
    def warehouse_id(self) -> str:
        """Return the warehouse id, the last segment of the warehouse HTTP path."""
        return self.warehouse_http_path.strip().rstrip("/").rsplit("/", 1)[-1]

    def validate(self) -> None:
        """
        Check the configuration and raise on the first problem found.

        Raises:
            ConfigError: If a required value is missing or a value is out of range.
        """
        required = (
            ("server_hostname", self.server_hostname),
            ("warehouse_http_path", self.warehouse_http_path),
            ("client_id", self.client_id),
            ("client_secret", self.client_secret),
        )
        for name, value in required:
            if not value or not value.strip():
                raise ConfigError(f"{name} must be specified")

        durations = (
            ("query_timeout", self.query_timeout),
            ("billing_lookback", self.billing_lookback),
            ("jobs_lookback", self.jobs_lookback),
            ("pipelines_lookback", self.pipelines_lookback),
            ("queries_lookback", self.queries_lookback),
        )
        for name, value in durations:
            if value <= timedelta(0):
                raise ConfigError(f"{name} must be positive")

        if self.sla_threshold_seconds <= 0:
            raise ConfigError("sla_threshold_seconds must be positive")
        if self.table_check_interval < 1:
            raise ConfigError("table_check_interval must be >= 1")
