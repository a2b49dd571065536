"""Metric descriptors and the observations collectors emit against them.

Collectors never talk to a metrics library directly. They emit Observation
values into a MetricSink; the exposition layer turns buffered observations
into Prometheus metric families.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Protocol

NAMESPACE = "databricks"


class MetricKind(str, Enum):
    """Exposition type of a metric."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class Observation:
    """One sample: a metric, its label values (in descriptor order) and a value."""

    metric: MetricDesc
    labels: tuple[str, ...]
    value: float

    @property
    def kind(self) -> MetricKind:
        return self.metric.kind

    @property
    def label_map(self) -> dict[str, str]:
        return dict(zip(self.metric.labels, self.labels))


@dataclass(frozen=True)
class MetricDesc:
    """
    Immutable description of a metric.

    Attributes:
        name: Fully qualified metric name.
        documentation: Help text.
        labels: Ordered label names.
        kind: Counter or gauge.
    """

    name: str
    documentation: str
    labels: tuple[str, ...] = ()
    kind: MetricKind = MetricKind.GAUGE

    def observe(self, value: float, *label_values: str) -> Observation:
        """
        Build an observation of this metric.

        Raises:
            ValueError: If the number of label values does not match `labels`.
        """
        if len(label_values) != len(self.labels):
            raise ValueError(
                f"{self.name} expects {len(self.labels)} label values, got {len(label_values)}"
            )
        return Observation(
            metric=self,
            labels=tuple(str(v) for v in label_values),
            value=float(value),
        )


class MetricSink(Protocol):
    """Receiver of observations. Must accept emits from concurrent threads."""

    def emit(self, observation: Observation) -> None:
        ...


def _name(suffix: str) -> str:
    return f"{NAMESPACE}_{suffix}"


_JOB = ("workspace_id", "job_id", "job_name")
_PIPELINE = ("workspace_id", "pipeline_id", "pipeline_name")
_WAREHOUSE = ("workspace_id", "warehouse_id")


class MetricDescriptors:
    """The full, fixed set of metrics exported by one exporter instance."""

    def __init__(self) -> None:
        counter, gauge = MetricKind.COUNTER, MetricKind.GAUGE

        # Billing
        self.billing_dbus = MetricDesc(
            _name("billing_dbus_total"),
            "Daily Databricks Units (DBUs) consumed per workspace and SKU.",
            ("workspace_id", "sku_name"),
            gauge,
        )
        self.billing_cost_estimate = MetricDesc(
            _name("billing_cost_estimate_usd"),
            "Estimated cost in USD at list prices per workspace and SKU.",
            ("workspace_id", "sku_name"),
            gauge,
        )
        self.price_change_events = MetricDesc(
            _name("price_change_events"),
            "Number of list price changes per SKU within the lookback window.",
            ("sku_name",),
            gauge,
        )
        self.billing_export_errors = MetricDesc(
            _name("billing_export_errors_total"),
            "Billing queries that failed during the last scrape, by stage.",
            ("stage",),
            counter,
        )

        # Jobs
        self.job_runs = MetricDesc(
            _name("job_runs_total"),
            "Job runs started within the lookback window.",
            _JOB,
            counter,
        )
        self.job_run_status = MetricDesc(
            _name("job_run_status_total"),
            "Completed job runs by result state.",
            (*_JOB, "status"),
            counter,
        )
        self.job_run_duration = MetricDesc(
            _name("job_run_duration_seconds"),
            "Job run duration quantiles (p50, p95, p99) in seconds.",
            (*_JOB, "quantile"),
            gauge,
        )
        self.task_retries = MetricDesc(
            _name("task_retries_total"),
            "Task retries per job and task key.",
            (*_JOB, "task_key"),
            counter,
        )
        self.job_sla_miss = MetricDesc(
            _name("job_sla_miss_total"),
            "Job runs whose duration exceeded the SLA threshold.",
            _JOB,
            counter,
        )

        # Pipelines
        self.pipeline_runs = MetricDesc(
            _name("pipeline_runs_total"),
            "Pipeline updates started within the lookback window.",
            _PIPELINE,
            gauge,
        )
        self.pipeline_run_status = MetricDesc(
            _name("pipeline_run_status_total"),
            "Completed pipeline updates by result state.",
            (*_PIPELINE, "status"),
            gauge,
        )
        self.pipeline_run_duration = MetricDesc(
            _name("pipeline_run_duration_seconds"),
            "Pipeline update duration quantiles (p50, p95, p99) in seconds.",
            (*_PIPELINE, "quantile"),
            gauge,
        )
        self.pipeline_retry_events = MetricDesc(
            _name("pipeline_retry_events_total"),
            "Pipeline retry events within the lookback window.",
            _PIPELINE,
            gauge,
        )
        self.pipeline_freshness_lag = MetricDesc(
            _name("pipeline_freshness_lag_seconds"),
            "Average seconds since completed pipeline updates finished.",
            _PIPELINE,
            gauge,
        )

        # SQL warehouse
        self.queries = MetricDesc(
            _name("queries_total"),
            "SQL statements executed per warehouse within the lookback window.",
            _WAREHOUSE,
            gauge,
        )
        self.query_duration = MetricDesc(
            _name("query_duration_seconds"),
            "SQL statement latency quantiles (p50, p95, p99) in seconds.",
            (*_WAREHOUSE, "quantile"),
            gauge,
        )
        self.query_errors = MetricDesc(
            _name("query_errors_total"),
            "Failed SQL statements per warehouse within the lookback window.",
            _WAREHOUSE,
            gauge,
        )
        self.queries_running = MetricDesc(
            _name("queries_running"),
            "Peak concurrent SQL statements per warehouse within the lookback window.",
            _WAREHOUSE,
            gauge,
        )

        # Exporter health
        self.scrape_status = MetricDesc(
            _name("scrape_status"),
            "Whether the last query of a domain stage succeeded (1) or failed (0).",
            ("domain", "stage"),
            gauge,
        )
        self.table_available = MetricDesc(
            _name("table_available"),
            "Whether an optional system table is available (1) or not (0).",
            ("table",),
            gauge,
        )
        self.up = MetricDesc(
            _name("up"),
            "Whether the exporter could reach the Databricks SQL warehouse (1) or not (0).",
        )

    def all(self) -> tuple[MetricDesc, ...]:
        """Return every descriptor in declaration order."""
        return tuple(v for v in vars(self).values() if isinstance(v, MetricDesc))

    def __iter__(self) -> Iterator[MetricDesc]:
        return iter(self.all())
