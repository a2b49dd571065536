"""Lakeflow pipeline metrics from system.lakeflow.pipeline_update_timeline.

The pipeline update timeline is not provisioned in every workspace, so the
collector keeps a TableAvailabilityTracker for it and skips the domain while
the table is missing, re-probing every `table_check_interval` scrapes.
"""

from __future__ import annotations

from functools import partial

from dbexporter.core.availability import TableAvailabilityTracker
from dbexporter.core.config import ScrapeConfig
from dbexporter.core.domains.base import QUANTILE_COLUMNS, DomainCollector, Stage, single_value
from dbexporter.core.metrics import MetricDescriptors, MetricSink
from dbexporter.core.queries import (
    PIPELINE_UPDATE_TIMELINE_TABLE,
    build_pipeline_freshness_lag_query,
    build_pipeline_retry_events_query,
    build_pipeline_run_duration_query,
    build_pipeline_run_status_query,
    build_pipeline_runs_query,
)
from dbexporter.core.warehouse import Deadline, QueryTimeout, WarehouseConnection

_PIPELINE_COLUMNS = ("workspace_id", "pipeline_id", "pipeline_name")


class PipelinesCollector(DomainCollector):
    """Pipeline update counts, result states, duration quantiles, retries and freshness."""

    domain = "pipelines"

    def __init__(
        self,
        config: ScrapeConfig,
        descriptors: MetricDescriptors,
        tracker: TableAvailabilityTracker | None = None,
    ) -> None:
        super().__init__(config, descriptors)
        self.tracker = tracker or TableAvailabilityTracker(
            PIPELINE_UPDATE_TIMELINE_TABLE, config.table_check_interval
        )

    def stages(self) -> list[Stage]:
        lookback = self.config.pipelines_lookback
        return [
            Stage(
                name="runs",
                metric=self.metrics.pipeline_runs,
                build_query=partial(build_pipeline_runs_query, lookback),
                label_columns=_PIPELINE_COLUMNS,
                value_columns=single_value("run_count"),
            ),
            Stage(
                name="run_status",
                metric=self.metrics.pipeline_run_status,
                build_query=partial(build_pipeline_run_status_query, lookback),
                label_columns=(*_PIPELINE_COLUMNS, "status"),
                value_columns=single_value("run_count"),
            ),
            Stage(
                name="run_duration",
                metric=self.metrics.pipeline_run_duration,
                build_query=partial(build_pipeline_run_duration_query, lookback),
                label_columns=_PIPELINE_COLUMNS,
                value_columns=QUANTILE_COLUMNS,
            ),
            Stage(
                name="retry_events",
                metric=self.metrics.pipeline_retry_events,
                build_query=partial(build_pipeline_retry_events_query, lookback),
                label_columns=_PIPELINE_COLUMNS,
                value_columns=single_value("retry_count"),
            ),
            Stage(
                name="freshness_lag",
                metric=self.metrics.pipeline_freshness_lag,
                build_query=partial(build_pipeline_freshness_lag_query, lookback),
                label_columns=_PIPELINE_COLUMNS,
                value_columns=single_value("freshness_lag_seconds"),
            ),
        ]

    def prepare(
        self,
        connection: WarehouseConnection,
        sink: MetricSink,
        deadline: Deadline,
    ) -> bool:
        """Probe the timeline table when due and skip the cycle while it is missing."""
        if self.tracker.should_recheck():
            try:
                timeout = deadline.timeout_for(self.config.query_timeout)
            except QueryTimeout as exc:
                self._log.error("Skipping availability check", error=str(exc))
                return False
            self.tracker.probe(connection, timeout)

        available = self.tracker.is_available_and_advance()
        sink.emit(self.metrics.table_available.observe(int(available), self.tracker.table))
        if not available:
            self._log.debug("Skipping pipeline metrics, table unavailable", table=self.tracker.table)
        return available

    def on_stage_failure(self, stage: Stage, error: Exception, sink: MetricSink) -> bool:
        if self.tracker.record_failure(error):
            self._log.debug(
                "Pipeline table disappeared, skipping remaining stages",
                stage=stage.name,
                table=self.tracker.table,
            )
            return False
        return super().on_stage_failure(stage, error, sink)
