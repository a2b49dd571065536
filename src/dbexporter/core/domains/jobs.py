"""Lakeflow job metrics from system.lakeflow.job_run_timeline and friends."""

from __future__ import annotations

from functools import partial

from dbexporter.core.domains.base import QUANTILE_COLUMNS, DomainCollector, Stage, single_value
from dbexporter.core.queries import (
    build_job_run_duration_query,
    build_job_run_status_query,
    build_job_runs_query,
    build_job_sla_miss_query,
    build_task_retries_query,
)

_JOB_COLUMNS = ("workspace_id", "job_id", "job_name")


class JobsCollector(DomainCollector):
    """
    Job run counts, result states, duration quantiles and SLA misses.

    Task retries are labelled by task key, which can produce a large number
    of series, so that stage only runs when `collect_task_retries` is set.
    """

    domain = "jobs"

    def stages(self) -> list[Stage]:
        lookback = self.config.jobs_lookback
        stages = [
            Stage(
                name="runs",
                metric=self.metrics.job_runs,
                build_query=partial(build_job_runs_query, lookback),
                label_columns=_JOB_COLUMNS,
                value_columns=single_value("run_count"),
            ),
            Stage(
                name="run_status",
                metric=self.metrics.job_run_status,
                build_query=partial(build_job_run_status_query, lookback),
                label_columns=(*_JOB_COLUMNS, "status"),
                value_columns=single_value("run_count"),
            ),
            Stage(
                name="run_duration",
                metric=self.metrics.job_run_duration,
                build_query=partial(build_job_run_duration_query, lookback),
                label_columns=_JOB_COLUMNS,
                value_columns=QUANTILE_COLUMNS,
            ),
        ]
        if self.config.collect_task_retries:
            stages.append(
                Stage(
                    name="task_retries",
                    metric=self.metrics.task_retries,
                    build_query=partial(build_task_retries_query, lookback),
                    label_columns=(*_JOB_COLUMNS, "task_key"),
                    value_columns=single_value("retry_count"),
                )
            )
        stages.append(
            Stage(
                name="sla_miss",
                metric=self.metrics.job_sla_miss,
                build_query=partial(
                    build_job_sla_miss_query, lookback, self.config.sla_threshold_seconds
                ),
                label_columns=_JOB_COLUMNS,
                value_columns=single_value("sla_miss_count"),
            )
        )
        return stages
