"""SQL text for the Databricks system tables read by the exporter.

Every builder is a pure function of its lookback window (and, for SLA misses,
the threshold). Aggregation happens upstream: durations are computed as
whole seconds with unix_timestamp arithmetic, runs whose end is not after
their start are filtered in the WHERE clause, and quantiles come from
percentile_approx.

See https://docs.databricks.com/aws/en/admin/system-tables
"""

from __future__ import annotations

import math
from datetime import timedelta

BILLING_USAGE_TABLE = "system.billing.usage"
LIST_PRICES_TABLE = "system.billing.list_prices"
JOB_RUN_TIMELINE_TABLE = "system.lakeflow.job_run_timeline"
JOB_TASK_RUN_TIMELINE_TABLE = "system.lakeflow.job_task_run_timeline"
JOBS_TABLE = "system.lakeflow.jobs"
PIPELINE_UPDATE_TIMELINE_TABLE = "system.lakeflow.pipeline_update_timeline"
PIPELINES_TABLE = "system.lakeflow.pipelines"
QUERY_HISTORY_TABLE = "system.query.history"

SYSTEM_TABLES = (
    BILLING_USAGE_TABLE,
    LIST_PRICES_TABLE,
    JOB_RUN_TIMELINE_TABLE,
    JOB_TASK_RUN_TIMELINE_TABLE,
    JOBS_TABLE,
    PIPELINE_UPDATE_TIMELINE_TABLE,
    PIPELINES_TABLE,
    QUERY_HISTORY_TABLE,
)

_DAY = 86400
_HOUR = 3600
_MINUTE = 60


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}S"


def duration_to_sql_interval(lookback: timedelta) -> str:
    """
    Render a lookback as a Databricks SQL interval literal.

    Whole days render as DAY(S), whole hours as HOUR(S) and anything else
    as MINUTE(S), rounded up to at least one minute. Singular forms are
    used for a count of one (Databricks accepts both).

        >>> duration_to_sql_interval(timedelta(hours=48))
        '2 DAYS'
        >>> duration_to_sql_interval(timedelta(hours=25))
        '25 HOURS'
    """
    seconds = int(lookback.total_seconds())
    if seconds >= _DAY and seconds % _DAY == 0:
        return _plural(seconds // _DAY, "DAY")
    if seconds >= _HOUR and seconds % _HOUR == 0:
        return _plural(seconds // _HOUR, "HOUR")
    minutes = max(math.ceil(lookback.total_seconds() / _MINUTE), 1)
    return _plural(minutes, "MINUTE")


_LATEST_JOBS = f"""
    SELECT workspace_id, job_id, name
    FROM {JOBS_TABLE}
    WHERE delete_time IS NULL
    QUALIFY ROW_NUMBER() OVER (PARTITION BY workspace_id, job_id ORDER BY change_time DESC) = 1
"""

_LATEST_PIPELINES = f"""
    SELECT workspace_id, pipeline_id, name
    FROM {PIPELINES_TABLE}
    WHERE delete_time IS NULL
    QUALIFY ROW_NUMBER() OVER (PARTITION BY workspace_id, pipeline_id ORDER BY change_time DESC) = 1
"""


# ===== Billing =====


def build_billing_dbus_query(lookback: timedelta) -> str:
    """DBUs consumed per workspace and SKU."""
    return f"""
        SELECT
            workspace_id,
            sku_name,
            SUM(usage_quantity) AS dbus_total
        FROM {BILLING_USAGE_TABLE}
        WHERE usage_date >= current_date() - INTERVAL {duration_to_sql_interval(lookback)}
            AND workspace_id IS NOT NULL
            AND sku_name IS NOT NULL
        GROUP BY workspace_id, sku_name
        ORDER BY workspace_id, sku_name
    """


def build_billing_cost_estimate_query(lookback: timedelta) -> str:
    """
    List-price cost estimate per workspace and SKU.

    Usage is joined with the price that was effective on the usage date;
    `pricing` is a STRUCT and the `default` field is the list price.
    """
    return f"""
        SELECT
            u.workspace_id,
            u.sku_name,
            SUM(u.usage_quantity * p.pricing.default) AS cost_estimate_usd
        FROM {BILLING_USAGE_TABLE} u
        JOIN {LIST_PRICES_TABLE} p
            ON u.sku_name = p.sku_name
            AND u.cloud = p.cloud
            AND u.usage_date >= DATE(p.price_start_time)
            AND (p.price_end_time IS NULL OR u.usage_date < DATE(p.price_end_time))
        WHERE u.usage_date >= current_date() - INTERVAL {duration_to_sql_interval(lookback)}
            AND u.workspace_id IS NOT NULL
            AND u.sku_name IS NOT NULL
        GROUP BY u.workspace_id, u.sku_name
        ORDER BY u.workspace_id, u.sku_name
    """


def build_price_change_events_query(lookback: timedelta) -> str:
    """Number of price changes per SKU within the window."""
    return f"""
        SELECT
            sku_name,
            COUNT(*) AS price_change_count
        FROM {LIST_PRICES_TABLE}
        WHERE price_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND sku_name IS NOT NULL
        GROUP BY sku_name
        HAVING COUNT(*) > 1
        ORDER BY price_change_count DESC
    """


# ===== Jobs =====


def build_job_runs_query(lookback: timedelta) -> str:
    """Job run counts per workspace and job."""
    return f"""
        SELECT
            t.workspace_id,
            t.job_id,
            COALESCE(j.name, 'unknown') AS job_name,
            COUNT(*) AS run_count
        FROM {JOB_RUN_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_JOBS}) j
            ON t.workspace_id = j.workspace_id AND t.job_id = j.job_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
        GROUP BY t.workspace_id, t.job_id, j.name
    """


def build_job_run_status_query(lookback: timedelta) -> str:
    """Job run counts per result state (SUCCEEDED, FAILED, CANCELED, ...)."""
    return f"""
        SELECT
            t.workspace_id,
            t.job_id,
            COALESCE(j.name, 'unknown') AS job_name,
            t.result_state AS status,
            COUNT(*) AS run_count
        FROM {JOB_RUN_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_JOBS}) j
            ON t.workspace_id = j.workspace_id AND t.job_id = j.job_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND t.result_state IS NOT NULL
        GROUP BY t.workspace_id, t.job_id, j.name, t.result_state
    """


def _job_durations(lookback: timedelta) -> str:
    return f"""
        SELECT
            t.workspace_id,
            t.job_id,
            COALESCE(j.name, 'unknown') AS job_name,
            unix_timestamp(t.period_end_time) - unix_timestamp(t.period_start_time) AS duration_seconds
        FROM {JOB_RUN_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_JOBS}) j
            ON t.workspace_id = j.workspace_id AND t.job_id = j.job_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND t.period_end_time IS NOT NULL
            AND t.period_end_time > t.period_start_time
    """


def build_job_run_duration_query(lookback: timedelta) -> str:
    """p50/p95/p99 job run duration in seconds per job."""
    return f"""
        SELECT
            workspace_id,
            job_id,
            job_name,
            percentile_approx(duration_seconds, 0.5) AS p50,
            percentile_approx(duration_seconds, 0.95) AS p95,
            percentile_approx(duration_seconds, 0.99) AS p99
        FROM ({_job_durations(lookback)})
        GROUP BY workspace_id, job_id, job_name
    """


def build_task_retries_query(lookback: timedelta) -> str:
    """
    Task retries per job and task key.

    A retry is a repeated (job_run_id, task_key) pair in the task timeline.
    """
    return f"""
        SELECT
            t.workspace_id,
            t.job_id,
            COALESCE(j.name, 'unknown') AS job_name,
            t.task_key,
            COUNT(*) - COUNT(DISTINCT CONCAT(t.job_run_id, '-', t.task_key)) AS retry_count
        FROM {JOB_TASK_RUN_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_JOBS}) j
            ON t.workspace_id = j.workspace_id AND t.job_id = j.job_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND t.job_run_id IS NOT NULL
        GROUP BY t.workspace_id, t.job_id, j.name, t.task_key
        HAVING COUNT(*) > COUNT(DISTINCT CONCAT(t.job_run_id, '-', t.task_key))
    """


def build_job_sla_miss_query(lookback: timedelta, threshold_seconds: int) -> str:
    """Runs per job whose duration exceeded `threshold_seconds`."""
    return f"""
        SELECT
            workspace_id,
            job_id,
            job_name,
            COUNT(*) AS sla_miss_count
        FROM ({_job_durations(lookback)})
        WHERE duration_seconds > {int(threshold_seconds)}
        GROUP BY workspace_id, job_id, job_name
    """


# ===== Pipelines =====


def build_pipeline_runs_query(lookback: timedelta) -> str:
    """Pipeline update counts per workspace and pipeline."""
    return f"""
        SELECT
            t.workspace_id,
            t.pipeline_id,
            COALESCE(p.name, 'unknown') AS pipeline_name,
            COUNT(*) AS run_count
        FROM {PIPELINE_UPDATE_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_PIPELINES}) p
            ON t.workspace_id = p.workspace_id AND t.pipeline_id = p.pipeline_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
        GROUP BY t.workspace_id, t.pipeline_id, p.name
    """


def build_pipeline_run_status_query(lookback: timedelta) -> str:
    """Pipeline update counts per result state (COMPLETED, FAILED, ...)."""
    return f"""
        SELECT
            t.workspace_id,
            t.pipeline_id,
            COALESCE(p.name, 'unknown') AS pipeline_name,
            t.result_state AS status,
            COUNT(*) AS run_count
        FROM {PIPELINE_UPDATE_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_PIPELINES}) p
            ON t.workspace_id = p.workspace_id AND t.pipeline_id = p.pipeline_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND t.result_state IS NOT NULL
        GROUP BY t.workspace_id, t.pipeline_id, p.name, t.result_state
    """


def build_pipeline_run_duration_query(lookback: timedelta) -> str:
    """p50/p95/p99 pipeline update duration in seconds per pipeline."""
    return f"""
        SELECT
            workspace_id,
            pipeline_id,
            pipeline_name,
            percentile_approx(duration_seconds, 0.5) AS p50,
            percentile_approx(duration_seconds, 0.95) AS p95,
            percentile_approx(duration_seconds, 0.99) AS p99
        FROM (
            SELECT
                t.workspace_id,
                t.pipeline_id,
                COALESCE(p.name, 'unknown') AS pipeline_name,
                unix_timestamp(t.period_end_time) - unix_timestamp(t.period_start_time) AS duration_seconds
            FROM {PIPELINE_UPDATE_TIMELINE_TABLE} t
            LEFT JOIN ({_LATEST_PIPELINES}) p
                ON t.workspace_id = p.workspace_id AND t.pipeline_id = p.pipeline_id
            WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
                AND t.period_end_time IS NOT NULL
                AND t.period_end_time > t.period_start_time
        )
        GROUP BY workspace_id, pipeline_id, pipeline_name
    """


def build_pipeline_retry_events_query(lookback: timedelta) -> str:
    """Retries per pipeline: timeline rows beyond one per update_id."""
    return f"""
        SELECT
            t.workspace_id,
            t.pipeline_id,
            COALESCE(p.name, 'unknown') AS pipeline_name,
            COUNT(*) - COUNT(DISTINCT t.update_id) AS retry_count
        FROM {PIPELINE_UPDATE_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_PIPELINES}) p
            ON t.workspace_id = p.workspace_id AND t.pipeline_id = p.pipeline_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
        GROUP BY t.workspace_id, t.pipeline_id, p.name
        HAVING COUNT(*) > COUNT(DISTINCT t.update_id)
    """


def build_pipeline_freshness_lag_query(lookback: timedelta) -> str:
    """Average seconds since completed pipeline updates finished."""
    return f"""
        SELECT
            t.workspace_id,
            t.pipeline_id,
            COALESCE(p.name, 'unknown') AS pipeline_name,
            AVG(unix_timestamp(current_timestamp()) - unix_timestamp(t.period_end_time)) AS freshness_lag_seconds
        FROM {PIPELINE_UPDATE_TIMELINE_TABLE} t
        LEFT JOIN ({_LATEST_PIPELINES}) p
            ON t.workspace_id = p.workspace_id AND t.pipeline_id = p.pipeline_id
        WHERE t.period_start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND t.period_end_time IS NOT NULL
            AND t.result_state = 'COMPLETED'
        GROUP BY t.workspace_id, t.pipeline_id, p.name
    """


# ===== SQL warehouse =====


def build_queries_query(lookback: timedelta) -> str:
    """Statements executed per workspace and warehouse."""
    return f"""
        SELECT
            workspace_id,
            COALESCE(compute.warehouse_id, 'unknown') AS warehouse_id,
            COUNT(*) AS query_count
        FROM {QUERY_HISTORY_TABLE}
        WHERE start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
        GROUP BY workspace_id, compute.warehouse_id
    """


def build_query_errors_query(lookback: timedelta) -> str:
    """Failed statements (non-null error_message) per workspace and warehouse."""
    return f"""
        SELECT
            workspace_id,
            COALESCE(compute.warehouse_id, 'unknown') AS warehouse_id,
            COUNT(*) AS error_count
        FROM {QUERY_HISTORY_TABLE}
        WHERE start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            AND error_message IS NOT NULL
        GROUP BY workspace_id, compute.warehouse_id
    """


def build_query_duration_query(lookback: timedelta) -> str:
    """p50/p95/p99 statement latency in seconds per warehouse."""
    return f"""
        SELECT
            workspace_id,
            warehouse_id,
            percentile_approx(duration_seconds, 0.5) AS p50,
            percentile_approx(duration_seconds, 0.95) AS p95,
            percentile_approx(duration_seconds, 0.99) AS p99
        FROM (
            SELECT
                workspace_id,
                COALESCE(compute.warehouse_id, 'unknown') AS warehouse_id,
                total_duration_ms / 1000.0 AS duration_seconds
            FROM {QUERY_HISTORY_TABLE}
            WHERE start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
                AND total_duration_ms IS NOT NULL
                AND total_duration_ms > 0
        )
        GROUP BY workspace_id, warehouse_id
    """


def build_queries_running_query(lookback: timedelta) -> str:
    """
    Peak concurrent statements per warehouse within the window.

    Concurrency is approximated from overlapping [start_time, end_time]
    intervals; a statement with no end_time is still running.
    """
    return f"""
        SELECT
            workspace_id,
            warehouse_id,
            MAX(concurrent_count) AS max_concurrent
        FROM (
            SELECT
                q1.workspace_id,
                COALESCE(q1.compute.warehouse_id, 'unknown') AS warehouse_id,
                q1.start_time AS time_point,
                COUNT(*) AS concurrent_count
            FROM {QUERY_HISTORY_TABLE} q1
            JOIN {QUERY_HISTORY_TABLE} q2
                ON q1.workspace_id = q2.workspace_id
                AND COALESCE(q1.compute.warehouse_id, 'unknown') = COALESCE(q2.compute.warehouse_id, 'unknown')
                AND q2.start_time <= q1.start_time
                AND (q2.end_time >= q1.start_time OR q2.end_time IS NULL)
            WHERE q1.start_time >= current_timestamp() - INTERVAL {duration_to_sql_interval(lookback)}
            GROUP BY q1.workspace_id, q1.compute.warehouse_id, q1.start_time
        )
        GROUP BY workspace_id, warehouse_id
    """
