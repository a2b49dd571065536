"""SQL warehouse metrics from system.query.history."""

from __future__ import annotations

from functools import partial

from dbexporter.core.domains.base import QUANTILE_COLUMNS, DomainCollector, Stage, single_value
from dbexporter.core.queries import (
    build_queries_query,
    build_queries_running_query,
    build_query_duration_query,
    build_query_errors_query,
)

_WAREHOUSE_COLUMNS = ("workspace_id", "warehouse_id")


class SQLWarehouseCollector(DomainCollector):
    domain = "sql_warehouse"

    def stages(self) -> list[Stage]:
        lookback = self.config.queries_lookback
        return [
            Stage(
                name="queries",
                metric=self.metrics.queries,
                build_query=partial(build_queries_query, lookback),
                label_columns=_WAREHOUSE_COLUMNS,
                value_columns=single_value("query_count"),
            ),
            Stage(
                name="query_errors",
                metric=self.metrics.query_errors,
                build_query=partial(build_query_errors_query, lookback),
                label_columns=_WAREHOUSE_COLUMNS,
                value_columns=single_value("error_count"),
            ),
            Stage(
                name="query_duration",
                metric=self.metrics.query_duration,
                build_query=partial(build_query_duration_query, lookback),
                label_columns=_WAREHOUSE_COLUMNS,
                value_columns=QUANTILE_COLUMNS,
            ),
            Stage(
                name="queries_running",
                metric=self.metrics.queries_running,
                build_query=partial(build_queries_running_query, lookback),
                label_columns=_WAREHOUSE_COLUMNS,
                value_columns=single_value("max_concurrent"),
            ),
        ]
