"""Shared machinery for domain collectors.

A domain collector owns a fixed list of stages. Each stage is one query plus
a declarative mapping from result columns to label values and sample values.
Stages are isolated from each other: a failed query is logged, reported
through the scrape_status gauge and the next stage runs regardless.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import structlog

from dbexporter.core.config import ScrapeConfig
from dbexporter.core.metrics import MetricDesc, MetricDescriptors, MetricSink
from dbexporter.core.warehouse import Deadline, WarehouseConnection

logger = structlog.get_logger()

QUANTILE_COLUMNS = (("p50", "0.50"), ("p95", "0.95"), ("p99", "0.99"))


@dataclass(frozen=True)
class Stage:
    """
    One query of a domain and how its rows become observations.

    Attributes:
        name: Short stage name, used in logs and the scrape_status gauge.
        metric: Metric the rows are emitted against.
        build_query: Returns the SQL text for this stage.
        label_columns: Result columns holding the metric's leading labels.
        value_columns: (column, quantile) pairs. When quantile is not None it
            is appended as the last label value.
    """

    name: str
    metric: MetricDesc
    build_query: Callable[[], str]
    label_columns: tuple[str, ...]
    value_columns: tuple[tuple[str, str | None], ...]


def single_value(column: str) -> tuple[tuple[str, str | None], ...]:
    return ((column, None),)


class DomainCollector(ABC):
    """Base class for the billing, jobs, pipelines and SQL warehouse collectors."""

    domain: str = ""

    def __init__(self, config: ScrapeConfig, descriptors: MetricDescriptors) -> None:
        self.config = config
        self.metrics = descriptors
        self._log = logger.bind(domain=self.domain)

    @abstractmethod
    def stages(self) -> list[Stage]:
        """Return the stages to run this cycle, in emission order."""

    def collect(
        self,
        connection: WarehouseConnection,
        sink: MetricSink,
        deadline: Deadline,
    ) -> None:
        """
        Run every stage against `connection` and emit the results into `sink`.

        Never raises for query failures; those are logged and reported as
        scrape_status 0 for the failing stage.
        """
        if not self.prepare(connection, sink, deadline):
            return

        for stage in self.stages():
            try:
                timeout = deadline.timeout_for(self.config.query_timeout)
                result = connection.query(stage.build_query(), timeout)
            except Exception as exc:  # noqa: BLE001
                sink.emit(self.metrics.scrape_status.observe(0, self.domain, stage.name))
                if not self.on_stage_failure(stage, exc, sink):
                    return
                continue

            emitted = self._emit_rows(stage, result.records(), sink)
            sink.emit(self.metrics.scrape_status.observe(1, self.domain, stage.name))
            self._log.debug("Collected stage", stage=stage.name, rows=len(result), samples=emitted)

    def prepare(
        self,
        connection: WarehouseConnection,
        sink: MetricSink,
        deadline: Deadline,
    ) -> bool:
        """Hook run before the stages. Returning False skips the whole cycle."""
        return True

    def on_stage_failure(self, stage: Stage, error: Exception, sink: MetricSink) -> bool:
        """
        Handle a failed stage query.

        Returns:
            True to continue with the next stage, False to stop this cycle.
        """
        self._log.error("Failed to collect metrics", stage=stage.name, error=str(error))
        return True

    def _emit_rows(self, stage: Stage, records, sink: MetricSink) -> int:
        emitted = 0
        for record in records:
            labels = self._label_values(stage, record)
            if labels is None:
                continue
            for column, quantile in stage.value_columns:
                value = _to_float(record.get(column))
                if value is None:
                    self._log.warning(
                        "Skipping row with unparseable value",
                        stage=stage.name,
                        column=column,
                        value=record.get(column),
                    )
                    continue
                label_values = labels if quantile is None else (*labels, quantile)
                sink.emit(stage.metric.observe(value, *label_values))
                emitted += 1
        return emitted

    def _label_values(self, stage: Stage, record: Mapping[str, Any]) -> tuple[str, ...] | None:
        values = []
        for column in stage.label_columns:
            value = record.get(column)
            if value is None:
                self._log.debug("Dropping row with null label", stage=stage.name, column=column)
                return None
            values.append(str(value))
        return tuple(values)


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
