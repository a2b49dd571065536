"""Bridge between collection cycles and prometheus_client.

PrometheusCollector is a custom prometheus_client collector: every scrape of
the registry runs exactly one collection cycle and converts the buffered
observations into metric families.
"""

from __future__ import annotations

import threading
from typing import Iterator

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from dbexporter.core.collector import Collector
from dbexporter.core.metrics import MetricDesc, MetricDescriptors, MetricKind, Observation


class BufferedSink:
    """Thread-safe MetricSink that keeps observations in arrival order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observations: list[Observation] = []

    def emit(self, observation: Observation) -> None:
        with self._lock:
            self._observations.append(observation)

    @property
    def observations(self) -> list[Observation]:
        with self._lock:
            return list(self._observations)


def _family(desc: MetricDesc) -> Metric:
    if desc.kind is MetricKind.COUNTER:
        return CounterMetricFamily(desc.name, desc.documentation, labels=list(desc.labels))
    return GaugeMetricFamily(desc.name, desc.documentation, labels=list(desc.labels))


def to_metric_families(observations: list[Observation]) -> list[Metric]:
    """Group observations by metric, keeping the order metrics were first seen."""
    families: dict[str, Metric] = {}
    for obs in observations:
        family = families.get(obs.metric.name)
        if family is None:
            family = families[obs.metric.name] = _family(obs.metric)
        family.add_metric(list(obs.labels), obs.value)
    return list(families.values())


class PrometheusCollector:
    """
    prometheus_client collector that scrapes Databricks on every collect().

    Register it on a CollectorRegistry; describe() only reports the metric
    families, so registering does not trigger a scrape.
    """

    def __init__(self, collector: Collector, descriptors: MetricDescriptors | None = None) -> None:
        self.collector = collector
        self.descriptors = descriptors or collector.descriptors

    def describe(self) -> Iterator[Metric]:
        for desc in self.descriptors:
            yield _family(desc)

    def collect(self) -> Iterator[Metric]:
        sink = BufferedSink()
        self.collector.collect(sink)
        yield from to_metric_families(sink.observations)
