"""Scrape orchestration.

One call to Collector.collect is one collection cycle: obtain a healthy
warehouse connection, report liveness, then run every domain collector
concurrently against the shared connection and wait for all of them.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import structlog

from dbexporter.core.config import ScrapeConfig
from dbexporter.core.connection import ConnectionManager
from dbexporter.core.domains.base import DomainCollector
from dbexporter.core.domains.billing import BillingCollector
from dbexporter.core.domains.jobs import JobsCollector
from dbexporter.core.domains.pipelines import PipelinesCollector
from dbexporter.core.domains.sql_warehouse import SQLWarehouseCollector
from dbexporter.core.metrics import MetricDescriptors, MetricSink
from dbexporter.core.warehouse import Connector, Deadline

logger = structlog.get_logger()


def default_domains(config: ScrapeConfig, descriptors: MetricDescriptors) -> list[DomainCollector]:
    """Return the billing, jobs, pipelines and SQL warehouse collectors."""
    return [
        BillingCollector(config, descriptors),
        JobsCollector(config, descriptors),
        PipelinesCollector(config, descriptors),
        SQLWarehouseCollector(config, descriptors),
    ]


class Collector:
    """
    Runs collection cycles against one Databricks SQL warehouse.

    Args:
        config: Validated scrape configuration.
        connector: Opens warehouse sessions; injected so tests can stub it.
        descriptors: Metric descriptors; a fresh set is created when omitted.
        domains: Domain collectors; the four default domains when omitted.
    """

    def __init__(
        self,
        config: ScrapeConfig,
        connector: Connector,
        descriptors: MetricDescriptors | None = None,
        domains: Sequence[DomainCollector] | None = None,
    ) -> None:
        self.config = config
        self.descriptors = descriptors or MetricDescriptors()
        self.domains = list(
            domains if domains is not None else default_domains(config, self.descriptors)
        )
        self.connections = ConnectionManager(config, connector)
        self._scrape_lock = threading.Lock()

    def collect(self, sink: MetricSink) -> None:
        """
        Run one collection cycle and emit every observation into `sink`.

        The up gauge is always emitted before anything else. When no healthy
        connection can be obtained, up=0 is the only observation of the cycle.
        Returns only after every domain collector has finished.
        """
        with self._scrape_lock:
            started = time.monotonic()
            try:
                connection = self.connections.get_healthy()
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to connect to Databricks", error=str(exc))
                sink.emit(self.descriptors.up.observe(0))
                return

            sink.emit(self.descriptors.up.observe(1))
            if not self.domains:
                return

            deadline = Deadline(self.config.query_timeout)
            with ThreadPoolExecutor(
                max_workers=len(self.domains), thread_name_prefix="dbexporter-domain"
            ) as pool:
                futures = {
                    pool.submit(domain.collect, connection, sink, deadline): domain
                    for domain in self.domains
                }
                for f in as_completed(futures):
                    try:
                        f.result()
                    except Exception as exc:  # noqa: BLE001
                        logger.error(
                            "Domain collector raised unexpectedly",
                            domain=futures[f].domain,
                            error=str(exc),
                        )

            logger.debug(
                "Scrape completed",
                domains=len(self.domains),
                duration_seconds=round(time.monotonic() - started, 3),
            )

    def close(self) -> None:
        """Close the warehouse connection, if one is open."""
        self.connections.close()
