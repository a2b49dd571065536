"""Billing metrics from system.billing.usage and system.billing.list_prices."""

from __future__ import annotations

from functools import partial

from dbexporter.core.domains.base import DomainCollector, Stage, single_value
from dbexporter.core.metrics import MetricSink
from dbexporter.core.queries import (
    build_billing_cost_estimate_query,
    build_billing_dbus_query,
    build_price_change_events_query,
)


class BillingCollector(DomainCollector):
    """DBU usage, list-price cost estimates and price change events."""

    domain = "billing"

    def stages(self) -> list[Stage]:
        lookback = self.config.billing_lookback
        return [
            Stage(
                name="dbus",
                metric=self.metrics.billing_dbus,
                build_query=partial(build_billing_dbus_query, lookback),
                label_columns=("workspace_id", "sku_name"),
                value_columns=single_value("dbus_total"),
            ),
            Stage(
                name="cost_estimate",
                metric=self.metrics.billing_cost_estimate,
                build_query=partial(build_billing_cost_estimate_query, lookback),
                label_columns=("workspace_id", "sku_name"),
                value_columns=single_value("cost_estimate_usd"),
            ),
            Stage(
                name="price_changes",
                metric=self.metrics.price_change_events,
                build_query=partial(build_price_change_events_query, lookback),
                label_columns=("sku_name",),
                value_columns=single_value("price_change_count"),
            ),
        ]

    def on_stage_failure(self, stage: Stage, error: Exception, sink: MetricSink) -> bool:
        sink.emit(self.metrics.billing_export_errors.observe(1, stage.name))
        return super().on_stage_failure(stage, error, sink)
