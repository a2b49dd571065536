from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from dbexporter.core.config import ScrapeConfig  # noqa: E402
from dbexporter.core.metrics import MetricDescriptors  # noqa: E402


@pytest.fixture
def config() -> ScrapeConfig:
    return ScrapeConfig(
        server_hostname="dbc-abc123.cloud.databricks.com",
        warehouse_http_path="/sql/1.0/warehouses/abc123",
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def descriptors() -> MetricDescriptors:
    return MetricDescriptors()
