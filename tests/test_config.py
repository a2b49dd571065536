from dataclasses import replace
from datetime import timedelta

import pytest

from dbexporter.core.config import ConfigError, ScrapeConfig, parse_duration


@pytest.mark.parametrize(
    "text, expected",
    [
        ("500ms", timedelta(milliseconds=500)),
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("2h", timedelta(hours=2)),
        ("1d", timedelta(days=1)),
        ("1h30m", timedelta(minutes=90)),
        ("90", timedelta(seconds=90)),
        (" 24H ", timedelta(hours=24)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "5x", "h5", "1h 30m"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_defaults():
    cfg = ScrapeConfig()

    assert cfg.query_timeout == timedelta(minutes=5)
    assert cfg.billing_lookback == timedelta(hours=24)
    assert cfg.jobs_lookback == timedelta(hours=2)
    assert cfg.pipelines_lookback == timedelta(hours=2)
    assert cfg.queries_lookback == timedelta(hours=1)
    assert cfg.sla_threshold_seconds == 3600
    assert cfg.collect_task_retries is False
    assert cfg.table_check_interval == 10


def test_valid_config_passes(config):
    config.validate()


@pytest.mark.parametrize(
    "field",
    ["server_hostname", "warehouse_http_path", "client_id", "client_secret"],
)
def test_missing_required_field(config, field):
    with pytest.raises(ConfigError, match=f"{field} must be specified"):
        replace(config, **{field: ""}).validate()


def test_blank_value_counts_as_missing(config):
    with pytest.raises(ConfigError, match="client_secret must be specified"):
        replace(config, client_secret="   ").validate()


def test_first_problem_is_reported(config):
    cfg = replace(config, server_hostname="", client_id="")

    with pytest.raises(ConfigError, match="server_hostname"):
        cfg.validate()


def test_rejects_non_positive_values(config):
    with pytest.raises(ConfigError, match="jobs_lookback must be positive"):
        replace(config, jobs_lookback=timedelta(0)).validate()
    with pytest.raises(ConfigError, match="sla_threshold_seconds"):
        replace(config, sla_threshold_seconds=0).validate()
    with pytest.raises(ConfigError, match="table_check_interval"):
        replace(config, table_check_interval=0).validate()


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/sql/1.0/warehouses/abc123", "abc123"),
        ("/sql/1.0/warehouses/abc123/", "abc123"),
        ("abc123", "abc123"),
    ],
)
def test_warehouse_id(path, expected):
    assert ScrapeConfig(warehouse_http_path=path).warehouse_id == expected


@pytest.mark.parametrize("text", ["inf", "-inf", "nan", "1e400", "99999999999d"])
def test_parse_duration_rejects_out_of_range(text):
    with pytest.raises(ValueError, match="out of range"):
        parse_duration(text)
