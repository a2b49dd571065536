import pytest
from structlog.testing import capture_logs

from _stubs import StubConnection
from dbexporter.core.availability import (
    TableAvailability,
    TableAvailabilityTracker,
    is_table_not_found,
)
from dbexporter.core.warehouse import QueryError

TABLE = "system.lakeflow.pipeline_update_timeline"
NOT_FOUND = QueryError("[TABLE_OR_VIEW_NOT_FOUND] The table or view `system`.`lakeflow` cannot be found.")


def _missing() -> StubConnection:
    return StubConnection({"LIMIT 1": NOT_FOUND})


def _warnings(logs):
    return [e for e in logs if e["log_level"] == "warning"]


@pytest.mark.parametrize(
    "message, expected",
    [
        ("[TABLE_OR_VIEW_NOT_FOUND] ...", True),
        ("table_or_view_not_found", True),
        ("The table `x` cannot be found", True),
        ("PERMISSION_DENIED: no access", False),
        ("connection reset by peer", False),
    ],
)
def test_is_table_not_found(message, expected):
    assert is_table_not_found(QueryError(message)) is expected


def test_rejects_zero_interval():
    with pytest.raises(ValueError, match="check_interval"):
        TableAvailabilityTracker(TABLE, 0)


def test_unknown_table_needs_probe():
    tracker = TableAvailabilityTracker(TABLE, 10)

    assert tracker.state is TableAvailability.UNKNOWN
    assert tracker.should_recheck() is True
    assert tracker.last_checked is None


def test_available_table_is_never_reprobed():
    tracker = TableAvailabilityTracker(TABLE, 2)
    conn = StubConnection()

    assert tracker.probe(conn, 5.0) is TableAvailability.AVAILABLE
    assert conn.queries == [f"SELECT 1 FROM {TABLE} LIMIT 1"]
    assert tracker.last_checked is not None

    for _ in range(10):
        assert tracker.is_available_and_advance() is True
        assert tracker.should_recheck() is False


def test_missing_table_is_reprobed_every_interval():
    tracker = TableAvailabilityTracker(TABLE, 3)

    assert tracker.probe(_missing(), 5.0) is TableAvailability.UNAVAILABLE
    assert tracker.scrapes_since_check == 0

    for _ in range(2):
        assert tracker.is_available_and_advance() is False
        assert tracker.should_recheck() is False

    assert tracker.is_available_and_advance() is False
    assert tracker.should_recheck() is True

    tracker.probe(_missing(), 5.0)
    assert tracker.scrapes_since_check == 0
    assert tracker.should_recheck() is False


def test_unavailable_warning_is_logged_once():
    tracker = TableAvailabilityTracker(TABLE, 1)

    with capture_logs() as logs:
        for _ in range(5):
            tracker.probe(_missing(), 5.0)
            tracker.is_available_and_advance()

    warnings = _warnings(logs)
    assert len(warnings) == 1
    assert warnings[0]["table"] == TABLE


def test_recovery_is_logged_at_info():
    tracker = TableAvailabilityTracker(TABLE, 1)
    tracker.probe(_missing(), 5.0)
    tracker.is_available_and_advance()

    with capture_logs() as logs:
        assert tracker.probe(StubConnection(), 5.0) is TableAvailability.AVAILABLE

    infos = [e for e in logs if e["log_level"] == "info"]
    assert len(infos) == 1
    assert "now available" in infos[0]["event"]


def test_other_probe_errors_mark_unavailable_without_warning():
    tracker = TableAvailabilityTracker(TABLE, 2)
    conn = StubConnection({"LIMIT 1": QueryError("warehouse is starting")})

    with capture_logs() as logs:
        assert tracker.probe(conn, 5.0) is TableAvailability.UNAVAILABLE

    assert _warnings(logs) == []
    tracker.is_available_and_advance()
    tracker.is_available_and_advance()
    assert tracker.should_recheck() is True


def test_record_failure_flips_only_on_not_found():
    tracker = TableAvailabilityTracker(TABLE, 3)
    tracker.probe(StubConnection(), 5.0)

    assert tracker.record_failure(QueryError("timeout")) is False
    assert tracker.state is TableAvailability.AVAILABLE

    tracker.is_available_and_advance()
    assert tracker.record_failure(NOT_FOUND) is True
    assert tracker.state is TableAvailability.UNAVAILABLE
    assert tracker.scrapes_since_check == 0
    assert tracker.should_recheck() is False


def test_missing_table_warns_after_transient_probe_error():
    tracker = TableAvailabilityTracker(TABLE, 1)
    flaky = StubConnection({"LIMIT 1": QueryError("network blip")})

    with capture_logs() as logs:
        tracker.probe(flaky, 5.0)
        tracker.is_available_and_advance()
        tracker.probe(_missing(), 5.0)

    warnings = _warnings(logs)
    assert len(warnings) == 1
    assert tracker.state is TableAvailability.UNAVAILABLE


def test_mid_cycle_not_found_warns_once():
    tracker = TableAvailabilityTracker(TABLE, 1)
    tracker.probe(StubConnection(), 5.0)

    with capture_logs() as logs:
        tracker.record_failure(NOT_FOUND)
        tracker.probe(_missing(), 5.0)

    assert len(_warnings(logs)) == 1
