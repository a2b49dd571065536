"""Availability tracking for optional upstream system tables.

Some system tables are not provisioned in every Databricks environment.
A TableAvailabilityTracker remembers whether such a table answers queries so
that collectors depending on it can skip cheaply while it is missing, and
re-probes it every `check_interval` scrapes so a later provisioning is noticed.

State transitions only happen while holding the tracker's write lock. The
"table unavailable" warning is logged the first time a missing table is
confirmed and never again for the lifetime of the tracker; recovery and
rechecks are logged on state edges.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

import structlog

from dbexporter.core.rwlock import ReadWriteLock
from dbexporter.core.warehouse import WarehouseConnection

logger = structlog.get_logger()

# Substrings of the rendered driver error that mean the table does not exist.
NOT_FOUND_SIGNATURES = ("table_or_view_not_found", "cannot be found")


def table_probe_query(table: str) -> str:
    """Return the cheapest query that fails when `table` does not exist."""
    return f"SELECT 1 FROM {table} LIMIT 1"


def is_table_not_found(error: BaseException | str) -> bool:
    """Return True if the error message matches a known 'table not found' signature."""
    message = str(error).lower()
    return any(sig in message for sig in NOT_FOUND_SIGNATURES)


class TableAvailability(str, Enum):
    """
    Availability of an optional table.

    Values:
        UNKNOWN: Not probed yet.
        AVAILABLE: The last probe or query succeeded.
        UNAVAILABLE: The table is missing or the last probe failed.
    """

    UNKNOWN = "UNKNOWN"
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"


class TableAvailabilityTracker:
    """Tri-state availability of one table, with counter-gated re-probing."""

    def __init__(self, table: str, check_interval: int) -> None:
        if check_interval < 1:
            raise ValueError("check_interval must be >= 1")
        self.table = table
        self.check_interval = check_interval
        self._lock = ReadWriteLock()
        self._state = TableAvailability.UNKNOWN
        self._scrapes_since_check = 0
        self._last_checked: datetime | None = None
        self._warned_unavailable = False
        self._log = logger.bind(table=table)

    @property
    def state(self) -> TableAvailability:
        with self._lock.read():
            return self._state

    @property
    def scrapes_since_check(self) -> int:
        with self._lock.read():
            return self._scrapes_since_check

    @property
    def last_checked(self) -> datetime | None:
        with self._lock.read():
            return self._last_checked

    @property
    def probe_query(self) -> str:
        return table_probe_query(self.table)

    def should_recheck(self) -> bool:
        """
        Return True when a probe is due.

        A probe is due on first use, and for an unavailable table once
        `check_interval` scrapes have passed since the previous probe.
        """
        with self._lock.read():
            if self._state is TableAvailability.UNKNOWN:
                return True
            return (
                self._state is TableAvailability.UNAVAILABLE
                and self._scrapes_since_check >= self.check_interval
            )

    def probe(self, connection: WarehouseConnection, timeout: float) -> TableAvailability:
        """Run the existence query and move to AVAILABLE or UNAVAILABLE."""
        with self._lock.write():
            self._last_checked = datetime.now(timezone.utc)
            self._scrapes_since_check = 0

        try:
            connection.query(self.probe_query, timeout)
        except Exception as exc:  # noqa: BLE001
            with self._lock.write():
                if is_table_not_found(exc):
                    self._transition(TableAvailability.UNAVAILABLE)
                    self._log.debug(
                        "Verified table is unavailable",
                        will_retry_in_scrapes=self.check_interval,
                    )
                else:
                    self._log.debug("Error checking table availability", error=str(exc))
                    self._state = TableAvailability.UNAVAILABLE
                return self._state

        with self._lock.write():
            self._transition(TableAvailability.AVAILABLE)
            return self._state

    def is_available_and_advance(self) -> bool:
        """Return whether the table is available and count one more scrape."""
        with self._lock.write():
            self._scrapes_since_check += 1
            return self._state is TableAvailability.AVAILABLE

    def record_failure(self, error: BaseException) -> bool:
        """
        Feed a query failure back into the tracker.

        A missing table starts a fresh recheck window, as if it had just
        been probed.

        Returns:
            True if the error means the table is missing (the tracker is now
            UNAVAILABLE), False for any other kind of failure.
        """
        if not is_table_not_found(error):
            return False
        with self._lock.write():
            self._scrapes_since_check = 0
            self._transition(TableAvailability.UNAVAILABLE)
        return True

    def _transition(self, new_state: TableAvailability) -> None:
        """Apply a state change and log its edge. Caller holds the write lock."""
        old_state = self._state
        self._state = new_state

        if new_state is TableAvailability.UNAVAILABLE:
            # A failed probe may already have left the state UNAVAILABLE.
            if not self._warned_unavailable:
                self._warned_unavailable = True
                self._log.warning(
                    "Optional table not available - dependent metrics will not be collected",
                    note="This is expected in some Databricks environments. All other metrics continue to work normally.",
                    will_retry_in_scrapes=self.check_interval,
                )
            return

        if old_state is new_state:
            return
        if old_state is TableAvailability.UNAVAILABLE:
            self._log.info("Optional table is now available - resuming collection")
        else:
            self._log.debug("Verified table is available")
