"""Health-checked reuse of the single upstream warehouse session.

Establishing a session is expensive (OAuth handshake plus warehouse wake-up),
so one session is kept across scrapes. Sessions also go stale silently, so
every reuse is preceded by a short health probe; a failed probe triggers a
reconnect. Readers borrow the handle and never close it: only the manager
closes a handle, and only when replacing it.
"""

from __future__ import annotations

import structlog

from dbexporter.core.config import ScrapeConfig
from dbexporter.core.rwlock import ReadWriteLock
from dbexporter.core.warehouse import ConnectError, Connector, WarehouseConnection

logger = structlog.get_logger()

DEFAULT_PROBE_TIMEOUT = 5.0


class ConnectionManager:
    """Owns at most one live WarehouseConnection and hands out healthy borrows."""

    def __init__(
        self,
        config: ScrapeConfig,
        connector: Connector,
        *,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self.config = config
        self.connector = connector
        self.probe_timeout = probe_timeout
        self._lock = ReadWriteLock()
        self._conn: WarehouseConnection | None = None

    @property
    def current(self) -> WarehouseConnection | None:
        """Return the stored handle without probing it."""
        with self._lock.read():
            return self._conn

    def get_healthy(self) -> WarehouseConnection:
        """
        Return a connection that just answered a health probe.

        The stored handle is reused when its probe succeeds. Otherwise the
        handle is replaced under the exclusive lock, re-checking first in case
        a concurrent caller already replaced it.

        Raises:
            ConnectError: If a new connection cannot be established.
        """
        with self._lock.read():
            conn = self._conn

        if conn is not None and self._probe(conn):
            return conn

        with self._lock.write():
            if self._conn is not None and self._conn is not conn:
                # Replaced by a concurrent caller while we were probing.
                return self._conn

            if self._conn is not None:
                self._close_quietly(self._conn)
                self._conn = None

            logger.debug("Opening new warehouse connection", warehouse_id=self.config.warehouse_id)
            try:
                self._conn = self.connector.connect(self.config)
            except ConnectError:
                raise
            except Exception as exc:
                raise ConnectError(str(exc)) from exc
            return self._conn

    def invalidate(self) -> None:
        """Drop and close the stored handle so the next call reconnects."""
        with self._lock.write():
            if self._conn is not None:
                self._close_quietly(self._conn)
                self._conn = None

    def close(self) -> None:
        self.invalidate()

    def _probe(self, conn: WarehouseConnection) -> bool:
        try:
            conn.ping(self.probe_timeout)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Connection health probe failed, reconnecting", error=str(exc))
            return False
        return True

    @staticmethod
    def _close_quietly(conn: WarehouseConnection) -> None:
        try:
            conn.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to close stale connection", error=str(exc))
