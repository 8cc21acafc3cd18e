"""
SQLite persistence of sync outcomes.

The store is a sink only: the sync core never reads from it to make
decisions. Timestamps are stored as UTC ISO-8601 strings so that string
comparison orders them chronologically.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ..sync.types import SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    server_name TEXT NOT NULL,
    status TEXT NOT NULL,
    duration_ms INTEGER,
    accounts_processed INTEGER,
    accounts_succeeded INTEGER,
    accounts_failed INTEGER,
    succeeded_accounts TEXT,
    failed_accounts TEXT,
    error_message TEXT,
    error_code TEXT,
    failed_step TEXT,
    correlation_id TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_timestamp ON sync_history(timestamp);
CREATE INDEX IF NOT EXISTS idx_server_name ON sync_history(server_name);
CREATE INDEX IF NOT EXISTS idx_status ON sync_history(status);
CREATE INDEX IF NOT EXISTS idx_correlation_id ON sync_history(correlation_id);
"""


@dataclass(frozen=True)
class HistoryRecord:
    """One persisted sync outcome."""

    id: int
    timestamp: datetime
    server_name: str
    status: SyncStatus
    duration_ms: int
    accounts_processed: int
    accounts_succeeded: int
    accounts_failed: int
    succeeded_accounts: list[str]
    failed_accounts: list[dict[str, object]]
    error_message: str | None
    error_code: str | None
    failed_step: str | None
    correlation_id: str | None


@dataclass(frozen=True)
class HistoryStatistics:
    """Aggregate statistics over a set of history records."""

    total_syncs: int
    successful_syncs: int
    partial_syncs: int
    failed_syncs: int
    avg_duration_ms: float | None
    min_duration_ms: int | None
    max_duration_ms: int | None
    total_accounts_processed: int
    earliest_sync: datetime | None
    latest_sync: datetime | None

    @property
    def success_rate(self) -> float | None:
        """Share of successful runs (0-1), None when there are no runs."""
        if self.total_syncs == 0:
            return None
        return self.successful_syncs / self.total_syncs


class SyncHistoryStore:
    """Records sync outcomes in a SQLite database."""

    def __init__(self, db_path: Path | str, retention_days: int = 90) -> None:
        """
        Open (and create if needed) the history database.

        Args:
            db_path: Database file, or ``":memory:"``
            retention_days: Age after which :meth:`prune` deletes records
        """
        self.db_path: str = str(db_path)
        self.retention_days: int = retention_days
        self._lock: threading.Lock = threading.Lock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection = sqlite3.connect(
            self.db_path, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            if self.db_path != ":memory:":
                _ = self._conn.execute("PRAGMA journal_mode=WAL")
            _ = self._conn.executescript(_SCHEMA)
        logger.info(f"Sync history database initialized at {self.db_path}")

    def record(self, outcome: SyncOutcome) -> int:
        """
        Persist one outcome.

        Returns:
            Row id of the inserted record
        """
        failed = [
            {"name": f.name, "error": f.error, "account_id": f.account_id}
            for f in outcome.failed_accounts
        ]
        with self._lock, self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO sync_history (
                    timestamp, server_name, status, duration_ms,
                    accounts_processed, accounts_succeeded, accounts_failed,
                    succeeded_accounts, failed_accounts,
                    error_message, error_code, failed_step, correlation_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _to_db_time(outcome.started_at),
                    outcome.server_name,
                    outcome.status.value,
                    outcome.duration_ms,
                    outcome.accounts_processed,
                    outcome.accounts_succeeded,
                    outcome.accounts_failed,
                    json.dumps(list(outcome.succeeded_accounts)),
                    json.dumps(failed),
                    outcome.error_message,
                    outcome.error_code,
                    outcome.failed_step,
                    outcome.correlation_id,
                ),
            )
        row_id = cursor.lastrowid or 0
        logger.debug(
            f"Recorded sync history #{row_id} for {outcome.server_name} ({outcome.status.value})"
        )
        return row_id

    def recent(self, server: str | None = None, limit: int = 20) -> list[HistoryRecord]:
        """Most recent records first, optionally for one server."""
        query = "SELECT * FROM sync_history"
        params: list[object] = []
        if server is not None:
            query += " WHERE server_name = ?"
            params.append(server)
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_record(row) for row in rows]

    def recent_errors(self, limit: int = 10) -> list[HistoryRecord]:
        """Most recent failed runs across all servers."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM sync_history WHERE status = ? "
                + "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (SyncStatus.FAILURE.value, limit),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def last_outcome(self, server: str) -> HistoryRecord | None:
        records = self.recent(server, limit=1)
        return records[0] if records else None

    def statistics(
        self, server: str | None = None, days: int | None = 30
    ) -> HistoryStatistics:
        """
        Aggregate statistics.

        Args:
            server: Restrict to one server
            days: Restrict to the last ``days`` days (None for all history)
        """
        query = """
            SELECT
                COUNT(*) AS total_syncs,
                SUM(CASE WHEN status = 'success' THEN 1 ELSE 0 END) AS successful_syncs,
                SUM(CASE WHEN status = 'partial' THEN 1 ELSE 0 END) AS partial_syncs,
                SUM(CASE WHEN status = 'failure' THEN 1 ELSE 0 END) AS failed_syncs,
                AVG(duration_ms) AS avg_duration_ms,
                MIN(duration_ms) AS min_duration_ms,
                MAX(duration_ms) AS max_duration_ms,
                SUM(accounts_processed) AS total_accounts_processed,
                MIN(timestamp) AS earliest_sync,
                MAX(timestamp) AS latest_sync
            FROM sync_history
            WHERE 1=1
        """
        params: list[object] = []
        if server is not None:
            query += " AND server_name = ?"
            params.append(server)
        if days is not None:
            query += " AND timestamp >= ?"
            params.append(_to_db_time(datetime.now(UTC) - timedelta(days=days)))

        with self._lock:
            row = self._conn.execute(query, params).fetchone()

        return HistoryStatistics(
            total_syncs=row["total_syncs"] or 0,
            successful_syncs=row["successful_syncs"] or 0,
            partial_syncs=row["partial_syncs"] or 0,
            failed_syncs=row["failed_syncs"] or 0,
            avg_duration_ms=row["avg_duration_ms"],
            min_duration_ms=row["min_duration_ms"],
            max_duration_ms=row["max_duration_ms"],
            total_accounts_processed=row["total_accounts_processed"] or 0,
            earliest_sync=_from_db_time(row["earliest_sync"]),
            latest_sync=_from_db_time(row["latest_sync"]),
        )

    def server_names(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT server_name FROM sync_history ORDER BY server_name"
            ).fetchall()
        return [str(row["server_name"]) for row in rows]

    def prune(self, retention_days: int | None = None) -> int:
        """
        Delete records older than the retention period.

        Returns:
            Number of deleted records
        """
        days = self.retention_days if retention_days is None else retention_days
        cutoff = _to_db_time(datetime.now(UTC) - timedelta(days=days))
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM sync_history WHERE timestamp < ?", (cutoff,)
            )
        deleted = cursor.rowcount
        if deleted > 0:
            logger.info(
                f"Cleaned up {deleted} sync history record(s) older than {days} days"
            )
        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Sync history database closed")


def _to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds")


def _from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    failed: object = json.loads(row["failed_accounts"] or "[]")
    succeeded: object = json.loads(row["succeeded_accounts"] or "[]")
    return HistoryRecord(
        id=int(row["id"]),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        server_name=str(row["server_name"]),
        status=SyncStatus(row["status"]),
        duration_ms=int(row["duration_ms"] or 0),
        accounts_processed=int(row["accounts_processed"] or 0),
        accounts_succeeded=int(row["accounts_succeeded"] or 0),
        accounts_failed=int(row["accounts_failed"] or 0),
        succeeded_accounts=[str(n) for n in succeeded] if isinstance(succeeded, list) else [],  # pyright: ignore[reportUnknownVariableType]
        failed_accounts=failed if isinstance(failed, list) else [],  # pyright: ignore[reportUnknownVariableType]
        error_message=row["error_message"],
        error_code=row["error_code"],
        failed_step=row["failed_step"],
        correlation_id=row["correlation_id"],
    )
