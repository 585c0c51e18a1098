"""
SQLite storage for permguard audit entries.

The in-memory audit log lives only as long as its engine. AuditDB is an
audit sink that persists every entry to a single SQLite file so decisions
can be reviewed after the process exits.

Design Principles:
    - Append-only: Recorded entries are never modified
    - Self-contained: One .db file holds the whole trail
    - Full fidelity: The complete PermissionResult is stored as JSON next to
      the indexed columns used for filtering

Tables:
    - schema_version: Applied schema version
    - audit_entries: One row per decision
"""

import json
import sqlite3
from collections import Counter
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from permguard.errors import StorageConnectionError, StorageReadError, StorageWriteError
from permguard.schema import AuditFilter, AuditLogEntry, PermissionResult

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_entries (
    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    permission TEXT NOT NULL,
    granted INTEGER NOT NULL,
    source TEXT NOT NULL,
    reason TEXT,
    context_json TEXT NOT NULL,
    result_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_permission ON audit_entries(permission);
CREATE INDEX IF NOT EXISTS idx_audit_granted ON audit_entries(granted);
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class AuditDB:
    """
    SQLite-backed audit sink.

    Usage:
        with AuditDB("audit.db") as db:
            engine = PermissionEngine(audit_sink=db)
            await engine.check("file.read", {"resource": "./README.md"})
            db.list_entries(filter="denied")
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions."""
        try:
            yield
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "AuditDB":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Writes
    # =========================================================================

    def record(self, entry: AuditLogEntry) -> int:
        """
        Append one audit entry.

        Returns:
            The row id of the stored entry
        """
        result = entry.result
        try:
            with self.transaction():
                cursor = self._conn.execute(
                    """
                    INSERT INTO audit_entries (
                        timestamp, permission, granted, source, reason,
                        context_json, result_json
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.timestamp.isoformat(),
                        entry.permission,
                        1 if result.granted else 0,
                        result.source.value,
                        result.reason,
                        json.dumps(entry.context, sort_keys=True, default=str),
                        result.model_dump_json(),
                    ),
                )
            return cursor.lastrowid
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="record",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Reads
    # =========================================================================

    def list_entries(
        self,
        filter: AuditFilter | str | None = None,
        permission: str | None = None,
        limit: int | None = 100,
    ) -> list[AuditLogEntry]:
        """
        Read entries, oldest first.

        Args:
            filter: "granted" or "denied"
            permission: Only entries for this exact permission name
            limit: Keep only the newest N matching entries (None = all)
        """
        where, params = self._where(filter, permission)
        sql = f"SELECT * FROM audit_entries{where} ORDER BY entry_id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_entries",
                underlying_error=str(e),
            ) from e

        return [self._row_to_entry(row) for row in reversed(rows)]

    def count(self, filter: AuditFilter | str | None = None) -> int:
        where, params = self._where(filter, None)
        try:
            row = self._conn.execute(
                f"SELECT COUNT(*) AS n FROM audit_entries{where}",
                params,
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="count",
                underlying_error=str(e),
            ) from e
        return row["n"]

    def summary(self) -> dict[str, Any]:
        """
        Aggregate statistics over the whole trail.

        Returns:
            Dict with total/granted/denied counts, counts per decision
            source and per denied permission
        """
        try:
            rows = self._conn.execute(
                "SELECT permission, granted, source FROM audit_entries"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="summary",
                underlying_error=str(e),
            ) from e

        granted = sum(1 for r in rows if r["granted"])
        return {
            "total": len(rows),
            "granted": granted,
            "denied": len(rows) - granted,
            "by_source": dict(Counter(r["source"] for r in rows)),
            "denied_by_permission": dict(
                Counter(r["permission"] for r in rows if not r["granted"])
            ),
        }

    def _where(
        self,
        filter: AuditFilter | str | None,
        permission: str | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if filter is not None:
            clauses.append("granted = ?")
            params.append(1 if AuditFilter(filter) == AuditFilter.GRANTED else 0)
        if permission is not None:
            clauses.append("permission = ?")
            params.append(permission)
        where = " WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    def _row_to_entry(self, row: sqlite3.Row) -> AuditLogEntry:
        result = PermissionResult.model_validate_json(row["result_json"])
        return AuditLogEntry(
            timestamp=datetime.fromisoformat(row["timestamp"]),
            permission=row["permission"],
            context=json.loads(row["context_json"]),
            result=result,
        )
