"""
In-memory audit log.

Append-only record of every decision. Entries are frozen models holding a
private deep copy of each result; reads return deep copies. The log is unbounded
unless the owner calls trim().

An optional sink (anything with a record(entry) method, such as
permguard.store.AuditDB) receives each entry as it is appended. Sink
failures are logged and never affect the decision being recorded.
"""

import logging
import threading
from typing import Protocol

from permguard.schema import AuditFilter, AuditLogEntry, PermissionResult

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Receiver for audit entries, e.g. a persistent store."""

    def record(self, entry: AuditLogEntry) -> None: ...


class AuditLog:
    """Thread-safe append-only list of AuditLogEntry."""

    def __init__(self, sink: AuditSink | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: list[AuditLogEntry] = []
        self.sink = sink

    def append(self, result: PermissionResult) -> AuditLogEntry:
        """Record one decision and return the entry."""
        result = result.model_copy(deep=True)
        entry = AuditLogEntry(
            timestamp=result.timestamp,
            permission=result.permission,
            context=result.context,
            result=result,
        )
        with self._lock:
            self._entries.append(entry)

        if self.sink is not None:
            try:
                self.sink.record(entry)
            except Exception as e:
                logger.warning("Audit sink failed for %s: %s", entry.permission, e)

        return entry

    def entries(self, filter: AuditFilter | str | None = None) -> list[AuditLogEntry]:
        """
        Snapshot of the log in append order.

        Entries are deep copies; mutating them never touches the log.

        Args:
            filter: "granted" or "denied" to keep only that outcome
        """
        with self._lock:
            snapshot = [e.model_copy(deep=True) for e in self._entries]

        if filter is None:
            return snapshot
        wanted = AuditFilter(filter) == AuditFilter.GRANTED
        return [e for e in snapshot if e.result.granted is wanted]

    def trim(self, keep_last: int) -> int:
        """Drop all but the newest keep_last entries. Returns how many were dropped."""
        keep_last = max(keep_last, 0)
        with self._lock:
            dropped = max(len(self._entries) - keep_last, 0)
            if dropped:
                del self._entries[:dropped]
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
