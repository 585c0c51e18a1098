"""
Storage module for permguard.

This module provides SQLite-based persistence for audit entries. The
decision engine keeps its audit log in memory; attach an AuditDB as the
engine's audit_sink to keep the trail after the process exits.

Tables:
    - audit_entries: One row per decision (permission, outcome, deciding
      branch, reason, context and the full result as JSON)
"""

from permguard.store.db import AuditDB

__all__ = [
    "AuditDB",
]
