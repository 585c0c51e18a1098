"""
JSON audit report generator for permguard.

Generates structured JSON from a sequence of audit entries, whether taken
from a live engine (engine.get_audit_log()) or read back from an AuditDB.

Design Principles:
    - Complete data: Every entry keeps its context and full decision
    - Consistent schema: Same structure regardless of entry source
    - ISO timestamps: Standard datetime format
"""

import json
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from permguard.schema import AuditLogEntry

REPORT_VERSION = "1.0"


def generate_json_report(entries: Sequence[AuditLogEntry], indent: int = 2) -> str:
    """
    Generate a JSON report for audit entries.

    Args:
        entries: Audit entries in log order
        indent: JSON indentation level (default: 2)

    Returns:
        JSON string with the full report
    """
    report = build_report_dict(entries)
    return json.dumps(report, indent=indent, default=_json_serializer)


def build_report_dict(entries: Sequence[AuditLogEntry]) -> dict[str, Any]:
    """Build a report dictionary for audit entries."""
    return {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "summary": build_summary(entries),
        "entries": [_serialize_entry(i, entry) for i, entry in enumerate(entries)],
    }


def build_summary(entries: Sequence[AuditLogEntry]) -> dict[str, Any]:
    """
    Summary statistics for audit entries.

    Returns:
        total, granted and denied counts, counts per deciding branch, and
        denial counts per permission (most denied first)
    """
    granted = sum(1 for e in entries if e.result.granted)
    denied_by_permission = Counter(e.permission for e in entries if not e.result.granted)
    return {
        "total": len(entries),
        "granted": granted,
        "denied": len(entries) - granted,
        "by_source": dict(Counter(e.result.source.value for e in entries)),
        "denied_by_permission": dict(denied_by_permission.most_common()),
        "first_at": entries[0].timestamp.isoformat() if entries else None,
        "last_at": entries[-1].timestamp.isoformat() if entries else None,
    }


def _serialize_entry(index: int, entry: AuditLogEntry) -> dict[str, Any]:
    result = entry.result
    return {
        "index": index,
        "timestamp": entry.timestamp.isoformat(),
        "permission": entry.permission,
        "granted": result.granted,
        "source": result.source.value,
        "reason": result.reason,
        "context": entry.context,
        "expires_at": result.expires_at.isoformat() if result.expires_at else None,
        "remaining_uses": result.remaining_uses,
        "rule": result.rule.model_dump(mode="json", exclude_none=True) if result.rule else None,
    }


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for non-standard types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    return str(obj)
