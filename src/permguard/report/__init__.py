"""
Reporting module for permguard.

Generates human-readable and machine-readable reports from audit entries.

Output formats:
    - Console: Rich table with status icons plus summary statistics
    - JSON: Structured output for programmatic consumption

Example:
    from permguard.report import generate_json_report, print_audit_report

    print_audit_report(engine.get_audit_log())
    json_str = generate_json_report(engine.get_audit_log(filter="denied"))
"""

from permguard.report.console import print_audit_report, render_audit_table
from permguard.report.json import build_report_dict, build_summary, generate_json_report

__all__ = [
    "build_report_dict",
    "build_summary",
    "generate_json_report",
    "print_audit_report",
    "render_audit_table",
]
