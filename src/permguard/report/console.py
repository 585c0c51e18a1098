"""
Console audit report for permguard.

Renders audit entries with Rich: a timeline table with status icons and a
summary of outcomes, deciding branches and the most denied permissions.
"""

from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

from permguard.report.json import build_summary
from permguard.schema import AuditLogEntry, DecisionSource

# Status icons
ICON_GRANTED = "[green]✓[/green]"
ICON_DENIED = "[yellow]⊘[/yellow]"
ICON_ERROR = "[red]✗[/red]"


def print_audit_report(
    entries: Sequence[AuditLogEntry],
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a full audit report: timeline then summary.

    Args:
        entries: Audit entries in log order
        console: Rich Console instance (creates one if not provided)
        verbose: Show request context for every entry
    """
    if console is None:
        console = Console()

    if not entries:
        console.print("[dim]No audit entries.[/dim]")
        return

    console.print("[bold]Decisions[/bold]")
    console.print()
    render_audit_table(entries, console, verbose)
    console.print()
    _print_summary(console, build_summary(entries))


def render_audit_table(
    entries: Sequence[AuditLogEntry],
    console: Console,
    verbose: bool = False,
) -> None:
    """Print one table row per audit entry."""
    table = Table(
        show_header=True,
        header_style="bold",
        show_lines=verbose,
        expand=True,
    )
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Time", style="dim", width=8)
    table.add_column("", width=2, justify="center")
    table.add_column("Permission", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Details", overflow="fold")

    for i, entry in enumerate(entries, start=1):
        result = entry.result
        if result.granted:
            icon = ICON_GRANTED
        elif result.source == DecisionSource.ERROR:
            icon = ICON_ERROR
        else:
            icon = ICON_DENIED

        table.add_row(
            str(i),
            entry.timestamp.strftime("%H:%M:%S"),
            icon,
            entry.permission,
            result.source.value,
            _format_details(entry, verbose),
        )

    console.print(table)


def _format_details(entry: AuditLogEntry, verbose: bool) -> str:
    """Format the details column for an entry."""
    result = entry.result
    parts = []

    if result.reason:
        style = "yellow" if not result.granted else "dim"
        parts.append(f"[{style}]{result.reason}[/{style}]")
    if result.expires_at is not None:
        parts.append(f"[dim]expires {result.expires_at.strftime('%Y-%m-%d %H:%M:%S')}[/dim]")
    if result.remaining_uses is not None:
        parts.append(f"[dim]{result.remaining_uses} use(s) left[/dim]")
    if result.rule is not None:
        parts.append(f"[dim]rule: {result.rule.pattern}[/dim]")

    if verbose and entry.context:
        ctx = ", ".join(f"{k}={_truncate(str(v), 40)}" for k, v in entry.context.items())
        parts.append(f"[dim]context:[/dim] {ctx}")

    return "\n".join(parts)


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _print_summary(console: Console, summary: dict[str, Any]) -> None:
    """Print summary statistics."""
    console.print("[bold]Summary[/bold]")
    console.print()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")

    stats_table.add_row("Total", str(summary["total"]))
    stats_table.add_row(
        "Granted",
        f"[green]{summary['granted']}[/green]" if summary["granted"] else "0",
    )
    stats_table.add_row(
        "Denied",
        f"[yellow]{summary['denied']}[/yellow]" if summary["denied"] else "0",
    )
    for source, count in sorted(summary["by_source"].items()):
        stats_table.add_row(f"  via {source}", str(count))

    console.print(stats_table)

    denied = summary["denied_by_permission"]
    if denied:
        console.print()
        console.print("[bold]Most Denied[/bold]")
        for permission, count in list(denied.items())[:5]:
            console.print(f"  • {permission} ({count})")
        if len(denied) > 5:
            console.print(f"  [dim]... and {len(denied) - 5} more[/dim]")
