"""
CLI entry point for permguard.

This module provides the Typer-based command-line interface for configuration
and audit tooling around the decision engine.

Commands:
    check       Decide a single permission check against a configuration
    list        List the permission catalog
    validate    Validate a configuration file
    export      Print the effective configuration as YAML
    audit       Report on a SQLite audit database

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to the
    engine. Agents embed PermissionEngine directly; the CLI exists to try
    out policies and inspect persisted audit trails.

Exit codes:
    0   granted / success
    1   denied / validation failed
    2   usage or configuration error
"""

import json
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from permguard import __version__
from permguard.confirm import ConsoleConfirmationHandler
from permguard.engine import PermissionEngine
from permguard.errors import PermguardError
from permguard.log import configure_logging
from permguard.report import generate_json_report, print_audit_report
from permguard.schema import (
    AuditFilter,
    EngineSettings,
    PermissionResult,
    PermissionScope,
    RiskLevel,
    UnhandledConfirmation,
    dump_config,
    load_config,
)
from permguard.store import AuditDB

app = typer.Typer(
    name="permguard",
    help="Decide and audit agent permission checks.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]permguard[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log engine decisions to stderr.",
        ),
    ] = False,
) -> None:
    """
    permguard - permission decisions for agent tool calls.

    Evaluate permission checks against a catalog and rule policy, and review
    the audit trail of past decisions.
    """
    if verbose:
        configure_logging("DEBUG")


def _parse_context(pairs: list[str] | None) -> dict[str, str]:
    """Parse key=value options into a context mapping."""
    context: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(
                f"Expected key=value, got {pair!r}",
                param_hint="--context",
            )
        context[key] = value
    return context


def _build_engine(
    config_path: Path | None,
    settings: EngineSettings | None = None,
    audit_db: AuditDB | None = None,
) -> PermissionEngine:
    """Create an engine with built-ins, then apply the configuration file."""
    engine = PermissionEngine(settings=settings, audit_sink=audit_db)
    if config_path is not None:
        engine.import_config(load_config(config_path))
    return engine


def _fail(message: str, debug: bool = False, code: int = 2) -> None:
    console.print(f"[red]{escape(message)}[/red]")
    if debug:
        console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=code)


@app.command()
def check(
    permission: Annotated[
        str,
        typer.Argument(help="Permission to check (e.g. file.write)."),
    ],
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Catalog/policy YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    context: Annotated[
        Optional[list[str]],
        typer.Option(
            "--context",
            "-x",
            help="Request context entry as key=value. Repeatable.",
        ),
    ] = None,
    grants: Annotated[
        Optional[list[str]],
        typer.Option(
            "--grant",
            "-g",
            help="Permanently grant a permission before checking. Repeatable.",
        ),
    ] = None,
    audit_db: Annotated[
        Optional[Path],
        typer.Option(
            "--audit-db",
            help="Append the decision to this SQLite audit database.",
            resolve_path=True,
        ),
    ] = None,
    interactive: Annotated[
        bool,
        typer.Option(
            "--interactive",
            "-i",
            help="Prompt for confirmation when a permission requires it.",
        ),
    ] = False,
    allow_unconfirmed: Annotated[
        bool,
        typer.Option(
            "--allow-unconfirmed",
            help="Skip confirmation when no prompt is available instead of denying.",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the result in JSON format.",
        ),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Show full error tracebacks.",
        ),
    ] = False,
) -> None:
    """
    Decide a single permission check.

    Exits 0 when granted and 1 when denied.

    Example:
        $ permguard check file.write -c policy.yaml -x resource=/home/me/safe/a.txt
    """
    request_context = _parse_context(context)
    settings = EngineSettings(
        unhandled_confirmation=(
            UnhandledConfirmation.ALLOW if allow_unconfirmed else UnhandledConfirmation.DENY
        ),
    )

    db = None
    try:
        if audit_db is not None:
            db = AuditDB(audit_db)
        engine = _build_engine(config, settings, db)
        for name in grants or []:
            engine.grant(name)
        if interactive:
            engine.set_confirmation_handler(
                ConsoleConfirmationHandler(console=Console(stderr=True))
            )
        result = engine.check_sync(permission, request_context)
    except PermguardError as e:
        if json_output:
            print(json.dumps({"error": True, **e.to_dict()}, indent=2, default=str))
            raise typer.Exit(code=2)
        _fail(str(e), debug)
    finally:
        if db is not None:
            db.close()

    if json_output:
        print(result.model_dump_json(indent=2, exclude_none=True))
    else:
        _display_result(result)

    raise typer.Exit(code=0 if result.granted else 1)


def _display_result(result: PermissionResult) -> None:
    """Display a decision in a formatted way."""
    if result.granted:
        console.print(f"[green]✓ GRANTED[/green] [bold]{result.permission}[/bold]")
    else:
        console.print(f"[red]✗ DENIED[/red] [bold]{result.permission}[/bold]")

    console.print(f"  [dim]Decided by:[/dim] {result.source.value}")
    if result.reason:
        console.print(f"  [dim]Reason:[/dim] {result.reason}")
    if result.rule is not None:
        console.print(f"  [dim]Rule:[/dim] {result.rule.pattern} (allow={result.rule.allow})")
    if result.expires_at is not None:
        console.print(f"  [dim]Expires:[/dim] {result.expires_at.isoformat()}")
    if result.remaining_uses is not None:
        console.print(f"  [dim]Remaining uses:[/dim] {result.remaining_uses}")


@app.command("list")
def list_permissions(
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Catalog/policy YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    risk: Annotated[
        Optional[RiskLevel],
        typer.Option("--risk", help="Only permissions with this risk level."),
    ] = None,
    scope: Annotated[
        Optional[PermissionScope],
        typer.Option("--scope", help="Only permissions in this scope."),
    ] = None,
) -> None:
    """
    List the permission catalog.

    Example:
        $ permguard list --risk high
    """
    try:
        engine = _build_engine(config)
    except PermguardError as e:
        _fail(str(e))

    if risk is not None:
        permissions = engine.list_by_risk(risk)
        if scope is not None:
            in_scope = {p.name for p in engine.list_by_scope(scope)}
            permissions = [p for p in permissions if p.name in in_scope]
    elif scope is not None:
        permissions = engine.list_by_scope(scope)
    else:
        permissions = engine.list_permissions()

    if not permissions:
        console.print("[dim]No permissions found.[/dim]")
        raise typer.Exit(code=0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Permission", style="cyan")
    table.add_column("Scope")
    table.add_column("Risk")
    table.add_column("Confirm", justify="center")
    table.add_column("Description")

    for p in permissions:
        style = RISK_STYLES[p.risk]
        table.add_row(
            p.name,
            p.scope.value,
            f"[{style}]{p.risk.value}[/{style}]",
            "yes" if p.requires_confirmation else "",
            p.description or "",
        )

    console.print(table)


@app.command()
def validate(
    config: Annotated[
        Path,
        typer.Argument(
            help="Catalog/policy YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
) -> None:
    """
    Validate a configuration file.

    Example:
        $ permguard validate policy.yaml
    """
    try:
        loaded = load_config(config)
    except PermguardError as e:
        _fail(str(e), code=1)

    console.print(f"[green]✓[/green] {config.name} is valid")
    if loaded.permissions is not None:
        console.print(f"  [dim]Permissions:[/dim] {len(loaded.permissions)} (replaces built-ins)")
    if loaded.policy is not None:
        default = "allow" if loaded.policy.default_allow else "deny"
        console.print(f"  [dim]Default:[/dim] {default}")
        console.print(f"  [dim]Rules:[/dim] {len(loaded.policy.rules)}")
        for i, rule in enumerate(loaded.policy.rules, start=1):
            verdict = "[green]allow[/green]" if rule.allow else "[red]deny[/red]"
            console.print(
                f"    {i}. {rule.pattern} → {verdict} "
                f"[dim]({len(rule.conditions)} condition(s))[/dim]"
            )


@app.command()
def export(
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Catalog/policy YAML file to start from.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--out",
            "-o",
            help="Write YAML here instead of standard output.",
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """
    Print the effective configuration (built-ins plus file) as YAML.

    Example:
        $ permguard export -c policy.yaml -o effective.yaml
    """
    try:
        engine = _build_engine(config)
    except PermguardError as e:
        _fail(str(e))

    text = dump_config(engine.export_config())
    if output is None:
        typer.echo(text, nl=False)
    else:
        output.write_text(text)
        console.print(f"[green]✓[/green] Wrote {output}")


@app.command()
def audit(
    db_path: Annotated[
        Path,
        typer.Argument(
            help="SQLite audit database.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    filter: Annotated[
        Optional[AuditFilter],
        typer.Option("--filter", "-f", help="Only granted or denied entries."),
    ] = None,
    permission: Annotated[
        Optional[str],
        typer.Option("--permission", "-p", help="Only entries for this permission."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Show the newest N entries."),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the report in JSON format."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show request context for each entry."),
    ] = False,
) -> None:
    """
    Report on a SQLite audit database.

    Example:
        $ permguard audit audit.db --filter denied
    """
    try:
        with AuditDB(db_path) as db:
            entries = db.list_entries(filter=filter, permission=permission, limit=limit)
    except PermguardError as e:
        _fail(str(e))

    if json_output:
        print(generate_json_report(entries))
    else:
        print_audit_report(entries, console=console, verbose=verbose)


if __name__ == "__main__":
    app()
