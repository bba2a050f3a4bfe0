"""Rich display functions for the SubsetFlow CLI."""

from typing import List, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from subsetflow.cli.errors import SubsetFlowCLIError
from subsetflow.core.models import RunReport, RunSpec
from subsetflow.core.planner import ValidationResult
from subsetflow.exceptions import FatalRunError, PlanValidationError, ProfileError, TableCopyError

console = Console()


# Success Display Functions
def display_plan(spec: RunSpec, result: ValidationResult) -> None:
    """Display a run plan and its validation outcome.

    Args:
        spec: The assembled run plan
        result: Validation result for the plan
    """
    summary = Table(show_header=True, header_style="bold blue")
    summary.add_column("Property", style="cyan", width=14)
    summary.add_column("Value", style="white")

    summary.add_row("Target", spec.target.display_dsn)
    summary.add_row("Source link", spec.source.name)
    summary.add_row("Schemas", ", ".join(spec.schemas) or "-")
    summary.add_row("Drop schemas", "yes" if spec.drop_schemas else "no")
    for remap in spec.tablespace_remaps:
        summary.add_row("Remap", f"{remap.source} -> {remap.target}")
    summary.add_row("Pre-run hooks", str(len(spec.pre_hooks)))
    summary.add_row("Post-run hooks", str(len(spec.post_hooks)))
    console.print(summary)

    if spec.parameters:
        console.print("\n🔧 [bold blue]Parameters:[/bold blue]")
        for key, value in spec.parameters.items():
            console.print(f"  [cyan]{key}[/cyan]: {value}")

    tables = Table(show_header=True, header_style="bold blue")
    tables.add_column("#", style="dim", width=4)
    tables.add_column("Table", style="cyan")
    tables.add_column("Filter", style="white")
    for position, entry in enumerate(spec.tables, 1):
        tables.add_row(str(position), str(entry.ref), entry.filter_template or "[dim](all rows)[/dim]")
    console.print(f"\n📋 [bold blue]Tables ({len(spec.tables)})[/bold blue]")
    console.print(tables)

    display_validation_result(result)


def display_validation_result(result: ValidationResult) -> None:
    for warning in result.warnings:
        console.print(f"⚠️  [yellow]{warning}[/yellow]")
    for error in result.errors:
        console.print(f"❌ [red]{error}[/red]")
    if result.is_valid:
        console.print("✅ [bold green]Plan is valid[/bold green]")


def display_run_report(report: RunReport) -> None:
    """Display the outcome of a run, including partial runs."""
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Table", style="cyan")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    table.add_column("Time", justify="right")

    for result in report.copy_results:
        status = "[green]OK[/green]" if result.succeeded else f"[red]{result.error_code or 'FAILED'}[/red]"
        rows = "" if result.rows is None else str(result.rows)
        table.add_row(str(result.ref), status, rows, f"{result.duration_ms / 1000:.1f}s")

    if report.copy_results:
        console.print(table)

    for error in report.diagnostics():
        if isinstance(error, TableCopyError):
            console.print(f"❌ [red]{error.message}[/red]")
        else:
            console.print(f"⚠️  [yellow]{error.message}[/yellow]")

    summary = Table(show_header=False, box=None)
    summary.add_column("Property", style="cyan")
    summary.add_column("Value")
    summary.add_row("State", report.state.value)
    summary.add_row("Last completed", report.last_completed.value)
    summary.add_row("SCN", str(report.token.scn) if report.token else "-")
    summary.add_row("Rows copied", str(report.total_rows))
    summary.add_row("Failed tables", str(len(report.failed_tables)))
    summary.add_row("Restore failures", str(len(report.restore_failures)))
    summary.add_row("Duration", f"{report.duration_seconds:.1f}s")

    style = "green" if report.succeeded and not report.has_recoverable_failures else (
        "yellow" if report.succeeded else "red"
    )
    console.print(Panel(summary, title="Run report", border_style=style))


def display_sessions_killed(username: str, killed: List[Tuple[int, int]]) -> None:
    if not killed:
        console.print(f"📋 [yellow]No sessions to kill for {username.upper()}[/yellow]")
        return
    console.print(f"✅ [bold green]Killed {len(killed)} sessions for {username.upper()}[/bold green]")
    for sid, serial in killed:
        console.print(f"  • [cyan]{sid},{serial}[/cyan]")


# Error Display Functions
def display_profile_error(error: ProfileError) -> None:
    console.print(f"❌ [bold red]Invalid run profile '{error.path}'[/bold red]")
    console.print("\n📋 [yellow]Issues found:[/yellow]")
    for i, err in enumerate(error.errors, 1):
        console.print(f"  {i}. [red]{err}[/red]")


def display_plan_validation_error(error: PlanValidationError) -> None:
    console.print("❌ [bold red]Plan validation failed[/bold red]")
    issues = error.errors or [error.message]
    for i, err in enumerate(issues, 1):
        console.print(f"  {i}. [red]{err}[/red]")


def display_fatal_error(error: FatalRunError) -> None:
    """Display a fatal run error with its context and suggestions.

    Args:
        error: The error that aborted the run
    """
    console.print(f"❌ [bold red]Run aborted: {error.message}[/bold red]")
    last_completed = error.context.get("last_completed_state")
    if last_completed:
        console.print(f"🔍 [dim]Last completed step: {last_completed}[/dim]")
    if error.original_error is not None:
        console.print(f"🔍 [dim]{error.original_error}[/dim]")
    for action in error.suggested_actions:
        console.print(f"💡 [yellow]{action}[/yellow]")


def display_cli_error(error: SubsetFlowCLIError) -> None:
    console.print(f"❌ [bold red]{error.message}[/bold red]")
    if error.suggestions:
        console.print("💡 [bold yellow]Suggestions:[/bold yellow]")
        for suggestion in error.suggestions:
            console.print(f"   • {suggestion}")


def display_generic_error(error: Exception, context: str = "") -> None:
    """Display a generic error with optional context.

    Args:
        error: Exception that occurred
        context: Context where the error occurred
    """
    context_text = f" during {context}" if context else ""
    console.print(f"❌ [bold red]Error{context_text}[/bold red]")
    console.print(f"🔍 [dim]{str(error)}[/dim]")
