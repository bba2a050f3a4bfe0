#!/usr/bin/env python3
"""SubsetFlow CLI.

Commands:
- run: import a consistent subset of the source into the target
- plan: validate and show a run profile without touching a database
- kill-sessions: terminate a database user's sessions on the target
"""

import json
from typing import Dict, List, Optional

import typer
from rich.console import Console

from subsetflow.cli.display import (
    display_cli_error,
    display_fatal_error,
    display_generic_error,
    display_plan,
    display_plan_validation_error,
    display_profile_error,
    display_run_report,
    display_sessions_killed,
)
from subsetflow.cli.errors import (
    MissingSubsetCodesError,
    MissingSubsetKeyError,
    ParameterParsingError,
    SubsetFlowCLIError,
)
from subsetflow.connectors.oracle.session import OracleSession
from subsetflow.core.coordinator import RunCoordinator
from subsetflow.core.profiles import RunProfile, load_profile
from subsetflow.core.sessions import SessionTerminator
from subsetflow.core.subset_keys import SubsetKeyResolver
from subsetflow.exceptions import (
    FatalRunError,
    PlanValidationError,
    ProfileError,
    StatementError,
    SubsetKeyError,
)
from subsetflow.logging import configure_logging, get_logger, suppress_third_party_loggers

logger = get_logger(__name__)
console = Console()

EXIT_FATAL = 1
EXIT_RECOVERABLE = 2

app = typer.Typer(
    name="subsetflow",
    help="SubsetFlow CLI - consistent subset imports between Oracle databases",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from subsetflow import __version__

        console.print(f"SubsetFlow CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """SubsetFlow CLI - consistent subset imports between Oracle databases.

    Examples:
        subsetflow plan profiles/event_import.yml
        subsetflow run profiles/event_import.yml EPL2024 --param season=2024
        subsetflow kill-sessions profiles/event_import.yml JADE
    """


def parse_parameters(values: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated ``--param name=value`` options."""
    params: Dict[str, str] = {}
    for item in values or []:
        if "=" not in item:
            raise ParameterParsingError(item, "expected name=value")
        name, value = item.split("=", 1)
        name = name.strip()
        if not name:
            raise ParameterParsingError(item, "parameter name is empty")
        params[name] = value
    return params


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    configure_logging(verbose=verbose, quiet=quiet)
    suppress_third_party_loggers()


def _load(profile: str) -> RunProfile:
    try:
        return load_profile(profile)
    except ProfileError as e:
        display_profile_error(e)
        raise typer.Exit(EXIT_FATAL)


def _apply_parameters(run_profile: RunProfile, params: Dict[str, str]) -> None:
    try:
        for name, value in params.items():
            run_profile.builder.filter_param(name, value)
    except PlanValidationError as e:
        display_plan_validation_error(e)
        raise typer.Exit(EXIT_FATAL)


def _resolve_codes(run_profile: RunProfile, codes: List[str]) -> None:
    """Resolve subset codes on the target and register the key parameter."""
    if run_profile.subset_key is None:
        raise MissingSubsetKeyError(run_profile.path)

    resolver = SubsetKeyResolver(run_profile.subset_key)
    with OracleSession.connect(run_profile.connection) as session:
        values = resolver.resolve(session, run_profile.builder.source, codes)
    run_profile.builder.filter_param(
        run_profile.subset_key.parameter, resolver.to_parameter_value(values)
    )


def _write_report(path: Optional[str], report) -> None:
    if not path or report is None:
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    logger.info(f"Run report written to {path}")


@app.command()
def run(
    profile: str = typer.Argument(..., help="Path to the run profile (YAML)"),
    codes: Optional[List[str]] = typer.Argument(
        None, help="Subset codes resolved through the profile's subset_key lookup"
    ),
    param: Optional[List[str]] = typer.Option(
        None, "--param", "-p", help="Filter parameter as name=value (repeatable)"
    ),
    no_drop: bool = typer.Option(
        False, "--no-drop", help="Keep existing schemas on the target"
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat plan warnings as errors and exit 2 on table or restore failures",
    ),
    report_path: Optional[str] = typer.Option(
        None, "--report", help="Write the run report as JSON to this file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Import a consistent subset of the source database into the target.

    Exits 0 on success, 1 when the run is aborted, and 2 with --strict when
    any table copy or constraint restore failed.
    """
    _setup_logging(verbose)
    run_profile = _load(profile)

    try:
        params = parse_parameters(param)
        if codes:
            _resolve_codes(run_profile, codes)
        elif run_profile.subset_key is not None:
            key = run_profile.subset_key.parameter
            if key not in params and key not in run_profile.builder.parameters:
                raise MissingSubsetCodesError(key)
    except SubsetFlowCLIError as e:
        display_cli_error(e)
        raise typer.Exit(EXIT_FATAL)
    except SubsetKeyError as e:
        display_generic_error(e, "subset code lookup")
        raise typer.Exit(EXIT_FATAL)
    except StatementError as e:
        display_generic_error(e, "subset code lookup")
        raise typer.Exit(EXIT_FATAL)

    _apply_parameters(run_profile, params)
    if no_drop:
        run_profile.builder.drop_schemas(False)

    try:
        spec = run_profile.build(strict=True if strict else None)
    except PlanValidationError as e:
        display_plan_validation_error(e)
        raise typer.Exit(EXIT_FATAL)

    coordinator = RunCoordinator(spec)
    try:
        report = coordinator.run()
    except FatalRunError as e:
        display_fatal_error(e)
        display_run_report(e.report or coordinator.report)
        _write_report(report_path, e.report or coordinator.report)
        raise typer.Exit(EXIT_FATAL)

    display_run_report(report)
    _write_report(report_path, report)

    if report.has_recoverable_failures:
        console.print(
            f"⚠️  [yellow]{len(report.failed_tables)} tables failed, "
            f"{len(report.restore_failures)} integrity objects not re-enabled[/yellow]"
        )
        if strict:
            raise typer.Exit(EXIT_RECOVERABLE)
    else:
        console.print("✅ [bold green]Subset import completed[/bold green]")


@app.command()
def plan(
    profile: str = typer.Argument(..., help="Path to the run profile (YAML)"),
    param: Optional[List[str]] = typer.Option(
        None, "--param", "-p", help="Filter parameter as name=value (repeatable)"
    ),
    strict: bool = typer.Option(False, "--strict", help="Treat plan warnings as errors"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Validate a run profile and show the plan without connecting."""
    _setup_logging(verbose, quiet=not verbose)
    run_profile = _load(profile)

    try:
        params = parse_parameters(param)
    except ParameterParsingError as e:
        display_cli_error(e)
        raise typer.Exit(EXIT_FATAL)

    key = run_profile.subset_key
    if key is not None and key.parameter not in params:
        params[key.parameter] = "<resolved from codes>"
    _apply_parameters(run_profile, params)

    strict = strict or run_profile.strict
    try:
        result = run_profile.builder.validate(strict=strict)
        spec = run_profile.builder.assemble()
    except PlanValidationError as e:
        display_plan_validation_error(e)
        raise typer.Exit(EXIT_FATAL)

    display_plan(spec, result)
    if not result.is_valid:
        raise typer.Exit(EXIT_FATAL)


@app.command("kill-sessions")
def kill_sessions(
    profile: str = typer.Argument(..., help="Path to the run profile (YAML)"),
    username: str = typer.Argument(..., help="Database user whose sessions are killed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Kill every session of a database user except our own."""
    _setup_logging(verbose)
    run_profile = _load(profile)

    try:
        with OracleSession.connect(run_profile.connection) as session:
            killed = SessionTerminator().terminate(session, username)
    except StatementError as e:
        display_generic_error(e, "session termination")
        raise typer.Exit(EXIT_FATAL)

    display_sessions_killed(username, killed)


def cli() -> None:
    """Entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n⚠️  [yellow]Operation cancelled by user[/yellow]")
        raise SystemExit(130)


if __name__ == "__main__":
    cli()
