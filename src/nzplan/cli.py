"""CLI commands for locating Netezza execution plans."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, ConfigError, Settings, default_config_data, load_settings, write_config
from .plans import (
    ArchiveBaseNotFound,
    FailureKind,
    PlanResolver,
    SearchMode,
    SearchResult,
    ToolNotFound,
    discover_archives,
    locate_archive_base,
)
from .tools.nzsql import NzsqlClient

APP_HELP = "Netezza execution-plan resolver."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
RULE = "=" * 62

EXIT_FOUND = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2

app = typer.Typer(help=APP_HELP)


def configure_logging(level: str, log_file: Optional[Path] = None, *, verbose: bool = False) -> None:
    """Install the root handlers once per command invocation."""
    resolved = logging.DEBUG if verbose else logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=handlers, force=True)


def _load(config: str, *, verbose: bool) -> Settings:
    try:
        settings = load_settings(Path(config))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=EXIT_ERROR) from error
    configure_logging(settings.logging.level, settings.logging.file, verbose=verbose)
    return settings


def _select_archive_base(settings: Settings, override: Optional[Path]) -> Path:
    """Prefer an explicit base, then the first existing configured candidate."""
    if override is not None:
        return override
    located = locate_archive_base(settings.archive_candidates())
    if located is None:
        return settings.plans.archive_base
    if located != settings.plans.archive_base:
        typer.echo(f"Archive base {settings.plans.archive_base} not found; using {located}.")
    return located


def _render_archive_problem(result: SearchResult) -> None:
    if result.failure is FailureKind.BASE_NOT_FOUND:
        typer.echo(f"Plan archive base directory not found: {result.archive_base}")
    elif result.failure is FailureKind.NO_ARCHIVES:
        typer.echo(f"No numeric plan archive directories found in {result.archive_base}")


def _render_result(result: SearchResult) -> None:
    """Display the winning artifact or the trace of rejected tiers."""
    if result.found and result.winner is not None:
        tier = result.winner.tier
        typer.echo(f"Valid execution plan for Plan ID {result.plan_id} found in {tier.kind.value} tier {tier.label}.")
        typer.echo("")
        typer.echo("Plan Content:")
        typer.echo(RULE)
        typer.echo(result.artifact.rstrip("\n"))
        typer.echo(RULE)
        if result.saved_path is not None:
            typer.echo(f"Plan saved to: {result.saved_path.as_posix()}")
        typer.echo("To retrieve this plan again, use:")
        typer.echo(f"  {result.reproducer}")
        if len(result.hits) > 1:
            typer.echo(f"Plan found in {len(result.hits)} archive tier(s) (newest first):")
            for hit in result.hits:
                location = hit.tier.path.as_posix() if hit.tier.path else "default store"
                typer.echo(f"  - {hit.tier.label} ({location})")
        return

    typer.echo(f"Plan ID {result.plan_id} not found ({result.failure.value if result.failure else 'unknown'}).")
    _render_archive_problem(result)
    if result.attempts:
        typer.echo("Tiers searched:")
        for attempt in result.attempts:
            reasons = ", ".join(reason.describe() for reason in attempt.verdict.reasons) if attempt.verdict else ""
            location = f" ({attempt.tier.path.as_posix()})" if attempt.tier.path else ""
            typer.echo(f"  - {attempt.tier.label}{location}: {reasons or 'rejected'}")
    if result.remaining:
        typer.echo(f"Remaining archives not searched: {len(result.remaining)}")


def _run_search(
    resolver: PlanResolver,
    plan_id: int,
    *,
    mode: SearchMode,
    manual_path: Optional[Path],
    collect_all: bool,
    interactive: bool,
) -> SearchResult:
    if manual_path is not None:
        return resolver.resolve_manual(plan_id, manual_path)

    result = resolver.resolve(plan_id, mode, collect_all=collect_all)

    if interactive and result.failure in {FailureKind.BASE_NOT_FOUND, FailureKind.NO_ARCHIVES}:
        _render_archive_problem(result)
        answer = typer.prompt(
            "Enter full path to plan archive directory (blank to skip)",
            default="",
            show_default=False,
        )
        if answer.strip():
            result = resolver.resolve_manual(plan_id, Path(answer.strip()), previous=result)

    if interactive and result.can_continue:
        searched = len(result.archive_attempts())
        typer.echo(f"Plan ID {plan_id} not found in the {searched} most recent archive(s).")
        typer.echo(f"Remaining archives not searched: {len(result.remaining)}")
        if typer.confirm("Would you like to search ALL remaining archives?", default=False):
            result = resolver.continue_search(result, collect_all=collect_all)
    return result


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Where to write the configuration file.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a configuration file populated with defaults."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=EXIT_ERROR)
    write_config(config_path, default_config_data())
    typer.echo(f"Wrote configuration at {config_path}.")


@app.command()
def archives(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    archive_base: Optional[Path] = typer.Option(None, "--archive-base", help="Override the archive base directory."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List the numeric plan archive directories, newest first."""
    settings = _load(config, verbose=verbose)
    base = _select_archive_base(settings, archive_base)
    try:
        tiers = discover_archives(base)
    except ArchiveBaseNotFound as error:
        typer.echo(str(error))
        typer.echo("Common alternative paths:")
        for candidate in settings.plans.archive_fallbacks:
            typer.echo(f"  - {candidate.as_posix()}")
        raise typer.Exit(code=EXIT_ERROR) from error

    if not tiers:
        typer.echo(f"No numeric plan archive directories found in {base}")
        raise typer.Exit(code=EXIT_NOT_FOUND)

    typer.echo(f"Found {len(tiers)} numeric plan archive directories (newest first):")
    for index, tier in enumerate(tiers, start=1):
        typer.echo(f"  {index}. {tier.label} ({tier.path.as_posix() if tier.path else ''})")


@app.command()
def resolve(
    plan_id: int = typer.Argument(..., help="Numeric plan identifier."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    mode: SearchMode = typer.Option(
        SearchMode.BOUNDED,
        "--mode",
        "-m",
        case_sensitive=False,
        help="default-only, bounded (first N archives) or comprehensive (all archives).",
    ),
    archive_base: Optional[Path] = typer.Option(None, "--archive-base", help="Override the archive base directory."),
    manual_path: Optional[Path] = typer.Option(
        None,
        "--manual-path",
        help="Search a single archive directory instead of the tiered search.",
    ),
    collect_all: bool = typer.Option(
        False,
        "--collect-all",
        help="In comprehensive mode, keep searching to list every archive holding the plan.",
    ),
    no_input: bool = typer.Option(False, "--no-input", help="Never prompt; report the first result."),
    as_json: bool = typer.Option(False, "--json", help="Emit the search result as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Locate and validate the saved execution plan for PLAN_ID."""
    settings = _load(config, verbose=verbose)
    base = _select_archive_base(settings, archive_base)
    resolver = PlanResolver.from_settings(settings, archive_base=base)

    try:
        result = _run_search(
            resolver,
            plan_id,
            mode=mode,
            manual_path=manual_path,
            collect_all=collect_all,
            interactive=not (no_input or as_json),
        )
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error
    except ToolNotFound as error:
        typer.echo(f"Error: {error}")
        raise typer.Exit(code=EXIT_ERROR) from error
    except ArchiveBaseNotFound as error:
        typer.echo(f"Error: {error}")
        raise typer.Exit(code=EXIT_ERROR) from error

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _render_result(result)
    raise typer.Exit(code=EXIT_FOUND if result.found else EXIT_NOT_FOUND)


@app.command()
def explain(
    sql: str = typer.Option(..., "--sql", help="SQL statement to explain."),
    plan_id: Optional[int] = typer.Option(None, "--plan-id", help="Also resolve the archived plan for this id."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    mode: SearchMode = typer.Option(SearchMode.BOUNDED, "--mode", "-m", case_sensitive=False),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show the EXPLAIN plan for SQL and, optionally, the saved nz_plan output."""
    settings = _load(config, verbose=verbose)

    typer.echo("Method 1: EXPLAIN Plan (SQL-based)")
    typer.echo(RULE)
    client = NzsqlClient(settings.database)
    explained = False
    if not client.available:
        typer.echo(f"Error: nzsql client not found: {settings.database.nzsql_path}")
    else:
        outcome = client.explain(sql)
        explained = outcome.ok
        if outcome.ok:
            typer.echo(outcome.stdout.rstrip("\n"))
        else:
            typer.echo(f"Error: {outcome.short_message()}")

    if plan_id is None:
        raise typer.Exit(code=EXIT_FOUND if explained else EXIT_ERROR)

    typer.echo("")
    typer.echo(f"Method 2: nz_plan with Archive Search (Plan ID: {plan_id})")
    typer.echo(RULE)
    resolver = PlanResolver.from_settings(settings, archive_base=_select_archive_base(settings, None))
    try:
        result = resolver.resolve(plan_id, mode)
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error
    except ToolNotFound as error:
        typer.echo(f"Error: {error}")
        raise typer.Exit(code=EXIT_ERROR) from error
    _render_result(result)
    raise typer.Exit(code=EXIT_FOUND if result.found else EXIT_NOT_FOUND)


@app.command()
def check(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Test the database connection through nzsql."""
    settings = _load(config, verbose=verbose)
    database = settings.database
    target = database.host or "local"
    typer.echo(f"Connecting to: {target}/{database.name} as {database.user}")
    client = NzsqlClient(database)
    if not client.available:
        typer.echo(f"Connection failed! nzsql client not found: {database.nzsql_path}")
        raise typer.Exit(code=EXIT_ERROR)
    outcome = client.check_connection()
    if not outcome.ok:
        typer.echo(f"Connection failed! {outcome.short_message()}")
        raise typer.Exit(code=EXIT_ERROR)
    typer.echo("Connection successful!")


if __name__ == "__main__":
    app()
