"""AppSync data source CLI (appsync-datasources).

Usage:
    appsync-datasources plan             # Show what apply would change
    appsync-datasources apply            # Converge and record the deployment
    appsync-datasources apply --no-prune # Never delete data sources

Options default to the environment variables read by Config.from_env
(APPSYNC_API_ID, AWS_REGION, SPECS_FILE, STATE_FILE, ...).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from .config import Config, ConfigurationError
from .main import EXIT_CONFIG_ERROR, EXIT_RECONCILE_ERROR, reconcile_from_config, setup_logging
from .models import ActionMode
from .reconciler import OutcomeStatus, ReconcileError, ReconcileResult
from .spec_loader import SpecLoadError
from .state import StateStoreError

MODE_SYMBOLS = {
    ActionMode.CREATE: ("+", "green"),
    ActionMode.UPDATE: ("~", "yellow"),
    ActionMode.DELETE: ("-", "red"),
}


def common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by plan and apply."""
    options = [
        click.option(
            "--spec", "specs_file", type=click.Path(path_type=Path), help="Spec YAML file"
        ),
        click.option(
            "--state", "state_file", type=click.Path(path_type=Path), help="Deployment record file"
        ),
        click.option("--api-id", "api_id", help="AppSync API id"),
        click.option("--region", help="Default AWS region"),
        click.option("--no-prune", is_flag=True, help="Do not delete orphaned data sources"),
        click.option("--verbose", "-v", is_flag=True, help="Debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_config(dry_run: bool, no_prune: bool, **overrides: Any) -> Config:
    """Build configuration from the environment plus CLI overrides.

    Raises:
        click.ClickException: If the configuration is invalid.
    """
    try:
        return Config.from_env(dry_run=dry_run, prune=False if no_prune else None, **overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def execute(config: Config) -> ReconcileResult:
    """Run a reconciliation, translating failures into exit codes."""
    try:
        return asyncio.run(reconcile_from_config(config))
    except (SpecLoadError, StateStoreError) as e:
        click.secho(str(e), fg="red", err=True)
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR) from e
    except ReconcileError as e:
        print_result(e.result)
        click.secho(str(e), fg="red", err=True)
        for outcome in e.failures:
            click.echo(f"  {outcome.name}: {outcome.error}", err=True)
        raise click.exceptions.Exit(EXIT_RECONCILE_ERROR) from e


def print_result(result: ReconcileResult) -> None:
    """Print one line per action, then a summary."""
    for outcome in result.outcomes:
        symbol, color = MODE_SYMBOLS.get(outcome.mode, ("?", "white"))
        suffix = ""
        if outcome.status == OutcomeStatus.ALREADY_ABSENT:
            suffix = " (already absent)"
        elif outcome.status == OutcomeStatus.FAILED:
            suffix = " (failed)"
        elif outcome.action.type_changed:
            suffix = " (type changed)"
        click.secho(f"{symbol} {outcome.name} [{outcome.action.type}]{suffix}", fg=color)

    for name in result.unsupported:
        click.secho(f"! {name}: unsupported type, no type-specific config", fg="magenta")

    verb = "Plan" if result.dry_run else "Applied"
    click.echo(
        f"{verb}: {result.count(ActionMode.CREATE)} to create, "
        f"{result.count(ActionMode.UPDATE)} to update, "
        f"{result.count(ActionMode.DELETE)} to delete, "
        f"{len(result.ignored)} unchanged."
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="appsync-datasources")
def cli() -> None:
    """Reconcile AppSync data sources with a declared YAML spec."""
    pass


@cli.command()
@common_options
def plan(verbose: bool, no_prune: bool, **overrides: Any) -> None:
    """Show the changes apply would make, without making them."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    result = execute(load_config(dry_run=True, no_prune=no_prune, **overrides))
    print_result(result)


@cli.command()
@common_options
def apply(verbose: bool, no_prune: bool, **overrides: Any) -> None:
    """Create, update and delete data sources, then record the deployment."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    result = execute(load_config(dry_run=False, no_prune=no_prune, **overrides))
    print_result(result)
    click.secho("✓ Data sources reconciled", fg="green")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
