"""Click CLI for megaverse — build or clean a candidate's grid."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from megaverse.config.hierarchy import load_config_hierarchy
from megaverse.config.schema import ReconcilerSettings
from megaverse.errors.exceptions import ConfigError, MegaverseError

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")

_CELL_STYLE = {
    "POLYANET": "[bold magenta]P[/bold magenta]",
    "SOLOON": "[bold yellow]S[/bold yellow]",
    "COMETH": "[bold cyan]C[/bold cyan]",
}


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    level = logging.getLevelName(default_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _apply(options: list[Callable[..., Any]], fn: Callable[..., Any]) -> Callable[..., Any]:
    for option in reversed(options):
        fn = option(fn)
    return fn


def _service_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options every command needs to reach the grid service."""
    return _apply(
        [
            click.option("--candidate-id", type=str, default=None, help="Candidate id (or CANDIDATE_ID)."),
            click.option("--base-url", type=str, default=None, help="Grid service base URL."),
            click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)."),
        ],
        fn,
    )


def _engine_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options for commands that write to the grid."""
    return _apply(
        [
            click.option("--max-concurrency", type=int, default=None, help="Upper bound on workers."),
            click.option("--batch-size", type=int, default=None, help="Tasks per batch."),
        ],
        fn,
    )


def _load_settings(**overrides: Any) -> ReconcilerSettings:
    config = load_config_hierarchy(**overrides)
    try:
        settings = ReconcilerSettings.from_config(config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    if not settings.candidate_id:
        raise ConfigError(
            "No candidate id. Pass --candidate-id or set the CANDIDATE_ID environment variable."
        )
    return settings


def _run(coro_fn: Callable[[ReconcilerSettings], Awaitable[T]], settings: ReconcilerSettings) -> T:
    try:
        return asyncio.run(coro_fn(settings))
    except MegaverseError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except Exception as e:
        error_console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
        sys.exit(1)


def _prepare(verbose: int, **overrides: Any) -> ReconcilerSettings:
    try:
        settings = _load_settings(**overrides)
    except ConfigError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    _setup_logging(verbose, settings.log_level)
    return settings


@click.group()
@click.version_option(package_name="megaverse")
def cli() -> None:
    """megaverse — reconcile a remote grid toward its goal map."""


@cli.command()
@_service_options
@_engine_options
@click.option("--strict", is_flag=True, default=False, help="Exit non-zero if not converged.")
def build(
    candidate_id: str | None,
    base_url: str | None,
    max_concurrency: int | None,
    batch_size: int | None,
    verbose: int,
    strict: bool,
) -> None:
    """Build the goal map on the candidate's grid."""
    settings = _prepare(
        verbose,
        candidate_id=candidate_id,
        base_url=base_url,
        max_concurrency=max_concurrency,
        batch_size=batch_size,
    )

    async def _go(s: ReconcilerSettings) -> Any:
        from megaverse.api.client import MegaverseClient
        from megaverse.reconcile.builder import MegaverseBuilder

        async with MegaverseClient(s.candidate_id, s.base_url, s.request_timeout) as client:
            async with MegaverseBuilder(client, s) as builder:
                return await builder.build(strict=strict)

    report = _run(_go, settings)
    _print_report(report)


@cli.command()
@_service_options
@_engine_options
@click.confirmation_option(prompt="Delete every object on the grid?")
def clean(
    candidate_id: str | None,
    base_url: str | None,
    max_concurrency: int | None,
    batch_size: int | None,
    verbose: int,
) -> None:
    """Delete every object on the candidate's grid."""
    settings = _prepare(
        verbose,
        candidate_id=candidate_id,
        base_url=base_url,
        max_concurrency=max_concurrency,
        batch_size=batch_size,
    )

    async def _go(s: ReconcilerSettings) -> Any:
        from megaverse.api.client import MegaverseClient
        from megaverse.reconcile.builder import MegaverseBuilder

        async with MegaverseClient(s.candidate_id, s.base_url, s.request_timeout) as client:
            async with MegaverseBuilder(client, s) as builder:
                return await builder.clean()

    report = _run(_go, settings)
    _print_report(report)


@cli.command()
@_service_options
def plan(
    candidate_id: str | None,
    base_url: str | None,
    verbose: int,
) -> None:
    """Show the operations a build would issue, without issuing them."""
    settings = _prepare(verbose, candidate_id=candidate_id, base_url=base_url)

    async def _go(s: ReconcilerSettings) -> Any:
        from megaverse.api.client import MegaverseClient
        from megaverse.reconcile.builder import MegaverseBuilder

        async with MegaverseClient(s.candidate_id, s.base_url, s.request_timeout) as client:
            return await MegaverseBuilder(client, s).plan()

    ops = _run(_go, settings)
    if not ops:
        console.print("[green]Map already matches goal.[/green]")
        return

    table = Table(title="Pending Operations", show_header=True)
    table.add_column("Action", style="cyan")
    table.add_column("Object")
    table.add_column("Row", justify="right")
    table.add_column("Column", justify="right")
    for op in ops:
        table.add_row(op.action.value, op.entity.token, str(op.entity.row), str(op.entity.column))
    console.print(table)
    console.print(f"{len(ops)} operations")


@cli.command()
@_service_options
@click.option("--goal", is_flag=True, default=False, help="Show the goal map instead.")
def show(
    candidate_id: str | None,
    base_url: str | None,
    verbose: int,
    goal: bool,
) -> None:
    """Render the current (or goal) grid."""
    settings = _prepare(verbose, candidate_id=candidate_id, base_url=base_url)

    async def _go(s: ReconcilerSettings) -> Any:
        from megaverse.api.client import MegaverseClient

        async with MegaverseClient(s.candidate_id, s.base_url, s.request_timeout) as client:
            return await (client.get_goal_map() if goal else client.get_current_map())

    grid = _run(_go, settings)
    console.print(_render_grid(grid, goal))


def _render_grid(grid: list[list[Any]], goal: bool) -> Table:
    from megaverse.domain.grid import parse_cell, parse_token

    table = Table(title="Goal Map" if goal else "Current Map", show_header=False, box=None)
    for _ in grid[0] if grid else []:
        table.add_column(justify="center")
    for r, row in enumerate(grid):
        cells = []
        for c, raw in enumerate(row):
            entity = parse_token(raw, r, c) if goal else parse_cell(raw, r, c)
            cells.append(_CELL_STYLE[entity.kind.name] if entity else "[dim].[/dim]")
        table.add_row(*cells)
    return table


def _print_report(report: object) -> None:
    """Print a reconciliation summary."""
    from megaverse.reconcile.builder import ReconcileReport

    if not isinstance(report, ReconcileReport):
        return

    table = Table(title="Reconciliation Summary", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Action", report.action)
    table.add_row("Operations", str(report.attempted))
    table.add_row("Succeeded", str(report.succeeded))
    table.add_row("Failed", str(report.failed))
    table.add_row("Verification passes", str(report.verification_passes))
    status = "[green]yes[/green]" if report.converged else f"[red]no ({report.remaining} pending)[/red]"
    table.add_row("Converged", status)
    console.print(table)

    for message in report.sample_errors:
        error_console.print(f"[yellow]-[/yellow] {escape(message)}")


def main() -> None:
    """Entry point for the CLI."""
    cli()
