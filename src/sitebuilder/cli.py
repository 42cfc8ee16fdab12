"""
Migration CLI

Command-line interface for applying and checking schema migrations.

Commands:
- up: Apply pending steps (optionally up to --to STEP_ID)
- down: Revert the N most recent steps
- status: List every step and whether it is applied
- verify: Check round trips and the target schema (add --live for a database)
- diff: Compare the live schema with the modeled version it claims to be at
- new: Scaffold a new step module
"""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError

from sitebuilder.infra.db import create_db_engine
from sitebuilder.infra.time import step_id_for
from sitebuilder.migrations.errors import MigrationError
from sitebuilder.migrations.ledger import HISTORY_TABLE
from sitebuilder.migrations.registry import VERSIONS_DIR, load_steps
from sitebuilder.migrations.runner import MigrationRunner, Outcome
from sitebuilder.migrations.verify import (
    model_versions,
    verify_live,
    verify_steps,
    verify_target,
)
from sitebuilder.observability.correlation import (
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from sitebuilder.observability.logging import get_logger
from sitebuilder.schema.diff import diff_schemas
from sitebuilder.schema.reflection import reflect_schema

app = typer.Typer(
    name="sitebuilder-migrate",
    help="Schema migrations for the site builder database",
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)

DatabaseUrl = typer.Option(
    None, "--database-url", help="SQLAlchemy URL or libpq DSN (default: DATABASE_URL)"
)

STEP_TEMPLATE = '''"""{name}

Revision ID: {revision}
Revises: {down_revision}
Create Date: {created}
"""

from sitebuilder.migrations.ops import Operation

revision = "{revision}"
down_revision = {down_revision_literal}
name = "{name}"


def upgrade() -> list[Operation]:
    # Forward operations only; the backward ones are derived.
    return []
'''


def _fail(exc: Exception) -> NoReturn:
    logger.exception("migration command failed")
    rprint(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(1)


def _engine(database_url: Optional[str]) -> Engine:
    try:
        return create_db_engine(database_url)
    except (RuntimeError, ArgumentError) as exc:
        _fail(exc)


@app.callback()
def main(ctx: typer.Context) -> None:
    # One run ID per invocation.
    token = set_correlation_id(generate_correlation_id())
    ctx.call_on_close(lambda: reset_correlation_id(token))


@app.command()
def up(
    to: Optional[str] = typer.Option(None, "--to", help="Stop after this step id"),
    database_url: Optional[str] = DatabaseUrl,
):
    """
    Apply pending steps in order.

    Steps already recorded in the history table are skipped.
    """
    engine = _engine(database_url)
    try:
        result = MigrationRunner(engine).upgrade(target=to)
    except MigrationError as exc:
        _fail(exc)
    finally:
        engine.dispose()

    for step in result.results:
        rprint(f"[green]applied[/green] {step.step_id} {step.name} ({step.duration_ms} ms)")
    if not result.results:
        rprint("[yellow]Nothing to apply[/yellow]")
    rprint(f"Current version: {result.version or 'empty'}")


@app.command()
def down(
    count: int = typer.Argument(1, min=0, help="Number of steps to revert"),
    database_url: Optional[str] = DatabaseUrl,
):
    """
    Revert the most recent steps, newest first.
    """
    engine = _engine(database_url)
    try:
        result = MigrationRunner(engine).downgrade(count)
    except MigrationError as exc:
        _fail(exc)
    finally:
        engine.dispose()

    for step in result.results:
        if step.outcome is Outcome.REVERTED:
            rprint(f"[green]reverted[/green] {step.step_id} {step.name} ({step.duration_ms} ms)")
    if not result.results:
        rprint("[yellow]Nothing to revert[/yellow]")
    rprint(f"Current version: {result.version or 'empty'}")


@app.command()
def status(database_url: Optional[str] = DatabaseUrl):
    """
    List every step and whether it is applied.
    """
    engine = _engine(database_url)
    try:
        rows = MigrationRunner(engine).status()
    except MigrationError as exc:
        _fail(exc)
    finally:
        engine.dispose()

    table = Table(title="Migration steps")
    table.add_column("Step")
    table.add_column("Name")
    table.add_column("Applied")
    for step, applied in rows:
        table.add_row(step.id, step.name, "yes" if applied else "no")
    console.print(table)


@app.command()
def verify(
    live: bool = typer.Option(False, "--live", help="Also round-trip every pending step on the database"),
    database_url: Optional[str] = DatabaseUrl,
):
    """
    Check that every step reverts cleanly and the head matches the target schema.

    With --live, each pending step is applied, reverted, compared and
    re-applied on the database, which ends at the head version.
    """
    try:
        steps = load_steps()
        report = verify_steps(steps).extend(verify_target(steps))
        if live:
            engine = _engine(database_url)
            try:
                report.extend(verify_live(engine, steps))
            finally:
                engine.dispose()
    except MigrationError as exc:
        _fail(exc)

    if report.ok:
        rprint(f"[green]OK[/green] {len(steps)} step(s) verified")
        return
    for problem in report.problems:
        rprint(f"[red]{escape(problem)}[/red]")
    raise typer.Exit(1)


@app.command()
def diff(database_url: Optional[str] = DatabaseUrl):
    """
    Compare the live schema with the modeled version recorded in its history.
    """
    engine = _engine(database_url)
    try:
        runner = MigrationRunner(engine)
        ledger = runner.ledger()
        expected = model_versions(runner.steps)[len(ledger.applied)]
        actual = reflect_schema(engine, exclude=(HISTORY_TABLE,))
    except MigrationError as exc:
        _fail(exc)
    finally:
        engine.dispose()

    differences = diff_schemas(expected, actual)
    if not differences:
        rprint(f"[green]No drift[/green] at version {ledger.head or 'empty'}")
        return
    for difference in differences:
        rprint(escape(str(difference)))
    raise typer.Exit(1)


@app.command()
def new(
    name: str = typer.Argument(..., help="Step name, e.g. AddInvoiceTable"),
    directory: Path = typer.Option(VERSIONS_DIR, help="Versions directory"),
):
    """
    Scaffold a new step module after the current last step.
    """
    try:
        steps = load_steps(directory)
    except MigrationError as exc:
        _fail(exc)

    revision = step_id_for()
    parent = steps[-1].id if steps else None
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in name).lstrip("_")
    path = directory / f"{revision}_{snake}.py"
    path.write_text(
        STEP_TEMPLATE.format(
            name=name,
            revision=revision,
            down_revision=parent,
            down_revision_literal=f'"{parent}"' if parent else "None",
            created=revision,
        )
    )
    rprint(f"[green]Created[/green] {path}")


if __name__ == "__main__":
    app()
