"""
Command-line interface for the genealogy store.

Manages trees, imports and exports GEDCOM files and moderates pending changes.
"""

from __future__ import annotations

import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from genealogy_store import __version__
from genealogy_store.config import StoreConfig
from genealogy_store.core.exceptions import GedcomStoreError
from genealogy_store.core.models import Actor, Tree
from genealogy_store.log import configure_logging
from genealogy_store.services.export import export_gedcom
from genealogy_store.services.importer import GedcomImportService, ImportResult
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.trees import TreeService
from genealogy_store.storage import Database, open_database

console = Console()


def store_command(f):
    """Report store errors in red and exit with status 1."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except GedcomStoreError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
    return wrapper


def get_db(ctx: click.Context) -> Database:
    """Open the store once per invocation."""
    obj = ctx.find_root().obj
    if "db" not in obj:
        obj["db"] = open_database(obj["config"].database_path)
        ctx.find_root().call_on_close(obj["db"].close)
    return obj["db"]


def get_actor(ctx: click.Context) -> Actor:
    return ctx.find_root().obj["actor"]


def find_tree(trees: TreeService, key: str) -> Tree:
    """Look a tree up by name, or by id when the key is numeric."""
    if key.isdigit():
        return trees.find(int(key))
    return trees.find_by_name(key)


@click.group()
@click.version_option(version=__version__, prog_name="genealogy-store")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML configuration file")
@click.option("--database", "-d", help="SQLite database path (overrides configuration)")
@click.option("--user", "-u", default="system", help="User name recorded on changes")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config_path, database, user, verbose):
    """
    GEDCOM import and pending-change moderation.

    Imports are normalized to UTF-8, stored in chunks and parsed record by
    record into pending changes that a moderator accepts or rejects.
    """
    ctx.ensure_object(dict)
    config = StoreConfig.load(config_path)
    if database:
        config.database_path = database
    configure_logging("DEBUG" if verbose else config.log_level, config.log_file)

    ctx.obj["config"] = config
    ctx.obj["actor"] = Actor(user_name=user)


# =============================================================================
# Tree Commands
# =============================================================================

@cli.group()
def tree():
    """Create, list and delete trees."""
    pass


@tree.command("create")
@click.argument("name")
@click.option("--title", "-t", help="Display title (defaults to the name)")
@click.pass_context
@store_command
def tree_create(ctx, name: str, title: Optional[str]):
    """Create a tree with a header and a placeholder individual."""
    trees = TreeService(get_db(ctx))
    created = trees.create(name, title or name, get_actor(ctx))
    console.print(f"[green]Created tree {created.name} (id {created.id})[/green]")


@tree.command("list")
@click.pass_context
def tree_list(ctx):
    """List all trees."""
    db = get_db(ctx)
    trees = TreeService(db)
    ledger = PendingChangeLedger(db)

    table = Table(title="Trees")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Title")
    table.add_column("Records", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Imported")

    for t in trees.all():
        table.add_row(
            str(t.id),
            t.name,
            t.title,
            str(db.count("record", {"gedcom_id": t.id})),
            str(len(ledger.pending_changes(t.id))),
            "yes" if t.imported else "[yellow]in progress[/yellow]",
        )

    console.print(table)


@tree.command("delete")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@store_command
def tree_delete(ctx, name: str, yes: bool):
    """Delete a tree and all of its data."""
    trees = TreeService(get_db(ctx))
    target = find_tree(trees, name)
    if not yes:
        click.confirm(f"Delete tree {target.name} and all of its records?", abort=True)
    trees.delete(target.id)
    console.print(f"[green]Deleted tree {target.name}[/green]")


# =============================================================================
# GEDCOM Commands
# =============================================================================

@cli.group()
def gedcom():
    """GEDCOM import and export."""
    pass


@gedcom.command("import")
@click.argument("name")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--encoding", "-e", help="Character set (detected from the file if omitted)")
@click.option("--auto-accept", is_flag=True, help="Accept imported records immediately")
@click.option("--strict", is_flag=True, help="Stop at the first malformed record")
@click.pass_context
@store_command
def gedcom_import(ctx, name: str, file: str, encoding: Optional[str], auto_accept: bool, strict: bool):
    """Replace a tree's data with the contents of a GEDCOM file."""
    db = get_db(ctx)
    config = ctx.find_root().obj["config"]
    trees = TreeService(db)
    target = find_tree(trees, name)

    with open(file, "rb") as f:
        count = trees.import_gedcom_file(
            target.id, f, Path(file).name,
            encoding=encoding or config.default_encoding,
            chunk_size=config.chunk_size,
        )

    importer = GedcomImportService(db)
    result = ImportResult()
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} chunks"),
        console=console,
    ) as progress:
        task = progress.add_task(f"Importing {Path(file).name}", total=count)
        while not result.complete:
            step = importer.import_chunks(
                target.id, get_actor(ctx),
                auto_accept=auto_accept,
                strict=strict or config.strict_import,
                max_chunks=1,
            )
            result.extend(step)
            result.complete = step.complete
            progress.advance(task, step.chunks)

    console.print(Panel(
        f"Records: {len(result.records)}\n"
        f"Errors: {len(result.errors)}\n"
        f"Pending: {sum(1 for r in result.records if r.pending)}",
        title=f"Imported {Path(file).name} into {target.name}",
    ))
    for issue in result.errors[:20]:
        console.print(f"  [yellow]{issue}[/yellow]")


@gedcom.command("export")
@click.argument("name")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file (default: stdout)")
@click.pass_context
@store_command
def gedcom_export(ctx, name: str, output: Optional[str]):
    """Export a tree's accepted records as GEDCOM."""
    db = get_db(ctx)
    target = find_tree(TreeService(db), name)

    if output:
        with open(output, "w", encoding="utf-8", newline="\n") as f:
            export_gedcom(db, target.id, f)
        console.print(f"[green]Exported {target.name} to {output}[/green]")
    else:
        click.echo(export_gedcom(db, target.id), nl=False)


# =============================================================================
# Change Moderation Commands
# =============================================================================

@cli.group()
def changes():
    """Review pending changes."""
    pass


@changes.command("list")
@click.argument("name")
@click.pass_context
@store_command
def changes_list(ctx, name: str):
    """List the pending changes of a tree."""
    db = get_db(ctx)
    target = find_tree(TreeService(db), name)
    pending = PendingChangeLedger(db).pending_changes(target.id)

    if not pending:
        console.print("[dim]No pending changes.[/dim]")
        return

    table = Table(title=f"Pending changes: {target.name}")
    table.add_column("ID", justify="right")
    table.add_column("Record", style="cyan")
    table.add_column("Action")
    table.add_column("User")
    table.add_column("Time")

    for change in pending:
        if change.is_creation:
            action = "[green]create[/green]"
        elif change.is_deletion:
            action = "[red]delete[/red]"
        else:
            action = "[yellow]update[/yellow]"
        table.add_row(
            str(change.id),
            change.xref,
            action,
            str(change.user_id or ""),
            change.change_time.isoformat(sep=" ") if change.change_time else "",
        )

    console.print(table)


@changes.command("accept")
@click.argument("change_id", type=int)
@click.pass_context
@store_command
def changes_accept(ctx, change_id: int):
    """Accept a pending change."""
    change = PendingChangeLedger(get_db(ctx)).accept_change(change_id, get_actor(ctx))
    console.print(f"[green]Accepted change {change.id} ({change.xref})[/green]")


@changes.command("reject")
@click.argument("change_id", type=int)
@click.pass_context
@store_command
def changes_reject(ctx, change_id: int):
    """Reject a pending change."""
    change = PendingChangeLedger(get_db(ctx)).reject_change(change_id, get_actor(ctx))
    console.print(f"[green]Rejected change {change.id} ({change.xref})[/green]")


@changes.command("accept-all")
@click.argument("name")
@click.pass_context
@store_command
def changes_accept_all(ctx, name: str):
    """Accept every pending change of a tree."""
    db = get_db(ctx)
    target = find_tree(TreeService(db), name)
    count = PendingChangeLedger(db).accept_all(target.id, get_actor(ctx))
    console.print(f"[green]Accepted {count} changes in {target.name}[/green]")


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
