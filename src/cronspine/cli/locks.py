"""
CLI: ``cronspine locks``: inspect and clear job lock files.

Lock files left by a worker that was killed with SIGKILL are never
removed automatically; these commands are the way to clean them up.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from cronspine.cli.utils import console, resolve_lock_manager

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_locks(
    name: str | None = typer.Option(None, "--name", "-n", help="Worker name (lock namespace)"),  # noqa: UP007
    lock_dir: Path | None = typer.Option(None, "--lock-dir", help="Lock directory"),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the lock files of a worker."""
    manager = resolve_lock_manager(name, lock_dir)
    locks = manager.list_active_locks()

    if json_out:
        console.print_json(json.dumps(locks))
        return

    if not locks:
        console.print(f"[green]No locks held[/green] in {manager.lock_dir} for {manager.namespace}")
        return

    table = Table(title=f"Locks: {manager.namespace}")
    table.add_column("Path")
    table.add_column("PID", justify="right")
    table.add_column("Locked at")
    for lock in locks:
        holder = lock["holder_pid"]
        table.add_row(lock["path"], str(holder) if holder is not None else "-", lock["locked_at"])
    console.print(table)


@app.command("clear")
def clear_locks(
    name: str | None = typer.Option(None, "--name", "-n", help="Worker name (lock namespace)"),  # noqa: UP007
    lock_dir: Path | None = typer.Option(None, "--lock-dir", help="Lock directory"),  # noqa: UP007
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove every lock file of a worker.  Only run this while it is stopped."""
    manager = resolve_lock_manager(name, lock_dir)
    locks = manager.list_active_locks()
    if not locks:
        console.print("[green]Nothing to clear[/green]")
        return

    if not yes:
        typer.confirm(f"Remove {len(locks)} lock file(s) for {manager.namespace}?", abort=True)

    count = manager.force_release_all()
    console.print(f"[yellow]Removed {count} lock file(s)[/yellow]")
