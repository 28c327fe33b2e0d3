"""
CLI: ``cronspine next``: preview the run times of a schedule expression.
"""

from __future__ import annotations

from datetime import datetime

import typer
from rich.table import Table

from cronspine.cli.utils import console, err_console
from cronspine.core.errors import InvalidScheduleError
from cronspine.scheduling import parse_schedule
from cronspine.scheduling.schedule import utcnow


def next_runs(
    expression: str = typer.Argument(..., help="Cron or interval expression"),
    count: int = typer.Option(5, "--count", "-n", min=1, max=100, help="Number of run times"),
    after: datetime | None = typer.Option(None, "--after", help="Start instant (ISO 8601, default now)"),  # noqa: UP007
    timezone: str | None = typer.Option(None, "--timezone", "--tz", help="Zone for cron evaluation"),  # noqa: UP007
) -> None:
    """Show the next COUNT run times of EXPRESSION.

    Example::

        cronspine next "*/15 9-17 * * mon-fri" --count 3 --tz Europe/Paris
        cronspine next "every 90 seconds"
    """
    try:
        schedule = parse_schedule(expression, timezone)
        moment = after or utcnow()
        runs = []
        for _ in range(count):
            moment = schedule.next_after(moment)
            runs.append(moment)
    except InvalidScheduleError as exc:
        err_console.print(f"[bold red]Error[/bold red]: {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Next runs: {schedule}")
    table.add_column("#", justify="right")
    table.add_column("UTC")
    for index, run in enumerate(runs, start=1):
        table.add_row(str(index), run.isoformat())
    console.print(table)
