"""
Root Typer application for the cronspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="cronspine",
    help="cronspine: fork-per-run cron daemon embedded in your process.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from cronspine import __version__

        typer.echo(f"cronspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cronspine CLI: run a worker, preview schedules, manage lock files."""


# ── Sub-command registration ─────────────────────────────────────────────

from cronspine.cli.locks import app as locks_app  # noqa: E402
from cronspine.cli.schedule import next_runs  # noqa: E402
from cronspine.cli.worker import start  # noqa: E402

app.command("start")(start)
app.command("next")(next_runs)
app.add_typer(locks_app, name="locks", help="Inspect and clear job lock files.")


if __name__ == "__main__":
    app()
