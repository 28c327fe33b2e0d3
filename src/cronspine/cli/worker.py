"""
CLI: ``cronspine start``: load a supervisor and run it in the foreground.
"""

from __future__ import annotations

import importlib
import os
import sys
from typing import Any

import typer

from cronspine.cli.utils import console, err_console
from cronspine.core.config import DriveMode, clear_settings_cache, get_settings
from cronspine.core.errors import CronSpineError, ForkError
from cronspine.core.logging import configure_logging


def load_supervisor(target: str) -> Any:
    """Resolve ``module:attribute`` to a Supervisor.

    The attribute may be a supervisor or a zero-argument factory
    returning one.

    Raises:
        typer.BadParameter: If the target cannot be resolved.
    """
    from cronspine.scheduling import Supervisor

    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise typer.BadParameter(f"expected 'module:attribute', got {target!r}")

    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"cannot import {module_name!r}: {exc}") from exc

    obj: Any = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise typer.BadParameter(f"{module_name!r} has no attribute {attribute!r}") from exc

    if not isinstance(obj, Supervisor) and callable(obj):
        obj = obj()
    if not isinstance(obj, Supervisor):
        raise typer.BadParameter(f"{target!r} is not a Supervisor (got {type(obj).__name__})")
    return obj


def start(
    target: str = typer.Argument(..., help="Supervisor to run, as 'module:attribute'"),
    drive_mode: DriveMode | None = typer.Option(None, "--drive-mode", "-m", help="timer (default) or poll"),  # noqa: UP007
    lock_dir: str | None = typer.Option(None, "--lock-dir", help="Directory for job lock files"),  # noqa: UP007
    debug: bool = typer.Option(False, "--debug", help="Emit debug-verbosity progress lines"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Render log events as JSON"),
) -> None:
    """Run a supervisor until SIGTERM or SIGINT.

    Options are applied as settings before TARGET is imported, so they
    only affect supervisors that take their configuration from settings.

    Example::

        cronspine start myapp.jobs:supervisor
        cronspine start myapp.jobs:build_supervisor --drive-mode poll --debug
    """
    overrides = {
        "CRONSPINE_DRIVE_MODE": drive_mode.value if drive_mode else None,
        "CRONSPINE_LOCK_DIR": lock_dir,
        "CRONSPINE_DEBUG": "true" if debug else None,
        "CRONSPINE_LOG_LEVEL": "DEBUG" if debug else None,
    }
    for key, value in overrides.items():
        if value is not None:
            os.environ[key] = value
    clear_settings_cache()

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=json_logs or settings.json_logs,
        service=settings.name,
    )

    supervisor = load_supervisor(target)
    console.print(
        f"[bold green]Starting cronspine worker[/bold green] {supervisor.name} "
        f"(jobs={len(supervisor.jobs)}, mode={supervisor.backend.name})"
    )

    try:
        code = supervisor.start()
    except ForkError as exc:
        err_console.print(f"[red]Fatal: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    except CronSpineError as exc:
        err_console.print(f"[red]Worker error: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    raise typer.Exit(code=code)
