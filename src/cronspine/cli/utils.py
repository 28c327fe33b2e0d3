"""
CLI utility helpers: consoles and settings resolution.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from cronspine.core.config import WorkerSettings, get_settings
from cronspine.scheduling import FileLockManager

console = Console()
err_console = Console(stderr=True)


def resolve_lock_manager(name: str | None = None, lock_dir: Path | None = None) -> FileLockManager:
    """Lock manager for a worker, falling back to settings for anything not given."""
    settings: WorkerSettings = get_settings()
    return FileLockManager(lock_dir or settings.lock_dir, namespace=name or settings.name)
