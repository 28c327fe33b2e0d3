"""Centralized configuration for cronspine.

Manifesto:
    A worker embedded in a host process is configured in two places: the
    host's code (keyword arguments to :class:`~cronspine.scheduling.Supervisor`)
    and the environment it is deployed into.  This package owns the second
    half so ``CRONSPINE_LOCK_DIR`` or ``CRONSPINE_DEBUG`` are parsed exactly
    once, validated, and cached.

Quick start::

    from cronspine.core.config import get_settings

    settings = get_settings()
    print(settings.drive_mode)    # DriveMode.TIMER
    print(settings.lock_dir)      # /tmp/cronspine

Architecture::

    settings.py       WorkerSettings (Pydantic) + get_settings() cache
    components.py     DriveMode / LogFormat enums

Tags:
    cronspine, configuration, settings, pydantic, env-files

Doc-Types:
    package-overview
"""

from .components import DriveMode, LogFormat
from .settings import WorkerSettings, clear_settings_cache, get_settings

__all__ = [
    "DriveMode",
    "LogFormat",
    "WorkerSettings",
    "get_settings",
    "clear_settings_cache",
]
