"""
Centralized settings for cronspine.

Manifesto:
    One validated, cached settings object replaces ad-hoc ``os.environ``
    lookups scattered through the scheduler, lock manager and CLI.
    ``WorkerSettings`` is resolved once per process; values passed
    explicitly to the supervisor always win over the environment.

All fields can be set via ``CRONSPINE_*`` environment variables (e.g.
``CRONSPINE_DRIVE_MODE=poll``) or a ``.env`` file in the working directory.

Tags:
    cronspine, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .components import DriveMode, LogFormat


def _default_lock_dir() -> Path:
    return Path(tempfile.gettempdir()) / "cronspine"


class WorkerSettings(BaseSettings):
    """Worker daemon configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CRONSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Identity ─────────────────────────────────────────────────
    name: str = Field(default="cronspine", min_length=1, description="Worker name, used as lock namespace")

    # ── Scheduling ───────────────────────────────────────────────
    drive_mode: DriveMode = Field(default=DriveMode.TIMER)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    timezone: str = Field(default="UTC", description="Timezone used to evaluate cron expressions")

    # ── Locks ────────────────────────────────────────────────────
    lock_dir: Path = Field(default_factory=_default_lock_dir)

    # ── Output / logging ─────────────────────────────────────────
    debug: bool = Field(default=False, description="Emit debug-verbosity progress lines")
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE)

    # ── Stats ────────────────────────────────────────────────────
    stats_enabled: bool = Field(default=False)
    stats_interval_seconds: float = Field(default=60.0, gt=0)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return normalized

    @property
    def json_logs(self) -> bool:
        return self.log_format == LogFormat.JSON


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, WorkerSettings] = {}


def get_settings(*, _force_reload: bool = False) -> WorkerSettings:
    """Load, validate, and cache a :class:`WorkerSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = WorkerSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
