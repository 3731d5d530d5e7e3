"""Configuration — environment settings and the launcher's concurrency ceiling."""

from __future__ import annotations

import logging
import os

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

# Verbosity names accepted in LOG_LEVEL, including the npm-style ones
_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
    "silly": logging.DEBUG,
}


class ProcqueueSettings(BaseSettings):
    log_level: str = Field(
        default="warn",
        validation_alias=AliasChoices("PROCQUEUE_LOG_LEVEL", "LOG_LEVEL"),
    )
    max_concurrency: int | None = None
    debug_port: int | None = None  # Enables debugger port rotation for children
    debug_host: str = "127.0.0.1"

    model_config = {"env_prefix": "PROCQUEUE_", "populate_by_name": True}


def default_max_concurrency() -> int:
    """One process per core, leaving a core for the host. Never below 1."""
    return max((os.cpu_count() or 1) - 1, 1)


class LauncherConfig(BaseModel):
    """Immutable launcher configuration.

    A non-positive ceiling would deadlock the queue, so it is rejected
    with a ValidationError instead of being clamped.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(default_factory=default_max_concurrency, ge=1)

    @classmethod
    def from_settings(cls, settings: ProcqueueSettings | None = None) -> LauncherConfig:
        settings = settings or ProcqueueSettings()
        if settings.max_concurrency is None:
            return cls()
        return cls(max_concurrency=settings.max_concurrency)


def resolve_log_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = level.strip().lower()
    if name.isdigit():
        return int(name)
    return _LEVELS.get(name, logging.WARNING)


def configure_logging(level: str | int) -> int:
    """Apply a verbosity setting to the ``procqueue`` logger hierarchy."""
    resolved = resolve_log_level(level)
    logging.getLogger("procqueue").setLevel(resolved)
    return resolved
