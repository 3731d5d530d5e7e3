"""procqueue — bounded-concurrency launcher for short-lived worker processes."""

from importlib.metadata import version, PackageNotFoundError

from procqueue.config import LauncherConfig
from procqueue.launcher import ProcessLauncher
from procqueue.types import SpawnOptions, WorkerProcess

try:
    __version__ = version("procqueue")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development

__all__ = ["LauncherConfig", "ProcessLauncher", "SpawnOptions", "WorkerProcess"]
