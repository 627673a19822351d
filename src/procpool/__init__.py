"""
procpool - run several OS processes concurrently from one thread.

This module provides the public API of the package: ``Command``, ``Pool``,
``Future`` and ``ExecutionResult`` plus the exception types. Metadata such as
the version is read from the installed distribution when available.
"""

from importlib import metadata as importlib_metadata
from importlib.metadata import PackageNotFoundError

# Local/package imports
from .core import Command, CommandPhase, ExecutionResult, Future, Pool
from .exceptions import (
    AlreadyResolvedError,
    ConfigurationError,
    PipeIOError,
    ProcPoolError,
    ScheduleError,
    SpawnError,
)

__version__ = "0.0.0"
__title__ = "procpool"


def get_metadata():
    """Extract version and metadata from package distribution when available."""

    global __version__, __title__

    try:
        _meta = importlib_metadata.metadata("procpool")
    except PackageNotFoundError:
        return

    __version__ = _meta.get("Version", __version__)
    __title__ = _meta.get("Name", __title__)


get_metadata()

__all__ = [
    "__version__",
    "__title__",
    "Command",
    "CommandPhase",
    "ExecutionResult",
    "Future",
    "Pool",
    "ProcPoolError",
    "ScheduleError",
    "AlreadyResolvedError",
    "SpawnError",
    "PipeIOError",
    "ConfigurationError",
]
