"""
Custom exceptions for procpool.

Exception hierarchy:
- ProcPoolError: Base exception for all procpool errors
  - ScheduleError: scheduling-dependent state accessed too early, or a pool
    run twice
  - AlreadyResolvedError: a future resolved more than once
  - SpawnError: the OS refused to create a process
  - PipeIOError: a pipe failed while the pool was servicing it
  - ConfigurationError: invalid command or pool options
"""

from typing import Optional, Any, Dict


class ProcPoolError(Exception):
    """Base exception for all procpool errors."""

    def __init__(
        self,
        message: str,
        *args: Any,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or "PROCPOOL_ERROR"
        self.context = context or {}
        super().__init__(message, *args)

    def __str__(self) -> str:
        error_msg = f"[{self.error_code}] {self.message}"
        if self.context:
            error_msg += f"\nContext: {self.context}"
        return error_msg


class ScheduleError(ProcPoolError):
    """Raised when scheduling-dependent state is used before scheduling."""

    def __init__(self, message: str, *args: Any, command: Optional[str] = None):
        super().__init__(
            message,
            *args,
            error_code="SCHEDULE_ERROR",
            context={"command": command} if command else None,
        )


class AlreadyResolvedError(ProcPoolError):
    """Raised when a future is resolved a second time."""

    def __init__(self, message: str = "Future is already resolved", *args: Any):
        super().__init__(message, *args, error_code="ALREADY_RESOLVED")


class SpawnError(ProcPoolError):
    """Raised when a process for a command cannot be created."""

    def __init__(self, command: str, reason: str, cause: Exception = None):
        self.command = command
        self.reason = reason
        self.cause = cause
        super().__init__(
            f"Failed to spawn process: {reason}",
            error_code="SPAWN_ERROR",
            context={"command": command},
        )


class PipeIOError(ProcPoolError):
    """Raised when reading from or writing to a process pipe fails."""

    def __init__(self, stream: str, cause: Exception = None, command: str = None):
        self.stream = stream
        self.cause = cause
        message = f"I/O error on {stream}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(
            message,
            error_code="PIPE_IO_ERROR",
            context={"stream": stream, "command": command},
        )


class ConfigurationError(ProcPoolError):
    """Raised when there's an error in the configuration."""

    def __init__(self, message: str, *args: Any, option: Optional[str] = None):
        super().__init__(
            message,
            *args,
            error_code="CONFIG_ERROR",
            context={"option": option} if option else None,
        )
