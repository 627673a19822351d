"""Captured outcome of one finished process."""

# Standard library imports
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ExecutionResult:
    """Result of command execution.

    ``exit_code`` is only present when the process was allowed to run to
    natural completion. It is None when the command was stopped early via
    DontCheckRunning or when its process could not be spawned; in the latter
    case ``error`` describes the failure.
    """

    exit_code: Optional[int] = None
    stdout: bytes = b""
    stderr: bytes = b""
    error: Optional[str] = None
    pid: Optional[int] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @classmethod
    def spawn_failure(
        cls, error: str, start_time: Optional[float] = None
    ) -> "ExecutionResult":
        """Build the result of a command whose process never started."""
        return cls(error=error, start_time=start_time, end_time=start_time)

    def get_exit_code(self) -> Optional[int]:
        return self.exit_code

    def get_stdout(self) -> bytes:
        return self.stdout

    def get_stderr(self) -> bytes:
        return self.stderr

    def get_output(self) -> bytes:
        """Alias of :meth:`get_stdout`."""
        return self.stdout

    def get_error(self) -> Optional[str]:
        return self.error

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def is_successful(self) -> bool:
        """True when the process exited with code 0 and nothing went wrong."""
        return self.exit_code == 0 and self.error is None

    @property
    def duration(self) -> Optional[float]:
        """Get execution duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "exit_code": self.exit_code,
            "stdout": self.stdout.decode("utf-8", errors="replace"),
            "stderr": self.stderr.decode("utf-8", errors="replace"),
            "error": self.error,
            "pid": self.pid,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
        }
