"""Command descriptor: one process invocation plus its scheduling state."""

# Standard library imports
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

# Local imports
from ..config import options as opts
from ..config.options import CommandOptions, merge_options
from ..exceptions import ConfigurationError, ScheduleError
from .future import Future
from .result import ExecutionResult

ResultPreparer = Callable[[ExecutionResult], ExecutionResult]
CommandLine = Union[str, Sequence[str]]


class Command:
    """One command-line process.

    The command line is handed verbatim to the system shell. Token sequences
    are joined with single spaces and are not quoted.
    """

    OPTION_ENV = opts.OPTION_ENV
    OPTION_CWD = opts.OPTION_CWD
    OPTION_PROC = opts.OPTION_PROC
    OPTION_STDIN = opts.OPTION_STDIN
    OPTION_DONT_CHECK_RUNNING = opts.OPTION_DONT_CHECK_RUNNING

    def __init__(
        self,
        cmd: CommandLine,
        options: Union[CommandOptions, Mapping[str, Any], None] = None,
        result_preparer: Optional[ResultPreparer] = None,
    ):
        self._cmd = self._join_command(cmd)
        self._options = merge_options(self.get_default_options(), options)
        self._result_preparer = result_preparer
        self._future: Optional[Future] = None
        self._executed = False

    @staticmethod
    def _join_command(cmd: CommandLine) -> str:
        if isinstance(cmd, str):
            return cmd
        if isinstance(cmd, Sequence) and all(isinstance(part, str) for part in cmd):
            return " ".join(cmd)
        raise ConfigurationError(
            f"Command must be a string or a sequence of strings, got {cmd!r}"
        )

    def get_default_options(self) -> Dict[str, Any]:
        return {self.OPTION_DONT_CHECK_RUNNING: False}

    # Command line

    def get_command(self) -> str:
        return self._cmd

    def replace_command(self, cmd: CommandLine) -> None:
        self._cmd = self._join_command(cmd)

    def append_command(self, part: str) -> None:
        self._cmd += part

    # Options

    def get_options(self) -> CommandOptions:
        return self._options

    def get_option(self, name: str) -> Any:
        return self._options.get(name)

    def set_option(self, name: str, value: Any) -> None:
        self._options.set(name, value)

    def get_cwd_path(self) -> Optional[str]:
        return self._options.cwd

    def set_cwd_path(self, cwd_path) -> None:
        self.set_option(self.OPTION_CWD, cwd_path)

    def get_env_variables(self) -> Optional[Dict[str, str]]:
        return self._options.env

    def set_env_variables(self, env_variables: Optional[Mapping[str, str]]) -> None:
        self.set_option(self.OPTION_ENV, env_variables)

    def get_stdin(self) -> Optional[bytes]:
        return self._options.stdin

    def set_stdin(self, stdin: Union[bytes, str, None]) -> None:
        self.set_option(self.OPTION_STDIN, stdin)

    def get_proc_options(self) -> Optional[Dict[str, Any]]:
        return self._options.proc

    def set_proc_options(self, proc_options: Optional[Mapping[str, Any]]) -> None:
        self.set_option(self.OPTION_PROC, proc_options)

    def is_dont_check_running(self) -> bool:
        return self._options.dont_check_running

    def set_dont_check_running(self, dont_check_running: bool) -> None:
        self.set_option(self.OPTION_DONT_CHECK_RUNNING, dont_check_running)

    # Scheduling state

    def has_future(self) -> bool:
        return self._future is not None

    def get_future(self) -> Future:
        """Return the execution future.

        Raises:
            ScheduleError: If no pool has scheduled this command yet
        """
        if self._future is None:
            raise ScheduleError("Future has not been assigned yet", command=self._cmd)
        return self._future

    def set_future(self, future: Future) -> None:
        """Attach the execution future; a command gets exactly one.

        Raises:
            ScheduleError: If the command has already been scheduled
        """
        if self._future is not None:
            raise ScheduleError(
                "Command is already scheduled; use create_new_command() to run it again",
                command=self._cmd,
            )
        self._future = future

    def has_execution_result(self) -> bool:
        return self._future is not None and self._future.has_result()

    def get_execution_result(self) -> ExecutionResult:
        """Return the execution result, waiting for it if necessary."""
        return self.get_future().get_result()

    def is_executed(self) -> bool:
        return self._executed

    def mark_executed(self) -> None:
        self._executed = True

    def prepare_execution_result(self, result: ExecutionResult) -> ExecutionResult:
        """Hook applied by the pool right before the result is attached."""
        if self._result_preparer is None:
            return result
        return self._result_preparer(result)

    def create_new_command(self) -> "Command":
        """Create a new, unscheduled command from this one."""
        return type(self)(
            self._cmd, self._options.copy(), result_preparer=self._result_preparer
        )

    # Convenience runners

    def run(self, pool_options: Optional[Mapping[str, Any]] = None) -> Future:
        """Run this command alone in a new pool and return its future."""
        from .pool import Pool

        pool = Pool([self], pool_options)
        pool.run()
        return self.get_future()

    def run_blocking(
        self, pool_options: Optional[Mapping[str, Any]] = None
    ) -> ExecutionResult:
        return self.run(pool_options).get_result()

    def __str__(self) -> str:
        return f"[ {self._cmd} ]"

    def __repr__(self) -> str:
        return f"Command({self._cmd!r})"
