"""
Process pool: spawns a batch of commands and multiplexes their pipes.

All processes are driven from the calling thread. Every loop iteration waits
(at most ``poll_interval`` seconds) until any pipe of any command is ready,
then performs one non-blocking read or write per ready pipe, so a slow or
blocked process never holds up its siblings.
"""

import dataclasses
import os
import re
import selectors
import shutil
import subprocess
import time
from enum import Enum
from typing import Any, Callable, Dict, IO, List, Mapping, Optional, Sequence, Union

from ..config.base import PoolConfig, get_config
from ..config.options import CommandOptions, build_environment
from ..exceptions import ConfigurationError, PipeIOError, ScheduleError, SpawnError
from ..logging import PoolLogger
from .command import Command
from .future import Future
from .result import ExecutionResult

STDIN = "stdin"
STDOUT = "stdout"
STDERR = "stderr"

# Leading words the shell resolves itself; they are not looked up on PATH
SHELL_BUILTINS = frozenset(
    {
        ".", ":", "alias", "bg", "break", "builtin", "case", "cd", "command",
        "continue", "declare", "do", "done", "echo", "elif", "else", "esac",
        "eval", "exec", "exit", "export", "false", "fg", "fi", "for",
        "function", "getopts", "hash", "if", "jobs", "kill", "let", "local",
        "printf", "pwd", "read", "readonly", "return", "select", "set",
        "shift", "source", "test", "then", "time", "times", "trap", "true",
        "type", "typeset", "ulimit", "umask", "unalias", "unset", "until",
        "wait", "while",
    }
)
SHELL_SYNTAX = frozenset("|&;<>()$`\\\"'*?[]#~{}!=")
ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")

CommandSpec = Union[Command, str, Sequence[Any]]


class CommandPhase(Enum):
    """Lifecycle of a scheduled command."""

    CREATED = "created"
    SPAWNED = "spawned"
    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"


class ProcessRecord:
    """Runtime state of one command while the pool owns it."""

    def __init__(self, command: Command):
        self.command = command
        self.phase = CommandPhase.CREATED
        self.process: Optional[subprocess.Popen] = None
        self.pid: Optional[int] = None
        self.pipes: Dict[str, IO[bytes]] = {}
        self.stdin_buffer = b""
        self.stdin_cursor = 0
        self.output = {STDOUT: bytearray(), STDERR: bytearray()}
        self.start_time: Optional[float] = None
        self.last_output_time: Optional[float] = None

    def is_open(self, stream: str) -> bool:
        return stream in self.pipes

    @property
    def has_output(self) -> bool:
        return bool(self.output[STDOUT] or self.output[STDERR])

    @property
    def outputs_closed(self) -> bool:
        return not self.is_open(STDOUT) and not self.is_open(STDERR)

    def release(self) -> None:
        """Drop captured output and the stdin payload once a result is built."""
        self.stdin_buffer = b""
        self.stdin_cursor = 0
        self.output = {STDOUT: bytearray(), STDERR: bytearray()}


def leading_program(command_line: str) -> Optional[str]:
    """Return the program word the shell will execute, if it is a plain word.

    Variable assignments in front of the program are skipped. None is
    returned for shell builtins and for words containing shell syntax, which
    are left to the shell, and when an assignment changes ``PATH`` for the
    program.
    """
    for word in command_line.split():
        if ASSIGNMENT.match(word):
            if word.startswith("PATH="):
                return None
            continue
        if word in SHELL_BUILTINS or SHELL_SYNTAX.intersection(word):
            return None
        return word
    return None


class Pool:
    """Runs a batch of commands concurrently and collects their results.

    Each element of ``commands`` is a :class:`Command`, a bare command-line
    string, a sequence of tokens, or a ``(command_line_or_tokens, options)``
    pair.

    Commands with the DontCheckRunning option finish as soon as their output
    is drained, or once they have been silent for ``idle_timeout`` seconds
    after producing output, without waiting for the process to exit. Such
    processes are not killed and may keep running after the pool is done.
    """

    OPTION_DEBUG = "Debug"
    OPTION_POLL_INTERVAL = "PollInterval"
    OPTION_IDLE_TIMEOUT = "IdleTimeout"
    OPTION_READ_CHUNK_SIZE = "ReadChunkSize"
    OPTION_WRITE_CHUNK_SIZE = "WriteChunkSize"

    def __init__(
        self,
        commands: Sequence[CommandSpec],
        options: Optional[Mapping[str, Any]] = None,
    ):
        self._config: PoolConfig = (
            PoolConfig.from_options(options) if options else get_config()
        )
        self._debug = self._config.debug
        self._commands = [self._make_command(spec) for spec in commands]
        self._records = [ProcessRecord(command) for command in self._commands]
        self._selector: Optional[selectors.BaseSelector] = None
        self._started = False
        self._ran = False
        self._in_loop = False
        self.logger = PoolLogger().get_context_logger(
            pool_class=self.__class__.__name__
        )

    @staticmethod
    def _make_command(spec: CommandSpec) -> Command:
        if isinstance(spec, Command):
            return spec
        if isinstance(spec, str):
            return Command(spec)
        if isinstance(spec, Sequence) and len(spec) == 2:
            cmd, options = spec
            if options is None or isinstance(options, (Mapping, CommandOptions)):
                return Command(cmd, options)
        if isinstance(spec, Sequence) and all(isinstance(part, str) for part in spec):
            return Command(spec)
        raise ConfigurationError(f"Cannot build a command from {spec!r}")

    # Public API

    def set_debug_enabled(self, enabled: bool) -> None:
        """Toggle the diagnostic trace of loop activity (logged at DEBUG)."""
        self._debug = bool(enabled)

    def is_debug_enabled(self) -> bool:
        return self._debug

    def get_commands(self) -> List[Command]:
        return list(self._commands)

    def get_executed_commands(self) -> List[Command]:
        return [command for command in self._commands if command.is_executed()]

    def get_phase(self, command: Command) -> CommandPhase:
        for record in self._records:
            if record.command is command:
                return record.phase
        raise ConfigurationError(f"{command} does not belong to this pool")

    def is_finished(self) -> bool:
        return all(record.phase is CommandPhase.FINISHED for record in self._records)

    def __len__(self) -> int:
        return len(self._commands)

    def start(self) -> None:
        """Assign futures and spawn every command without waiting for them.

        The multiplex loop is then advanced by :meth:`run` or by calling
        ``get_result()`` on any of the futures.

        Raises:
            ScheduleError: If the pool or one of its commands was already
                scheduled
        """
        if self._started:
            raise ScheduleError("Pool has already been started")
        for command in self._commands:
            if command.has_future():
                raise ScheduleError(
                    "Command is already scheduled; use create_new_command() to run it again",
                    command=command.get_command(),
                )
        self._started = True
        self._selector = selectors.DefaultSelector()

        for record in self._records:
            record.command.set_future(Future(driver=self._drive_until_resolved))
        self._in_loop = True
        try:
            for record in self._records:
                self._spawn(record)
        finally:
            self._in_loop = False
        if self.is_finished():
            self._close_selector()
        self._trace("Scheduled %d command(s)", len(self._records))

    def run(self) -> None:
        """Run every command to completion, blocking the calling thread.

        Raises:
            ScheduleError: If the pool has already been run
        """
        if self._ran:
            raise ScheduleError("Pool.run() can only be called once")
        self._ran = True
        if not self._started:
            self.start()
        self._run_until(self.is_finished)

    # Loop

    def _drive_until_resolved(self, future: Future) -> None:
        self._run_until(future.has_result)

    def _run_until(self, condition: Callable[[], bool]) -> None:
        if self._in_loop:
            raise ScheduleError(
                "Cannot wait for a pending result from inside the pool loop"
            )
        self._in_loop = True
        try:
            while not condition() and not self.is_finished():
                self._iterate()
        except BaseException:
            self._abort()
            raise
        finally:
            self._in_loop = False
            if self.is_finished():
                self._close_selector()

    def _iterate(self) -> None:
        poll_interval = self._config.poll_interval
        if self._selector is not None and self._selector.get_map():
            for key, _ in self._selector.select(timeout=poll_interval):
                record, stream = key.data
                if stream == STDIN:
                    self._write_stdin(record)
                else:
                    self._read_output(record, stream)
        else:
            # Only processes without open pipes are left; wait for them to exit
            time.sleep(poll_interval)

        now = time.monotonic()
        for record in self._records:
            if record.phase in (CommandPhase.RUNNING, CommandPhase.DRAINING):
                self._advance(record, now)

    def _advance(self, record: ProcessRecord, now: float) -> None:
        if record.phase is CommandPhase.RUNNING and record.outputs_closed:
            record.phase = CommandPhase.DRAINING
            self._trace("%s: output drained", record.command)

        if record.command.is_dont_check_running():
            idle = (
                record.has_output
                and now - record.last_output_time >= self._config.idle_timeout
            )
            if record.phase is CommandPhase.DRAINING or idle:
                self._trace("%s: stopped without waiting for exit", record.command)
                self._finish(record, None)
            return

        if record.phase is CommandPhase.DRAINING:
            exit_code = record.process.poll()
            if exit_code is not None:
                self._trace("%s: exited with code %d", record.command, exit_code)
                self._finish(record, exit_code)

    # Spawning

    def _spawn(self, record: ProcessRecord) -> None:
        command = record.command
        options = command.get_options()
        record.start_time = time.time()

        try:
            self._check_executable(command)
            process = subprocess.Popen(
                command.get_command(),
                shell=True,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=options.cwd,
                env=build_environment(options.env),
                **(options.proc or {}),
            )
        except SpawnError as e:
            self._fail_spawn(record, e)
            return
        except (OSError, ValueError, TypeError, subprocess.SubprocessError) as e:
            self._fail_spawn(record, SpawnError(command.get_command(), str(e), e))
            return

        record.process = process
        record.pid = process.pid
        record.phase = CommandPhase.SPAWNED
        self._trace("%s: spawned with pid %d", command, process.pid)

        self._register(record, STDOUT, process.stdout, selectors.EVENT_READ)
        self._register(record, STDERR, process.stderr, selectors.EVENT_READ)
        if options.stdin:
            record.stdin_buffer = options.stdin
            self._register(record, STDIN, process.stdin, selectors.EVENT_WRITE)
        else:
            self._close_pipe(record, STDIN, process.stdin)

        record.phase = CommandPhase.RUNNING

    def _check_executable(self, command: Command) -> None:
        """Fail early when the program of a command cannot be executed.

        Raises:
            SpawnError: If the program does not exist or is not executable
        """
        cmd = command.get_command()
        program = leading_program(cmd)
        if program is None:
            return

        options = command.get_options()
        if os.sep in program:
            path = os.path.join(options.cwd or os.getcwd(), program)
            if not os.path.isfile(path):
                raise SpawnError(cmd, f"No such file: {program}")
            if not os.access(path, os.X_OK):
                raise SpawnError(cmd, f"Permission denied: {program}")
            return

        env = build_environment(options.env) or os.environ
        if shutil.which(program, path=env.get("PATH", os.defpath)) is None:
            raise SpawnError(cmd, f"Command not found: {program}")

    def _fail_spawn(self, record: ProcessRecord, error: SpawnError) -> None:
        self.logger.warning(
            "Failed to spawn %s: %s",
            record.command,
            error.reason,
            extra={"command": error.command},
        )
        record.phase = CommandPhase.FINISHED
        record.release()
        result = ExecutionResult.spawn_failure(error.message, record.start_time)
        self._resolve(record, result)

    # Pipes

    def _register(
        self, record: ProcessRecord, stream: str, pipe: IO[bytes], events: int
    ) -> None:
        os.set_blocking(pipe.fileno(), False)
        record.pipes[stream] = pipe
        self._selector.register(pipe, events, (record, stream))

    def _read_output(self, record: ProcessRecord, stream: str) -> None:
        pipe = record.pipes.get(stream)
        if pipe is None:
            return
        try:
            chunk = os.read(pipe.fileno(), self._config.read_chunk_size)
        except BlockingIOError:
            return
        except OSError as e:
            self._on_pipe_error(record, stream, e)
            return

        if not chunk:
            self._trace("%s: %s reached end of stream", record.command, stream)
            self._close_stream(record, stream)
            return

        record.output[stream] += chunk
        record.last_output_time = time.monotonic()
        self._trace("%s: read %d bytes from %s", record.command, len(chunk), stream)

    def _write_stdin(self, record: ProcessRecord) -> None:
        pipe = record.pipes.get(STDIN)
        if pipe is None:
            return
        end = min(
            len(record.stdin_buffer),
            record.stdin_cursor + self._config.write_chunk_size,
        )
        try:
            written = os.write(
                pipe.fileno(), memoryview(record.stdin_buffer)[record.stdin_cursor:end]
            )
        except BlockingIOError:
            return
        except OSError as e:
            self._on_pipe_error(record, STDIN, e)
            return

        record.stdin_cursor += written
        self._trace("%s: wrote %d bytes to stdin", record.command, written)
        if record.stdin_cursor >= len(record.stdin_buffer):
            self._trace("%s: stdin flushed", record.command)
            self._close_stream(record, STDIN)

    def _on_pipe_error(self, record: ProcessRecord, stream: str, cause: OSError) -> None:
        error = PipeIOError(stream, cause, command=record.command.get_command())
        if isinstance(cause, BrokenPipeError):
            # The process stopped reading its input
            self.logger.debug(error.message, extra=error.context)
        else:
            self.logger.warning(error.message, extra=error.context)
        self._close_stream(record, stream)

    def _close_stream(self, record: ProcessRecord, stream: str) -> None:
        pipe = record.pipes.pop(stream, None)
        if pipe is None:
            return
        self._selector.unregister(pipe)
        self._close_pipe(record, stream, pipe)

    def _close_pipe(self, record: ProcessRecord, stream: str, pipe: IO[bytes]) -> None:
        try:
            pipe.close()
        except OSError as e:
            self.logger.debug(
                "Error closing %s of %s: %s", stream, record.command, e
            )

    # Completion

    def _finish(self, record: ProcessRecord, exit_code: Optional[int]) -> None:
        for stream in list(record.pipes):
            self._close_stream(record, stream)
        record.phase = CommandPhase.FINISHED
        record.process = None

        result = ExecutionResult(
            exit_code=exit_code,
            stdout=bytes(record.output[STDOUT]),
            stderr=bytes(record.output[STDERR]),
            pid=record.pid,
            start_time=record.start_time,
            end_time=time.time(),
        )
        record.release()
        self._resolve(record, result)

    def _resolve(self, record: ProcessRecord, result: ExecutionResult) -> None:
        command = record.command
        try:
            prepared = command.prepare_execution_result(result)
            if not isinstance(prepared, ExecutionResult):
                raise TypeError(
                    f"expected ExecutionResult, got {type(prepared).__name__}"
                )
        except ScheduleError:
            raise
        except Exception as e:
            self.logger.warning(
                "Result preparation failed for %s: %s",
                command,
                e,
                extra={"command": command.get_command()},
            )
            prepared = dataclasses.replace(
                result, error=f"prepare_execution_result failed: {e}"
            )
        command.get_future().set_result(prepared)
        command.mark_executed()

    def _abort(self) -> None:
        """Release every unfinished command after the loop was interrupted."""
        for record in self._records:
            if record.phase is CommandPhase.FINISHED:
                continue
            for stream in list(record.pipes):
                self._close_stream(record, stream)
            if record.process is not None and record.process.poll() is None:
                self.logger.warning("Terminating %s", record.command)
                record.process.terminate()
                try:
                    record.process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    record.process.kill()
                    record.process.wait()
            record.process = None
            record.phase = CommandPhase.FINISHED
            record.release()
        self._close_selector()

    def _close_selector(self) -> None:
        if self._selector is not None:
            self._selector.close()
            self._selector = None

    def _trace(self, msg: str, *args: Any) -> None:
        if self._debug:
            self.logger.debug(msg, *args)
