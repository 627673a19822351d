"""Tests for the Command descriptor."""

# Standard library imports
from pathlib import Path

# Third-party imports
import pytest

# Local/package imports
from procpool import Command, ConfigurationError, ExecutionResult, Future, ScheduleError


class TestCommandLine:
    """Command line manipulation."""

    def test_string_command(self):
        command = Command("echo hello")
        assert command.get_command() == "echo hello"
        assert str(command) == "[ echo hello ]"

    def test_tokens_are_joined_verbatim(self):
        command = Command(["echo", '"Hello World"'])
        assert command.get_command() == 'echo "Hello World"'

    def test_replace_and_append(self):
        command = Command("echo a")
        command.append_command(" b")
        assert command.get_command() == "echo a b"

        command.replace_command(["ls", "-l"])
        assert command.get_command() == "ls -l"

    def test_invalid_command(self):
        with pytest.raises(ConfigurationError):
            Command(42)
        with pytest.raises(ConfigurationError):
            Command(["echo", 1])


class TestOptions:
    """Typed option accessors."""

    def test_defaults(self):
        command = Command("true")

        assert command.get_cwd_path() is None
        assert command.get_env_variables() is None
        assert command.get_stdin() is None
        assert command.get_proc_options() is None
        assert command.is_dont_check_running() is False

    def test_options_from_mapping(self):
        command = Command(
            "true",
            {
                Command.OPTION_CWD: Path("/tmp"),
                Command.OPTION_ENV: {"A": 1},
                Command.OPTION_STDIN: "data",
                Command.OPTION_PROC: {"start_new_session": True},
                Command.OPTION_DONT_CHECK_RUNNING: True,
            },
        )

        assert command.get_cwd_path() == "/tmp"
        assert command.get_env_variables() == {"A": "1"}
        assert command.get_stdin() == b"data"
        assert command.get_proc_options() == {"start_new_session": True}
        assert command.is_dont_check_running() is True

    def test_setters(self):
        command = Command("true")
        command.set_cwd_path("/var")
        command.set_env_variables({"B": "2"})
        command.set_stdin(b"raw")
        command.set_proc_options({"umask": 0o22})
        command.set_dont_check_running(True)

        assert command.get_option("Cwd") == "/var"
        assert command.get_option("env") == {"B": "2"}
        assert command.get_stdin() == b"raw"
        assert command.get_proc_options() == {"umask": 0o22}
        assert command.is_dont_check_running()

    def test_invalid_option_values(self):
        command = Command("true")
        with pytest.raises(ConfigurationError):
            command.set_dont_check_running("yes")
        with pytest.raises(ConfigurationError):
            command.set_env_variables(["A=1"])
        with pytest.raises(ConfigurationError):
            command.set_proc_options({"shell": False})
        with pytest.raises(ConfigurationError):
            command.set_option("Timeout", 5)

        # Failed updates leave the options untouched
        assert command.is_dont_check_running() is False
        assert command.get_env_variables() is None


class TestScheduling:
    """Future ownership and execution state."""

    def test_future_before_scheduling(self):
        command = Command("true")

        assert not command.has_future()
        assert not command.has_execution_result()
        assert not command.is_executed()
        with pytest.raises(ScheduleError):
            command.get_future()

    def test_future_is_assigned_once(self):
        command = Command("true")
        future = Future()
        command.set_future(future)

        assert command.has_future()
        assert command.get_future() is future
        with pytest.raises(ScheduleError):
            command.set_future(Future())

    def test_execution_result_delegates_to_future(self):
        command = Command("true")
        future = Future()
        command.set_future(future)
        assert not command.has_execution_result()

        result = ExecutionResult(exit_code=0)
        future.set_result(result)

        assert command.has_execution_result()
        assert command.get_execution_result() is result

    def test_prepare_execution_result_defaults_to_identity(self):
        result = ExecutionResult(exit_code=0)
        assert Command("true").prepare_execution_result(result) is result

    def test_prepare_execution_result_uses_preparer(self):
        command = Command(
            "true", result_preparer=lambda r: ExecutionResult(exit_code=r.exit_code, stdout=b"x")
        )
        prepared = command.prepare_execution_result(ExecutionResult(exit_code=3))

        assert prepared.get_exit_code() == 3
        assert prepared.get_stdout() == b"x"

    def test_create_new_command(self):
        preparer = lambda r: r  # noqa: E731
        command = Command("echo hi", {"Env": {"A": "1"}}, result_preparer=preparer)
        command.set_future(Future())

        copy = command.create_new_command()

        assert copy is not command
        assert copy.get_command() == "echo hi"
        assert copy.get_env_variables() == {"A": "1"}
        assert not copy.has_future()
        assert not copy.is_executed()

        copy.set_env_variables({"A": "2"})
        assert command.get_env_variables() == {"A": "1"}

    def test_create_new_command_keeps_subclass(self):
        class Uppercase(Command):
            def prepare_execution_result(self, result):
                return ExecutionResult(exit_code=result.exit_code, stdout=result.stdout.upper())

        assert isinstance(Uppercase("echo hi").create_new_command(), Uppercase)


class TestRunners:
    """Single-command convenience runners."""

    def test_run_returns_resolved_future(self, pool_options):
        command = Command("echo single")
        future = command.run(pool_options)

        assert future is command.get_future()
        assert future.has_result()
        assert command.is_executed()
        assert future.get_result().get_stdout() == b"single\n"

    def test_run_blocking(self, pool_options):
        result = Command(["echo", "blocking"]).run_blocking(pool_options)

        assert result.get_exit_code() == 0
        assert result.get_output() == b"blocking\n"

    def test_rerun_requires_new_command(self, pool_options):
        command = Command("echo again")
        command.run_blocking(pool_options)

        with pytest.raises(ScheduleError):
            command.run(pool_options)

        result = command.create_new_command().run_blocking(pool_options)
        assert result.get_stdout() == b"again\n"
