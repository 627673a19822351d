"""Typed per-command options and their default-merge."""

# Standard library imports
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

# Local imports
from ..exceptions import ConfigurationError

OPTION_ENV = "Env"
OPTION_CWD = "Cwd"
OPTION_PROC = "Proc"
OPTION_STDIN = "Stdin"
OPTION_DONT_CHECK_RUNNING = "DontCheckRunning"

# Option name (original spelling or snake_case alias) -> dataclass field
OPTION_FIELDS = {
    OPTION_ENV: "env",
    OPTION_CWD: "cwd",
    OPTION_PROC: "proc",
    OPTION_STDIN: "stdin",
    OPTION_DONT_CHECK_RUNNING: "dont_check_running",
}
OPTION_FIELDS.update({name: name for name in list(OPTION_FIELDS.values())})

# Popen arguments the pool sets itself and which must not come through Proc
RESERVED_PROC_KEYS = frozenset(
    {
        "args",
        "stdin",
        "stdout",
        "stderr",
        "cwd",
        "env",
        "shell",
        "text",
        "universal_newlines",
        "encoding",
        "errors",
        "bufsize",
    }
)


@dataclass
class CommandOptions:
    """Options for one command.

    Attributes:
        env: Variables added to (or overriding) the controller environment
        cwd: Working directory; None inherits the controller's
        proc: Extra ``subprocess.Popen`` keyword arguments
        stdin: Payload written to the process, after which stdin is closed
        dont_check_running: Finish once output is drained instead of waiting
            for the process to exit. The process is not killed.
    """

    env: Optional[Dict[str, str]] = field(default=None)
    cwd: Optional[str] = field(default=None)
    proc: Optional[Dict[str, Any]] = field(default=None)
    stdin: Optional[bytes] = field(default=None)
    dont_check_running: bool = field(default=False)

    def __post_init__(self):
        self.env = _normalize_env(self.env)
        self.cwd = _normalize_cwd(self.cwd)
        self.proc = _normalize_proc(self.proc)
        self.stdin = _normalize_stdin(self.stdin)
        if not isinstance(self.dont_check_running, bool):
            raise ConfigurationError(
                "DontCheckRunning must be a boolean", option=OPTION_DONT_CHECK_RUNNING
            )

    def get(self, name: str) -> Any:
        return getattr(self, option_field(name))

    def set(self, name: str, value: Any) -> None:
        """Set an option by name, validating the new value."""
        updated = replace(self, **{option_field(name): value})
        for f in fields(self):
            setattr(self, f.name, getattr(updated, f.name))

    def copy(self) -> "CommandOptions":
        return replace(
            self,
            env=dict(self.env) if self.env is not None else None,
            proc=dict(self.proc) if self.proc is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {name: self.get(name) for name in OPTION_FIELDS if name[0].isupper()}


def option_field(name: str) -> str:
    """Map an option name to its CommandOptions field.

    Raises:
        ConfigurationError: If the option is unknown
    """
    try:
        return OPTION_FIELDS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown command option: {name}", option=name) from None


def merge_options(
    defaults: Union[CommandOptions, Mapping[str, Any], None],
    overrides: Union[CommandOptions, Mapping[str, Any], None],
) -> CommandOptions:
    """Merge option overrides over defaults.

    Keys present in ``overrides`` win; everything else is taken from
    ``defaults``. A CommandOptions instance as override replaces the defaults
    completely.
    """
    if isinstance(overrides, CommandOptions):
        return overrides.copy()

    if isinstance(defaults, CommandOptions):
        base = defaults.copy()
    else:
        base = CommandOptions()
        for name, value in (defaults or {}).items():
            base.set(name, value)

    for name, value in (overrides or {}).items():
        base.set(name, value)
    return base


def build_environment(env: Optional[Mapping[str, str]]) -> Optional[Dict[str, str]]:
    """Prepare environment variables for a process.

    Args:
        env: Command-specific environment variables

    Returns:
        None to inherit the controller environment unchanged, otherwise a
        copy of it extended and overridden by ``env``
    """
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


def _normalize_env(env: Any) -> Optional[Dict[str, str]]:
    if env is None:
        return None
    if not isinstance(env, Mapping):
        raise ConfigurationError("Env must be a mapping", option=OPTION_ENV)
    return {str(key): str(value) for key, value in env.items()}


def _normalize_cwd(cwd: Any) -> Optional[str]:
    if cwd is None:
        return None
    if isinstance(cwd, Path):
        return str(cwd)
    if not isinstance(cwd, str):
        raise ConfigurationError("Cwd must be a path", option=OPTION_CWD)
    return cwd


def _normalize_proc(proc: Any) -> Optional[Dict[str, Any]]:
    if proc is None:
        return None
    if not isinstance(proc, Mapping):
        raise ConfigurationError("Proc must be a mapping", option=OPTION_PROC)
    reserved = sorted(RESERVED_PROC_KEYS.intersection(proc))
    if reserved:
        raise ConfigurationError(
            f"Proc options cannot override managed arguments: {reserved}",
            option=OPTION_PROC,
        )
    return dict(proc)


def _normalize_stdin(stdin: Any) -> Optional[bytes]:
    if stdin is None:
        return None
    if isinstance(stdin, str):
        return stdin.encode("utf-8")
    if isinstance(stdin, (bytes, bytearray, memoryview)):
        return bytes(stdin)
    raise ConfigurationError("Stdin must be bytes or str", option=OPTION_STDIN)
