"""
CLI entry point: run shell commands concurrently and print their results.
"""

import json
from typing import Dict, Optional, Tuple

import click
from dotenv import load_dotenv

from .core import Command, Pool
from .exceptions import ProcPoolError
from .logging import PoolLogger


def _parse_env(
    ctx: click.Context, param: click.Parameter, values: Tuple[str, ...]
) -> Optional[Dict[str, str]]:
    """Turn repeated ``KEY=VALUE`` options into a mapping."""
    if not values:
        return None
    env = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'")
        env[key] = value
    return env


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging and loop traces")
@click.option("--log-dir", type=str, help="Directory for log files")
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Load environment variables (e.g. PROCPOOL_*) from a .env file",
)
@click.pass_context
def cli(
    ctx: click.Context,
    debug: bool = False,
    log_dir: Optional[str] = None,
    env_file: Optional[str] = None,
):
    """Run several commands concurrently from one process."""
    if env_file:
        load_dotenv(env_file, override=True)
    PoolLogger().setup(debug=debug, log_dir=log_dir)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("commands", nargs=-1, required=True)
@click.option("--cwd", type=click.Path(file_okay=False), help="Working directory")
@click.option(
    "--env",
    "env",
    multiple=True,
    callback=_parse_env,
    help="Extra environment variable KEY=VALUE (repeatable)",
)
@click.option("--stdin", "stdin", type=str, help="Text written to every command's stdin")
@click.option(
    "--dont-check-running",
    is_flag=True,
    help="Stop reading once output is drained; do not wait for the process to exit",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def run(
    ctx: click.Context,
    commands: Tuple[str, ...],
    cwd: Optional[str],
    env: Optional[Dict[str, str]],
    stdin: Optional[str],
    dont_check_running: bool,
    as_json: bool,
):
    """Run every COMMAND concurrently and print the results.

    Each COMMAND is one shell command line, e.g. 'echo hello'.
    """
    options = {
        Command.OPTION_CWD: cwd,
        Command.OPTION_ENV: env,
        Command.OPTION_STDIN: stdin,
        Command.OPTION_DONT_CHECK_RUNNING: dont_check_running,
    }
    try:
        pool = Pool([Command(cmd, options) for cmd in commands])
        pool.set_debug_enabled(ctx.obj.get("debug", False))
        pool.run()
    except ProcPoolError as e:
        click.secho(f"✗ {str(e)}", fg="red", err=True)
        raise click.Abort() from e

    failed = False
    reports = []
    for command in pool.get_executed_commands():
        result = command.get_execution_result()
        if result.has_error or result.exit_code not in (0, None):
            failed = True
        if as_json:
            reports.append({"command": command.get_command(), **result.to_dict()})
            continue

        exit_code = "-" if result.exit_code is None else result.exit_code
        color = "red" if result.has_error or result.exit_code not in (0, None) else "green"
        click.secho(f"{command} exit code: {exit_code}", fg=color, bold=True)
        if result.error:
            click.secho(f"  error: {result.error}", fg="red")
        if result.stdout:
            click.echo(_decode(result.stdout), nl=False)
        if result.stderr:
            click.secho(_decode(result.stderr), fg="yellow", nl=False)

    if as_json:
        click.echo(json.dumps(reports, indent=2))
    if failed:
        ctx.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
