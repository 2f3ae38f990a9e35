"""Main application setup for the stubcache CLI."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Annotated, Literal

from cyclopts import App, Parameter
from cyclopts.config import Toml

from cli.commands.version import get_version
from cli.config_loader import CONFIG_FILE_NAME, load_effective_config
from cli.context import RunContext
from cli.exit_codes import ExitCode
from cli.groups import session_group
from cli.result import CliResult
from cli.result_action import cli_result_action

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

logger = logging.getLogger(__name__)

_HELP_EPILOGUE = """
Examples:
  stubcache refresh                          Refresh stubs of the running interpreter
  stubcache refresh /usr/bin/python3.12      Refresh stubs of another interpreter
  stubcache blacklist show                   List modules whose generation failed
  stubcache blacklist clear                  Retry every failed module next time

Environment Variables:
  STUBCACHE_LOG_LEVEL         Default log level (DEBUG, INFO, WARNING, ERROR)
  STUBCACHE_INTERPRETER       Interpreter to refresh
  STUBCACHE_GENERATOR_SCRIPT  Stub generator script
  STUBCACHE_ROOT              Root directory of all stub caches
"""

app = App(
    name="stubcache",
    help="Keep generated stubs of binary Python modules up to date.",
    help_format="rich",
    help_epilogue=_HELP_EPILOGUE,
    version=get_version(),
    version_flags=["--version", "-V"],
    default_parameter=Parameter(
        show_default=True,
        show_env_var=True,
    ),
    result_action=cli_result_action,
    config=[
        Toml(CONFIG_FILE_NAME, must_exist=False, search_parents=True),
        Toml(
            "pyproject.toml",
            root_keys=("tool", "stubcache"),
            must_exist=False,
            search_parents=True,
        ),
    ],
    exit_on_error=True,
    print_error=True,
    help_on_error=False,
)

app.meta.group_parameters = session_group


@dataclass(frozen=True)
class SessionOptions:
    """Session-level configuration parameters."""

    config_file: Annotated[
        str | None,
        Parameter(
            name="--config",
            help="Path to configuration file (overrides default search).",
            group=session_group,
        ),
    ] = None
    log_level: Annotated[
        Literal["DEBUG", "INFO", "WARNING", "ERROR"],
        Parameter(
            name="--log-level",
            help="Logging verbosity level.",
            env_var="STUBCACHE_LOG_LEVEL",
            group=session_group,
        ),
    ] = "WARNING"


_DEFAULT_SESSION_OPTIONS = SessionOptions()


@app.meta.default
def meta_launcher(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    session: Annotated[SessionOptions, Parameter(name="*")] = _DEFAULT_SESSION_OPTIONS,
) -> int:
    """Meta launcher for config selection and context injection.

    Returns
    -------
    int
        Exit status code from command execution.

    Raises
    ------
    ValueError
        Raised when the log level is invalid.
    """
    if session.log_level not in LOG_LEVELS:
        msg = f"Unsupported log level {session.log_level!r}."
        raise ValueError(msg)
    logging.basicConfig(level=session.log_level.upper())

    try:
        config = load_effective_config(session.config_file)
    except (OSError, TypeError, ValueError) as exc:
        logger.debug("Config resolution failed", exc_info=True)
        return cli_result_action(app, None, CliResult.from_exception(exc))
    run_context = RunContext(log_level=session.log_level, config=config)
    return invoke_command(list(tokens), run_context=run_context)


def invoke_command(tokens: list[str], *, run_context: RunContext | None) -> int:
    """Parse tokens, inject the run context and run the selected command.

    Returns
    -------
    int
        Exit status code.
    """
    command, bound, ignored = app.parse_args(tokens, exit_on_error=False, print_error=True)
    if run_context is not None:
        for name, hint in ignored.items():
            if hint is RunContext or name == "run_context":
                bound.arguments[name] = run_context
    try:
        result = command(*bound.args, **bound.kwargs)
    except KeyboardInterrupt:
        return ExitCode.CANCELLED
    return cli_result_action(app, command, result)


# Lazy-loaded commands
app.command("cli.commands.refresh:refresh_command", name="refresh", alias="r")

_blacklist_app = App(name="blacklist", help="Inspect the generation blacklist.")
_blacklist_app.command("cli.commands.blacklist:show_blacklist", name="show")
_blacklist_app.command("cli.commands.blacklist:clear_blacklist", name="clear")
app.command(_blacklist_app)

app.command("cli.commands.version:version_command", name="version", alias="v")


def main() -> None:
    """Run the stubcache CLI."""
    exit_code = app.meta()
    sys.exit(int(exit_code) if isinstance(exit_code, int) else 0)


__all__ = ["app", "invoke_command", "main"]
