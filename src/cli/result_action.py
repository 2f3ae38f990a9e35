"""Result action handler for Cyclopts integration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console

from cli.exit_codes import ExitCode
from cli.result import CliResult

if TYPE_CHECKING:
    from cyclopts import App


def cli_result_action(
    app: App,
    cmd: object,
    result: Any,
) -> int:
    """Handle command results and convert to exit codes.

    This function is registered as the ``result_action`` for the CLI app.
    It normalizes different return types to integer exit codes.

    Returns
    -------
    int
        Exit code for the process.
    """
    _ = app
    _ = cmd
    if result is None:
        return ExitCode.SUCCESS
    if isinstance(result, int):
        return int(result)

    console = Console()
    if isinstance(result, CliResult):
        if result.summary:
            style = None if result.ok else "bold red"
            console.print(result.summary, style=style, highlight=False)
        for line in result.details:
            console.print(f"  {line}", highlight=False)
        duration = result.metrics.get("duration_ms")
        if duration is not None:
            console.print(f"Duration: {duration:.1f}ms")
        return int(result.exit_code)

    console.print(f"Unexpected command return type: {type(result).__name__} (value: {result!r})")
    return ExitCode.GENERAL_ERROR


__all__ = ["cli_result_action"]
