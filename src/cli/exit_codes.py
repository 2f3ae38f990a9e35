"""Exit code taxonomy for the stubcache CLI."""

from __future__ import annotations

from enum import IntEnum

from stubcache.errors import (
    CacheSetupError,
    GeneratorCommandError,
    RefreshCancelledError,
)


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Exit codes follow Unix conventions with domain-specific extensions:
    - 0: Success
    - 1-9: General errors (parse, validation, config)
    - 10-19: Refresh errors
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    PARSE_ERROR = 2
    VALIDATION_ERROR = 3
    CONFIG_ERROR = 4

    # Refresh errors (10-19)
    SETUP_ERROR = 10
    CANCELLED = 11
    GENERATOR_ERROR = 12

    @classmethod
    def from_exception(cls, exc: BaseException) -> ExitCode:
        """Map an exception to an appropriate exit code.

        Parameters
        ----------
        exc
            Exception to classify.

        Returns
        -------
        ExitCode
            Exit code appropriate for the exception type.
        """
        cyclopts_code = _exit_code_for_cyclopts(exc)
        if cyclopts_code is not None:
            return cyclopts_code

        refresh_code = _exit_code_for_refresh(exc)
        if refresh_code is not None:
            return refresh_code

        type_code = _exit_code_for_exception_type(exc)
        if type_code is not None:
            return type_code

        return cls.GENERAL_ERROR


def _exit_code_for_cyclopts(exc: BaseException) -> ExitCode | None:
    module = exc.__class__.__module__
    if not module.startswith("cyclopts"):
        return None
    if exc.__class__.__name__ == "ValidationError":
        return ExitCode.VALIDATION_ERROR
    return ExitCode.PARSE_ERROR


def _exit_code_for_refresh(exc: BaseException) -> ExitCode | None:
    if isinstance(exc, CacheSetupError):
        return ExitCode.SETUP_ERROR
    if isinstance(exc, (RefreshCancelledError, KeyboardInterrupt)):
        return ExitCode.CANCELLED
    if isinstance(exc, GeneratorCommandError):
        return ExitCode.GENERATOR_ERROR
    return None


def _exit_code_for_exception_type(exc: BaseException) -> ExitCode | None:
    if exc.__class__.__name__ == "TOMLDecodeError":
        return ExitCode.CONFIG_ERROR
    if isinstance(exc, (ValueError, TypeError)):
        return ExitCode.CONFIG_ERROR
    if isinstance(exc, (FileNotFoundError, PermissionError)):
        return ExitCode.CONFIG_ERROR
    return None


__all__ = ["ExitCode"]
