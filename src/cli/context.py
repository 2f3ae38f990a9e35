"""Run context for CLI command injection."""

from __future__ import annotations

from dataclasses import dataclass, field

from cli.config_models import RootConfigSpec


@dataclass(frozen=True)
class RunContext:
    """Injected run context for CLI commands.

    Parameters
    ----------
    log_level
        Logging level applied to the invocation.
    config
        Configuration resolved from config files.
    """

    log_level: str
    config: RootConfigSpec = field(default_factory=RootConfigSpec)


__all__ = ["RunContext"]
