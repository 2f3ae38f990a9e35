"""Console progress, cancellation and notifications for refresh runs."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.console import Console

from stubcache.errors import RefreshCancelledError

if TYPE_CHECKING:
    from types import FrameType

    from stubcache.models import RuntimeEnvironment

logger = logging.getLogger(__name__)


class ConsoleProgress:
    """Report refresh steps on a rich console and poll a cancel flag."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self._cancelled = threading.Event()
        self._last_percent = -1

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation was requested.

        Returns
        -------
        bool
            True after ``cancel`` was called.
        """
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation; honored at the next check."""
        self._cancelled.set()

    def report_text(self, text: str) -> None:
        """Print the step being executed."""
        self._last_percent = -1
        self.console.print(f"[dim]{text}[/dim]", highlight=False)

    def report_progress(self, fraction: float) -> None:
        """Print progress in steps of ten percent."""
        percent = int(fraction * 100) // 10 * 10
        if percent == self._last_percent:
            return
        self._last_percent = percent
        logger.debug("Refresh progress %d%%", percent)
        self.console.print(f"[dim]  {percent}%[/dim]", highlight=False)

    def check_cancelled(self) -> None:
        """Raise when cancellation was requested.

        Raises
        ------
        RefreshCancelledError
            Raised once ``cancel`` has been called.
        """
        if self._cancelled.is_set():
            msg = "Stub cache refresh cancelled."
            raise RefreshCancelledError(msg)

    @contextmanager
    def interrupt_cancels(self) -> Iterator[None]:
        """Turn Ctrl-C into a cooperative cancellation while active."""

        def _handler(signum: int, frame: FrameType | None) -> None:
            _ = signum, frame
            logger.info("Interrupt received; cancelling after the current module")
            self.cancel()

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)


class ConsoleNotifier:
    """Print refresh notifications on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def converting_old_stubs(self, environment: RuntimeEnvironment) -> None:
        """Announce a rebuild of a missing or legacy cache."""
        self.console.print(
            f"[yellow]Converting old stubs for {environment.home_path}; "
            "this may take a while.[/yellow]",
            highlight=False,
        )

    def generation_failed(
        self,
        environment: RuntimeEnvironment,
        module_names: Sequence[str],
    ) -> None:
        """Report modules whose stubs failed to generate."""
        self.console.print(
            f"[red]Failed to generate stubs for {len(module_names)} module(s) "
            f"of {environment.home_path}[/red]",
            highlight=False,
        )


__all__ = ["ConsoleNotifier", "ConsoleProgress"]
