"""Serial regeneration of stale stubs."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stubcache.bundles import copy_bundled_stub
from stubcache.models import UpdateResult
from stubcache.staleness import assess_module

if TYPE_CHECKING:
    from stubcache.context import RefreshContext
    from stubcache.models import BinaryModule

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    """Results of one generation pass."""

    failures: list[UpdateResult] = field(default_factory=list)
    generated: list[str] = field(default_factory=list)
    copied_from_bundle: list[str] = field(default_factory=list)

    @property
    def fresh_failures(self) -> list[UpdateResult]:
        """Return failures of generation attempts made in this pass.

        Returns
        -------
        list[UpdateResult]
            Failures with ``fresh`` set.
        """
        return [failure for failure in self.failures if failure.fresh]


class GenerationDriver:
    """Regenerate stale stubs one module at a time.

    The generator is not safe for concurrent use against one cache directory,
    so each generation finishes before the next one starts.
    """

    def __init__(self, context: RefreshContext) -> None:
        self._context = context

    def update_modules(self, modules: Mapping[str, BinaryModule]) -> GenerationReport:
        """Rebuild every stale stub, in lexicographic module order.

        Parameters
        ----------
        modules
            Binary modules keyed by dotted name.

        Returns
        -------
        GenerationReport
            Still-failing modules and the stubs produced in this pass.

        Raises
        ------
        RefreshCancelledError
            Raised when cancellation is requested between two modules.
        """
        context = self._context
        report = GenerationReport()
        names = sorted(modules)
        count = len(names)
        started = time.monotonic()
        try:
            for index, name in enumerate(names):
                context.progress.check_cancelled()
                context.progress.report_progress(index / count)
                self._update_module(modules[name], report)
        finally:
            context.generator.finalize()
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info("Rebuilding stubs for binaries took %d ms", elapsed_ms)
        return report

    def _update_module(self, module: BinaryModule, report: GenerationReport) -> None:
        context = self._context
        decision = assess_module(module, context)
        if decision.suppressed:
            report.failures.append(_update_result(module, fresh=False))
        if not decision.must_rebuild:
            return
        context.progress.report_text(module.name)
        if context.bundle is not None and copy_bundled_stub(
            context.bundle, module.name, context.cache_dir
        ):
            report.copied_from_bundle.append(module.name)
            return
        logger.info("Stub for %s (%s)", module.name, decision.reason)
        generated = context.generator.generate(
            module.name,
            module.origin_path,
            context.extra_search_path,
            context.environment.home_path,
        )
        if generated:
            report.generated.append(module.name)
        else:
            report.failures.append(_update_result(module, fresh=True))


def _update_result(module: BinaryModule, *, fresh: bool) -> UpdateResult:
    return UpdateResult(
        module_name=module.name,
        origin_path=module.origin_path,
        modified_at_millis=module.modified_at_millis,
        fresh=fresh,
    )


__all__ = ["GenerationDriver", "GenerationReport"]
