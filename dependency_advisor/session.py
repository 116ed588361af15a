"""
Debounced recomputation of reports for an open manifest.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

from .analyzer import DependencyAnalyzer
from .concurrency import DebouncedTrigger
from .manifest import read_manifest
from .models import DeclaredDependency, DependencyReport, ReportKey


logger = logging.getLogger(__name__)


class AdvisorySession:
    """Recompute reports when the manifest changes.

    Bursts of change notifications collapse into one running cycle plus one
    pending cycle holding the latest dependencies. Each finished cycle
    replaces ``results`` whole.
    """

    def __init__(
        self,
        analyzer: DependencyAnalyzer,
        project_root: Union[str, Path],
        wait: float = 0.0,
        delay: float = 0.0,
        on_results: Optional[Callable[[Dict[ReportKey, DependencyReport]], None]] = None,
    ) -> None:
        self.analyzer = analyzer
        self.project_root = project_root
        self.on_results = on_results
        self.results: Dict[ReportKey, DependencyReport] = {}
        self.cycles = 0
        self._trigger = DebouncedTrigger(self._refresh, wait=wait, delay=delay)

    @property
    def trigger(self) -> DebouncedTrigger:
        return self._trigger

    async def notify_changed(self, dependencies: Sequence[DeclaredDependency]) -> None:
        await self._trigger(tuple(dependencies))

    async def notify_manifest_changed(self, manifest_path: Union[str, Path]) -> None:
        await self.notify_changed(read_manifest(Path(manifest_path)))

    async def _refresh(self, dependencies: Tuple[DeclaredDependency, ...]) -> None:
        results = await self.analyzer.analyze(dependencies, self.project_root)
        self.results = results
        self.cycles += 1
        logger.debug("Cycle %d produced %d reports", self.cycles, len(results))
        if self.on_results is not None:
            self.on_results(results)
