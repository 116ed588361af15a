"""
Dependency analyzer: fetch, resolve, classify and advise each dependency.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from .advisories import resolve_advisories
from .classification import classify, is_valid_package_name
from .config import AdvisorSettings
from .models import DeclaredDependency, DependencyReport, ReportKey, StatusKind
from .resolution import is_unsupported_range
from .resolvers import RegistryQueryError, VersionFetcher


logger = logging.getLogger(__name__)

# Statuses for which advisories are looked up.
_ADVISED_KINDS = {
    StatusKind.UP_TO_DATE,
    StatusKind.UPDATE_AVAILABLE,
    StatusKind.MAJOR_UPDATE_AVAILABLE,
    StatusKind.PRERELEASE_UPDATE_AVAILABLE,
    StatusKind.VERSION_NOT_FOUND,
}


class DependencyAnalyzer:
    """Compute a report for every resolvable declared dependency."""

    def __init__(
        self,
        fetcher: VersionFetcher,
        settings: Optional[AdvisorSettings] = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            fetcher: Cached access to registry, installed and advisory data
            settings: Policy; defaults to the fetcher's settings
        """
        self.fetcher = fetcher
        self.settings = settings or fetcher.settings

    async def analyze_dependency(
        self,
        dependency: DeclaredDependency,
        project_root: Union[str, Path],
    ) -> Optional[DependencyReport]:
        """Analyze one dependency.

        Args:
            dependency: The declared entry
            project_root: Directory holding the manifest and node_modules

        Returns:
            The report, or None when the dependency is not applicable
        """
        if not is_valid_package_name(dependency.name) or is_unsupported_range(dependency.raw_range):
            logger.debug("Skipping %s@%s", dependency.name, dependency.raw_range)
            return None

        published = None
        try:
            published = await self.fetcher.fetch_published_versions(dependency.name)
        except RegistryQueryError as e:
            logger.warning("Could not fetch versions for %s: %s", dependency.name, e)

        installed_versions = await self.fetcher.fetch_installed_versions(project_root)
        installed = installed_versions.get(dependency.name) if installed_versions else None

        status = classify(dependency, published, installed, self.settings)
        if status.kind is StatusKind.NOT_APPLICABLE:
            return None

        advisory_status = None
        if (
            self.settings.advisories_enabled
            and published
            and installed is not None
            and status.kind in _ADVISED_KINDS
        ):
            advisories = await self.fetcher.fetch_advisories(dependency.name, published)
            advisory_status = resolve_advisories(status, installed, advisories, published)

        return DependencyReport(dependency, status, advisory_status)

    async def analyze(
        self,
        dependencies: Iterable[DeclaredDependency],
        project_root: Union[str, Path],
        on_complete: Optional[Callable[[DeclaredDependency], None]] = None,
    ) -> Dict[ReportKey, DependencyReport]:
        """Analyze all dependencies concurrently.

        A failure in one dependency is logged and leaves the others intact.
        Results are keyed by package name and manifest line.
        """
        dependencies = list(dependencies)
        logger.info("Analyzing %d dependencies in %s", len(dependencies), project_root)

        reports = await asyncio.gather(
            *(self._analyze_isolated(dep, project_root, on_complete) for dep in dependencies)
        )
        return {report.dependency.key: report for report in reports if report is not None}

    async def _analyze_isolated(
        self,
        dependency: DeclaredDependency,
        project_root: Union[str, Path],
        on_complete: Optional[Callable[[DeclaredDependency], None]],
    ) -> Optional[DependencyReport]:
        try:
            return await self.analyze_dependency(dependency, project_root)
        except Exception as e:
            logger.error("Error analyzing %s: %s", dependency.name, e)
            logger.debug("Traceback for %s", dependency.name, exc_info=True)
            return None
        finally:
            if on_complete is not None:
                on_complete(dependency)
