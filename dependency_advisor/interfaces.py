"""
Interfaces for registry, package-manager and advisory collaborators.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union

from .models import AdvisoryRecord, VersionSet


class RegistryClient(Protocol):
    """List every published version of a package."""

    async def query_versions(self, name: str) -> VersionSet:
        ...


class PackageManagerClient(Protocol):
    """List the packages installed in a project."""

    async def query_installed(self, project_root: Union[str, Path]) -> Optional[Dict[str, str]]:
        ...


class AdvisoryClient(Protocol):
    """Provide known vulnerabilities for a package."""

    async def query_advisories(self, name: str, versions: Sequence[str]) -> List[AdvisoryRecord]:
        ...
