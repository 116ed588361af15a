"""
Core data models for dependency advisories.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar


T = TypeVar("T")

# Published versions of one package, in registry order.
VersionSet = Tuple[str, ...]

# Results are keyed by package name and originating manifest line.
ReportKey = Tuple[str, Optional[int]]


class DependencySection(str, Enum):
    """Manifest section a dependency is declared in."""

    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    OPTIONAL_DEPENDENCIES = "optionalDependencies"


class BumpLevel(str, Enum):
    """Magnitude of a version change."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _BUMP_RANKS[self]


_BUMP_RANKS = {BumpLevel.PATCH: 0, BumpLevel.MINOR: 1, BumpLevel.MAJOR: 2}


class StatusKind(str, Enum):
    """Reportable judgment for one declared dependency."""

    UP_TO_DATE = "up-to-date"
    UPDATE_AVAILABLE = "update-available"
    MAJOR_UPDATE_AVAILABLE = "major-update-available"
    PRERELEASE_UPDATE_AVAILABLE = "prerelease-update-available"
    INSTALL_PENDING = "install-pending"
    VERSION_NOT_FOUND = "version-not-found"
    INVALID_RANGE = "invalid-range"
    NOT_APPLICABLE = "not-applicable"
    ADVISORY_UPDATE_AVAILABLE = "advisory-update-available"
    ADVISORY_DOWNGRADE_NEEDED = "advisory-downgrade-needed"


class AdvisorySeverity(str, Enum):
    """Severity reported by the advisory database."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class DeclaredDependency:
    """Dependency entry as declared by a manifest."""

    name: str
    raw_range: str
    section: DependencySection = DependencySection.DEPENDENCIES
    line: Optional[int] = None

    @property
    def key(self) -> ReportKey:
        """Package name and manifest line; one package may be declared twice."""
        return (self.name, self.line)


@dataclass
class CacheEntry(Generic[T]):
    """A cached future together with its creation time."""

    value: "asyncio.Future[T]"
    created_at: float

    def is_valid(self, ttl: float, now: float) -> bool:
        return now - self.created_at < ttl


class Skip:
    """Marker for ranges outside the resolvable domain."""

    def __repr__(self) -> str:
        return "SKIP"


SKIP = Skip()


class InvalidRange(ValueError):
    """Raised when a declared range cannot be parsed."""


@dataclass(frozen=True)
class ResolutionResult:
    """Output of the update resolution algorithm."""

    suggestion: Optional[str]
    latest: Optional[str]
    baseline: Optional[str]
    is_prerelease: bool
    is_major_bump: bool


@dataclass(frozen=True)
class AdvisoryRecord:
    """A known vulnerability affecting a range of versions."""

    vulnerable_range: str
    severity: AdvisorySeverity
    score: float
    title: str
    url: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AdvisoryRecord":
        """Build a record from an npm bulk advisory entry."""
        cvss = payload.get("cvss") or {}
        try:
            severity = AdvisorySeverity(str(payload.get("severity", "low")).lower())
        except ValueError:
            severity = AdvisorySeverity.LOW
        return cls(
            vulnerable_range=str(payload.get("vulnerable_versions", "")),
            severity=severity,
            score=float(cvss.get("score") or 0.0),
            title=str(payload.get("title", "")),
            url=str(payload.get("url", "")),
        )


@dataclass(frozen=True)
class DependencyStatus:
    """Final judgment handed to the presentation layer."""

    kind: StatusKind
    suggested_version: Optional[str] = None
    latest_version: Optional[str] = None
    installed_version: Optional[str] = None
    advisory: Optional[AdvisoryRecord] = None


@dataclass(frozen=True)
class DependencyReport:
    """Version record and optional advisory record for one dependency."""

    dependency: DeclaredDependency
    status: DependencyStatus
    advisory_status: Optional[DependencyStatus] = None
