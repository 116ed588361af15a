"""
Status classification for a single declared dependency.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from semantic_version import Version

from .config import AdvisorSettings
from .models import (
    SKIP,
    BumpLevel,
    DeclaredDependency,
    DependencyStatus,
    InvalidRange,
    StatusKind,
)
from .resolution import resolve
from .semver import parse_version


_NAME_RE = re.compile(
    r"^(?:@[a-z0-9-*~][a-z0-9-*._~]*/)?[a-z0-9-~][a-z0-9-._~]*$", re.IGNORECASE
)
_MAX_NAME_LENGTH = 214


def is_valid_package_name(name: str) -> bool:
    """Validate an npm package name, accepting legacy mixed-case names."""
    if not name or len(name) > _MAX_NAME_LENGTH or name != name.strip():
        return False
    return bool(_NAME_RE.match(name))


def bump_level(current: Version, target: Version) -> BumpLevel:
    if current.major != target.major:
        return BumpLevel.MAJOR
    if current.minor != target.minor:
        return BumpLevel.MINOR
    return BumpLevel.PATCH


def classify(
    dependency: DeclaredDependency,
    published: Optional[Sequence[str]],
    installed: Optional[str],
    settings: AdvisorSettings,
) -> DependencyStatus:
    """Map resolution output and installed state to one status.

    ``published`` is None when the registry lookup failed for this cycle.
    """
    if not is_valid_package_name(dependency.name):
        return DependencyStatus(StatusKind.NOT_APPLICABLE)

    try:
        result = resolve(dependency.raw_range, published or (), settings)
    except InvalidRange:
        return DependencyStatus(StatusKind.INVALID_RANGE, installed_version=installed)
    if result is SKIP:
        return DependencyStatus(StatusKind.NOT_APPLICABLE)

    if published is None:
        if installed is None:
            return DependencyStatus(StatusKind.INSTALL_PENDING)
        return DependencyStatus(StatusKind.UP_TO_DATE, installed_version=installed)

    baseline = parse_version(result.baseline)
    known = baseline is not None and any(parse_version(v) == baseline for v in published)
    if not known:
        if installed is None:
            return DependencyStatus(StatusKind.INSTALL_PENDING, latest_version=result.latest)
        if baseline is not None:
            return DependencyStatus(
                StatusKind.VERSION_NOT_FOUND,
                latest_version=result.latest,
                installed_version=installed,
            )

    details = dict(
        suggested_version=result.suggestion,
        latest_version=result.latest,
        installed_version=installed,
    )
    suggestion = parse_version(result.suggestion)
    # Without an installed version the declared baseline is the reference.
    current = parse_version(installed)
    if current is None:
        current = baseline
    if suggestion is None:
        return DependencyStatus(StatusKind.UP_TO_DATE, **details)

    if suggestion.prerelease and (current is None or suggestion > current):
        return DependencyStatus(StatusKind.PRERELEASE_UPDATE_AVAILABLE, **details)
    if current is not None and suggestion == current:
        return DependencyStatus(StatusKind.UP_TO_DATE, **details)

    if current is not None and suggestion.major > current.major:
        kind = StatusKind.MAJOR_UPDATE_AVAILABLE
    else:
        kind = StatusKind.UPDATE_AVAILABLE

    level = bump_level(current, suggestion) if current is not None else BumpLevel.MAJOR
    if level.rank < settings.minimum_bump_level.rank:
        return DependencyStatus(StatusKind.UP_TO_DATE, **details)
    return DependencyStatus(kind, **details)
