"""
Update resolution: pick the upgrade target for a declared range.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Protocol, Sequence, Union

from semantic_version import Version

from .models import SKIP, InvalidRange, ResolutionResult, Skip
from .semver import max_satisfying, parse_baseline, parse_version, valid_range


_PROTOCOL_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")
_GITHUB_RE = re.compile(r"^[^\s/@^~<>=][^\s/]*/[^\s/]+$")
_TAG_RE = re.compile(r"^[A-Za-z][\w.-]*$")
_PATH_PREFIXES = (".", "/", "~/")


class ResolutionPolicy(Protocol):
    major_update_protection: bool


def is_unsupported_range(raw_range: str) -> bool:
    """True for ranges outside the registry domain.

    Covers disjunctions, local paths, URLs and other protocol specs, GitHub
    shorthand and dist-tags.
    """
    value = raw_range.strip()
    if "||" in value:
        return True
    if value.startswith(_PATH_PREFIXES):
        return True
    if _PROTOCOL_RE.match(value):
        return True
    if _GITHUB_RE.match(value.split("#", 1)[0]):
        return True
    return bool(_TAG_RE.match(value)) and not valid_range(value)


def _result(suggestion: Optional[str], latest: Optional[str], baseline: Optional[Version]) -> ResolutionResult:
    suggested = parse_version(suggestion)
    return ResolutionResult(
        suggestion=suggestion,
        latest=latest,
        baseline=str(baseline) if baseline is not None else None,
        is_prerelease=baseline is not None and bool(baseline.prerelease),
        is_major_bump=(
            suggested is not None and baseline is not None and suggested.major != baseline.major
        ),
    )


def resolve(
    raw_range: str,
    published: Iterable[str],
    policy: ResolutionPolicy,
) -> Union[ResolutionResult, Skip]:
    """Compute the recommended upgrade target for ``raw_range``.

    Returns ``SKIP`` for ranges outside the registry domain and raises
    ``InvalidRange`` when the range or its baseline cannot be parsed.
    """
    if is_unsupported_range(raw_range):
        return SKIP
    if not valid_range(raw_range):
        raise InvalidRange(raw_range)

    versions: Sequence[str] = tuple(published)
    baseline = parse_baseline(raw_range)
    is_prerelease = baseline is not None and bool(baseline.prerelease)

    latest = max_satisfying(versions, ">=0", include_prerelease=is_prerelease)

    if baseline is None or not policy.major_update_protection:
        return _result(latest, latest, baseline)

    # Leaving a prerelease line for its stable release wins over newer
    # prereleases.
    if is_prerelease:
        graduated = max_satisfying(versions, f"^{baseline.truncate()}")
        if graduated and parse_version(graduated) > baseline:
            return _result(graduated, latest, baseline)

    satisfying = max_satisfying(
        versions, f"^{baseline}", include_prerelease=is_prerelease, floor=baseline
    )

    # The declared range already sits at its ceiling; offer the latest
    # version even when it crosses a major.
    if satisfying is None or parse_version(satisfying) == baseline:
        return _result(latest, latest, baseline)

    return _result(satisfying, latest, baseline)
