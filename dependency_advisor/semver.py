"""
npm version helpers on top of semantic_version.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from semantic_version import NpmSpec, Version

from .models import InvalidRange


_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
_PARTIAL_RE = re.compile(
    r"^(\d+|[xX*])(?:\.(\d+|[xX*])(?:\.(\d+|[xX*]))?)?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_WILDCARDS = ("x", "X", "*")


def parse_version(value: Optional[str]) -> Optional[Version]:
    """Parse a published or installed version, or return None.

    A leading ``v`` or ``=`` is accepted and build metadata is dropped, so
    ``v1.2.3+build.7`` equals ``1.2.3``.
    """
    if not value:
        return None
    text = value.strip().lstrip("=v").split("+", 1)[0]
    try:
        return Version(text)
    except ValueError:
        return None


def clear_version(raw: str) -> str:
    """Strip the leading range operators from a declared version.

    Unlike coercion, prerelease tags survive: ``^13.0.7-canary.3`` becomes
    ``13.0.7-canary.3``.
    """
    return re.sub(r"^\D+", "", raw).rstrip()


def pad_version(value: str) -> str:
    """Complete partial versions: ``1`` -> ``1.0.0``, ``1.2`` -> ``1.2.0``."""
    if re.fullmatch(r"\d+", value):
        return value + ".0.0"
    if re.fullmatch(r"\d+\.\d+", value):
        return value + ".0"
    return value


def parse_baseline(raw_range: str) -> Optional[Version]:
    """Extract the bare baseline version of a declared range.

    Returns None for wildcard ranges (``""``, ``*``, ``x``). Raises
    ``InvalidRange`` when the remaining text is not a version.
    """
    stripped = raw_range.strip()
    if stripped in ("",) + _WILDCARDS:
        return None
    cleared = clear_version(stripped)
    if not cleared:
        return None
    match = _PARTIAL_RE.match(cleared.split()[0])
    if not match:
        raise InvalidRange(raw_range)
    major, minor, patch, prerelease = match.groups()
    numbers = [part for part in (major, minor, patch) if part is not None]
    numbers = ["0" if part in _WILDCARDS else part for part in numbers]
    text = pad_version(".".join(numbers))
    if prerelease:
        text += "-" + prerelease
    baseline = parse_version(text)
    if baseline is None:
        raise InvalidRange(raw_range)
    return baseline


def parse_range(raw_range: str) -> NpmSpec:
    """Parse an npm range; raises ``InvalidRange`` when it is malformed."""
    text = " ".join(raw_range.replace("~>", "~").split())
    text = _OPERATOR_SPACE_RE.sub(r"\1", text) or "*"
    try:
        return NpmSpec(text)
    except ValueError as e:
        raise InvalidRange(raw_range) from e


def valid_range(raw_range: str) -> bool:
    try:
        parse_range(raw_range)
    except InvalidRange:
        return False
    return True


def _matches(spec: NpmSpec, version: Version, include_prerelease: bool) -> bool:
    if spec.match(version):
        return True
    # Included prereleases are judged by their release triple.
    return include_prerelease and bool(version.prerelease) and spec.match(version.truncate())


def satisfies(version: str, raw_range: str, include_prerelease: bool = False) -> bool:
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        spec = parse_range(raw_range)
    except InvalidRange:
        return False
    return _matches(spec, parsed, include_prerelease)


def max_satisfying(
    versions: Iterable[str],
    raw_range: str,
    include_prerelease: bool = False,
    floor: Optional[Version] = None,
) -> Optional[str]:
    """Return the highest version in ``versions`` matching ``raw_range``.

    Without ``include_prerelease`` npm's rule applies: a prerelease only
    matches when the range names the same release with a prerelease tag.
    With it, a prerelease matches when its release does. ``floor`` drops
    candidates below it. Returns the string as published.
    """
    try:
        spec = parse_range(raw_range)
    except InvalidRange:
        return None

    best: Optional[Tuple[Version, str]] = None
    for candidate in versions:
        parsed = parse_version(candidate)
        if parsed is None or (floor is not None and parsed < floor):
            continue
        if not _matches(spec, parsed, include_prerelease):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, candidate)
    return best[1] if best else None
