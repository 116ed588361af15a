"""
Security advisory matching and the npm bulk advisory client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

import requests

from .interfaces import AdvisoryClient
from .models import AdvisoryRecord, DependencyStatus, StatusKind
from .resolvers import RegistryQueryError
from .semver import parse_version, satisfies, valid_range


logger = logging.getLogger(__name__)


def matches(version: str, advisory: AdvisoryRecord) -> bool:
    """Return True if ``version`` falls in the advisory's vulnerable range."""
    if not valid_range(advisory.vulnerable_range):
        logger.warning("Ignoring advisory with invalid range %r", advisory.vulnerable_range)
        return False
    return satisfies(version, advisory.vulnerable_range, include_prerelease=True)


def is_vulnerable(version: str, advisories: Iterable[AdvisoryRecord]) -> bool:
    return any(matches(version, advisory) for advisory in advisories)


def find_safe_downgrade(
    installed: str, advisories: Sequence[AdvisoryRecord], published: Iterable[str]
) -> Optional[str]:
    """Highest published version below ``installed`` that no advisory matches.

    Prereleases are only candidates when the installed version is one.
    """
    current = parse_version(installed)
    if current is None:
        return None

    best = None
    for candidate in published:
        parsed = parse_version(candidate)
        if parsed is None or parsed >= current:
            continue
        if parsed.prerelease and not current.prerelease:
            continue
        if is_vulnerable(candidate, advisories):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, candidate)
    return best[1] if best else None


def resolve_advisories(
    status: DependencyStatus,
    installed: Optional[str],
    advisories: Sequence[AdvisoryRecord],
    published: Iterable[str],
) -> Optional[DependencyStatus]:
    """Compute the advisory record to report next to ``status``.

    Returns None when the installed version is unknown or not vulnerable.
    """
    if installed is None or not advisories:
        return None
    affecting = [advisory for advisory in advisories if matches(installed, advisory)]
    if not affecting:
        return None
    advisory = max(affecting, key=lambda a: a.score)

    suggestion = status.suggested_version
    if suggestion is not None and not is_vulnerable(suggestion, advisories):
        return DependencyStatus(
            kind=StatusKind.ADVISORY_UPDATE_AVAILABLE,
            suggested_version=suggestion,
            latest_version=status.latest_version,
            installed_version=installed,
            advisory=advisory,
        )

    downgrade = find_safe_downgrade(installed, advisories, published)
    if downgrade is None:
        logger.info("No safe version available for installed %s", installed)
    return DependencyStatus(
        kind=StatusKind.ADVISORY_DOWNGRADE_NEEDED,
        suggested_version=downgrade,
        latest_version=status.latest_version,
        installed_version=installed,
        advisory=advisory,
    )


class NpmAdvisoryClient(AdvisoryClient):
    """Fetch advisories from the npm bulk advisory endpoint."""

    def __init__(
        self,
        advisory_url: str = "https://registry.npmjs.org/-/npm/v1/security/advisories/bulk",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.advisory_url = advisory_url
        self.session = session or requests.Session()
        self.timeout = timeout

    async def query_advisories(self, name: str, versions: Sequence[str]) -> List[AdvisoryRecord]:
        return await asyncio.to_thread(self._post, name, list(versions))

    def _post(self, name: str, versions: List[str]) -> List[AdvisoryRecord]:
        logger.info("Fetching advisories for %s", name)
        try:
            with self.session.post(
                self.advisory_url, json={name: versions}, timeout=self.timeout
            ) as response:
                response.raise_for_status()
                data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RegistryQueryError(f"Advisory lookup for {name} failed: {e}") from e

        if not isinstance(data, dict):
            raise RegistryQueryError(f"Unexpected advisory payload for {name}")
        entries = data.get(name) or []
        return [AdvisoryRecord.from_payload(entry) for entry in entries if isinstance(entry, dict)]
