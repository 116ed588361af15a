"""
npm registry and package-manager clients, and the cached fetch layer.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import requests

from .cache import TTLCache
from .concurrency import ConcurrencyGate
from .config import AdvisorSettings
from .interfaces import AdvisoryClient, PackageManagerClient, RegistryClient
from .models import AdvisoryRecord, VersionSet


logger = logging.getLogger(__name__)


class RegistryQueryError(RuntimeError):
    """An external lookup failed or returned an unusable payload."""


async def run_npm(
    args: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    timeout: float = 30.0,
) -> Tuple[int, str]:
    """Run an npm command and return its exit code and stdout."""
    executable = shutil.which("npm") or "npm"
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise RegistryQueryError(f"Cannot run npm: {e}") from e

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        raise RegistryQueryError(f"npm {' '.join(args)} timed out after {timeout}s") from e
    return process.returncode, stdout.decode("utf-8", errors="replace")


def _versions_from_payload(name: str, payload: Any) -> VersionSet:
    if isinstance(payload, str):
        return (payload,)
    if isinstance(payload, list) and all(isinstance(v, str) for v in payload):
        return tuple(payload)
    raise RegistryQueryError(f"Unexpected versions payload for {name}")


class NpmRegistryClient(RegistryClient):
    """Query the npm registry over HTTP, falling back to ``npm view``.

    ``npm view`` picks up the user's npm credentials, so scoped or private
    packages that the anonymous HTTP lookup cannot see still resolve.
    """

    def __init__(
        self,
        registry_url: str = "https://registry.npmjs.org",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        use_cli_fallback: bool = True,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.use_cli_fallback = use_cli_fallback

    async def query_versions(self, name: str) -> VersionSet:
        try:
            return await asyncio.to_thread(self._fetch_http, name)
        except RegistryQueryError as e:
            if not self.use_cli_fallback:
                raise
            logger.warning("Registry lookup failed for %s, falling back to npm view: %s", name, e)
        return await self._fetch_cli(name)

    def _fetch_http(self, name: str) -> VersionSet:
        url = f"{self.registry_url}/{quote(name, safe='@')}"
        headers = {"Accept": "application/vnd.npm.install-v1+json"}
        logger.info("Fetching versions for %s", name)
        try:
            with self.session.get(url, headers=headers, timeout=self.timeout) as response:
                response.raise_for_status()
                data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RegistryQueryError(f"GET {url} failed: {e}") from e

        versions = data.get("versions") if isinstance(data, dict) else None
        if not isinstance(versions, dict):
            raise RegistryQueryError(f"No versions listed for {name}")
        return tuple(versions)

    async def _fetch_cli(self, name: str) -> VersionSet:
        returncode, stdout = await run_npm(
            ["view", "--json", name, "versions"], timeout=self.timeout
        )
        if returncode != 0:
            raise RegistryQueryError(f"npm view {name} exited with {returncode}")
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise RegistryQueryError(f"npm view {name} returned invalid JSON") from e
        return _versions_from_payload(name, payload)


class NpmPackageManagerClient(PackageManagerClient):
    """List installed top-level packages with ``npm ls``."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    async def query_installed(self, project_root: Union[str, Path]) -> Optional[Dict[str, str]]:
        logger.info("Listing installed packages in %s", project_root)
        # npm ls exits non-zero for missing or invalid peers but still
        # prints the tree, so only stdout is considered.
        _, stdout = await run_npm(
            ["ls", "--json", "--depth=0"], cwd=project_root, timeout=self.timeout
        )
        if not stdout.strip():
            return None
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError:
            logger.warning("npm ls returned invalid JSON in %s", project_root)
            return None

        dependencies = payload.get("dependencies") if isinstance(payload, dict) else None
        if not isinstance(dependencies, dict):
            return None
        return {
            name: info["version"]
            for name, info in dependencies.items()
            if isinstance(info, dict) and isinstance(info.get("version"), str)
        }


class VersionFetcher:
    """Cached, de-duplicated access to published, installed and advisory data.

    Concurrent requests for the same key share one in-flight future; a failed
    lookup removes its entry so the next request retries immediately.
    """

    def __init__(
        self,
        registry: RegistryClient,
        package_manager: PackageManagerClient,
        advisories: Optional[AdvisoryClient] = None,
        settings: Optional[AdvisorSettings] = None,
        gate: Optional[ConcurrencyGate] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.package_manager = package_manager
        self.advisories = advisories
        self.settings = settings or AdvisorSettings()
        self.gate = gate or ConcurrencyGate(self.settings.concurrency_limit)
        self.published_cache: TTLCache[VersionSet] = TTLCache(clock)
        self.installed_cache: TTLCache[Dict[str, str]] = TTLCache(clock)
        self.advisory_cache: TTLCache[List[AdvisoryRecord]] = TTLCache(clock)

    async def fetch_published_versions(self, name: str) -> VersionSet:
        """Return every published version of ``name``.

        Raises ``RegistryQueryError`` when the lookup fails.
        """
        return await self._shared(
            self.published_cache,
            name,
            self.settings.cache_lifetime,
            partial(self._query_published, name),
        )

    async def fetch_installed_versions(
        self, project_root: Union[str, Path]
    ) -> Optional[Dict[str, str]]:
        """Return installed versions by name, or None when unknown."""
        try:
            return await self._shared(
                self.installed_cache,
                str(project_root),
                self.settings.installed_cache_lifetime,
                partial(self._query_installed, project_root),
            )
        except RegistryQueryError as e:
            logger.warning("Installed packages unavailable: %s", e)
            return None

    async def fetch_advisories(self, name: str, versions: Sequence[str]) -> List[AdvisoryRecord]:
        """Return advisories for ``name``, or an empty list when unavailable.

        Entries are keyed by name and the queried versions, so a newly
        published version is checked on the next call.
        """
        if self.advisories is None:
            return []
        versions = tuple(versions)
        try:
            return await self._shared(
                self.advisory_cache,
                (name, versions),
                self.settings.cache_lifetime,
                partial(self._query_advisories, name, versions),
            )
        except RegistryQueryError as e:
            logger.warning("Advisories unavailable for %s: %s", name, e)
            return []

    async def _query_published(self, name: str) -> VersionSet:
        versions = await self.registry.query_versions(name)
        return tuple(versions)

    async def _query_installed(self, project_root: Union[str, Path]) -> Dict[str, str]:
        installed = await self.package_manager.query_installed(project_root)
        if installed is None:
            raise RegistryQueryError(f"Could not list installed packages in {project_root}")
        return installed

    async def _query_advisories(self, name: str, versions: Tuple[str, ...]) -> List[AdvisoryRecord]:
        return await self.advisories.query_advisories(name, versions)

    async def _shared(
        self,
        cache: TTLCache,
        key: Hashable,
        ttl: float,
        query: Callable[[], Awaitable[Any]],
    ) -> Any:
        entry = cache.get(key)
        if entry is not None:
            if cache.is_valid(entry, ttl):
                logger.debug("Cache hit: %s", key)
                return await asyncio.shield(entry.value)
            cache.discard(key)

        future = asyncio.ensure_future(self.gate.run(query))
        cache.set(key, future)
        future.add_done_callback(partial(self._discard_failed, cache, key))
        return await asyncio.shield(future)

    @staticmethod
    def _discard_failed(cache: TTLCache, key: Hashable, future: "asyncio.Future") -> None:
        if future.cancelled() or future.exception() is not None:
            cache.discard(key, future)
