"""Tests for the npm clients and the cached fetch layer."""

import asyncio
import json

import pytest
import requests

from dependency_advisor import resolvers
from dependency_advisor.resolvers import (
    NpmPackageManagerClient,
    NpmRegistryClient,
    RegistryQueryError,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, headers=None, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


def _fake_npm(returncode, stdout, calls=None):
    async def run_npm(args, cwd=None, timeout=30.0):
        if calls is not None:
            calls.append((list(args), cwd))
        return returncode, stdout

    return run_npm


def test_concurrent_fetches_share_one_query(build_fetcher) -> None:
    fetcher, registry, _, _ = build_fetcher({"npm-outdated": ["1.0.0", "1.0.1"]}, delay=0.01)

    async def scenario():
        return await asyncio.gather(
            *(fetcher.fetch_published_versions("npm-outdated") for _ in range(5))
        )

    results = asyncio.run(scenario())

    assert registry.calls == ["npm-outdated"]
    assert all(result == ("1.0.0", "1.0.1") for result in results)


def test_fetch_is_cached_until_ttl_expires(build_fetcher, clock) -> None:
    fetcher, registry, _, _ = build_fetcher({"npm-outdated": ["1.0.0"]}, cache_lifetime=600)

    async def scenario():
        await fetcher.fetch_published_versions("npm-outdated")
        clock.advance(599)
        await fetcher.fetch_published_versions("npm-outdated")
        first_window = len(registry.calls)
        clock.advance(1)
        await fetcher.fetch_published_versions("npm-outdated")
        return first_window

    first_window = asyncio.run(scenario())

    assert first_window == 1
    assert len(registry.calls) == 2


def test_failed_fetch_is_discarded_and_retried(build_fetcher) -> None:
    fetcher, registry, _, _ = build_fetcher({}, delay=0.01)

    async def scenario():
        results = await asyncio.gather(
            fetcher.fetch_published_versions("npm-outdated"),
            fetcher.fetch_published_versions("npm-outdated"),
            return_exceptions=True,
        )
        cached_after_failure = "npm-outdated" in fetcher.published_cache
        registry.packages["npm-outdated"] = ["1.0.0"]
        retried = await fetcher.fetch_published_versions("npm-outdated")
        return results, cached_after_failure, retried

    results, cached_after_failure, retried = asyncio.run(scenario())

    assert all(isinstance(result, RegistryQueryError) for result in results)
    assert not cached_after_failure
    assert retried == ("1.0.0",)
    assert registry.calls == ["npm-outdated", "npm-outdated"]


def test_installed_versions_are_cached_snapshot(build_fetcher, clock) -> None:
    fetcher, _, package_manager, _ = build_fetcher(installed={"npm-outdated": "1.0.0"})

    async def scenario():
        first = await fetcher.fetch_installed_versions("/project")
        second = await fetcher.fetch_installed_versions("/project")
        clock.advance(60)
        third = await fetcher.fetch_installed_versions("/project")
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first == second == third == {"npm-outdated": "1.0.0"}
    assert package_manager.calls == 2


def test_unknown_installed_versions_are_not_cached(build_fetcher) -> None:
    fetcher, _, package_manager, _ = build_fetcher(installed=None)

    async def scenario():
        return (
            await fetcher.fetch_installed_versions("/project"),
            await fetcher.fetch_installed_versions("/project"),
        )

    assert asyncio.run(scenario()) == (None, None)
    assert package_manager.calls == 2


def test_fetcher_respects_concurrency_limit(build_fetcher) -> None:
    packages = {f"pkg-{i}": ["1.0.0"] for i in range(6)}
    fetcher, registry, _, _ = build_fetcher(packages, delay=0.01, concurrency_limit=2)

    async def scenario():
        await asyncio.gather(*(fetcher.fetch_published_versions(name) for name in packages))

    asyncio.run(scenario())

    assert fetcher.gate.peak == 2
    assert sorted(registry.calls) == sorted(packages)


def test_advisories_degrade_to_empty_on_failure(build_fetcher, advisory) -> None:
    fetcher, _, _, advisory_client = build_fetcher(
        advisories={"npm-outdated": [advisory("1.0.0")]}
    )

    async def failing(name, versions):
        raise RegistryQueryError("offline")

    async def scenario():
        found = await fetcher.fetch_advisories("npm-outdated", ["1.0.0"])
        advisory_client.query_advisories = failing
        missing = await fetcher.fetch_advisories("other", ["1.0.0"])
        return found, missing

    found, missing = asyncio.run(scenario())

    assert [a.vulnerable_range for a in found] == ["1.0.0"]
    assert missing == []


def test_advisories_are_requeried_for_new_versions(build_fetcher, advisory) -> None:
    fetcher, _, _, advisory_client = build_fetcher(
        advisories={"npm-outdated": [advisory("1.0.0")]}
    )

    async def scenario():
        await fetcher.fetch_advisories("npm-outdated", ["1.0.0"])
        await fetcher.fetch_advisories("npm-outdated", ("1.0.0",))
        await fetcher.fetch_advisories("npm-outdated", ["1.0.0", "1.0.1"])

    asyncio.run(scenario())

    assert advisory_client.calls == ["npm-outdated", "npm-outdated"]


def test_registry_client_reads_http_versions() -> None:
    session = FakeSession(FakeResponse({"versions": {"1.0.0": {}, "1.0.1": {}}}))
    client = NpmRegistryClient("https://registry.example/", session=session)

    versions = asyncio.run(client.query_versions("@types/node"))

    assert versions == ("1.0.0", "1.0.1")
    assert session.urls == ["https://registry.example/@types%2Fnode"]


def test_registry_client_falls_back_to_npm_view(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(resolvers, "run_npm", _fake_npm(0, json.dumps(["1.0.0", "1.0.1"]), calls))
    session = FakeSession(error=requests.ConnectionError("offline"))
    client = NpmRegistryClient(session=session)

    versions = asyncio.run(client.query_versions("@private/npm-outdated"))

    assert versions == ("1.0.0", "1.0.1")
    assert calls == [(["view", "--json", "@private/npm-outdated", "versions"], None)]


def test_registry_client_accepts_single_version_payload(monkeypatch) -> None:
    monkeypatch.setattr(resolvers, "run_npm", _fake_npm(0, json.dumps("1.0.0")))
    client = NpmRegistryClient(session=FakeSession(FakeResponse({}, status_code=404)))

    assert asyncio.run(client.query_versions("npm-outdated")) == ("1.0.0",)


@pytest.mark.parametrize("returncode, stdout", [(1, ""), (0, "not json"), (0, "{}")])
def test_registry_client_raises_when_every_path_fails(monkeypatch, returncode, stdout) -> None:
    monkeypatch.setattr(resolvers, "run_npm", _fake_npm(returncode, stdout))
    client = NpmRegistryClient(session=FakeSession(FakeResponse(ValueError("bad json"))))

    with pytest.raises(RegistryQueryError):
        asyncio.run(client.query_versions("npm-outdated"))


def test_registry_client_without_fallback_raises() -> None:
    client = NpmRegistryClient(
        session=FakeSession(error=requests.Timeout("slow")), use_cli_fallback=False
    )

    with pytest.raises(RegistryQueryError):
        asyncio.run(client.query_versions("npm-outdated"))


def test_package_manager_parses_npm_ls_even_on_error_exit(monkeypatch) -> None:
    payload = {
        "name": "project",
        "dependencies": {
            "npm-outdated": {"version": "1.0.0"},
            "broken": {"missing": True},
        },
    }
    calls = []
    monkeypatch.setattr(resolvers, "run_npm", _fake_npm(1, json.dumps(payload), calls))

    installed = asyncio.run(NpmPackageManagerClient().query_installed("/project"))

    assert installed == {"npm-outdated": "1.0.0"}
    assert calls == [(["ls", "--json", "--depth=0"], "/project")]


@pytest.mark.parametrize("stdout", ["", "not json", json.dumps({"name": "project"})])
def test_package_manager_returns_none_when_unusable(monkeypatch, stdout) -> None:
    monkeypatch.setattr(resolvers, "run_npm", _fake_npm(0, stdout))

    assert asyncio.run(NpmPackageManagerClient().query_installed("/project")) is None
