"""Shared fakes for the dependency_advisor tests."""

import asyncio
from typing import Dict, List, Optional

import pytest

from dependency_advisor.analyzer import DependencyAnalyzer
from dependency_advisor.config import AdvisorSettings
from dependency_advisor.models import AdvisoryRecord, AdvisorySeverity
from dependency_advisor.resolvers import RegistryQueryError, VersionFetcher


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRegistry:
    def __init__(self, packages: Dict[str, List[str]], delay: float = 0.0) -> None:
        self.packages = packages
        self.delay = delay
        self.calls: List[str] = []
        self.errors: Dict[str, Exception] = {}

    async def query_versions(self, name: str):
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.errors:
            raise self.errors[name]
        if name not in self.packages:
            raise RegistryQueryError(f"{name} not found")
        return tuple(self.packages[name])


class FakePackageManager:
    def __init__(self, installed: Optional[Dict[str, str]]) -> None:
        self.installed = installed
        self.calls = 0

    async def query_installed(self, project_root):
        self.calls += 1
        return dict(self.installed) if self.installed is not None else None


class FakeAdvisories:
    def __init__(self, advisories: Dict[str, List[AdvisoryRecord]]) -> None:
        self.advisories = advisories
        self.calls: List[str] = []

    async def query_advisories(self, name, versions):
        self.calls.append(name)
        return list(self.advisories.get(name, []))


def make_advisory(vulnerable_range: str, score: float = 5.6, title: str = "flaw") -> AdvisoryRecord:
    return AdvisoryRecord(
        vulnerable_range=vulnerable_range,
        severity=AdvisorySeverity.HIGH,
        score=score,
        title=title,
        url="https://testing",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def advisory():
    return make_advisory


@pytest.fixture
def build_fetcher(clock):
    def build(packages=None, installed=None, advisories=None, delay=0.0, **settings):
        registry = FakeRegistry(packages or {}, delay=delay)
        package_manager = FakePackageManager(installed)
        advisory_client = FakeAdvisories(advisories or {})
        fetcher = VersionFetcher(
            registry=registry,
            package_manager=package_manager,
            advisories=advisory_client,
            settings=AdvisorSettings(**settings),
            clock=clock,
        )
        return fetcher, registry, package_manager, advisory_client

    return build


@pytest.fixture
def build_analyzer(build_fetcher):
    def build(packages=None, installed=None, advisories=None, delay=0.0, **settings):
        fetcher, registry, package_manager, advisory_client = build_fetcher(
            packages, installed, advisories, delay, **settings
        )
        return DependencyAnalyzer(fetcher), registry, package_manager, advisory_client

    return build
