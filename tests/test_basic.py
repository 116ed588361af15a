"""Basic smoke tests for the package and its command line entry point."""

import json
import sys

import pytest

import dependency_advisor
from dependency_advisor import cli
from dependency_advisor.analyzer import DependencyAnalyzer
from dependency_advisor.models import StatusKind


def test_version() -> None:
    assert dependency_advisor.__version__ == "0.1.0"


def test_cli_settings_from_flags(tmp_path) -> None:
    config = tmp_path / "settings.json"
    config.write_text(json.dumps({"level": "minor", "parallelProcessesLimit": 4}))
    args = cli.build_parser().parse_args([
        "--config", str(config),
        "--no-major-protection",
        "--cache-lifetime", "2",
        "--no-advisories",
    ])

    settings = cli.build_settings(args)

    assert settings.minimum_bump_level.value == "minor"
    assert settings.concurrency_limit == 4
    assert settings.major_update_protection is False
    assert settings.cache_lifetime == 120
    assert settings.advisories_enabled is False


def test_cli_runs_analysis_and_exports(tmp_path, monkeypatch, build_fetcher) -> None:
    project = tmp_path / "demo"
    project.mkdir()
    manifest = project / "package.json"
    manifest.write_text(json.dumps({"dependencies": {"npm-outdated": "^1.0.0"}}))
    fetcher, _, _, _ = build_fetcher({"npm-outdated": ["1.0.0", "1.0.1"]}, {"npm-outdated": "1.0.0"})
    monkeypatch.setattr(cli, "build_analyzer", lambda settings: DependencyAnalyzer(fetcher, settings))

    output_dir = tmp_path / "out"
    reports = cli.execute([str(manifest), "--output-dir", str(output_dir), "--json", "--export-csv"])

    assert reports[("npm-outdated", 0)].status.kind is StatusKind.UPDATE_AVAILABLE
    assert (output_dir / "demo_advisories.json").exists()
    assert (output_dir / "demo_advisories.csv").exists()


def test_console_script_exits_cleanly(tmp_path, monkeypatch, build_fetcher) -> None:
    manifest = tmp_path / "package.json"
    manifest.write_text(json.dumps({"name": "empty"}))
    fetcher, _, _, _ = build_fetcher()
    monkeypatch.setattr(cli, "build_analyzer", lambda settings: DependencyAnalyzer(fetcher, settings))

    # Console scripts call sys.exit(main()).
    with pytest.raises(SystemExit) as exc_info:
        sys.exit(cli.main([str(manifest)]))

    assert exc_info.value.code is None


def test_cli_missing_manifest(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path / "package.json")])

    assert exc_info.value.code == 1


def test_cli_export_requires_output_dir(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path / "package.json"), "--json"])

    assert exc_info.value.code == 2
