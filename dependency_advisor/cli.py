"""
Command-line interface for the dependency advisor.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .advisories import NpmAdvisoryClient
from .analyzer import DependencyAnalyzer
from .config import AdvisorSettings, load_settings
from .manifest import ManifestError, read_manifest
from .models import BumpLevel
from .reporting import export_reports_csv, print_summary, save_results_json
from .resolvers import NpmPackageManagerClient, NpmRegistryClient, VersionFetcher


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Check declared npm dependencies for newer or safer versions"
    )

    parser.add_argument(
        "manifest",
        nargs="?",
        default="package.json",
        help="Path to package.json. Default: ./package.json"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="JSON settings file (editor-style or snake_case keys)"
    )

    parser.add_argument(
        "--no-major-protection",
        action="store_true",
        help="Always suggest the latest version, even across a major"
    )

    parser.add_argument(
        "--level",
        choices=[level.value for level in BumpLevel],
        default=None,
        help="Smallest bump worth reporting. Default: patch"
    )

    parser.add_argument(
        "--cache-lifetime",
        type=float,
        default=None,
        help="Published versions cache lifetime in minutes. Default: 60"
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum parallel registry lookups, 0 for unbounded. Default: 20"
    )

    parser.add_argument(
        "--no-advisories",
        action="store_true",
        help="Skip security advisory lookups"
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for exported results"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Write results as JSON to the output directory"
    )

    parser.add_argument(
        "--export-csv",
        action="store_true",
        help="Write results as CSV to the output directory"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    return parser


def build_settings(args: argparse.Namespace) -> AdvisorSettings:
    settings = load_settings(Path(args.config)) if args.config else AdvisorSettings()
    return settings.with_overrides(
        major_update_protection=False if args.no_major_protection else None,
        minimum_bump_level=args.level,
        cache_lifetime=args.cache_lifetime * 60 if args.cache_lifetime is not None else None,
        concurrency_limit=args.concurrency,
        advisories_enabled=False if args.no_advisories else None,
    )


def build_analyzer(settings: AdvisorSettings) -> DependencyAnalyzer:
    fetcher = VersionFetcher(
        registry=NpmRegistryClient(settings.registry_url, timeout=settings.timeout),
        package_manager=NpmPackageManagerClient(timeout=settings.timeout),
        advisories=NpmAdvisoryClient(settings.advisory_url, timeout=settings.timeout),
        settings=settings,
    )
    return DependencyAnalyzer(fetcher, settings)


async def run(manifest: Path, settings: AdvisorSettings):
    dependencies = read_manifest(manifest)
    analyzer = build_analyzer(settings)
    with tqdm(total=len(dependencies), desc="Checking dependencies", unit="dep") as pbar:
        return await analyzer.analyze(
            dependencies, manifest.parent, on_complete=lambda _: pbar.update(1)
        )


def execute(argv=None):
    """Run one analysis from command line arguments and return the reports."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s" if not args.verbose else "%(levelname)s %(name)s: %(message)s",
    )

    if (args.json or args.export_csv) and not args.output_dir:
        parser.error("--output-dir is required with --json or --export-csv")

    manifest = Path(args.manifest).resolve()
    if not manifest.exists():
        print(f"Error: manifest not found: {manifest}", file=sys.stderr)
        sys.exit(1)

    try:
        settings = build_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        reports = asyncio.run(run(manifest, settings))
    except ManifestError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print_summary(manifest, reports)

    if args.output_dir:
        output_dir = Path(args.output_dir)
        if args.json:
            results_file = save_results_json(reports, output_dir, manifest.parent.name or "package")
            print(f"Results saved to: {results_file}")
        if args.export_csv:
            csv_file = export_reports_csv(reports, output_dir, manifest.parent.name or "package")
            print(f"CSV saved to: {csv_file}")
    return reports


def main(argv=None):
    """Main entry point for the CLI."""
    execute(argv)


if __name__ == "__main__":
    main()
