"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping

import pandas as pd

from .models import DependencyReport, DependencyStatus, ReportKey, StatusKind


logger = logging.getLogger(__name__)

COLUMNS = [
    "name",
    "section",
    "line",
    "declared_range",
    "status",
    "suggested_version",
    "latest_version",
    "installed_version",
    "advisory_title",
    "advisory_severity",
    "advisory_score",
    "advisory_url",
]

# Statuses that need the user's attention.
ACTIONABLE = {
    StatusKind.UPDATE_AVAILABLE,
    StatusKind.MAJOR_UPDATE_AVAILABLE,
    StatusKind.PRERELEASE_UPDATE_AVAILABLE,
    StatusKind.INSTALL_PENDING,
    StatusKind.VERSION_NOT_FOUND,
    StatusKind.INVALID_RANGE,
    StatusKind.ADVISORY_UPDATE_AVAILABLE,
    StatusKind.ADVISORY_DOWNGRADE_NEEDED,
}


def _row(report: DependencyReport, status: DependencyStatus) -> Dict:
    advisory = status.advisory
    return {
        "name": report.dependency.name,
        "section": report.dependency.section.value,
        "line": report.dependency.line,
        "declared_range": report.dependency.raw_range,
        "status": status.kind.value,
        "suggested_version": status.suggested_version,
        "latest_version": status.latest_version,
        "installed_version": status.installed_version,
        "advisory_title": advisory.title if advisory else None,
        "advisory_severity": advisory.severity.value if advisory else None,
        "advisory_score": advisory.score if advisory else None,
        "advisory_url": advisory.url if advisory else None,
    }


def _order(report: DependencyReport):
    line = report.dependency.line
    return (report.dependency.name, -1 if line is None else line)


def report_rows(reports: Mapping[ReportKey, DependencyReport]) -> List[Dict]:
    """One row per record; advisory records follow their version record."""
    rows = []
    for report in sorted(reports.values(), key=_order):
        rows.append(_row(report, report.status))
        if report.advisory_status is not None:
            rows.append(_row(report, report.advisory_status))
    return rows


def reports_to_frame(reports: Mapping[ReportKey, DependencyReport]) -> pd.DataFrame:
    return pd.DataFrame(report_rows(reports), columns=COLUMNS)


def print_summary(manifest: Path, reports: Mapping[ReportKey, DependencyReport]) -> None:
    rows = report_rows(reports)
    actionable = [row for row in rows if StatusKind(row["status"]) in ACTIONABLE]

    logger.info("\n" + "=" * 60)
    logger.info("DEPENDENCY ADVISORIES")
    logger.info("=" * 60)
    logger.info("Manifest: %s", manifest)
    logger.info("Dependencies checked: %s", len(reports))
    logger.info("Findings: %s", len(actionable))
    logger.info("-" * 60)
    for row in rows:
        target = row["suggested_version"] or "-"
        installed = row["installed_version"] or "-"
        line = "%-30s %-12s %-30s target=%s installed=%s"
        args = [row["name"], row["declared_range"], row["status"], target, installed]
        if row["advisory_title"]:
            line += " advisory=%s (%s/%s)"
            args += [row["advisory_title"], row["advisory_severity"].upper(), row["advisory_score"]]
        logger.info(line, *args)
    logger.info("=" * 60)


def save_results_json(
    reports: Mapping[ReportKey, DependencyReport], output_dir: Path, stem: str
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    results_file = output_dir / f"{stem}_advisories.json"
    with open(results_file, "w") as f:
        json.dump(report_rows(reports), f, indent=2, default=str)
    return results_file


def export_reports_csv(
    reports: Mapping[ReportKey, DependencyReport], output_dir: Path, stem: str
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{stem}_advisories.csv"
    reports_to_frame(reports).to_csv(csv_file, index=False)
    return csv_file
