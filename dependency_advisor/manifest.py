"""
Minimal package.json reader.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import List, Optional

from .models import DeclaredDependency, DependencySection


class ManifestError(ValueError):
    """Raised when a manifest cannot be parsed."""


def _find_key(text: str, key: str, start: int = 0) -> Optional[int]:
    """Offset of ``key`` used as an object key, not as a value."""
    match = re.compile(re.escape(json.dumps(key)) + r"\s*:").search(text, start)
    return match.start() if match else None


def _line_of(text: str, key: str, start: int) -> Optional[int]:
    index = _find_key(text, key, start)
    if index is None:
        return None
    return text.count("\n", 0, index)


def parse_manifest(text: str) -> List[DeclaredDependency]:
    """Extract declared dependencies from package.json text.

    Sections are read in manifest order; blank documents have none.
    """
    if not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid package.json: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError("package.json must contain a JSON object")

    dependencies: List[DeclaredDependency] = []
    for section in DependencySection:
        entries = data.get(section.value)
        if not isinstance(entries, dict):
            continue
        section_start = _find_key(text, section.value) or 0
        for name, raw_range in entries.items():
            if not isinstance(raw_range, str):
                continue
            dependencies.append(DeclaredDependency(
                name=name,
                raw_range=raw_range,
                section=section,
                line=_line_of(text, name, section_start),
            ))
    return dependencies


def read_manifest(path: Path) -> List[DeclaredDependency]:
    """Read declared dependencies from a package.json file."""
    if not path.exists():
        return []
    return parse_manifest(path.read_text(encoding="utf-8"))
