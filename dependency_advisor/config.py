"""
Advisor policy settings.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from .models import BumpLevel


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_ADVISORY_URL = "https://registry.npmjs.org/-/npm/v1/security/advisories/bulk"

# Editor-style option names and the field each one maps to.
_ALIASES = {
    "majorUpdateProtection": "major_update_protection",
    "level": "minimum_bump_level",
    "parallelProcessesLimit": "concurrency_limit",
    "registryUrl": "registry_url",
    "advisoryUrl": "advisory_url",
    "advisories": "advisories_enabled",
}


@dataclass(frozen=True)
class AdvisorSettings:
    """Policy inputs for resolution, classification and fetching."""

    major_update_protection: bool = True
    minimum_bump_level: BumpLevel = BumpLevel.PATCH
    cache_lifetime: float = 60 * 60.0
    installed_cache_lifetime: float = 60.0
    concurrency_limit: int = 20
    registry_url: str = DEFAULT_REGISTRY_URL
    advisory_url: str = DEFAULT_ADVISORY_URL
    advisories_enabled: bool = True
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not isinstance(self.minimum_bump_level, BumpLevel):
            object.__setattr__(self, "minimum_bump_level", BumpLevel(self.minimum_bump_level))
        if self.concurrency_limit < 0:
            raise ValueError("concurrency_limit must be >= 0")
        if self.cache_lifetime < 0 or self.installed_cache_lifetime < 0:
            raise ValueError("cache lifetimes must be >= 0")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "AdvisorSettings":
        """Build settings from editor-style or snake_case options.

        ``cacheLifetime`` is given in minutes, ``cache_lifetime`` in seconds.
        Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in options.items():
            if key == "cacheLifetime":
                values["cache_lifetime"] = float(value) * 60
                continue
            name = _ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown option %s", key)
                continue
            values[name] = value
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "AdvisorSettings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(path: Path) -> AdvisorSettings:
    """Read settings from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a JSON object")
    return AdvisorSettings.from_mapping(data)
