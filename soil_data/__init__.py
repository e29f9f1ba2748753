"""
soil_data — static lookup tables, kept as JSON so they can be edited and
tested without touching classifier code.

  profiles.json    per-category palette, filename keywords, characteristics,
                   crops, management texts and action plans
  vocabulary.json  crop vocabulary, filler words, garbage denylist and the
                   generic defaults used by the response parsers

Both files are read once on first use and cached at module level.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from soil_result import SoilCategory

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent

# Module-level caches, filled lazily
_profiles: dict[SoilCategory, "SoilProfile"] = {}
_vocabulary: dict[str, Any] = {}


@dataclass(frozen=True)
class SoilProfile:
    category: SoilCategory
    name: str
    icon: str
    color_theme: str
    keywords: tuple[str, ...]
    palette: tuple[tuple[int, int, int], ...]
    remote_terms: tuple[str, ...]
    remote_confidence_base: float
    remote_confidence_jitter: float
    labels: tuple[str, ...]
    physical_properties: dict[str, str]
    characteristics: dict[str, str]
    ph_range: str
    npk_levels: dict[str, str]
    organic_matter: str
    suited_crops: tuple[str, ...]
    avoid_crops: tuple[str, ...]
    irrigation_needs: str
    fertilization_strategy: str
    amendments: str
    management_practices: dict[str, str]
    recommendations: str
    actions: dict[str, Any]

    @classmethod
    def from_dict(cls, category: SoilCategory, raw: dict[str, Any]) -> "SoilProfile":
        return cls(
            category=category,
            name=raw["name"],
            icon=raw["icon"],
            color_theme=raw["colorTheme"],
            keywords=tuple(k.lower() for k in raw["keywords"]),
            palette=tuple(tuple(rgb) for rgb in raw["palette"]),
            remote_terms=tuple(raw["remoteTerms"]),
            remote_confidence_base=float(raw["remoteConfidence"]["base"]),
            remote_confidence_jitter=float(raw["remoteConfidence"]["jitter"]),
            labels=tuple(raw["labels"]),
            physical_properties=dict(raw["physicalProperties"]),
            characteristics=dict(raw["characteristics"]),
            ph_range=raw["phRange"],
            npk_levels=dict(raw["npkLevels"]),
            organic_matter=raw["organicMatter"],
            suited_crops=tuple(raw["suitedCrops"]),
            avoid_crops=tuple(raw["avoidCrops"]),
            irrigation_needs=raw["irrigationNeeds"],
            fertilization_strategy=raw["fertilizationStrategy"],
            amendments=raw["amendments"],
            management_practices=dict(raw["managementPractices"]),
            recommendations=raw["recommendations"],
            actions=raw["actions"],
        )


def _read_json(filename: str) -> dict[str, Any]:
    path = _DATA_DIR / filename
    with path.open(encoding="utf-8") as fh:
        return json.load(fh)


def get_profiles() -> dict[SoilCategory, SoilProfile]:
    """Return all profiles keyed by category, in SoilCategory order."""
    global _profiles
    if not _profiles:
        raw = _read_json("profiles.json")
        missing = [c.value for c in SoilCategory if c.value not in raw]
        if missing:
            raise ValueError(f"profiles.json is missing categories: {', '.join(missing)}")
        _profiles = {c: SoilProfile.from_dict(c, raw[c.value]) for c in SoilCategory}
        logger.debug("Loaded %d soil profiles", len(_profiles))
    return _profiles


def get_profile(category: SoilCategory) -> SoilProfile:
    return get_profiles()[SoilCategory(category)]


def get_vocabulary() -> dict[str, Any]:
    global _vocabulary
    if not _vocabulary:
        _vocabulary = _read_json("vocabulary.json")
    return _vocabulary
