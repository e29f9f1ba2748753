"""
soil_result.py — canonical home of the analysis result types.

Both backends (remote AI and the local colour heuristic) return a
SoilAnalysisResult; the pipeline, the report builder and the web layer only
ever see this type.

Attribute names are snake_case; to_dict() emits the camelCase wire names the
presentation layer expects (soilType, physicalProperties, …).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

MAX_SUITED_CROPS = 10
MAX_AVOID_CROPS  = 5
MAX_LABELS       = 6


class SoilCategory(str, Enum):
    """Closed set of soil textures. Declaration order is the tie-break order."""
    SANDY = "sandy"
    CLAY  = "clay"
    LOAM  = "loam"
    SILT  = "silt"


@dataclass(frozen=True)
class SampledColor:
    """Mean colour of one pixel cluster plus its share of the sampled pixels."""
    rgb: tuple[int, int, int]
    frequency: float

    @property
    def hex(self) -> str:
        return "#" + "".join(f"{c:02x}" for c in self.rgb)

    @property
    def brightness(self) -> float:
        return sum(self.rgb) / 3

    @property
    def saturation(self) -> float:
        hi, lo = max(self.rgb), min(self.rgb)
        return 0.0 if hi == 0 else (hi - lo) / hi

    @property
    def is_grayish(self) -> bool:
        return max(self.rgb) - min(self.rgb) < 30 and all(c > 100 for c in self.rgb)


@dataclass(frozen=True)
class ColorSample:
    """Output of ColorSampler: top clusters and how many opaque pixels were read."""
    colors: list[SampledColor]
    pixel_count: int

    def __bool__(self) -> bool:
        return bool(self.colors)


# ── Shared result type ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SoilAnalysisResult:
    """Result of one analysis request. Immutable once built."""
    soil_type: Optional[SoilCategory] = None
    confidence: float = 0.0
    name: str = ""
    icon: str = ""
    color_theme: str = ""
    physical_properties: dict[str, str] = field(default_factory=dict)
    chemical_properties: dict[str, Any] = field(default_factory=dict)
    agricultural_suitability: dict[str, Any] = field(default_factory=dict)
    management_practices: dict[str, str] = field(default_factory=dict)
    recommendations: str = ""
    detected_labels: list[str] = field(default_factory=list)
    dominant_colors: list[str] = field(default_factory=list)
    analysis_details: dict[str, Any] = field(default_factory=dict)

    # remote-only extras
    seasonal_advice: Optional[str] = None
    sustainability_factors: Optional[str] = None
    full_analysis: Optional[str] = None

    # terminal failure
    error: bool = False
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        # Frozen: normalise through object.__setattr__
        object.__setattr__(self, "confidence", max(0.0, min(100.0, float(self.confidence))))
        object.__setattr__(self, "detected_labels", list(self.detected_labels)[:MAX_LABELS])

        suitability = dict(self.agricultural_suitability)
        if "suitedCrops" in suitability:
            suitability["suitedCrops"] = list(suitability["suitedCrops"])[:MAX_SUITED_CROPS]
        if "avoidCrops" in suitability:
            suitability["avoidCrops"] = list(suitability["avoidCrops"])[:MAX_AVOID_CROPS]
        object.__setattr__(self, "agricultural_suitability", suitability)

    @classmethod
    def failure(cls, message: str, file_name: str = "") -> "SoilAnalysisResult":
        """Terminal error result — the caller still gets an object to render."""
        return cls(
            error=True,
            error_message=message or "Failed to analyze soil image. Please try again.",
            analysis_details={"fileName": file_name, "processingTime": "0.0"},
        )

    @property
    def api_used(self) -> str:
        return self.analysis_details.get("apiUsed", "")

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {
                "error": True,
                "errorMessage": self.error_message,
                "analysisDetails": dict(self.analysis_details),
            }

        data: dict[str, Any] = {
            "soilType": self.soil_type.value if self.soil_type else None,
            "confidence": self.confidence,
            "name": self.name,
            "icon": self.icon,
            "colorTheme": self.color_theme,
            "physicalProperties": dict(self.physical_properties),
            "chemicalProperties": dict(self.chemical_properties),
            "agriculturalSuitability": dict(self.agricultural_suitability),
            "managementPractices": dict(self.management_practices),
            "recommendations": self.recommendations,
            "detectedLabels": list(self.detected_labels),
            "dominantColors": list(self.dominant_colors),
            "analysisDetails": dict(self.analysis_details),
        }
        if self.seasonal_advice is not None:
            data["seasonalAdvice"] = self.seasonal_advice
        if self.sustainability_factors is not None:
            data["sustainabilityFactors"] = self.sustainability_factors
        if self.full_analysis is not None:
            data["fullAnalysis"] = self.full_analysis
        return data
