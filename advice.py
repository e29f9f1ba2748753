"""
Agronomic advice built on top of an analysis result: a per-soil
recommendation block, a seasonal action plan and the "detailed" wrapper
served by POST /analyse?detailed=1.

Everything here is static lookup into soil_data; nothing calls a backend.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from soil_data import SoilProfile, get_profiles, get_vocabulary
from soil_result import SoilAnalysisResult, SoilCategory

logger = logging.getLogger(__name__)


def match_profile(soil_type: Union[SoilCategory, str, None]) -> Optional[SoilProfile]:
    """
    Profile for a free-text soil type. Category names win over descriptive
    keywords, so "silty fine soil" is silt even though "fine" is a clay word.
    """
    if isinstance(soil_type, SoilCategory):
        return get_profiles()[soil_type]
    lowered = (soil_type or "").lower()
    if not lowered:
        return None
    profiles = get_profiles()
    for category, profile in profiles.items():
        if category.value in lowered or any(term in lowered for term in profile.remote_terms):
            return profile
    for profile in profiles.values():
        if any(keyword in lowered for keyword in profile.keywords):
            return profile
    return None


def soil_recommendations(soil_type: Union[SoilCategory, str, None]) -> dict[str, Any]:
    profile = match_profile(soil_type)
    if profile is None:
        unknown = get_vocabulary()["unknownSoil"]
        return {
            "type": unknown["type"],
            "characteristics": dict(unknown["characteristics"]),
            "cropsSuitable": list(unknown["cropsSuitable"]),
            "recommendations": unknown["recommendations"],
            "keywords": list(unknown["keywords"]),
        }

    physical = profile.physical_properties
    return {
        "type": profile.name,
        "characteristics": {
            "drainage": physical["drainage"],
            "waterRetention": physical["waterRetention"],
            "aeration": physical["aeration"],
            **profile.characteristics,
        },
        "cropsSuitable": list(profile.suited_crops),
        "recommendations": profile.recommendations,
        "keywords": list(profile.keywords),
    }


def action_plan(soil_type: Union[SoilCategory, str, None]) -> dict[str, Any]:
    """Immediate, seasonal and long-term actions; a generic plan for unknown soil."""
    profile = match_profile(soil_type)
    actions = profile.actions if profile else get_vocabulary()["unknownSoil"]["actions"]
    return {
        "immediate": list(actions["immediate"]),
        "seasonal": dict(actions["seasonal"]),
        "longTerm": list(actions["longTerm"]),
    }


def detailed_analysis(
    result: SoilAnalysisResult,
    image_bytes: bytes,
    mime_type: str,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    data = result.to_dict()
    if result.error:
        return data

    soil_type = result.soil_type or "unknown"
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    data.update(
        detailedRecommendations=soil_recommendations(soil_type),
        analysisTimestamp=timestamp,
        additionalInfo={
            "analysisMethod": result.api_used or "Smart Analysis",
            "imageSize": f"{len(image_bytes)} bytes",
            "imageType": mime_type,
            "recommendations": action_plan(result.soil_type),
        },
    )
    return data
