"""
report.py — plain-text report for a finished analysis.

Layout:
  header (date, soil type, confidence, method)
  → chemical → physical → agricultural → management → expert advice
  → footer

Missing values never break the layout: they render as NOT_AVAILABLE
(measurements) or NOT_SPECIFIED (advice). Failed analyses have no report.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Optional

from soil_result import SoilAnalysisResult

NOT_AVAILABLE  = "Not available"
NOT_SPECIFIED  = "Not specified"
NO_ADVICE      = "No specific recommendations available"
DEFAULT_METHOD = "Advanced AI Computer Vision"
FOOTER         = "Report generated by AI Soil Analysis System"


def heading(title: str) -> str:
    return f"{title}\n{'=' * len(title)}"


def humanize_key(key: str) -> str:
    """'waterRetention' → 'Water Retention'"""
    return re.sub(r"(?<!^)([A-Z])", r" \1", key).title()


def _value(value: Any, missing: str) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) if value else missing
    return str(value) if value not in (None, "") else missing


def report_filename(result: SoilAnalysisResult, today: Optional[date] = None) -> str:
    """'Sandy Soil' → 'Sandy_Soil_Analysis_Report_2024-05-01.txt'"""
    title = re.sub(r"\s+", "_", f"{result.name or 'Soil'} Analysis Report")
    return f"{title}_{(today or date.today()).isoformat()}.txt"


def build_report(result: SoilAnalysisResult, generated_at: Optional[datetime] = None) -> str:
    if result.error:
        raise ValueError(f"No report for a failed analysis: {result.error_message}")

    when = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    chem = result.chemical_properties
    npk  = chem.get("npkLevels") or {}
    agri = result.agricultural_suitability
    mgmt = result.management_practices

    physical = [
        f"{humanize_key(key)}: {_value(value, NOT_AVAILABLE)}"
        for key, value in result.physical_properties.items()
    ] or [NOT_AVAILABLE]

    sections = [
        (heading("SOIL ANALYSIS REPORT"), [
            f"Report Generated: {when}",
            f"Soil Type: {result.name or 'Unknown'}",
            f"Confidence Level: {result.confidence:g}%",
            f"Analysis Method: {result.api_used or DEFAULT_METHOD}",
        ]),
        (heading("CHEMICAL PROPERTIES"), [
            f"pH Range: {_value(chem.get('phRange'), NOT_AVAILABLE)}",
            f"Organic Matter: {_value(chem.get('organicMatter'), NOT_AVAILABLE)}",
            "",
            "NPK Analysis:",
            f"- Nitrogen: {_value(npk.get('nitrogen'), NOT_AVAILABLE)}",
            f"- Phosphorus: {_value(npk.get('phosphorus'), NOT_AVAILABLE)}",
            f"- Potassium: {_value(npk.get('potassium'), NOT_AVAILABLE)}",
        ]),
        (heading("PHYSICAL PROPERTIES"), physical),
        (heading("AGRICULTURAL SUITABILITY"), [
            f"Recommended Crops: {_value(agri.get('suitedCrops'), NOT_SPECIFIED)}",
            f"Crops to Avoid: {_value(agri.get('avoidCrops'), NOT_SPECIFIED)}",
            f"Irrigation: {_value(agri.get('irrigationNeeds'), NOT_SPECIFIED)}",
            f"Fertilization: {_value(agri.get('fertilizationStrategy'), NOT_SPECIFIED)}",
        ]),
        (heading("MANAGEMENT PRACTICES"), [
            f"Tillage: {_value(mgmt.get('tillageRecommendations'), NOT_SPECIFIED)}",
            f"Crop Rotation: {_value(mgmt.get('cropRotation'), NOT_SPECIFIED)}",
        ]),
        (heading("EXPERT RECOMMENDATIONS"), [result.recommendations or NO_ADVICE]),
    ]

    blocks = [f"{title}\n\n" + "\n".join(body) for title, body in sections]
    blocks.append(f"---\n{FOOTER}")
    return "\n\n".join(blocks) + "\n"
