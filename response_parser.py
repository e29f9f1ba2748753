"""
Response parsers — turn a remote model's reply into a SoilAnalysisResult.

One parser per upstream answer style:
  ProseResponseParser  structured free-text report, read with keyword rules
  JsonResponseParser   JSON object; falls back to the prose rules when the
                       model ignores the format

Each parser also owns the instruction (prompt) that asks for its style, so a
provider never needs to know which style is in use.

Contract: parse() never raises on odd input. Soil-type detection always
yields a category (loam by default) and every sub-field that cannot be
extracted degrades to the category's static default.
"""
from __future__ import annotations

import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from providers.base import parse_json_response
from soil_data import SoilProfile, get_profile, get_profiles, get_vocabulary
from soil_result import SoilAnalysisResult, SoilCategory

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY    = SoilCategory.LOAM
DEFAULT_CONFIDENCE  = 85.0
MAX_CONFIDENCE      = 98.0
MIN_FRAGMENT_LENGTH = 8
DEFAULT_PH_RANGE    = "6.0-7.0"

PROSE_PROMPT = """Analyze this soil image and provide comprehensive information in the following structured format:

SOIL IDENTIFICATION:
- Primary soil type (sand, clay, loam, or silt)
- Confidence level (percentage)
- Secondary characteristics visible

PHYSICAL PROPERTIES:
- Texture description
- Color characteristics
- Particle size estimation
- Structure and porosity
- Drainage capability
- Water retention capacity
- Aeration level

CHEMICAL PROPERTIES:
- Estimated pH range
- Likely nutrient content (NPK levels)
- Organic matter content estimation
- Potential nutrient deficiencies
- Salinity level (if visible)

AGRICULTURAL SUITABILITY:
- Best suited crops: List 8-10 SPECIFIC crop names (e.g., "Potatoes, Carrots, Radishes, Sweet Corn, Lettuce, Spinach, Beans, Peas")
- Crops to avoid: List specific crop names that are NOT suitable (e.g., "Rice, Watermelon")
- Irrigation recommendations
- Fertilization strategy
- Soil amendments needed

IMPORTANT: Always provide specific crop names, never use generic descriptions like "crops that tolerate well-drained conditions".

MANAGEMENT PRACTICES:
- Tillage recommendations
- Planting season advice
- Crop rotation suggestions
- Erosion control measures

SPECIFIC CONCERNS:
- Seasonal considerations
- Sustainability factors

EXPERT RECOMMENDATIONS:
- A short summary of the most important actions

Be specific with numerical ranges where appropriate (pH 6.0-7.0, NPK ratios, etc.)."""

JSON_PROMPT = """Analyze this soil image and return ONLY a valid JSON object — no markdown, no prose.

JSON schema (all fields required):
{
  "soilType":              "sandy | clay | loam | silt",
  "confidence":            <number 0-100>,
  "texture":               "one sentence",
  "drainage":              "one sentence",
  "waterRetention":        "one sentence",
  "aeration":              "one sentence",
  "structure":             "one sentence",
  "phRange":               "<low>-<high>",
  "nitrogen":              "one sentence",
  "phosphorus":            "one sentence",
  "potassium":             "one sentence",
  "organicMatter":         "one sentence",
  "suitedCrops":           ["8-10 specific crop names"],
  "avoidCrops":            ["up to 5 specific crop names"],
  "irrigationNeeds":       "one sentence",
  "fertilizationStrategy": "one sentence",
  "amendments":            "one sentence",
  "tillageRecommendations":"one sentence",
  "cropRotation":          "one sentence",
  "plantingAdvice":        "one sentence",
  "erosionControl":        "one sentence",
  "seasonalAdvice":        "one sentence",
  "sustainabilityFactors": "one sentence",
  "recommendations":       "two or three sentences of expert advice",
  "keyFeatures":           ["up to 4 short visual features"],
  "colors":                ["up to 3 colour words"]
}"""


# ── Text helpers ───────────────────────────────────────────────────────────────

def _strip_markup(text: str) -> str:
    text = text.replace("*", "")
    text = re.sub(r"^#+\s*", "", text, flags=re.MULTILINE)
    return text.replace("`", "").strip()


def _title(text: str) -> str:
    return " ".join(w.capitalize() for w in text.split())


def is_garbage(fragment: str) -> bool:
    """True for leaked prompt pieces and other known junk."""
    vocab = get_vocabulary()
    lowered = fragment.lower()
    if any(p in lowered for p in vocab["garbagePatterns"]):
        return True
    return any(lowered.startswith(p) for p in vocab["garbagePrefixes"])


def clean_sentence(text: Any) -> Optional[str]:
    """Normalise a fragment; None when it is too short or known junk."""
    if not text or not isinstance(text, str):
        return None
    cleaned = text.replace("*", "")
    cleaned = re.sub(r"^\W+", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = re.sub(r"^[:\-\s]+", "", cleaned).strip()
    if len(cleaned) < MIN_FRAGMENT_LENGTH or is_garbage(cleaned):
        return None
    return cleaned


def _is_sentence_end(text: str, pos: int) -> bool:
    if text[pos] in "!?":
        return True
    # "6.5" is not a sentence end
    return text[pos] == "." and (pos + 1 >= len(text) or text[pos + 1].isspace())


def extract_clean_section(text: str, keyword: str, max_length: int = 200) -> Optional[str]:
    """
    Text following the first occurrence of `keyword`: up to two sentences,
    stopping at a line break, `**` or `---`, and never past max_length chars.
    """
    idx = text.lower().find(keyword.lower())
    if idx == -1:
        return None

    start = idx + len(keyword)
    while start < len(text) and text[start] in ": \t\r\n-*":
        start += 1

    limit = min(len(text), start + max_length)
    end = start
    sentences = 0
    pos = start
    while pos < limit:
        if text.startswith("**", pos) or text.startswith("---", pos):
            break
        if text[pos] == "\n":
            break
        if _is_sentence_end(text, pos):
            sentences += 1
            end = pos + 1
            if sentences >= 2:
                break
        pos += 1

    if end == start:
        end = pos
        # Cut at a word boundary when the budget ran out mid-word
        if pos == limit and limit < len(text) and not text[limit].isspace():
            space = text.rfind(" ", start, limit)
            if space > start:
                end = space

    return clean_sentence(text[start:end].strip())


def detect_soil_type(text: str) -> Optional[SoilCategory]:
    """First category whose terms occur in `text`, checked in SoilCategory order."""
    lowered = (text or "").lower()
    for category, profile in get_profiles().items():
        if any(term in lowered for term in profile.remote_terms):
            return category
    return None


_PH_RANGE = re.compile(
    r"\bph\b[^0-9\n]{0,40}?(\d{1,2}(?:\.\d+)?)\s*(?:-|–|—|to)\s*(\d{1,2}(?:\.\d+)?)",
    re.IGNORECASE,
)
_PH_SINGLE = re.compile(r"\bph\b[^0-9\n]{0,40}?(\d{1,2}(?:\.\d+)?)", re.IGNORECASE)


def _valid_ph(*values: str) -> bool:
    return all(0.0 <= float(v) <= 14.0 for v in values)


def extract_ph_range(text: str) -> str:
    """'pH 5.5 to 6.8' → '5.5-6.8'; 'pH 6.5' → '6.5-7.0'; default 6.0-7.0."""
    for match in _PH_RANGE.finditer(text or ""):
        low, high = match.group(1), match.group(2)
        if _valid_ph(low, high) and float(low) <= float(high):
            return f"{low}-{high}"
    for match in _PH_SINGLE.finditer(text or ""):
        value = match.group(1)
        if _valid_ph(value):
            return f"{value}-{float(value) + 0.5:.1f}"
    return DEFAULT_PH_RANGE


def _contains_filler(segment: str) -> bool:
    return any(word in segment for word in get_vocabulary()["fillerWords"])


def parse_crop_names(text: str) -> list[str]:
    """
    Crop names from a delimited list. Known vocabulary matches first; short
    segments (≤3 words) without filler words are accepted as names too.
    Returns [] when nothing recognisable is found.
    """
    known = sorted(get_vocabulary()["knownCrops"], key=len, reverse=True)
    cleaned = re.sub(r"\d+\.", "", (text or "").lower())
    cleaned = re.sub(r"[()*\"]", "", cleaned)

    found: list[str] = []
    for segment in re.split(r"[,\n;]", cleaned):
        segment = re.sub(r"^(?:and|or|e\.g\.?|eg|such as)\s+", "", segment.strip(" \t-•:."))
        if len(segment) <= 2:
            continue

        remaining = segment
        matched = False
        for crop in known:
            if crop in remaining:
                matched = True
                remaining = remaining.replace(crop, " ")
                name = _title(crop)
                if name not in found:
                    found.append(name)
        if matched:
            continue

        words = segment.split()
        if len(words) <= 3 and not _contains_filler(segment) and re.fullmatch(r"[a-z][a-z '\-]{3,23}", segment):
            name = _title(segment)
            if name not in found:
                found.append(name)
    return found


_SUITED_PATTERNS = [
    re.compile(r"best suited crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,10})", re.IGNORECASE),
    re.compile(r"suited crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,8})", re.IGNORECASE),
    re.compile(r"recommended crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,8})", re.IGNORECASE),
    re.compile(r"suitable[^:\n]*crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,8})", re.IGNORECASE),
    re.compile(r"grow[^:\n]*crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,6})", re.IGNORECASE),
]
_AVOID_PATTERNS = [
    re.compile(r"crops to avoid[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,5})", re.IGNORECASE),
    re.compile(r"avoid[^:\n]*crops?[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,4})", re.IGNORECASE),
    re.compile(r"not suitable[^:\n]*[:\s]*([^.\n]*(?:[,\n][^.\n]*){0,4})", re.IGNORECASE),
    re.compile(r"unsuitable[^:\n]*crops?[:\s]*([^.\n]*)", re.IGNORECASE),
]
_LIST_STOP = re.compile(r"avoid|not suitable|unsuitable", re.IGNORECASE)


def _trim_list_block(block: str) -> str:
    """Keep the first line plus continuation lines up to the next labelled field."""
    lines = block.split("\n")
    kept = [lines[0]]
    for line in lines[1:]:
        if ":" in line or _LIST_STOP.search(line):
            break
        kept.append(line)
    return "\n".join(kept)


def _find_list(text: str, patterns: list[re.Pattern], min_length: int) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match and len(match.group(1)) > min_length:
            return _trim_list_block(match.group(1))
    return ""


def extract_crop_lists(text: str, profile: SoilProfile) -> tuple[list[str], list[str]]:
    suited_text = _find_list(text, _SUITED_PATTERNS, 15)
    avoid_text  = _find_list(text, _AVOID_PATTERNS, 8)

    suited = parse_crop_names(suited_text) if suited_text else []
    avoid  = parse_crop_names(avoid_text) if avoid_text else []
    return (
        (suited or list(profile.suited_crops))[:10],
        (avoid or list(profile.avoid_crops))[:5],
    )


def _nutrient_patterns(name: str, short: str) -> list[re.Pattern]:
    return [
        re.compile(rf"{name}\s*(?:\({short}\))?\s*(?:levels?|content)?[:\s-]+([^\n.]{{8,80}})", re.IGNORECASE),
        re.compile(rf"(?<![a-z]){short}\s*[:=]\s*([^\n.]{{8,60}})", re.IGNORECASE),
    ]


_NUTRIENTS = {
    "nitrogen":   _nutrient_patterns("nitrogen", "n"),
    "phosphorus": _nutrient_patterns("phosphorus", "p"),
    "potassium":  _nutrient_patterns("potassium", "k"),
}

_ORGANIC_PATTERNS = [
    re.compile(r"organic matter content[:\s-]+([^.\n]{10,100})", re.IGNORECASE),
    re.compile(r"organic matter[:\s-]+([^.\n]{10,80})", re.IGNORECASE),
    re.compile(r"organic content[:\s-]+([^.\n]{10,80})", re.IGNORECASE),
    re.compile(r"humus[:\s-]+([^.\n]{10,60})", re.IGNORECASE),
]


def _first_pattern(text: str, patterns: list[re.Pattern]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            cleaned = clean_sentence(match.group(1))
            if cleaned:
                return cleaned
    return None


def extract_npk_levels(text: str, profile: SoilProfile) -> dict[str, str]:
    return {
        nutrient: _first_pattern(text, patterns) or profile.npk_levels[nutrient]
        for nutrient, patterns in _NUTRIENTS.items()
    }


def extract_organic_matter(text: str, profile: SoilProfile) -> str:
    return _first_pattern(text, _ORGANIC_PATTERNS) or profile.organic_matter


def _words_in(text: str, words: list[str]) -> list[str]:
    lowered = text.lower()
    return [w for w in words if re.search(rf"\b{re.escape(w)}\b", lowered)]


def _string_list(value: Any) -> list[str]:
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


# ── Abstract base ──────────────────────────────────────────────────────────────

class ResponseParser(ABC):
    """One implementation per upstream answer style."""

    style: str

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    @property
    @abstractmethod
    def prompt(self) -> str:
        """Instruction sent with the image, asking for this parser's style."""
        ...

    @abstractmethod
    def parse(self, text: str, file_name: str = "") -> SoilAnalysisResult:
        ...

    def jittered_confidence(self, category: Optional[SoilCategory]) -> float:
        if category is None:
            return DEFAULT_CONFIDENCE
        profile = get_profile(category)
        value = profile.remote_confidence_base + self._rng.random() * profile.remote_confidence_jitter
        return round(min(value, MAX_CONFIDENCE), 1)

    @staticmethod
    def _field(label: str, extract: Callable[[], Any], default: Any) -> Any:
        """Run one extraction; any failure degrades to `default`."""
        try:
            value = extract()
        except Exception as exc:
            logger.warning("Could not extract %s, using default: %s", label, exc)
            return default
        return default if value in (None, "", []) else value


# ── Prose ──────────────────────────────────────────────────────────────────────

class ProseResponseParser(ResponseParser):
    """Keyword/regex reading of a free-form structured report."""

    style = "prose"

    # field → ((label, char budget), …) tried in order; long labels first
    SECTIONS: dict[str, tuple[tuple[str, int], ...]] = {
        "texture":                (("texture description", 200), ("texture", 150)),
        "drainage":               (("drainage capability", 150), ("drainage", 120)),
        "waterRetention":         (("water retention capacity", 150), ("water retention", 120)),
        "aeration":               (("aeration level", 120), ("aeration", 100)),
        "structure":              (("structure and porosity", 150), ("structure", 120)),
        "irrigationNeeds":        (("irrigation recommendations", 200), ("irrigation", 150)),
        "fertilizationStrategy":  (("fertilization strategy", 200), ("fertilization", 150)),
        "amendments":             (("soil amendments needed", 200), ("amendments", 150)),
        "tillageRecommendations": (("tillage recommendations", 150), ("tillage", 120)),
        "plantingAdvice":         (("planting season advice", 150), ("planting", 120)),
        "cropRotation":           (("crop rotation suggestions", 150), ("rotation", 120)),
        "erosionControl":         (("erosion control measures", 150), ("erosion", 120)),
        "nutrientAvailability":   (("likely nutrient content", 150), ("nutrient content", 120)),
        "salinity":               (("salinity level", 100),),
        "deficiencyRisk":         (("potential nutrient deficiencies", 150), ("deficiency", 120)),
        "seasonalAdvice":         (("seasonal considerations", 150), ("season", 120)),
        "sustainabilityFactors":  (("sustainability factors", 150), ("sustainability", 120)),
        "recommendations":        (("expert recommendations", 300), ("recommendations", 300), ("recommend", 250)),
    }

    @property
    def prompt(self) -> str:
        return PROSE_PROMPT

    def section(self, text: str, field: str) -> Optional[str]:
        for label, budget in self.SECTIONS[field]:
            found = extract_clean_section(text, label, budget)
            if found:
                return found
        return None

    def parse(self, text: str, file_name: str = "") -> SoilAnalysisResult:
        raw = text if isinstance(text, str) else ""
        clean = _strip_markup(raw)

        detected = detect_soil_type(clean)
        category = detected or DEFAULT_CATEGORY
        profile = get_profile(category)
        vocab = get_vocabulary()
        defaults = vocab["fieldDefaults"]

        def sec(field: str, default: str) -> str:
            return self._field(field, lambda: self.section(clean, field), default)

        suited, avoid = self._field(
            "crops",
            lambda: extract_crop_lists(clean, profile),
            (list(profile.suited_crops), list(profile.avoid_crops)),
        )
        physical = profile.physical_properties

        labels = ["soil", category.value] + self._field(
            "labels", lambda: _words_in(clean, vocab["featureWords"]), []
        )
        colors = self._field("colors", lambda: _words_in(clean, vocab["colorWords"])[:3], ["brown", "natural"])

        return SoilAnalysisResult(
            soil_type=category,
            confidence=self.jittered_confidence(detected),
            name=profile.name,
            icon=profile.icon,
            color_theme=profile.color_theme,
            physical_properties={
                key: sec(key, physical[key])
                for key in ("texture", "drainage", "waterRetention", "aeration", "structure")
            },
            chemical_properties={
                "phRange": self._field("phRange", lambda: extract_ph_range(clean), DEFAULT_PH_RANGE),
                "npkLevels": self._field("npkLevels", lambda: extract_npk_levels(clean, profile), dict(profile.npk_levels)),
                "organicMatter": self._field("organicMatter", lambda: extract_organic_matter(clean, profile), profile.organic_matter),
                "nutrientAvailability": sec("nutrientAvailability", defaults["nutrientAvailability"]),
                "salinity": sec("salinity", defaults["salinity"]),
                "deficiencyRisk": sec("deficiencyRisk", defaults["deficiencyRisk"]),
            },
            agricultural_suitability={
                "suitedCrops": suited,
                "avoidCrops": avoid,
                "irrigationNeeds": sec("irrigationNeeds", profile.irrigation_needs),
                "fertilizationStrategy": sec("fertilizationStrategy", profile.fertilization_strategy),
                "amendments": sec("amendments", profile.amendments),
            },
            management_practices={
                key: sec(key, profile.management_practices[key])
                for key in ("tillageRecommendations", "cropRotation", "plantingAdvice", "erosionControl")
            },
            recommendations=sec("recommendations", profile.recommendations),
            detected_labels=labels,
            dominant_colors=colors,
            analysis_details={
                "hasValidSoilImage": True,
                "fileName": file_name,
                "responseLength": len(raw),
                "soilTypeDetected": detected is not None,
            },
            seasonal_advice=sec("seasonalAdvice", defaults["seasonalAdvice"]),
            sustainability_factors=sec("sustainabilityFactors", defaults["sustainabilityFactors"]),
            full_analysis=raw,
        )


# ── JSON ───────────────────────────────────────────────────────────────────────

class JsonResponseParser(ResponseParser):
    """Reads the JSON_PROMPT schema; non-JSON replies go through the prose rules."""

    style = "json"

    def __init__(self, rng: Optional[random.Random] = None):
        super().__init__(rng)
        self._fallback = ProseResponseParser(self._rng)

    @property
    def prompt(self) -> str:
        return JSON_PROMPT

    @staticmethod
    def _text(data: dict, key: str, default: str) -> str:
        return clean_sentence(data.get(key)) or default

    @staticmethod
    def _crops(value: Any) -> list[str]:
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        return parse_crop_names(value) if isinstance(value, str) else []

    def _confidence(self, value: Any, category: Optional[SoilCategory]) -> float:
        try:
            number = float(str(value).rstrip("%"))
        except (TypeError, ValueError):
            return self.jittered_confidence(category)
        return round(max(0.0, min(number, MAX_CONFIDENCE)), 1)

    def parse(self, text: str, file_name: str = "") -> SoilAnalysisResult:
        try:
            data = parse_json_response(text or "", "json-parser")
        except ValueError:
            logger.info("Reply is not JSON — reading it as prose")
            return self._fallback.parse(text, file_name)

        detected = detect_soil_type(str(data.get("soilType", ""))) or detect_soil_type(text)
        category = detected or DEFAULT_CATEGORY
        profile = get_profile(category)
        defaults = get_vocabulary()["fieldDefaults"]
        t = self._text

        suited = self._field("suitedCrops", lambda: self._crops(data.get("suitedCrops")), list(profile.suited_crops))
        avoid  = self._field("avoidCrops",  lambda: self._crops(data.get("avoidCrops")),  list(profile.avoid_crops))
        features = [f.lower() for f in _string_list(data.get("keyFeatures"))]
        colors = [c.lower() for c in _string_list(data.get("colors"))][:3]

        return SoilAnalysisResult(
            soil_type=category,
            confidence=self._confidence(data.get("confidence"), detected),
            name=profile.name,
            icon=profile.icon,
            color_theme=profile.color_theme,
            physical_properties={
                key: t(data, key, profile.physical_properties[key])
                for key in ("texture", "drainage", "waterRetention", "aeration", "structure")
            },
            chemical_properties={
                "phRange": self._field("phRange", lambda: extract_ph_range(f"pH {data.get('phRange', '')}"), DEFAULT_PH_RANGE),
                "npkLevels": {
                    n: t(data, n, profile.npk_levels[n]) for n in ("nitrogen", "phosphorus", "potassium")
                },
                "organicMatter": t(data, "organicMatter", profile.organic_matter),
                "nutrientAvailability": defaults["nutrientAvailability"],
                "salinity": defaults["salinity"],
                "deficiencyRisk": defaults["deficiencyRisk"],
            },
            agricultural_suitability={
                "suitedCrops": suited[:10],
                "avoidCrops": avoid[:5],
                "irrigationNeeds": t(data, "irrigationNeeds", profile.irrigation_needs),
                "fertilizationStrategy": t(data, "fertilizationStrategy", profile.fertilization_strategy),
                "amendments": t(data, "amendments", profile.amendments),
            },
            management_practices={
                key: t(data, key, profile.management_practices[key])
                for key in ("tillageRecommendations", "cropRotation", "plantingAdvice", "erosionControl")
            },
            recommendations=t(data, "recommendations", profile.recommendations),
            detected_labels=["soil", category.value, *features],
            dominant_colors=colors or ["brown", "natural"],
            analysis_details={
                "hasValidSoilImage": True,
                "fileName": file_name,
                "responseLength": len(text or ""),
                "soilTypeDetected": detected is not None,
            },
            seasonal_advice=t(data, "seasonalAdvice", defaults["seasonalAdvice"]),
            sustainability_factors=t(data, "sustainabilityFactors", defaults["sustainabilityFactors"]),
            full_analysis=text,
        )


PARSERS: dict[str, type[ResponseParser]] = {
    ProseResponseParser.style: ProseResponseParser,
    JsonResponseParser.style:  JsonResponseParser,
}


def get_parser(style: str, rng: Optional[random.Random] = None) -> ResponseParser:
    try:
        return PARSERS[style](rng)
    except KeyError:
        raise ValueError(f"Unknown response style '{style}'. Available: {', '.join(PARSERS)}") from None
