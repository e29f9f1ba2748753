"""
Tests for response_parser.py — turning model replies into results.

Covers:
  - soil-type detection order and the loam default
  - section extraction, garbage rejection, pH/NPK/organic patterns
  - crop list parsing against the vocabulary
  - JSON replies, and JSON-style falling back to prose
  - arbitrary input never raises
"""
from __future__ import annotations

import json
import random
import string

import pytest

from response_parser import (
    JSON_PROMPT, PROSE_PROMPT, JsonResponseParser, ProseResponseParser,
    clean_sentence, detect_soil_type, extract_clean_section, extract_ph_range,
    get_parser, parse_crop_names,
)
from soil_data import get_profile
from soil_result import SoilCategory


class FixedRandom:
    def __init__(self, value: float = 0.0):
        self.value = value

    def random(self):
        return self.value

    def uniform(self, a, b):
        return self.value


SANDY_REPLY = """**SOIL IDENTIFICATION:**
- Primary soil type: Sandy loam with coarse particles
- Confidence level: 85%

**PHYSICAL PROPERTIES:**
- Texture description: Gritty and coarse with visible grains. Feels rough between the fingers. Dry clods crumble instantly.
- Drainage capability: Excellent drainage due to large pore spaces.
- Water retention capacity: Low, water passes through quickly.
- Aeration level: Very high aeration throughout the profile.
- Structure and porosity: Single-grained and highly porous.

**CHEMICAL PROPERTIES:**
- Estimated pH range: pH 5.5 to 6.8
- Likely nutrient content: Moderate overall fertility.
- Nitrogen (N): Low levels due to leaching
- Phosphorus (P): Moderate availability in the topsoil
- Potassium (K): Low and easily leached
- Organic matter content: Around 1-2 percent, quite low

**AGRICULTURAL SUITABILITY:**
- Best suited crops: Potatoes, Carrots, Radishes, Sweet Corn, Peanuts
- Crops to avoid: Rice, Watermelon
- Irrigation recommendations: Drip irrigation with frequent light watering.

**SPECIFIC CONCERNS:**
- Seasonal considerations: Plant early in spring when the soil warms.

**EXPERT RECOMMENDATIONS:**
- Add compost every season. Use mulch to hold moisture.
"""


@pytest.fixture
def prose() -> ProseResponseParser:
    return ProseResponseParser(rng=FixedRandom(0.5))


# ── Helpers ────────────────────────────────────────────────────────────────────

class TestDetectSoilType:
    def test_sandy_checked_before_loam(self):
        assert detect_soil_type("A sandy loam texture") == SoilCategory.SANDY

    def test_clay_checked_before_silt(self):
        assert detect_soil_type("silty clay") == SoilCategory.CLAY

    def test_case_insensitive(self):
        assert detect_soil_type("SILT deposits") == SoilCategory.SILT

    def test_nothing_matches(self):
        assert detect_soil_type("a photo of a dog") is None


class TestCleanSentence:
    def test_strips_markup_and_leading_punctuation(self):
        assert clean_sentence("**: - Well drained soil**") == "Well drained soil"

    def test_collapses_whitespace(self):
        assert clean_sentence("Very   loose\n structure") == "Very loose structure"

    def test_too_short(self):
        assert clean_sentence("Low") is None

    def test_non_string(self):
        assert clean_sentence(None) is None
        assert clean_sentence(42) is None

    @pytest.mark.parametrize("junk", [
        "As an expert soil scientist I can see sand",
        "Reddish tones from iron oxide coatings",
        "n): moderate nitrogen supply",
    ])
    def test_denylist(self, junk):
        assert clean_sentence(junk) is None


class TestExtractCleanSection:
    def test_two_sentences_max(self):
        text = "Texture: One thing here. Two things there. Three is too many."
        assert extract_clean_section(text, "texture") == "One thing here. Two things there."

    def test_stops_at_line_break(self):
        text = "Drainage: fast through the profile\nAeration: high"
        assert extract_clean_section(text, "drainage") == "fast through the profile"

    def test_decimal_point_is_not_a_sentence_end(self):
        text = "pH note: stays near 6.5 most of the year. Lime is not needed. Extra."
        assert extract_clean_section(text, "ph note") == "stays near 6.5 most of the year. Lime is not needed."

    def test_budget_cuts_at_word_boundary(self):
        text = "Structure: " + "granular crumbs " * 30
        found = extract_clean_section(text, "structure", max_length=50)
        assert len(found) <= 50
        assert found.endswith("crumbs") or found.endswith("granular")

    def test_missing_keyword(self):
        assert extract_clean_section("nothing here", "texture") is None

    def test_value_on_next_line(self):
        text = "EXPERT RECOMMENDATIONS:\n- Add compost every season."
        assert extract_clean_section(text, "expert recommendations") == "Add compost every season."


class TestExtractPhRange:
    @pytest.mark.parametrize("text,expected", [
        ("pH 5.5 to 6.8", "5.5-6.8"),
        ("Estimated pH range: 6.0-7.0", "6.0-7.0"),
        ("pH of about 6.2 – 7.1 overall", "6.2-7.1"),
        ("The pH is 6.5", "6.5-7.0"),
        ("no acidity info at all", "6.0-7.0"),
        ("pH 15-18 is impossible", "6.0-7.0"),
    ])
    def test_patterns(self, text, expected):
        assert extract_ph_range(text) == expected


class TestParseCropNames:
    def test_vocabulary_names_title_cased(self):
        assert parse_crop_names("potatoes, carrots, sweet corn") == ["Potatoes", "Carrots", "Sweet Corn"]

    def test_longer_name_not_split(self):
        assert parse_crop_names("sweet potatoes") == ["Sweet Potatoes"]

    def test_short_unknown_segment_accepted(self):
        assert parse_crop_names("okra, taro root") == ["Okra", "Taro Root"]

    def test_filler_segments_dropped(self):
        assert parse_crop_names("crops that tolerate well-drained conditions") == []

    def test_deduplicated(self):
        assert parse_crop_names("Beans, beans, BEANS") == ["Beans"]

    def test_numbered_list(self):
        assert parse_crop_names("1. Wheat\n2. Barley\n3. Oats") == ["Wheat", "Barley", "Oats"]

    def test_conjunction_joined(self):
        assert parse_crop_names("lettuce and spinach") == ["Lettuce", "Spinach"]


# ── Prose parser ───────────────────────────────────────────────────────────────

class TestProseParser:
    def test_prompt(self, prose):
        assert prose.prompt == PROSE_PROMPT
        assert "Best suited crops" in prose.prompt

    def test_full_reply(self, prose):
        r = prose.parse(SANDY_REPLY, "field.jpg")
        assert r.soil_type == SoilCategory.SANDY
        assert r.name == "Sandy Soil"
        assert r.confidence == 93.0
        assert r.physical_properties["texture"] == (
            "Gritty and coarse with visible grains. Feels rough between the fingers."
        )
        assert r.physical_properties["drainage"] == "Excellent drainage due to large pore spaces."
        assert r.chemical_properties["phRange"] == "5.5-6.8"
        assert r.chemical_properties["npkLevels"] == {
            "nitrogen": "Low levels due to leaching",
            "phosphorus": "Moderate availability in the topsoil",
            "potassium": "Low and easily leached",
        }
        assert r.chemical_properties["organicMatter"] == "Around 1-2 percent, quite low"
        assert r.agricultural_suitability["suitedCrops"] == [
            "Potatoes", "Carrots", "Radishes", "Sweet Corn", "Peanuts",
        ]
        assert r.agricultural_suitability["avoidCrops"] == ["Rice", "Watermelon"]
        assert r.agricultural_suitability["irrigationNeeds"] == "Drip irrigation with frequent light watering."
        assert r.seasonal_advice == "Plant early in spring when the soil warms."
        assert r.recommendations == "Add compost every season. Use mulch to hold moisture."
        assert r.full_analysis == SANDY_REPLY
        assert r.analysis_details["fileName"] == "field.jpg"

    def test_labels_start_with_soil_and_category(self, prose):
        r = prose.parse(SANDY_REPLY)
        assert r.detected_labels[:2] == ["soil", "sandy"]
        assert "gritty" in r.detected_labels
        assert len(r.detected_labels) <= 6

    def test_missing_fields_fall_back_to_category_defaults(self, prose):
        r = prose.parse("This looks like a clay soil.")
        clay = get_profile(SoilCategory.CLAY)
        assert r.soil_type == SoilCategory.CLAY
        assert r.physical_properties == clay.physical_properties
        assert r.agricultural_suitability["suitedCrops"] == list(clay.suited_crops)
        assert r.agricultural_suitability["avoidCrops"] == list(clay.avoid_crops)
        assert r.chemical_properties["npkLevels"] == clay.npk_levels
        assert r.chemical_properties["phRange"] == "6.0-7.0"
        assert r.dominant_colors == ["brown", "natural"]

    def test_garbage_field_uses_default(self, prose):
        text = "Silt.\nTexture description: As an expert soil scientist I note fine grains."
        r = prose.parse(text)
        assert r.physical_properties["texture"] == get_profile(SoilCategory.SILT).physical_properties["texture"]

    def test_crop_lists_capped(self, prose):
        crops = ", ".join(["Wheat", "Barley", "Oats", "Rice", "Corn", "Beans", "Peas", "Kale",
                           "Chard", "Leeks", "Celery", "Basil"])
        r = prose.parse(f"Loam soil.\nBest suited crops: {crops}")
        assert len(r.agricultural_suitability["suitedCrops"]) == 10

    @pytest.mark.parametrize("text,category,low,high", [
        ("sandy", SoilCategory.SANDY, 88, 98),
        ("clay", SoilCategory.CLAY, 90, 98),
        ("loam", SoilCategory.LOAM, 92, 98),
        ("silt", SoilCategory.SILT, 87, 96),
    ])
    def test_single_word_confidence_band(self, text, category, low, high):
        parser = ProseResponseParser(rng=random.Random(99))
        r = parser.parse(text)
        assert r.soil_type == category
        assert low <= r.confidence <= high

    def test_confidence_capped_at_98(self):
        r = ProseResponseParser(rng=FixedRandom(0.999)).parse("sandy")
        assert r.confidence == 98.0


class TestProseParserRobustness:
    def test_empty_text(self, prose):
        r = prose.parse("")
        assert r.soil_type == SoilCategory.LOAM
        assert r.confidence == 85.0
        assert not r.error

    def test_non_string(self, prose):
        r = prose.parse(None)
        assert r.soil_type == SoilCategory.LOAM

    def test_random_10kb(self):
        rnd = random.Random(7)
        alphabet = string.printable + "–—•é"
        text = "".join(rnd.choice(alphabet) for _ in range(10_000))
        r = ProseResponseParser(rng=rnd).parse(text)
        assert r.soil_type in SoilCategory
        assert 0 <= r.confidence <= 98
        assert len(r.agricultural_suitability["suitedCrops"]) <= 10

    def test_only_labels_no_values(self, prose):
        text = "Texture description:\nDrainage capability:\nBest suited crops:\nCrops to avoid:\npH"
        r = prose.parse(text)
        assert r.soil_type == SoilCategory.LOAM
        assert r.chemical_properties["phRange"] == "6.0-7.0"

    def test_extraction_failure_degrades_field(self, prose, monkeypatch):
        import response_parser

        def boom(*_):
            raise RuntimeError("regex engine exploded")

        monkeypatch.setattr(response_parser, "extract_ph_range", boom)
        r = prose.parse(SANDY_REPLY)
        assert r.chemical_properties["phRange"] == "6.0-7.0"
        assert r.soil_type == SoilCategory.SANDY


# ── JSON parser ────────────────────────────────────────────────────────────────

class TestJsonParser:
    def make_reply(self, **overrides) -> str:
        data = {
            "soilType": "clay",
            "confidence": 87,
            "texture": "Smooth and sticky when wet.",
            "drainage": "Slow drainage after heavy rain.",
            "phRange": "6.5-7.5",
            "nitrogen": "Moderate nitrogen reserves",
            "suitedCrops": ["Wheat", "Barley", "Cabbage"],
            "avoidCrops": ["Carrots"],
            "recommendations": "Add gypsum and compost before planting.",
            "keyFeatures": ["sticky", "dense"],
            "colors": ["Red", "brown"],
        }
        data.update(overrides)
        return json.dumps(data)

    def test_prompt(self):
        assert JsonResponseParser().prompt == JSON_PROMPT

    def test_valid_json(self):
        r = JsonResponseParser().parse(self.make_reply(), "x.png")
        assert r.soil_type == SoilCategory.CLAY
        assert r.confidence == 87.0
        assert r.physical_properties["texture"] == "Smooth and sticky when wet."
        assert r.physical_properties["aeration"] == get_profile(SoilCategory.CLAY).physical_properties["aeration"]
        assert r.chemical_properties["phRange"] == "6.5-7.5"
        assert r.chemical_properties["npkLevels"]["nitrogen"] == "Moderate nitrogen reserves"
        assert r.agricultural_suitability["suitedCrops"] == ["Wheat", "Barley", "Cabbage"]
        assert r.agricultural_suitability["avoidCrops"] == ["Carrots"]
        assert r.detected_labels == ["soil", "clay", "sticky", "dense"]
        assert r.dominant_colors == ["red", "brown"]

    def test_fenced_json(self):
        r = JsonResponseParser().parse("```json\n" + self.make_reply(soilType="silt") + "\n```")
        assert r.soil_type == SoilCategory.SILT

    def test_confidence_percent_string_and_cap(self):
        assert JsonResponseParser().parse(self.make_reply(confidence="91%")).confidence == 91.0
        assert JsonResponseParser().parse(self.make_reply(confidence=120)).confidence == 98.0

    def test_bad_confidence_uses_category_jitter(self):
        r = JsonResponseParser(rng=FixedRandom(0.0)).parse(self.make_reply(confidence="high"))
        assert r.confidence == 90.0

    def test_wrong_types_use_defaults(self):
        r = JsonResponseParser().parse(self.make_reply(keyFeatures="sticky", colors=None, suitedCrops=5))
        assert r.detected_labels == ["soil", "clay"]
        assert r.dominant_colors == ["brown", "natural"]
        assert r.agricultural_suitability["suitedCrops"] == list(get_profile(SoilCategory.CLAY).suited_crops)

    def test_prose_reply_falls_back(self):
        r = JsonResponseParser(rng=FixedRandom(0.5)).parse(SANDY_REPLY)
        assert r.soil_type == SoilCategory.SANDY
        assert r.chemical_properties["phRange"] == "5.5-6.8"

    def test_json_array_falls_back(self):
        r = JsonResponseParser().parse('["clay"]')
        assert r.soil_type == SoilCategory.CLAY


class TestGetParser:
    def test_known_styles(self):
        assert isinstance(get_parser("prose"), ProseResponseParser)
        assert isinstance(get_parser("json"), JsonResponseParser)

    def test_unknown_style(self):
        with pytest.raises(ValueError, match="Unknown response style"):
            get_parser("xml")
