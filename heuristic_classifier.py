"""
Offline soil classifier — additive scoring over sampled colours, filename
hints and simple image statistics.

No model, no network: it is the fallback when the remote AI is unavailable.
Scores are additive evidence points, not probabilities, and the confidence
figure is deliberately kept inside [72, 98].

Scoring sources, in order:
  1. filename keywords        +0.8 per keyword hit
  2. palette proximity        (255 - min distance) / 255 × colour frequency
  3. brightness / saturation  fixed threshold bonuses
  4. grayish tones, uniform colour  extra silt bonuses
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Optional

from color_sampler import ColorSampler, rgb_distance
from errors import ClassificationError
from soil_data import SoilProfile, get_profiles
from soil_result import ColorSample, SampledColor, SoilAnalysisResult, SoilCategory

logger = logging.getLogger(__name__)

ENGINE_NAME = "Smart Color Analysis Engine"

FILENAME_BONUS     = 0.8
MIN_WINNING_SCORE  = 0.1
FALLBACK_CATEGORY  = SoilCategory.LOAM
CONFIDENCE_JITTER  = 7.5
CONFIDENCE_FLOOR   = 72.0
CONFIDENCE_CEILING = 98.0
BASE_LABELS        = ("soil", "earth", "ground")

S, C, L, T = SoilCategory.SANDY, SoilCategory.CLAY, SoilCategory.LOAM, SoilCategory.SILT

# (lower bound exclusive, bonuses); first matching band wins
_BRIGHT_BANDS = [
    (180, {S: 0.4, T: 0.2}),
    (150, {S: 0.3, T: 0.3}),
]
# (upper bound exclusive, bonuses)
_DARK_BANDS = [
    (100, {C: 0.3, L: 0.2}),
    (130, {L: 0.2}),
]
HIGH_SATURATION = 0.3
LOW_SATURATION  = 0.15
GRAYISH_SILT_BONUS = 0.5
UNIFORM_SILT_BONUS = 0.3


def weighted_brightness(colors: list[SampledColor]) -> float:
    return sum(c.brightness * c.frequency for c in colors)


def weighted_saturation(colors: list[SampledColor]) -> float:
    return sum(c.saturation * c.frequency for c in colors)


def is_uniform(colors: list[SampledColor]) -> bool:
    return bool(colors) and len(colors) <= 2 and colors[0].frequency > 0.6


class HeuristicClassifier:

    name = ENGINE_NAME

    def __init__(
        self,
        sampler: Optional[ColorSampler] = None,
        rng: Optional[random.Random] = None,
    ):
        self._sampler  = sampler or ColorSampler()
        self._rng      = rng or random.Random()
        self._profiles = get_profiles()

    # ── Scoring ────────────────────────────────────────────────────────────────

    def filename_scores(self, file_name: str) -> dict[SoilCategory, float]:
        lowered = (file_name or "").lower()
        scores = {c: 0.0 for c in SoilCategory}
        for category, profile in self._profiles.items():
            for keyword in profile.keywords:
                if keyword in lowered:
                    scores[category] += FILENAME_BONUS
                    logger.debug("Filename keyword %r -> +%.1f %s", keyword, FILENAME_BONUS, category.value)
        return scores

    @staticmethod
    def color_similarity(color: SampledColor, profile: SoilProfile) -> float:
        min_distance = min(rgb_distance(color.rgb, ref) for ref in profile.palette)
        return max(0.0, (255 - min_distance) / 255) * color.frequency

    def score(self, sample: ColorSample, file_name: str) -> dict[SoilCategory, float]:
        scores = self.filename_scores(file_name)
        colors = sample.colors

        for color in colors:
            for category, profile in self._profiles.items():
                scores[category] += self.color_similarity(color, profile)

        if not colors:
            return scores

        brightness = weighted_brightness(colors)
        saturation = weighted_saturation(colors)

        bonuses: dict[SoilCategory, float] = {}
        for floor, band in _BRIGHT_BANDS:
            if brightness > floor:
                bonuses = band
                break
        else:
            for ceiling, band in _DARK_BANDS:
                if brightness < ceiling:
                    bonuses = band
                    break
        for category, bonus in bonuses.items():
            scores[category] += bonus

        if saturation > HIGH_SATURATION:
            scores[C] += 0.3
        elif saturation < LOW_SATURATION:
            scores[T] += 0.4
            scores[S] += 0.1

        # These two overlap with the saturation bonus above (see DESIGN.md)
        if any(c.is_grayish for c in colors):
            scores[T] += GRAYISH_SILT_BONUS
        if is_uniform(colors):
            scores[T] += UNIFORM_SILT_BONUS

        return scores

    def confidence(self, scores: dict[SoilCategory, float]) -> float:
        total = sum(scores.values())
        best = max(scores.values())
        raw = (best / total) * 100 if total > 0 else 75.0
        raw += self._rng.uniform(-CONFIDENCE_JITTER, CONFIDENCE_JITTER)
        return round(max(CONFIDENCE_FLOOR, min(raw, CONFIDENCE_CEILING)), 1)

    @staticmethod
    def pick(scores: dict[SoilCategory, float]) -> SoilCategory:
        # max() returns the first maximal key, so ties follow SoilCategory order
        best = max(scores, key=lambda c: scores[c])
        return best if scores[best] > MIN_WINNING_SCORE else FALLBACK_CATEGORY

    # ── Public API ─────────────────────────────────────────────────────────────

    def classify_sample(
        self,
        sample: ColorSample,
        file_name: str,
        started: Optional[float] = None,
    ) -> SoilAnalysisResult:
        t0 = started if started is not None else time.monotonic()
        scores = self.score(sample, file_name)

        if not sample and not any(scores.values()):
            raise ClassificationError(
                "No colour samples and no filename hint — cannot classify this image"
            )

        category = self.pick(scores)
        confidence = self.confidence(scores)
        logger.info(
            "Heuristic scores: %s -> %s (%.1f%%)",
            ", ".join(f"{c.value}={s:.3f}" for c, s in scores.items()),
            category.value, confidence,
        )

        profile = self._profiles[category]
        labels = [*BASE_LABELS, *profile.labels]
        processing = time.monotonic() - t0

        return SoilAnalysisResult(
            soil_type=category,
            confidence=confidence,
            name=profile.name,
            icon=profile.icon,
            color_theme=profile.color_theme,
            physical_properties=dict(profile.physical_properties),
            chemical_properties={
                "phRange": profile.ph_range,
                "npkLevels": dict(profile.npk_levels),
                "organicMatter": profile.organic_matter,
            },
            agricultural_suitability={
                "suitedCrops": list(profile.suited_crops),
                "avoidCrops": list(profile.avoid_crops),
                "irrigationNeeds": profile.irrigation_needs,
                "fertilizationStrategy": profile.fertilization_strategy,
                "amendments": profile.amendments,
            },
            management_practices=dict(profile.management_practices),
            recommendations=profile.recommendations,
            detected_labels=labels,
            dominant_colors=[c.hex for c in sample.colors],
            analysis_details={
                "hasValidSoilImage": True,
                "processingTime": f"{processing:.1f}",
                "apiUsed": self.name,
                "fileName": file_name,
                "totalLabelsDetected": len(labels),
                "avgBrightness": round(weighted_brightness(sample.colors)),
                "avgSaturation": round(weighted_saturation(sample.colors) * 100),
                "colorAnalysisPoints": sample.pixel_count,
            },
        )

    async def classify(self, image_bytes: bytes, file_name: str) -> SoilAnalysisResult:
        """Decode + sample off the event loop, then score."""
        t0 = time.monotonic()
        sample = await asyncio.to_thread(self._sampler.sample, image_bytes)
        return self.classify_sample(sample, file_name, started=t0)
