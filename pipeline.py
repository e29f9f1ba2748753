"""
ClassificationPipeline — remote AI first, colour heuristic second.

    TryRemote ──ok──────────────────────────────▶ Done
        │ RemoteAnalysisError / no remote
        ▼
    TryHeuristic ──ok───────────────────────────▶ Done
        │ ImageDecodeError / ClassificationError
        ▼
    Fail → SoilAnalysisResult.failure(...)

No retries and no merging: the first backend that succeeds wins. analyse()
never raises for backend failures; callers always get a result to render.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import config
from advice import detailed_analysis
from errors import AnalysisFailed
from heuristic_classifier import HeuristicClassifier
from providers.base import detect_mime
from remote_classifier import RemoteTextClassifier
from response_parser import get_parser
from soil_result import SoilAnalysisResult

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Unable to analyze soil image"


class ClassificationPipeline:

    def __init__(
        self,
        remote: Optional[RemoteTextClassifier],
        heuristic: HeuristicClassifier,
    ):
        self.remote = remote
        self.heuristic = heuristic

    async def analyse(self, image_bytes: bytes, file_name: str = "") -> SoilAnalysisResult:
        if self.remote is not None:
            try:
                result = await self.remote.classify(image_bytes, file_name)
                logger.info("Remote analysis of %r: %s", file_name, result.soil_type.value)
                return result
            except Exception as exc:
                logger.warning("Remote analysis failed (%s), falling back to heuristic", exc)

        try:
            result = await self.heuristic.classify(image_bytes, file_name)
        except Exception as exc:
            failure = AnalysisFailed(f"{FAILURE_PREFIX}: {exc}")
            logger.error("Analysis of %r failed: %s", file_name, failure)
            return SoilAnalysisResult.failure(str(failure), file_name)

        logger.info("Heuristic analysis of %r: %s", file_name, result.soil_type.value)
        return result

    async def analyse_detailed(self, image_bytes: bytes, file_name: str = "") -> dict[str, Any]:
        """analyse() plus the advice block (action plan, timestamp, image info)."""
        result = await self.analyse(image_bytes, file_name)
        return detailed_analysis(result, image_bytes, detect_mime(image_bytes))


def build_pipeline() -> ClassificationPipeline:
    """Wire config → provider → parser → classifiers. Heuristic-only without a provider."""
    from providers.manager import get_provider

    # Unknown provider/style names raise ValueError, a missing SDK ImportError
    try:
        remote: Optional[RemoteTextClassifier] = RemoteTextClassifier(
            get_provider(),
            get_parser(config.RESPONSE_STYLE),
            timeout=config.REMOTE_TIMEOUT_SECONDS,
        )
    except (RuntimeError, ValueError, ImportError) as exc:
        logger.warning("Remote analysis unavailable, running heuristic only: %s", exc)
        remote = None
    return ClassificationPipeline(remote, HeuristicClassifier())
