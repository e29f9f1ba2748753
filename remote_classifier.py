"""
Remote AI backend — one vision-model call, then a ResponseParser.

The provider (providers/) owns the vendor wire format; the parser
(response_parser.py) owns the reply format. This module only adds the
timeout, the error translation and the bookkeeping fields.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Optional

import config
from errors import RemoteAnalysisError
from providers.base import RemoteTextProvider
from response_parser import ProseResponseParser, ResponseParser
from soil_result import SoilAnalysisResult

logger = logging.getLogger(__name__)

API_LABEL = "AI Vision Analysis"


def _status_of(exc: Exception) -> Optional[int]:
    """HTTP status carried by an SDK exception, if any."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


class RemoteTextClassifier:

    def __init__(
        self,
        provider: RemoteTextProvider,
        parser: Optional[ResponseParser] = None,
        timeout: float = config.REMOTE_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.parser = parser or ProseResponseParser()
        self.timeout = timeout

    @property
    def name(self) -> str:
        return f"{API_LABEL} ({self.provider.full_name})"

    async def classify(self, image_bytes: bytes, file_name: str) -> SoilAnalysisResult:
        """Raises RemoteAnalysisError on timeout, transport/HTTP failure or an empty reply."""
        t0 = time.monotonic()
        try:
            reply = await asyncio.wait_for(
                self.provider.generate(image_bytes, self.parser.prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise RemoteAnalysisError(
                f"{self.provider.full_name} did not answer within {self.timeout:g}s"
            ) from exc
        except Exception as exc:
            raise RemoteAnalysisError(
                f"{self.provider.full_name} request failed: {exc}", status=_status_of(exc)
            ) from exc

        if not reply.text or not reply.text.strip():
            raise RemoteAnalysisError(f"{self.provider.full_name} returned an empty reply")

        logger.info(
            "[%s] reply: %d chars, %dms, %d/%d tokens, %s",
            reply.provider_name, len(reply.text), reply.latency_ms,
            reply.input_tokens, reply.output_tokens, reply.cost_str,
        )

        result = self.parser.parse(reply.text, file_name)
        details = {
            **result.analysis_details,
            "processingTime": f"{time.monotonic() - t0:.1f}",
            "apiUsed": self.name,
            "provider": reply.provider_name,
            "responseStyle": self.parser.style,
            "responseLength": len(reply.text),
            "latencyMs": reply.latency_ms,
            "costUsd": round(reply.cost_usd, 6),
            "hasValidSoilImage": True,
            "fileName": file_name,
        }
        return dataclasses.replace(result, analysis_details=details)
