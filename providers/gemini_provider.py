"""
Google Gemini vision provider — uses the google-genai SDK.

The soil prompt asks for a long structured report, so max_output_tokens is
much higher than a one-line classification would need.

Pricing (per 1k tokens / per image, approximate):
  gemini-2.5-flash:      $0.0003 in,  $0.0025 out, image ≈ $0.0001
  gemini-2.0-flash:      $0.0001 in,  $0.0004 out, image ≈ $0.00004
  gemini-1.5-pro:        $0.0035 in,  $0.0105 out, image ≈ $0.0013
"""
from __future__ import annotations

import logging
import time

from google import genai
from google.genai import types as genai_types

from providers.base import (
    SYSTEM_PROMPT, ProviderReply, RemoteTextProvider, detect_mime,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

_SAFETY = [
    genai_types.SafetySetting(category="HARM_CATEGORY_HARASSMENT",  threshold="BLOCK_MEDIUM_AND_ABOVE"),
    genai_types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_MEDIUM_AND_ABOVE"),
]

_PRICING: dict[str, tuple[float, float, float]] = {
    # model_id: ($/1k_input_tokens, $/1k_output_tokens, $/image)
    "gemini-2.5-flash": (0.0003,  0.0025, 0.0001),
    "gemini-2.0-flash": (0.0001,  0.0004, 0.00004),
    "gemini-1.5-pro":   (0.0035,  0.0105, 0.001315),
}


class GeminiProvider(RemoteTextProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name     = "google"
        self.model_id = model
        self._client  = genai.Client(api_key=api_key)

        rates = _PRICING.get(model, _PRICING[DEFAULT_MODEL])
        self.cost_per_1k_input_tokens  = rates[0]
        self.cost_per_1k_output_tokens = rates[1]
        self.cost_per_image            = rates[2]

    async def generate(self, image_bytes: bytes, prompt: str) -> ProviderReply:
        gen_config = genai_types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=0.3,
            top_k=40,
            top_p=0.95,
            max_output_tokens=2048,
            safety_settings=_SAFETY,
        )

        t0 = time.monotonic()

        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=[
                prompt,
                genai_types.Part.from_bytes(data=image_bytes, mime_type=detect_mime(image_bytes)),
            ],
            config=gen_config,
        )

        latency_ms = int((time.monotonic() - t0) * 1000)
        raw = response.text or ""

        usage         = response.usage_metadata
        input_tokens  = getattr(usage, "prompt_token_count",     None) or 1000
        output_tokens = getattr(usage, "candidates_token_count", None) or 800

        return ProviderReply(
            provider_name = self.full_name,
            model_id      = self.model_id,
            text          = raw,
            latency_ms    = latency_ms,
            input_tokens  = input_tokens,
            output_tokens = output_tokens,
            cost_usd      = self.estimate_cost(input_tokens, output_tokens),
        )
