"""
OpenAI vision provider — supports gpt-4o and gpt-4o-mini.

Pricing (per 1M tokens):
  gpt-4o:       $5.00 input,  $15.00 output
  gpt-4o-mini:  $0.15 input,  $0.60 output
A typical soil photo at high detail costs ≈ 765 input tokens.
"""
from __future__ import annotations

import base64
import logging
import time

from openai import AsyncOpenAI

from providers.base import (
    SYSTEM_PROMPT, ProviderReply, RemoteTextProvider, detect_mime,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(RemoteTextProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name = "openai"
        self.model_id = model
        self._client = AsyncOpenAI(api_key=api_key)

        # Pricing per 1k tokens
        _pricing = {
            "gpt-4o":      (0.005,  0.015),
            "gpt-4o-mini": (0.00015, 0.0006),
        }
        self.cost_per_1k_input_tokens, self.cost_per_1k_output_tokens = _pricing.get(
            model, (0.005, 0.015)
        )
        self.cost_per_image = 765 / 1000 * self.cost_per_1k_input_tokens

    async def generate(self, image_bytes: bytes, prompt: str) -> ProviderReply:
        b64 = base64.b64encode(image_bytes).decode()
        mime = detect_mime(image_bytes)
        t0 = time.monotonic()

        response = await self._client.chat.completions.create(
            model=self.model_id,
            max_tokens=2048,
            temperature=0.3,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{mime};base64,{b64}",
                                "detail": "high",
                            },
                        },
                    ],
                },
            ],
        )

        latency_ms = int((time.monotonic() - t0) * 1000)
        raw = response.choices[0].message.content or ""
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 1000
        output_tokens = usage.completion_tokens if usage else 800

        return ProviderReply(
            provider_name=self.full_name,
            model_id=self.model_id,
            text=raw,
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self.estimate_cost(input_tokens, output_tokens),
        )
