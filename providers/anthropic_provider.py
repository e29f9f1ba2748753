"""
Anthropic vision provider — supports claude-3-5-sonnet and claude-3-haiku.

Pricing (per 1M tokens):
  claude-3-5-sonnet-20241022: $3.00 input,  $15.00 output
  claude-3-haiku-20240307:    $0.25 input,  $1.25  output
Images cost roughly 1600 input tokens each.
"""
from __future__ import annotations

import base64
import logging
import time

import anthropic

from providers.base import (
    SYSTEM_PROMPT, ProviderReply, RemoteTextProvider, detect_mime,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-haiku-20240307"

_ANTHROPIC_IMAGE_TOKENS = 1600  # approximate tokens per image for Claude


class AnthropicProvider(RemoteTextProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name = "anthropic"
        self.model_id = model
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

        _pricing = {
            "claude-3-5-sonnet-20241022": (0.003,  0.015),
            "claude-3-haiku-20240307":    (0.00025, 0.00125),
        }
        self.cost_per_1k_input_tokens, self.cost_per_1k_output_tokens = _pricing.get(
            model, (0.003, 0.015)
        )
        self.cost_per_image = _ANTHROPIC_IMAGE_TOKENS / 1000 * self.cost_per_1k_input_tokens

    async def generate(self, image_bytes: bytes, prompt: str) -> ProviderReply:
        b64 = base64.b64encode(image_bytes).decode()
        media_type = detect_mime(image_bytes)
        if media_type == "image/bmp":
            # Claude accepts jpeg/png/gif/webp only
            media_type = "image/jpeg"
        t0 = time.monotonic()

        message = await self._client.messages.create(
            model=self.model_id,
            max_tokens=2048,
            temperature=0.3,
            system=SYSTEM_PROMPT,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": b64,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )

        latency_ms = int((time.monotonic() - t0) * 1000)
        raw = "".join(getattr(block, "text", "") for block in message.content)
        input_tokens = message.usage.input_tokens
        output_tokens = message.usage.output_tokens

        return ProviderReply(
            provider_name=self.full_name,
            model_id=self.model_id,
            text=raw,
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self.estimate_cost(input_tokens, output_tokens),
        )
