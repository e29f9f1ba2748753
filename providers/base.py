"""
Shared types and base class for all remote vision providers.

A provider is deliberately dumb: image + instruction in, free text out.
Turning that text into a SoilAnalysisResult is the job of response_parser.py,
so the wire format of each vendor never leaks past this package.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ── Prompt (shared across all providers) ──────────────────────────────────────

SYSTEM_PROMPT = (
    "You are an expert soil scientist and agricultural consultant. "
    "You give detailed, practical advice suitable for farmers and agricultural professionals."
)


# ── Shared reply type ──────────────────────────────────────────────────────────

@dataclass
class ProviderReply:
    """Raw reply from a single provider call."""
    provider_name: str          # e.g. "google/gemini-2.0-flash"
    model_id: str
    text: str
    latency_ms: int             # wall-clock time for this call
    input_tokens: int
    output_tokens: int
    cost_usd: float             # estimated cost

    @property
    def cost_str(self) -> str:
        if self.cost_usd < 0.001:
            return f"${self.cost_usd * 1000:.3f}m"   # show in milli-dollars
        return f"${self.cost_usd:.4f}"


def detect_mime(image_bytes: bytes) -> str:
    """Sniff the MIME type from magic bytes (default jpeg)."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:2] == b"BM":
        return "image/bmp"
    return "image/jpeg"


def parse_json_response(raw: str, provider_name: str) -> dict:
    """
    Parse JSON from a model response, handling markdown fences gracefully.
    Raises ValueError on parse failure.
    """
    text = raw.strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("[%s] Non-JSON response: %s", provider_name, raw[:300])
        raise ValueError(f"[{provider_name}] JSON parse error: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"[{provider_name}] JSON parse error: expected an object, got {type(data).__name__}")
    return data


# ── Abstract base ──────────────────────────────────────────────────────────────

class RemoteTextProvider(ABC):
    """Base class all remote providers must implement."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-2.0-flash"
    cost_per_1k_input_tokens: float
    cost_per_1k_output_tokens: float
    # Extra per-image cost for vision (input image processing flat fee or per-tile)
    cost_per_image: float = 0.0

    @abstractmethod
    async def generate(self, image_bytes: bytes, prompt: str) -> ProviderReply:
        """Send image_bytes + prompt, return the model's text reply."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            self.cost_per_image
            + input_tokens / 1000 * self.cost_per_1k_input_tokens
            + output_tokens / 1000 * self.cost_per_1k_output_tokens
        )
