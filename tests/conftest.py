"""
Shared pytest fixtures.

Test images are generated in memory with Pillow, so the suite needs no
fixture files and never touches the network.
"""
from __future__ import annotations

import asyncio
import io
import random
import sys
from pathlib import Path

import pytest
from PIL import Image

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from providers.base import ProviderReply, RemoteTextProvider  # noqa: E402


def solid_image(rgb=(160, 82, 45), size=(64, 64), fmt="PNG", alpha=255) -> bytes:
    """Encode a single-colour image."""
    mode = "RGBA" if fmt == "PNG" else "RGB"
    colour = (*rgb, alpha) if mode == "RGBA" else rgb
    img = Image.new(mode, size, colour)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def striped_image(colours, size=(100, 100)) -> bytes:
    """Vertical bands of equal width, one per colour."""
    img = Image.new("RGB", size)
    band = size[0] // len(colours)
    for i, rgb in enumerate(colours):
        img.paste(rgb, (i * band, 0, (i + 1) * band if i < len(colours) - 1 else size[0], size[1]))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeProvider(RemoteTextProvider):
    """Returns a canned reply, raises a canned error, or hangs."""

    def __init__(self, text: str = "", error: Exception | None = None, delay: float = 0.0):
        self.name = "fake"
        self.model_id = "vision-1"
        self.cost_per_1k_input_tokens = 0.001
        self.cost_per_1k_output_tokens = 0.002
        self.text = text
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(self, image_bytes: bytes, prompt: str) -> ProviderReply:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return ProviderReply(
            provider_name=self.full_name,
            model_id=self.model_id,
            text=self.text,
            latency_ms=12,
            input_tokens=1000,
            output_tokens=500,
            cost_usd=self.estimate_cost(1000, 500),
        )


@pytest.fixture
def clay_png() -> bytes:
    return solid_image((160, 82, 45))


@pytest.fixture
def blank_png() -> bytes:
    """Fully transparent — decodes fine but yields no colour samples."""
    return solid_image((0, 0, 0), alpha=0)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """Redirect DATA_DIR (log file location) to a fresh tmp directory."""
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))

    import config
    monkeypatch.setattr(config, "DATA_DIR", str(data))
    yield data


@pytest.fixture(autouse=True)
def reset_provider_cache():
    """Each test starts with a clean provider cache."""
    import providers.manager as manager_mod
    manager_mod.reset_provider()
    yield
    manager_mod.reset_provider()
