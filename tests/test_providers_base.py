"""
Tests for providers/base.py — ProviderReply, detect_mime and parse_json_response.

Covers:
  - cost_str formatting (milli-dollar vs dollar)
  - estimate_cost arithmetic and full_name
  - MIME sniffing from magic bytes
  - parse_json_response: plain JSON, markdown-fenced JSON, invalid JSON
"""
from __future__ import annotations

import pytest

from conftest import FakeProvider, solid_image
from providers.base import ProviderReply, detect_mime, parse_json_response


def make_reply(**kwargs) -> ProviderReply:
    defaults = dict(
        provider_name="test/model",
        model_id="model",
        text="Sandy soil.",
        latency_ms=1200,
        input_tokens=800,
        output_tokens=150,
        cost_usd=0.005,
    )
    defaults.update(kwargs)
    return ProviderReply(**defaults)


# ── cost_str ──────────────────────────────────────────────────────────────────

class TestCostStr:
    def test_sub_millidollar_shows_m_notation(self):
        r = make_reply(cost_usd=0.0005)
        assert "m" in r.cost_str   # milli-dollar notation

    def test_over_millidollar_shows_dollar(self):
        r = make_reply(cost_usd=0.01)
        assert r.cost_str.startswith("$")
        assert "m" not in r.cost_str

    def test_zero_cost(self):
        r = make_reply(cost_usd=0.0)
        # Should not crash; shows something
        assert "$" in r.cost_str or "m" in r.cost_str


# ── RemoteTextProvider helpers ────────────────────────────────────────────────

class TestProviderBase:
    def test_full_name(self):
        assert FakeProvider().full_name == "fake/vision-1"

    def test_estimate_cost(self):
        p = FakeProvider()
        p.cost_per_image = 0.01
        assert p.estimate_cost(2000, 1000) == pytest.approx(0.01 + 0.002 + 0.002)


# ── detect_mime ───────────────────────────────────────────────────────────────

class TestDetectMime:
    def test_png(self):
        assert detect_mime(solid_image(fmt="PNG")) == "image/png"

    def test_jpeg(self):
        assert detect_mime(solid_image(fmt="JPEG")) == "image/jpeg"

    def test_gif(self):
        assert detect_mime(b"GIF89a" + b"\x00" * 10) == "image/gif"

    def test_webp(self):
        assert detect_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"

    def test_bmp(self):
        assert detect_mime(b"BM" + b"\x00" * 10) == "image/bmp"

    def test_unknown_defaults_to_jpeg(self):
        assert detect_mime(b"") == "image/jpeg"


# ── parse_json_response ───────────────────────────────────────────────────────

class TestParseJsonResponse:
    def test_plain_json(self):
        raw = '{"soilType": "clay", "confidence": 88}'
        data = parse_json_response(raw, "testprovider")
        assert data["soilType"] == "clay"
        assert data["confidence"] == 88

    def test_json_fenced_with_backticks(self):
        raw = "```json\n{\"soilType\": \"silt\"}\n```"
        data = parse_json_response(raw, "testprovider")
        assert data["soilType"] == "silt"

    def test_json_fenced_without_language_hint(self):
        raw = "```\n{\"soilType\": \"silt\"}\n```"
        data = parse_json_response(raw, "testprovider")
        assert data["soilType"] == "silt"

    def test_leading_trailing_whitespace(self):
        raw = '  \n  {"soilType": "loam"}  \n  '
        data = parse_json_response(raw, "testprovider")
        assert data["soilType"] == "loam"

    def test_invalid_json_raises_value_error(self):
        raw = "This is not JSON at all."
        with pytest.raises(ValueError, match="JSON parse error"):
            parse_json_response(raw, "testprovider")

    def test_truncated_json_raises_value_error(self):
        raw = '{"soilType": "cl'
        with pytest.raises(ValueError):
            parse_json_response(raw, "testprovider")

    def test_non_object_raises_value_error(self):
        with pytest.raises(ValueError, match="expected an object"):
            parse_json_response("[1, 2, 3]", "testprovider")
