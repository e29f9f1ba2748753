"""
Provider Manager — picks and caches the remote vision provider.

Selection (config.REMOTE_PROVIDER):
  auto       — first provider with an API key, in order google → openai → anthropic
  google | openai | anthropic — that provider only; missing key is an error
  none       — remote analysis disabled

Per-provider enable/disable via environment variables (all default to true):
  ENABLE_GEMINI=true/false
  ENABLE_OPENAI=true/false
  ENABLE_ANTHROPIC=true/false
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import config
from providers.base import RemoteTextProvider

logger = logging.getLogger(__name__)

# Module-level cache, cleared by reset_provider()
_provider: Optional[RemoteTextProvider] = None

_AUTO_ORDER = ("google", "openai", "anthropic")

_ENABLE_FLAGS = {
    "google":    "ENABLE_GEMINI",
    "openai":    "ENABLE_OPENAI",
    "anthropic": "ENABLE_ANTHROPIC",
}


def _model_enabled(env_key: str, default: bool = True) -> bool:
    """
    Check whether a provider is enabled via an environment variable.
    Default is True; pass default=False to require explicit opt-in.
    """
    raw = os.getenv(env_key, "true" if default else "false")
    return raw.strip().lower() not in ("false", "0", "no")


def _api_key(name: str) -> Optional[str]:
    return {
        "google":    config.GOOGLE_API_KEY,
        "openai":    config.OPENAI_API_KEY,
        "anthropic": config.ANTHROPIC_API_KEY,
    }.get(name)


def _make(name: str, api_key: str, model: Optional[str]) -> RemoteTextProvider:
    # Imports are lazy so an unused SDK never has to be importable
    if name == "google":
        from providers.gemini_provider import GeminiProvider
        return GeminiProvider(api_key, model) if model else GeminiProvider(api_key)
    if name == "openai":
        from providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, model) if model else OpenAIProvider(api_key)
    if name == "anthropic":
        from providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, model) if model else AnthropicProvider(api_key)
    raise ValueError(f"Unknown remote provider '{name}'. Choose one of: auto, none, {', '.join(_AUTO_ORDER)}")


def _build_provider() -> RemoteTextProvider:
    """
    Instantiate the provider selected by config.
    Raises RuntimeError when remote analysis is disabled or no key is available.
    """
    mode = config.REMOTE_PROVIDER

    if mode == "none":
        raise RuntimeError("Remote analysis disabled (REMOTE_PROVIDER=none)")

    if mode != "auto":
        key = _api_key(mode)
        if mode in _ENABLE_FLAGS and not key:
            raise RuntimeError(f"REMOTE_PROVIDER={mode} but its API key is not set")
        provider = _make(mode, key or "", config.REMOTE_MODEL)
        logger.info("Loaded provider: %s", provider.full_name)
        return provider

    for name in _AUTO_ORDER:
        key = _api_key(name)
        if not key:
            continue
        flag = _ENABLE_FLAGS[name]
        if not _model_enabled(flag):
            logger.info("Skipped provider %s (disabled by %s)", name, flag)
            continue
        provider = _make(name, key, config.REMOTE_MODEL)
        logger.info("Auto-selected provider: %s", provider.full_name)
        return provider

    raise RuntimeError(
        "No remote vision provider available.\n"
        "Set at least one key in .env:\n"
        "  • GOOGLE_API_KEY\n"
        "  • OPENAI_API_KEY\n"
        "  • ANTHROPIC_API_KEY"
    )


def get_provider() -> RemoteTextProvider:
    global _provider
    if _provider is None:
        _provider = _build_provider()
    return _provider


def reset_provider() -> None:
    """Drop the cached provider so the next call re-reads config."""
    global _provider
    _provider = None
