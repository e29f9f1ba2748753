"""
Central configuration — reads from the environment / .env file.

Every setting is optional: without any API key the analyzer runs on the
offline colour heuristic alone.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Remote AI providers ────────────────────────────────────────────────────────
# Add keys for whichever providers you have access to.
GOOGLE_API_KEY: str | None    = os.getenv("GOOGLE_API_KEY")
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")

# Which provider to call first:
#   auto       → google, then openai, then anthropic; first one with a key wins
#   google | openai | anthropic → force one
#   none       → never call a remote API (heuristic only)
REMOTE_PROVIDER: str = os.getenv("REMOTE_PROVIDER", "auto").strip().lower()

# Model override for the chosen provider (blank = provider default)
REMOTE_MODEL: str | None = os.getenv("REMOTE_MODEL", "").strip() or None

# How the remote model is asked to answer:
#   prose → structured free-text report, parsed with keyword rules (default)
#   json  → JSON object, falls back to the prose rules if the model ignores it
RESPONSE_STYLE: str = os.getenv("RESPONSE_STYLE", "prose").strip().lower()

# Upper bound for one remote call; on expiry the heuristic takes over
REMOTE_TIMEOUT_SECONDS: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "30"))

# ── Web server ─────────────────────────────────────────────────────────────────
WEB_HOST: str      = os.getenv("WEB_HOST", "0.0.0.0")
WEB_PORT: int      = int(os.getenv("WEB_PORT", "8080"))
MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "10"))

# ── Logging ────────────────────────────────────────────────────────────────────
DATA_DIR: str  = os.getenv("DATA_DIR", "data")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
