"""
Environment configuration for the Clippio delegate worker.

Values are read from the process environment (populated from .env by
main.py via python-dotenv). The Replicate credential is looked up at
request time so a token rotated into the environment takes effect without
a restart.
"""

import os

# ── Replicate ────────────────────────────────────────────────────────────────

REPLICATE_API_BASE = os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# ── Polling budgets ──────────────────────────────────────────────────────────

POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))
IMAGE_MAX_POLL_ATTEMPTS = int(os.getenv("IMAGE_MAX_POLL_ATTEMPTS", "45"))   # 90s
VIDEO_MAX_POLL_ATTEMPTS = int(os.getenv("VIDEO_MAX_POLL_ATTEMPTS", "90"))   # 180s

# ── Service ──────────────────────────────────────────────────────────────────

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))

# ── Generation ───────────────────────────────────────────────────────────────

CLIPPIO_PRESET = os.getenv("CLIPPIO_PRESET", "memecoin")  # key of presets.PRESETS


def get_replicate_token() -> str:
    """Return the Replicate API token, or an empty string if unset."""
    return os.environ.get("REPLICATE_API_TOKEN", "")


def get_delegate_secret() -> str:
    """Shared secret expected in the X-Delegate-Secret header."""
    return os.environ.get("DELEGATE_SHARED_SECRET", "")
