"""
Central configuration for the query service.
Every tunable is read from the environment (or backend/.env) once at import.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from backend/.env
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# ── Rate limiting (fixed window per client) ─────────────────────────────────
WINDOW_MS = int(os.getenv("WINDOW_MS", "60000"))
MAX_REQUESTS = int(os.getenv("MAX_REQUESTS", "20"))

# ── Field cache ─────────────────────────────────────────────────────────────
CACHE_TTL_MS = int(os.getenv("CACHE_TTL_MS", "60000"))
CACHE_KEY_DELIMITER = ","

# ── Conversation memory ─────────────────────────────────────────────────────
MAX_TOPICS = int(os.getenv("MAX_TOPICS", "5"))
MAX_MESSAGES = int(os.getenv("MAX_MESSAGES", "5"))
CONTEXT_EXPIRY_MS = int(os.getenv("CONTEXT_EXPIRY_MS", str(30 * 60 * 1000)))  # 30 minutes

# ── Upstream calls ──────────────────────────────────────────────────────────
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))

# ── Maintenance sweeps ──────────────────────────────────────────────────────
CACHE_CLEANUP_INTERVAL_SECONDS = float(os.getenv("CACHE_CLEANUP_INTERVAL_SECONDS", "60"))
RATE_LIMIT_CLEANUP_INTERVAL_SECONDS = float(
    os.getenv("RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", str(WINDOW_MS / 1000))
)
CONTEXT_CLEANUP_INTERVAL_SECONDS = float(os.getenv("CONTEXT_CLEANUP_INTERVAL_SECONDS", "300"))

# ── Market data ─────────────────────────────────────────────────────────────
COINGECKO_API_BASE = os.getenv("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3")
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY", "")

# ── Gemini ──────────────────────────────────────────────────────────────────
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
USE_LLM = _env_bool("USE_LLM")

# ── Server ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
