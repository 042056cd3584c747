"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from cryptomood.scheduler import parse_cron

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
PROMPTS_DIR: Path = Path(__file__).resolve().parent / "templates"
DB_PATH: Path = Path(
    os.getenv("CRYPTOMOOD_DB_PATH", str(PROJECT_ROOT / "var" / "cryptomood.sqlite3"))
)

# ── LLM provider (OpenRouter, OpenAI-compatible) ───────────────────────────
OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openrouter")
LLM_MODEL: str = os.getenv("SENTIMENT_MODEL", "openai/gpt-4o-mini")
LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "10000"))
LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))

# ── Analysis cycle ─────────────────────────────────────────────────────────
LOOKBACK_HOURS: int = int(os.getenv("TWEET_LOOKBACK_HOURS", "6"))
# "minute hour day month weekday"; default is every hour at :58
ANALYSIS_CRON: str = os.getenv("ANALYSIS_CRON", "58 * * * *")
PROMPT_VERSION: str = os.getenv("PROMPT_VERSION", "v1")
SERVICE_VERSION: str = "1.0.0"

# ── Collections ────────────────────────────────────────────────────────────
TWEETS_COLLECTION: str = os.getenv("TWEETS_COLLECTION", "tweet_global")
SENTIMENT_COLLECTION: str = os.getenv("SENTIMENT_COLLECTION", "sentiment_analysis")

# ── Server ─────────────────────────────────────────────────────────────────
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8087"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def validate() -> list[str]:
    """Return a list of configuration problems; empty means ready to start."""
    problems: list[str] = []
    if not OPENROUTER_API_KEY:
        problems.append("OPENROUTER_API_KEY is required")
    if LOOKBACK_HOURS <= 0:
        problems.append(f"TWEET_LOOKBACK_HOURS must be positive, got {LOOKBACK_HOURS}")
    if LLM_TIMEOUT_SECONDS <= 0:
        problems.append(f"LLM_TIMEOUT_SECONDS must be positive, got {LLM_TIMEOUT_SECONDS}")
    try:
        parse_cron(ANALYSIS_CRON)
    except ValueError as exc:
        problems.append(f"ANALYSIS_CRON is invalid: {exc}")
    return problems
