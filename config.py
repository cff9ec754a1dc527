"""
Central configuration — reads from .env file.

The search endpoint and the upload budget are fixed constants: trace.moe
rejects uploads above 25 MB, so we normalise everything to stay under 20 MiB.

The normalisation / retry policy values below are the ones the first web
client shipped with. They are read from the environment so they can be tuned
without a code change, but the defaults are the policy.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Telegram ──────────────────────────────────────────────────────────────────
# Only main.py needs the token; everything else must import cleanly without it.
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# Where the log file lives (mount this as a Docker volume)
DATA_DIR: str = os.getenv("DATA_DIR", "data")

# ── Search service ────────────────────────────────────────────────────────────
SEARCH_URL: str = "https://api.trace.moe/search"

MAX_UPLOAD_MB: int = 20
MAX_UPLOAD_BYTES: int = MAX_UPLOAD_MB * 1024 * 1024

# ── Normalisation policy ──────────────────────────────────────────────────────
# Qualities are fractions of the encoder's range (0.7 → JPEG quality 70).
FIRST_PASS_QUALITY: float  = float(os.getenv("FIRST_PASS_QUALITY", "0.7"))
SECOND_PASS_QUALITY: float = float(os.getenv("SECOND_PASS_QUALITY", "0.5"))

# ── Submit policy ─────────────────────────────────────────────────────────────
# Additional attempts after the first one, transient failures only.
SUBMIT_RETRIES: int            = int(os.getenv("SUBMIT_RETRIES", "2"))
RETRY_BACKOFF_SECONDS: float   = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))
RETRY_BACKOFF_MAX_SECONDS: float = 30.0
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

# ── Sessions ──────────────────────────────────────────────────────────────────
# Each user's orchestrator holds their last normalised image (up to the upload
# budget). Least recently active users beyond this count are dropped.
MAX_ACTIVE_USERS: int = int(os.getenv("MAX_ACTIVE_USERS", "200"))
