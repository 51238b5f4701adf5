"""
config.py
---------
Central configuration. Loads the .env file and exposes every setting
as a typed module constant.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ── Database ──────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

# ── Tokens & sessions ─────────────────────────────────────
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY environment variable is not set")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))
SESSION_IDLE_MINUTES: int = int(os.getenv("SESSION_IDLE_MINUTES", "30"))

# ── Login policy ──────────────────────────────────────────
MAX_FAILED_LOGINS: int = int(os.getenv("MAX_FAILED_LOGINS", "5"))
LOCKOUT_MINUTES: int = int(os.getenv("LOCKOUT_MINUTES", "15"))
MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

# ── Data ──────────────────────────────────────────────────
TRANSACTIONS_FETCH_LIMIT: int = int(os.getenv("TRANSACTIONS_FETCH_LIMIT", "100"))

# ── Web ───────────────────────────────────────────────────
_raw_origins = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS: list[str] = [
    origin.strip() for origin in _raw_origins.split(",") if origin.strip()
]

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
