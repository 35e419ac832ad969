"""Configuration for the squares pool service."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _parse_int(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


# Database (single multi-entity items table)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'squares.db'}",
)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Web auth (JWT secret, initial admin bootstrap)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-use-long-random-string")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = _parse_int(os.getenv("JWT_EXPIRE_DAYS"), 7)
INITIAL_ADMIN_USERNAME = os.getenv("INITIAL_ADMIN_USERNAME", "admin")
INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")  # Set to bootstrap first admin
INITIAL_ADMIN_EMAIL = os.getenv("INITIAL_ADMIN_EMAIL", "admin@example.com")

# Listings
DEFAULT_PAGE_SIZE = _parse_int(os.getenv("DEFAULT_PAGE_SIZE"), 20)
MAX_PAGE_SIZE = _parse_int(os.getenv("MAX_PAGE_SIZE"), 100)

# Square creation is written in batches, like a managed store's batch-write limit
BATCH_WRITE_SIZE = _parse_int(os.getenv("BATCH_WRITE_SIZE"), 25)

# Pending request intents younger than this are left alone by the reconciliation sweep
RECONCILE_GRACE_SECONDS = _parse_int(os.getenv("RECONCILE_GRACE_SECONDS"), 60)

# Server (web/run_api.py)
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = _parse_int(os.getenv("API_PORT"), 8000)
API_RELOAD = os.getenv("API_RELOAD", "").lower() in ("1", "true", "yes")

# Client
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "10"))
