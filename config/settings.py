"""App settings, loaded from the environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///horizon_affiliates.db")

    # Auth: tokens are issued by the managed auth service, we only verify them
    AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "horizon-dev-secret-change-in-prod")

    # Affiliate link codes (HMAC-derived, see services/affiliate_links.py)
    AFFILIATE_SIGNING_KEY = os.getenv(
        "AFFILIATE_SIGNING_KEY",
        "horizon-dev-affiliate-key-change-in-prod"
    )

    # Public site URL used to build shareable referral links
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Dashboard statistics
    STATS_WINDOW_DAYS = int(os.getenv("STATS_WINDOW_DAYS", "30"))
    MAX_STATS_WINDOW_DAYS = int(os.getenv("MAX_STATS_WINDOW_DAYS", "365"))

    # Leaderboard
    LEADERBOARD_LIMIT = int(os.getenv("LEADERBOARD_LIMIT", "10"))
    NEWCOMER_DAYS = int(os.getenv("NEWCOMER_DAYS", "30"))

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
