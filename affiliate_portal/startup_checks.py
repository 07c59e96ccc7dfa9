"""Startup validation. Catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)

_DEV_JWT_SECRET = "horizon-dev-secret-change-in-prod"
_DEV_SIGNING_KEY = "horizon-dev-affiliate-key-change-in-prod"


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = bool(settings.DATABASE_URL) and "sqlite" not in settings.DATABASE_URL

    # Critical: tokens could be forged with the published dev secret
    if is_prod and settings.AUTH_JWT_SECRET == _DEV_JWT_SECRET:
        logger.critical("AUTH_JWT_SECRET is still the default! Set the auth service secret for production.")
        sys.exit(1)

    if is_prod and settings.AFFILIATE_SIGNING_KEY == _DEV_SIGNING_KEY:
        warnings.append("AFFILIATE_SIGNING_KEY is the default, affiliate codes are guessable")

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to *, restrict in production")

    if not settings.PUBLIC_BASE_URL:
        warnings.append("PUBLIC_BASE_URL not set, share URLs will be relative")

    if not 1 <= settings.STATS_WINDOW_DAYS <= settings.MAX_STATS_WINDOW_DAYS:
        warnings.append(
            f"STATS_WINDOW_DAYS={settings.STATS_WINDOW_DAYS} outside 1..{settings.MAX_STATS_WINDOW_DAYS}"
        )

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
