"""
Affiliate link provisioning.

Every user gets exactly one shareable code, created the first time their
dashboard asks for it. Codes are derived from the user id with an HMAC so
they cannot be enumerated; on the (unlikely) chance of a collision the salt
is bumped and a new code derived.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from urllib.parse import urlencode

from config.settings import settings
from affiliate_portal.db.repository import EventStore
from affiliate_portal.models import AffiliateLink

logger = logging.getLogger(__name__)

CODE_LENGTH = 10
MAX_CODE_ATTEMPTS = 5


class LinkProvisioningError(Exception):
    """Could not derive a free affiliate code."""


def generate_link_code(user_id: str, salt: int = 0, key: str | None = None) -> str:
    """Short, deterministic, tamper-resistant code for a user."""
    signing_key = (key or settings.AFFILIATE_SIGNING_KEY).encode()
    payload = f"{user_id}:{salt}".encode()
    return hmac.new(signing_key, payload, hashlib.sha256).hexdigest()[:CODE_LENGTH]


def share_url(code: str, base_url: str | None = None) -> str:
    """Public referral URL for a code, e.g. https://horizon.example/?ref=a3f8b2c1d0"""
    base = settings.PUBLIC_BASE_URL if base_url is None else base_url
    return f"{base.rstrip('/')}/?{urlencode({'ref': code})}"


async def ensure_affiliate_link(store: EventStore, user_id: str) -> tuple[AffiliateLink, bool]:
    """Return the user's link, creating it if needed. Second item is True when created."""
    existing = await store.get_link_for_user(user_id)
    if existing:
        return existing, False

    for salt in range(MAX_CODE_ATTEMPTS):
        code = generate_link_code(user_id, salt)
        if await store.find_link_by_code(code) is None:
            link = await store.create_link(user_id, code)
            logger.info("Affiliate link created for user %s (code=%s)", user_id, code)
            return link, True
        logger.warning("Affiliate code collision for user %s (salt=%d)", user_id, salt)

    raise LinkProvisioningError(f"No free affiliate code for user {user_id} after {MAX_CODE_ATTEMPTS} attempts")
