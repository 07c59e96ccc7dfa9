"""
Click-tracking ingress.

A visitor follows an affiliate link → the site posts the code plus referrer,
user agent and landing path → we resolve the code and append a click row.

The two failure modes raise different exceptions: an unknown code maps to
400, a failed lookup or insert to 500.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_portal.db.repository import EventStore
from affiliate_portal.models import ClickEvent, DeviceType
from affiliate_portal.services.notifier import ChangeEvent, ChangeNotifier

logger = logging.getLogger(__name__)

_MOBILE_UA = re.compile(
    r"Mobi|Android|iPhone|iPod|iPad|Windows Phone|IEMobile|BlackBerry|Opera Mini",
    re.IGNORECASE,
)
_BOT_UA = re.compile(r"bot|crawler|spider|curl|wget|python-requests|httpx", re.IGNORECASE)


class UnknownAffiliateCode(Exception):
    """No affiliate link carries this code."""

    def __init__(self, code: str):
        super().__init__(f"Unknown affiliate code: {code}")
        self.code = code


class TrackingStorageError(Exception):
    """The click could not be written."""


def classify_device(user_agent: Optional[str]) -> str:
    """Best-effort device class from a User-Agent header."""
    if not user_agent or not user_agent.strip():
        return DeviceType.UNKNOWN.value
    if _BOT_UA.search(user_agent):
        return DeviceType.UNKNOWN.value
    if _MOBILE_UA.search(user_agent):
        return DeviceType.MOBILE.value
    return DeviceType.DESKTOP.value


def client_ip(headers, peer: Optional[str] = None) -> Optional[str]:
    """Originating IP: first X-Forwarded-For hop, then CF-Connecting-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("cf-connecting-ip") or peer


async def track_click(
    session: AsyncSession,
    code: str,
    referrer: Optional[str] = None,
    user_agent: Optional[str] = None,
    path: Optional[str] = None,
    ip_address: Optional[str] = None,
    notifier: Optional[ChangeNotifier] = None,
) -> ClickEvent:
    """Resolve code and record a click. Commits the session.

    Raises:
        UnknownAffiliateCode: if no link has this code
        TrackingStorageError: if the lookup or insert fails at the DB level
    """
    store = EventStore(session)
    try:
        link = await store.find_link_by_code(code)
    except SQLAlchemyError as exc:
        raise TrackingStorageError("Failed to resolve affiliate code") from exc
    if link is None:
        raise UnknownAffiliateCode(code)

    try:
        click = await store.add_click(
            link.id,
            referrer=referrer or None,
            user_agent=user_agent or None,
            device_type=classify_device(user_agent),
            path=path or None,
            ip_address=ip_address,
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TrackingStorageError("Failed to record click") from exc

    logger.info("Click recorded: code=%s device=%s", code, click.device_type)

    if notifier is not None:
        notifier.publish(ChangeEvent(table="clicks", operation="INSERT", user_id=link.user_id, row_id=click.id))
    return click
