"""Affiliate dashboard API: the caller's link, stats, commission tier, full snapshot and profile."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from affiliate_portal.auth import require_user_id
from affiliate_portal.db.engine import get_session
from affiliate_portal.db.repository import EventStore
from affiliate_portal.models import AffiliateLink, Profile
from affiliate_portal.services.affiliate_links import ensure_affiliate_link, share_url
from affiliate_portal.services.dashboard import load_commission, load_dashboard, load_stats
from affiliate_portal.services.notifier import ChangeEvent, ChangeNotifier, get_notifier

router = APIRouter(prefix="/api/v1/affiliate", tags=["affiliate"])
logger = logging.getLogger(__name__)


def _window_days(
    days: int = Query(settings.STATS_WINDOW_DAYS, ge=1, le=settings.MAX_STATS_WINDOW_DAYS),
) -> int:
    return days


def _link_payload(link: Optional[AffiliateLink]) -> Optional[dict]:
    if link is None:
        return None
    return {
        "id": link.id,
        "code": link.code,
        "share_url": share_url(link.code),
        "created_at": link.created_at.isoformat(),
    }


@router.get("/link")
async def get_link(
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """The caller's affiliate link, created on first request."""
    link, created = await ensure_affiliate_link(EventStore(session), user_id)
    if created:
        await session.commit()
    return {"data": _link_payload(link), "created": created}


@router.get("/stats")
async def get_stats(
    days: int = Depends(_window_days),
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Daily series, device breakdown and summary over the last `days` UTC days."""
    stats = await load_stats(EventStore(session), user_id, days)
    return {"data": stats.to_dict()}


@router.get("/commission")
async def get_commission(
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Tier ladder, the caller's position and example earnings.

    A first visit creates the caller's progression row at the lowest tier.
    """
    store = EventStore(session)
    had_progression = await store.get_progression(user_id) is not None
    overview = await load_commission(store, user_id, create_missing=True)
    if not had_progression and overview.progression is not None:
        await session.commit()
        notifier.publish(ChangeEvent(
            table="user_progression",
            operation="INSERT",
            user_id=user_id,
            row_id=overview.progression.id,
        ))
    return {"data": overview.to_dict()}


@router.get("/dashboard")
async def get_dashboard(
    days: int = Depends(_window_days),
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Link, stats and commission in one consistent read."""
    snapshot = await load_dashboard(session, user_id, days)
    payload = snapshot.to_dict()
    payload["link"] = _link_payload(snapshot.link)
    return {"data": payload}


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", max_length=100)


def _clean_name(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _profile_payload(user_id: str, profile: Optional[Profile]) -> dict:
    return {
        "user_id": user_id,
        "first_name": profile.first_name if profile else None,
        "last_name": profile.last_name if profile else None,
        "updated_at": profile.updated_at.isoformat() if profile and profile.updated_at else None,
    }


@router.get("/profile")
async def get_profile(
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """The caller's public names. Null names until the first PUT."""
    profile = await EventStore(session).get_profile(user_id)
    return {"data": _profile_payload(user_id, profile)}


@router.put("/profile")
async def put_profile(
    body: ProfileUpdate,
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Set the names shown on the leaderboard. Blank names are stored as null."""
    profile = await EventStore(session).upsert_profile(
        user_id, _clean_name(body.first_name), _clean_name(body.last_name)
    )
    await session.commit()
    logger.info("Profile updated for user %s", user_id)
    return {"data": _profile_payload(user_id, profile)}
