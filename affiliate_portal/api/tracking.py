"""Click-tracking ingress: POST /api/v1/track-click (public, called by the landing site)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_portal.db.engine import get_session
from affiliate_portal.services.notifier import ChangeNotifier, get_notifier
from affiliate_portal.services.tracking import client_ip, track_click

router = APIRouter(prefix="/api/v1", tags=["tracking"])


class TrackClickRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field("", max_length=64)
    referrer: Optional[str] = Field(None, max_length=1000)
    user_agent: Optional[str] = Field(None, alias="userAgent", max_length=500)
    path: Optional[str] = Field(None, max_length=1000)


@router.post("/track-click")
async def track_click_endpoint(
    body: TrackClickRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Record a visit through an affiliate link.

    400 for a missing or unknown code, 500 if the click could not be stored.
    """
    code = body.code.strip()
    if not code:
        raise HTTPException(400, "Affiliate code is required")

    click = await track_click(
        session,
        code,
        referrer=body.referrer,
        user_agent=body.user_agent or request.headers.get("user-agent"),
        path=body.path,
        ip_address=client_ip(request.headers, request.client.host if request.client else None),
        notifier=notifier,
    )
    return {
        "success": True,
        "data": {
            "id": click.id,
            "affiliate_link_id": click.affiliate_link_id,
            "device_type": click.device_type,
            "created_at": click.created_at.isoformat(),
        },
    }
