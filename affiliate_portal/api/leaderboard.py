"""Public affiliate leaderboard: GET /api/v1/leaderboard."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from affiliate_portal.db.engine import get_session
from affiliate_portal.db.repository import EventStore
from affiliate_portal.services.dates import utc_today
from affiliate_portal.services.leaderboard import PRIZES, LeaderboardPeriod, period_filters, rank_affiliates

router = APIRouter(prefix="/api/v1", tags=["leaderboard"])


@router.get("/leaderboard")
async def get_leaderboard(
    period: LeaderboardPeriod = Query(LeaderboardPeriod.ALL_TIME),
    limit: Optional[int] = Query(None, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    """Top affiliates by completed conversions for one board."""
    conversions_since, links_created_since = period_filters(period, utc_today(), settings.NEWCOMER_DAYS)
    totals = await EventStore(session).affiliate_totals(
        conversions_since=conversions_since,
        links_created_since=links_created_since,
    )
    entries = rank_affiliates(totals, limit or settings.LEADERBOARD_LIMIT)
    return {
        "period": period.value,
        "data": [e.to_dict() for e in entries],
        "prizes": {str(rank): prize for rank, prize in PRIZES.items()},
    }
