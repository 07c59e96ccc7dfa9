"""Event store repository. DB reads/writes for links, events, tiers and progression, plus Pydantic conversion."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_portal.db.tables import (
    AffiliateLinkRow,
    ClickRow,
    CommissionTierRow,
    ConversionRow,
    ProfileRow,
    UserProgressionRow,
)
from affiliate_portal.models import (
    AffiliateLink,
    ClickEvent,
    CommissionTier,
    ConversionEvent,
    ConversionStatus,
    Profile,
    UserProgression,
)
from affiliate_portal.services.leaderboard import AffiliateTotals


def _row_to_link(row: AffiliateLinkRow) -> AffiliateLink:
    return AffiliateLink(id=row.id, user_id=row.user_id, code=row.code, created_at=row.created_at)


def _row_to_click(row: ClickRow) -> ClickEvent:
    return ClickEvent(
        id=row.id,
        affiliate_link_id=row.affiliate_link_id,
        created_at=row.created_at,
        referrer=row.referrer,
        user_agent=row.user_agent,
        device_type=row.device_type,
        path=row.path,
        ip_address=row.ip_address,
    )


def _row_to_conversion(row: ConversionRow) -> ConversionEvent:
    return ConversionEvent(
        id=row.id,
        affiliate_link_id=row.affiliate_link_id,
        created_at=row.created_at,
        product=row.product,
        amount=float(row.amount),
        status=row.status,
        updated_at=row.updated_at,
    )


def _row_to_tier(row: CommissionTierRow) -> CommissionTier:
    return CommissionTier(
        id=row.id,
        name=row.name,
        min_revenue=float(row.min_revenue),
        max_revenue=float(row.max_revenue) if row.max_revenue is not None else None,
        commission_rate=float(row.commission_rate),
        color=row.color,
        created_at=row.created_at,
    )


def _row_to_progression(row: UserProgressionRow) -> UserProgression:
    return UserProgression(
        id=row.id,
        user_id=row.user_id,
        current_tier_id=row.current_tier_id,
        total_revenue=float(row.total_revenue or 0),
        total_commission=float(row.total_commission or 0),
        manual_override=bool(row.manual_override),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_profile(row: ProfileRow) -> Profile:
    return Profile(
        user_id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class EventStore:
    """Async CRUD over the affiliate tables. Writes flush; callers own the commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Links ────────────────────────────────────────────────────────────

    async def get_links_for_user(self, user_id: str) -> list[AffiliateLink]:
        result = await self.session.execute(
            select(AffiliateLinkRow)
            .where(AffiliateLinkRow.user_id == user_id)
            .order_by(AffiliateLinkRow.created_at.asc())
        )
        return [_row_to_link(r) for r in result.scalars().all()]

    async def get_link_for_user(self, user_id: str) -> Optional[AffiliateLink]:
        links = await self.get_links_for_user(user_id)
        return links[0] if links else None

    async def find_link_by_code(self, code: str) -> Optional[AffiliateLink]:
        result = await self.session.execute(
            select(AffiliateLinkRow).where(AffiliateLinkRow.code == code)
        )
        row = result.scalar_one_or_none()
        return _row_to_link(row) if row else None

    async def create_link(self, user_id: str, code: str) -> AffiliateLink:
        row = AffiliateLinkRow(user_id=user_id, code=code, created_at=datetime.now(timezone.utc))
        self.session.add(row)
        await self.session.flush()
        return _row_to_link(row)

    # ── Events ───────────────────────────────────────────────────────────

    async def add_click(
        self,
        link_id: str,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_type: Optional[str] = None,
        path: Optional[str] = None,
        ip_address: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> ClickEvent:
        row = ClickRow(
            affiliate_link_id=link_id,
            referrer=referrer,
            user_agent=user_agent,
            device_type=device_type,
            path=path,
            ip_address=ip_address,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.session.add(row)
        await self.session.flush()
        return _row_to_click(row)

    async def add_conversion(
        self,
        link_id: str,
        product: str,
        amount: float,
        status: Optional[str] = ConversionStatus.PENDING.value,
        created_at: Optional[datetime] = None,
    ) -> ConversionEvent:
        row = ConversionRow(
            affiliate_link_id=link_id,
            product=product,
            amount=amount,
            status=status,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.session.add(row)
        await self.session.flush()
        return _row_to_conversion(row)

    async def fetch_clicks(
        self,
        link_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> list[ClickEvent]:
        """Clicks on any of link_ids with start <= created_at < end, oldest first."""
        if not link_ids:
            return []
        result = await self.session.execute(
            select(ClickRow)
            .where(
                ClickRow.affiliate_link_id.in_(list(link_ids)),
                ClickRow.created_at >= start,
                ClickRow.created_at < end,
            )
            .order_by(ClickRow.created_at.asc())
        )
        return [_row_to_click(r) for r in result.scalars().all()]

    async def fetch_conversions(
        self,
        link_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> list[ConversionEvent]:
        """Conversions on any of link_ids with start <= created_at < end, oldest first."""
        if not link_ids:
            return []
        result = await self.session.execute(
            select(ConversionRow)
            .where(
                ConversionRow.affiliate_link_id.in_(list(link_ids)),
                ConversionRow.created_at >= start,
                ConversionRow.created_at < end,
            )
            .order_by(ConversionRow.created_at.asc())
        )
        return [_row_to_conversion(r) for r in result.scalars().all()]

    # ── Tiers & progression ──────────────────────────────────────────────

    async def fetch_tiers(self) -> list[CommissionTier]:
        """Tier ladder ordered by min_revenue ascending."""
        result = await self.session.execute(
            select(CommissionTierRow).order_by(CommissionTierRow.min_revenue.asc(), CommissionTierRow.id.asc())
        )
        return [_row_to_tier(r) for r in result.scalars().all()]

    async def get_progression(self, user_id: str) -> Optional[UserProgression]:
        result = await self.session.execute(
            select(UserProgressionRow).where(UserProgressionRow.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        return _row_to_progression(row) if row else None

    async def create_progression(self, user_id: str, tier_id: Optional[int]) -> UserProgression:
        """Zero-revenue progression row at the given (lowest) tier."""
        now = datetime.now(timezone.utc)
        row = UserProgressionRow(
            user_id=user_id,
            current_tier_id=tier_id,
            total_revenue=0.0,
            total_commission=0.0,
            manual_override=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return _row_to_progression(row)

    # ── Profiles ─────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self.session.get(ProfileRow, user_id)
        return _row_to_profile(row) if row else None

    async def upsert_profile(
        self,
        user_id: str,
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str] = None,
    ) -> Profile:
        """Create or overwrite the user's names. email is only replaced when given."""
        now = datetime.now(timezone.utc)
        row = await self.session.get(ProfileRow, user_id)
        if row is None:
            row = ProfileRow(id=user_id, email=email, created_at=now)
            self.session.add(row)
        elif email is not None:
            row.email = email
        row.first_name = first_name
        row.last_name = last_name
        row.updated_at = now
        await self.session.flush()
        return _row_to_profile(row)

    # ── Leaderboard ──────────────────────────────────────────────────────

    async def affiliate_totals(
        self,
        conversions_since: Optional[datetime] = None,
        links_created_since: Optional[datetime] = None,
    ) -> list[AffiliateTotals]:
        """Completed conversions and revenue per user, users without any left out."""
        stmt = (
            select(
                AffiliateLinkRow.user_id,
                func.count(ConversionRow.id).label("conversions"),
                func.coalesce(func.sum(ConversionRow.amount), 0.0).label("revenue"),
            )
            .join(ConversionRow, ConversionRow.affiliate_link_id == AffiliateLinkRow.id)
            .where(ConversionRow.status == ConversionStatus.COMPLETED.value)
            .group_by(AffiliateLinkRow.user_id)
        )
        if conversions_since is not None:
            stmt = stmt.where(ConversionRow.created_at >= conversions_since)
        if links_created_since is not None:
            stmt = stmt.where(AffiliateLinkRow.created_at >= links_created_since)

        rows = (await self.session.execute(stmt)).all()
        if not rows:
            return []

        user_ids = [r.user_id for r in rows]
        profiles = {
            p.id: p
            for p in (
                await self.session.execute(select(ProfileRow).where(ProfileRow.id.in_(user_ids)))
            ).scalars().all()
        }
        totals = []
        for r in rows:
            profile = profiles.get(r.user_id)
            totals.append(AffiliateTotals(
                user_id=r.user_id,
                first_name=profile.first_name if profile else None,
                last_name=profile.last_name if profile else None,
                conversions=int(r.conversions),
                revenue=float(r.revenue or 0),
            ))
        return totals
