"""
Affiliate dashboard assembly.

load_dashboard() fetches one user's link, events, tier ladder and progression
in a single session and runs the pure aggregators over that snapshot.
DashboardFeed keeps such a snapshot current: every change notification for
the user schedules a full reload, and a reload whose result has been
overtaken by a newer one is thrown away.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliate_portal.db.repository import EventStore
from affiliate_portal.models import AffiliateLink, UserProgression
from affiliate_portal.services.commission_tiers import (
    CommissionOverview,
    ConfigurationError,
    build_commission_overview,
    validate_tiers,
)
from affiliate_portal.services.dates import day_key, utc_today, window_bounds, window_start_for
from affiliate_portal.services.notifier import ChangeEvent, ChangeNotifier, Subscription
from affiliate_portal.services.stats_aggregator import (
    DailyBucket,
    DeviceBucket,
    StatsSummary,
    compute_daily_stats,
    compute_device_stats,
    compute_summary,
)

logger = logging.getLogger(__name__)


class StatsUnavailable(Exception):
    """The event store could not be read. Recoverable: try again later."""


@dataclass(frozen=True)
class AffiliateStats:
    window_start: str
    window_end: str
    window_days: int
    daily: tuple[DailyBucket, ...]
    devices: tuple[DeviceBucket, ...]
    summary: StatsSummary

    def to_dict(self) -> dict:
        return {
            "window": {"start": self.window_start, "end": self.window_end, "days": self.window_days},
            "daily": [b.to_dict() for b in self.daily],
            "devices": [b.to_dict() for b in self.devices],
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class DashboardSnapshot:
    user_id: str
    link: Optional[AffiliateLink]
    stats: AffiliateStats
    commission: CommissionOverview

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "link": self.link.model_dump(mode="json") if self.link else None,
            "stats": self.stats.to_dict(),
            "commission": self.commission.to_dict(),
        }


async def load_stats(
    store: EventStore,
    user_id: str,
    window_days: int,
    today: Optional[date] = None,
) -> AffiliateStats:
    """Daily, device and summary stats over the window_days ending today (inclusive).

    Raises:
        StatsUnavailable: on any DB error
        ValueError: if window_days < 1
    """
    end_day = today or utc_today()
    start_day = window_start_for(end_day, window_days)
    start, end = window_bounds(start_day, window_days)
    try:
        links = await store.get_links_for_user(user_id)
        link_ids = [link.id for link in links]
        clicks = await store.fetch_clicks(link_ids, start, end)
        conversions = await store.fetch_conversions(link_ids, start, end)
    except SQLAlchemyError as exc:
        raise StatsUnavailable("Could not load affiliate events") from exc

    return AffiliateStats(
        window_start=day_key(start_day),
        window_end=day_key(end_day),
        window_days=window_days,
        daily=compute_daily_stats(clicks, conversions, start_day, window_days),
        devices=compute_device_stats(clicks, conversions),
        summary=compute_summary(clicks, conversions),
    )


async def load_commission(
    store: EventStore,
    user_id: str,
    create_missing: bool = False,
) -> CommissionOverview:
    """Tier ladder and the user's position on it.

    With create_missing, a user without a progression row gets one at the
    lowest tier (the session is flushed, the caller commits). Otherwise the
    overview comes back with progression=None.

    Raises:
        StatsUnavailable: on any DB error
        ConfigurationError: if the tier ladder is invalid
    """
    try:
        tiers = await store.fetch_tiers()
        progression: Optional[UserProgression] = await store.get_progression(user_id)
        if progression is None and create_missing:
            validate_tiers(tiers)
            progression = await store.create_progression(user_id, tiers[0].id)
            logger.info("Progression created for user %s at tier %s", user_id, tiers[0].name)
    except SQLAlchemyError as exc:
        raise StatsUnavailable("Could not load commission data") from exc

    return build_commission_overview(tiers, progression)


async def load_dashboard(
    session: AsyncSession,
    user_id: str,
    window_days: int,
    today: Optional[date] = None,
) -> DashboardSnapshot:
    """Everything the dashboard shows, computed from one consistent fetch."""
    store = EventStore(session)
    try:
        link = await store.get_link_for_user(user_id)
    except SQLAlchemyError as exc:
        raise StatsUnavailable("Could not load affiliate link") from exc
    stats = await load_stats(store, user_id, window_days, today)
    commission = await load_commission(store, user_id)
    return DashboardSnapshot(user_id=user_id, link=link, stats=stats, commission=commission)


class DashboardFeed:
    """Keeps one user's dashboard snapshot in step with change notifications.

    Each notification starts an independent full reload. Reloads are numbered;
    when one finishes after a newer one has been requested, its result is
    dropped, so the last requested reload always wins.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: ChangeNotifier,
        user_id: str,
        window_days: int = 30,
        on_update: Optional[Callable[[DashboardSnapshot], None]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self.user_id = user_id
        self.window_days = window_days
        self._on_update = on_update
        self._today = today or utc_today
        self._generation = 0
        self._pending: set[asyncio.Task] = set()
        self._subscription: Optional[Subscription] = None
        self.snapshot: Optional[DashboardSnapshot] = None
        self.error: Optional[Exception] = None

    async def start(self) -> Optional[DashboardSnapshot]:
        self._subscription = self._notifier.subscribe(self._on_change, user_id=self.user_id)
        return await self.refresh()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        for task in list(self._pending):
            task.cancel()

    async def refresh(self) -> Optional[DashboardSnapshot]:
        self._generation += 1
        return await self._reload(self._generation)

    async def wait_idle(self) -> None:
        """Wait until no scheduled reload is running."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_change(self, event: ChangeEvent) -> None:
        self._generation += 1
        task = asyncio.get_running_loop().create_task(self._reload(self._generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reload(self, generation: int) -> Optional[DashboardSnapshot]:
        # Runs as a background task: every failure ends up in self.error
        try:
            async with self._session_factory() as session:
                snapshot = await load_dashboard(session, self.user_id, self.window_days, self._today())
        except (StatsUnavailable, ConfigurationError) as exc:
            if generation == self._generation:
                logger.error("Dashboard reload failed for user %s: %s", self.user_id, exc)
                self.error = exc
            return None
        except Exception as exc:
            if generation == self._generation:
                logger.exception("Dashboard reload crashed for user %s", self.user_id)
                self.error = exc
            return None

        if generation != self._generation:
            logger.debug("Dashboard reload %d for user %s superseded", generation, self.user_id)
            return None

        self.snapshot = snapshot
        self.error = None
        if self._on_update is not None:
            try:
                self._on_update(snapshot)
            except Exception as exc:
                logger.exception("Dashboard update listener failed for user %s", self.user_id)
                self.error = exc
        return snapshot
