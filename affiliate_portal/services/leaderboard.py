"""
Affiliate leaderboard.

Ranks affiliates by completed conversions (revenue breaks ties) for three
boards: all-time, the current calendar month, and newcomers whose link was
created recently. Ties share a rank (1, 2, 2, 4). The top three ranks carry
a prize.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from affiliate_portal.services.dates import start_of_day, start_of_month

PRIZES = {
    1: "iPhone 16",
    2: "iPad",
    3: "500€",
}

ANONYMOUS_NAME = "Anonymous"


class LeaderboardPeriod(str, Enum):
    ALL_TIME = "all_time"
    MONTHLY = "monthly"
    NEWCOMERS = "newcomers"


@dataclass(frozen=True)
class AffiliateTotals:
    """Completed conversions and revenue for one user over some period."""
    user_id: str
    conversions: int
    revenue: float
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    display_name: str
    conversions: int
    revenue: float
    prize: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    """'Paul Dupont' -> 'Paul D.'"""
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if first and last:
        return f"{first} {last[0].upper()}."
    return first or (f"{last[0].upper()}." if last else ANONYMOUS_NAME)


def period_filters(
    period: LeaderboardPeriod,
    today: date,
    newcomer_days: int = 30,
) -> tuple[Optional[datetime], Optional[datetime]]:
    """(conversions_since, links_created_since) for a board."""
    if period == LeaderboardPeriod.MONTHLY:
        return start_of_day(start_of_month(today)), None
    if period == LeaderboardPeriod.NEWCOMERS:
        return None, start_of_day(today - timedelta(days=newcomer_days))
    return None, None


def rank_affiliates(
    totals: Sequence[AffiliateTotals],
    limit: Optional[int] = None,
) -> list[LeaderboardEntry]:
    """Sort by conversions then revenue (both descending) and assign competition ranks."""
    ordered = sorted(
        totals,
        key=lambda t: (-t.conversions, -t.revenue, display_name(t.first_name, t.last_name), t.user_id),
    )
    entries: list[LeaderboardEntry] = []
    previous_key = None
    rank = 0
    for position, item in enumerate(ordered, start=1):
        key = (item.conversions, item.revenue)
        if key != previous_key:
            rank = position
            previous_key = key
        if limit is not None and rank > limit:
            break
        entries.append(LeaderboardEntry(
            rank=rank,
            user_id=item.user_id,
            display_name=display_name(item.first_name, item.last_name),
            conversions=item.conversions,
            revenue=round(item.revenue, 2),
            prize=PRIZES.get(rank),
        ))
    return entries
