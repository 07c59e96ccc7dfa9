#!/usr/bin/env python3
"""Seed a development database with a tier ladder and one demo affiliate.

Creates:
- The default commission ladder (Bronze / Argent / Or / Platine)
- A demo user profile, their affiliate link and a Bronze progression row
- 30 days of clicks with a realistic device mix (mobile-heavy, evening peak)
- Conversions on Basic / Pro / Enterprise, about 70% of them completed

Prints a bearer token for the demo user so the dashboard endpoints can be
called right away. Run from the repo root:

    python -m scripts.seed_demo [--reset]
"""
import argparse
import asyncio
import random
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select

from affiliate_portal.auth import create_access_token
from affiliate_portal.db.engine import async_session, engine
from affiliate_portal.db.repository import EventStore
from affiliate_portal.db.tables import (
    AffiliateLinkRow,
    Base,
    ClickRow,
    CommissionTierRow,
    ConversionRow,
    ProfileRow,
    UserProgressionRow,
)
from affiliate_portal.services.affiliate_links import ensure_affiliate_link, share_url
from affiliate_portal.services.commission_tiers import DEFAULT_TIERS, PRODUCT_PRICES, commission_for
from affiliate_portal.services.tracking import classify_device

# --- Config ---
DAYS = 30
DEMO_USER_ID = "00000000-0000-4000-8000-000000000001"
DEMO_FIRST_NAME = "Camille"
DEMO_LAST_NAME = "Martin"

BASE_CLICKS_PER_DAY = 12
CONVERSION_RATE = 0.06
COMPLETED_SHARE = 0.70

USER_AGENTS = [
    ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148", 0.45),
    ("Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/126.0 Mobile Safari/537.36", 0.15),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/126.0 Safari/537.36", 0.25),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 Version/17.5 Safari/605.1.15", 0.10),
    ("", 0.05),
]

REFERRERS = [
    "https://www.instagram.com/",
    "https://www.linkedin.com/",
    "https://t.co/",
    "https://www.google.com/",
    None,
]

PRODUCTS = [("Basic", 0.5), ("Pro", 0.35), ("Enterprise", 0.15)]


def weighted_hour() -> int:
    """Hour of day skewed toward lunch and evening browsing."""
    hours = list(range(24))
    weights = [1, 1, 1, 1, 1, 1, 2, 3, 4, 4, 4, 5, 7, 6, 4, 4, 4, 5, 7, 9, 10, 9, 6, 3]
    return random.choices(hours, weights=weights, k=1)[0]


def make_ts(day_offset: int) -> datetime:
    day = datetime.now(timezone.utc) - timedelta(days=day_offset)
    return day.replace(
        hour=weighted_hour(),
        minute=random.randint(0, 59),
        second=random.randint(0, 59),
        microsecond=0,
    )


async def seed(reset: bool = False):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        if reset:
            for table in (ConversionRow, ClickRow, UserProgressionRow, AffiliateLinkRow, CommissionTierRow, ProfileRow):
                await session.execute(delete(table))
            await session.commit()
            print("Cleared existing affiliate data")

        existing_tiers = (await session.execute(select(CommissionTierRow))).scalars().all()
        if not existing_tiers:
            for tier in DEFAULT_TIERS:
                session.add(CommissionTierRow(**tier))
            print(f"Created {len(DEFAULT_TIERS)} commission tiers")

        if await session.get(ProfileRow, DEMO_USER_ID) is None:
            session.add(ProfileRow(
                id=DEMO_USER_ID,
                email="camille.martin@example.com",
                first_name=DEMO_FIRST_NAME,
                last_name=DEMO_LAST_NAME,
            ))

        store = EventStore(session)
        link, _ = await ensure_affiliate_link(store, DEMO_USER_ID)
        await session.flush()

        total_clicks = 0
        total_conversions = 0
        completed_revenue = 0.0
        agents, agent_weights = zip(*USER_AGENTS)
        products, product_weights = zip(*PRODUCTS)

        for day_offset in range(DAYS - 1, -1, -1):
            # Gentle growth toward today
            volume = int(BASE_CLICKS_PER_DAY * (1 + (DAYS - day_offset) / DAYS))
            for _ in range(random.randint(volume // 2, volume)):
                user_agent = random.choices(agents, weights=agent_weights, k=1)[0]
                click_ts = make_ts(day_offset)
                await store.add_click(
                    link.id,
                    referrer=random.choice(REFERRERS),
                    user_agent=user_agent or None,
                    device_type=classify_device(user_agent),
                    path="/",
                    ip_address=f"203.0.113.{random.randint(1, 254)}",
                    created_at=click_ts,
                )
                total_clicks += 1

                if random.random() < CONVERSION_RATE:
                    product = random.choices(products, weights=product_weights, k=1)[0]
                    completed = random.random() < COMPLETED_SHARE
                    amount = PRODUCT_PRICES[product.lower()]
                    await store.add_conversion(
                        link.id,
                        product=product,
                        amount=amount,
                        status="completed" if completed else "pending",
                        created_at=min(
                            click_ts + timedelta(minutes=random.randint(5, 120)),
                            datetime.now(timezone.utc),
                        ),
                    )
                    total_conversions += 1
                    if completed:
                        completed_revenue += amount

        progression = await store.get_progression(DEMO_USER_ID)
        tiers = await store.fetch_tiers()
        if progression is None and tiers:
            lowest = tiers[0]
            session.add(UserProgressionRow(
                user_id=DEMO_USER_ID,
                current_tier_id=lowest.id,
                total_revenue=round(completed_revenue, 2),
                total_commission=commission_for(lowest, completed_revenue),
            ))

        await session.commit()

    print(f"Generated {total_clicks} clicks and {total_conversions} conversions over {DAYS} days")
    print(f"  completed revenue: {completed_revenue:.2f}")
    print(f"  share url: {share_url(link.code)}")
    print(f"\nDemo bearer token (valid 24h):\n{create_access_token(DEMO_USER_ID)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--reset", action="store_true", help="delete existing affiliate data first")
    args = parser.parse_args()
    asyncio.run(seed(reset=args.reset))
