"""
Affiliate statistics aggregation.

Turns raw click and conversion rows into the three structures the dashboard
shows:
1. Daily time series (clicks / conversions / revenue per UTC day)
2. Device breakdown (mobile / desktop / unknown)
3. Summary totals and conversion rate

Everything here is a pure function over already-fetched rows: no I/O, no clock,
no hidden state. Calling twice with the same input gives the same output.

Revenue rule: a conversion only adds to revenue when its status is
"completed". Pending or unspecified conversions are still counted as
conversions.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from affiliate_portal.models import ClickEvent, ConversionEvent, DeviceType
from affiliate_portal.services.dates import DateLike, day_key, day_range, utc_day

DEVICE_ORDER = (DeviceType.MOBILE, DeviceType.DESKTOP, DeviceType.UNKNOWN)
_KNOWN_DEVICES = {d.value for d in DeviceType}


@dataclass(frozen=True)
class DailyBucket:
    date: str  # ISO date, e.g. "2026-10-19"
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DeviceBucket:
    device: str
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StatsSummary:
    total_clicks: int = 0
    total_conversions: int = 0
    conversion_rate: float = 0.0  # percent
    total_revenue: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def _round_half_up(value: float, places: int = 0) -> float:
    """Round like a spreadsheet would (0.5 -> 1), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def completed_revenue(conversions: Iterable[ConversionEvent]) -> float:
    """Sum of amounts over completed conversions only."""
    return sum((c.amount for c in conversions if c.is_completed), 0.0)


def normalize_device(device_type: str | None) -> str:
    if device_type in _KNOWN_DEVICES:
        return device_type
    return DeviceType.UNKNOWN.value


# ── Daily time series ────────────────────────────────────────────────────────

def compute_daily_stats(
    clicks: Sequence[ClickEvent],
    conversions: Sequence[ConversionEvent],
    window_start: DateLike,
    window_days: int,
) -> tuple[DailyBucket, ...]:
    """One bucket per UTC day from window_start, ascending, zero-filled.

    Events whose day falls outside the window are ignored.

    Raises:
        ValueError: if window_days < 1
    """
    days = day_range(window_start, window_days)
    totals = {day_key(d): [0, 0, 0.0] for d in days}

    for click in clicks:
        bucket = totals.get(day_key(utc_day(click.created_at)))
        if bucket is not None:
            bucket[0] += 1

    for conv in conversions:
        bucket = totals.get(day_key(utc_day(conv.created_at)))
        if bucket is None:
            continue
        bucket[1] += 1
        if conv.is_completed:
            bucket[2] += conv.amount

    return tuple(
        DailyBucket(date=key, clicks=c, conversions=n, revenue=round(r, 2))
        for key, (c, n, r) in totals.items()
    )


# ── Device breakdown ─────────────────────────────────────────────────────────

def compute_device_stats(
    clicks: Sequence[ClickEvent],
    conversions: Sequence[ConversionEvent],
) -> tuple[DeviceBucket, ...]:
    """Clicks per device, with conversions and revenue allocated by click share.

    Conversions carry no device information, so the conversion and revenue
    figures per device are an estimate: each device gets
    total * device_clicks / total_clicks. Conversions are rounded to whole
    numbers and revenue to cents, so bucket sums may differ from the totals
    by rounding. With no clicks every bucket stays at zero.
    """
    click_counts = {d.value: 0 for d in DEVICE_ORDER}
    for click in clicks:
        click_counts[normalize_device(click.device_type)] += 1

    total_clicks = len(clicks)
    if total_clicks == 0:
        return tuple(DeviceBucket(device=d.value) for d in DEVICE_ORDER)

    total_conversions = len(conversions)
    total_revenue = completed_revenue(conversions)

    buckets = []
    for device in DEVICE_ORDER:
        count = click_counts[device.value]
        buckets.append(DeviceBucket(
            device=device.value,
            clicks=count,
            conversions=int(_round_half_up(total_conversions * count / total_clicks)),
            revenue=_round_half_up(total_revenue * count / total_clicks, 2),
        ))
    return tuple(buckets)


# ── Summary ──────────────────────────────────────────────────────────────────

def compute_summary(
    clicks: Sequence[ClickEvent],
    conversions: Sequence[ConversionEvent],
) -> StatsSummary:
    total_clicks = len(clicks)
    total_conversions = len(conversions)
    rate = 0.0
    if total_clicks > 0:
        rate = round(total_conversions * 100 / total_clicks, 2)
    return StatsSummary(
        total_clicks=total_clicks,
        total_conversions=total_conversions,
        conversion_rate=rate,
        total_revenue=round(completed_revenue(conversions), 2),
    )
