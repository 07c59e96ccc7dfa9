"""Tests for the daily / device / summary aggregators."""
from datetime import date, datetime, timedelta, timezone

import pytest

from affiliate_portal.models import ClickEvent, ConversionEvent
from affiliate_portal.services.stats_aggregator import (
    DEVICE_ORDER,
    compute_daily_stats,
    compute_device_stats,
    compute_summary,
    normalize_device,
)

_counter = iter(range(1_000_000))


def click(device="desktop", at=None) -> ClickEvent:
    return ClickEvent(
        id=f"c{next(_counter)}",
        affiliate_link_id="link-1",
        created_at=at or datetime(2026, 10, 10, 12, 0, tzinfo=timezone.utc),
        device_type=device,
    )


def conversion(amount, status="completed", at=None) -> ConversionEvent:
    return ConversionEvent(
        id=f"v{next(_counter)}",
        affiliate_link_id="link-1",
        created_at=at or datetime(2026, 10, 10, 12, 30, tzinfo=timezone.utc),
        product="Pro",
        amount=amount,
        status=status,
    )


@pytest.fixture
def scenario():
    """10 clicks (7 desktop, 3 mobile), two completed sales and one pending."""
    clicks = [click("desktop") for _ in range(7)] + [click("mobile") for _ in range(3)]
    conversions = [conversion(100.0), conversion(50.0), conversion(9999.0, status="pending")]
    return clicks, conversions


# ── Daily time series ───────────────────────────────────────────────────────

class TestDailyStats:
    def test_bucket_per_day_in_order(self):
        buckets = compute_daily_stats([], [], date(2026, 10, 1), 7)
        assert [b.date for b in buckets] == [
            "2026-10-01", "2026-10-02", "2026-10-03", "2026-10-04",
            "2026-10-05", "2026-10-06", "2026-10-07",
        ]

    def test_empty_inputs_zero_filled(self):
        buckets = compute_daily_stats([], [], date(2026, 10, 1), 30)
        assert len(buckets) == 30
        assert all(b.clicks == 0 and b.conversions == 0 and b.revenue == 0 for b in buckets)

    def test_clicks_counted_by_utc_day(self):
        clicks = [
            click(at=datetime(2026, 10, 2, 0, 0, tzinfo=timezone.utc)),
            click(at=datetime(2026, 10, 2, 23, 59, tzinfo=timezone.utc)),
            click(at=datetime(2026, 10, 3, 9, 0, tzinfo=timezone.utc)),
        ]
        buckets = {b.date: b for b in compute_daily_stats(clicks, [], date(2026, 10, 1), 3)}
        assert buckets["2026-10-01"].clicks == 0
        assert buckets["2026-10-02"].clicks == 2
        assert buckets["2026-10-03"].clicks == 1

    def test_offset_timestamps_bucketed_in_utc(self):
        # 2026-10-02 01:30 in Paris (UTC+2) is still 2026-10-01 in UTC
        paris = timezone(timedelta(hours=2))
        clicks = [click(at=datetime(2026, 10, 2, 1, 30, tzinfo=paris))]
        buckets = {b.date: b for b in compute_daily_stats(clicks, [], date(2026, 10, 1), 2)}
        assert buckets["2026-10-01"].clicks == 1
        assert buckets["2026-10-02"].clicks == 0

    def test_naive_timestamps_taken_as_utc(self):
        clicks = [click(at=datetime(2026, 10, 1, 23, 30))]
        buckets = compute_daily_stats(clicks, [], date(2026, 10, 1), 1)
        assert buckets[0].clicks == 1

    def test_out_of_window_events_ignored(self):
        clicks = [
            click(at=datetime(2026, 9, 30, 23, 59, tzinfo=timezone.utc)),
            click(at=datetime(2026, 10, 1, 0, 0, tzinfo=timezone.utc)),
            click(at=datetime(2026, 10, 3, 0, 0, tzinfo=timezone.utc)),
        ]
        conversions = [conversion(20.0, at=datetime(2026, 10, 5, tzinfo=timezone.utc))]
        buckets = compute_daily_stats(clicks, conversions, date(2026, 10, 1), 2)
        assert sum(b.clicks for b in buckets) == 1
        assert sum(b.conversions for b in buckets) == 0

    def test_revenue_from_completed_only(self):
        day = datetime(2026, 10, 1, 10, tzinfo=timezone.utc)
        conversions = [
            conversion(100.0, at=day),
            conversion(40.0, status="pending", at=day),
            conversion(25.0, status=None, at=day),
        ]
        bucket = compute_daily_stats([], conversions, date(2026, 10, 1), 1)[0]
        assert bucket.conversions == 3
        assert bucket.revenue == 100.0

    def test_window_start_accepts_iso_string(self):
        buckets = compute_daily_stats([], [], "2026-10-01", 2)
        assert [b.date for b in buckets] == ["2026-10-01", "2026-10-02"]

    @pytest.mark.parametrize("days", [0, -3])
    def test_window_must_cover_a_day(self, days):
        with pytest.raises(ValueError):
            compute_daily_stats([], [], date(2026, 10, 1), days)

    def test_idempotent(self, scenario):
        clicks, conversions = scenario
        first = compute_daily_stats(clicks, conversions, date(2026, 10, 4), 10)
        second = compute_daily_stats(clicks, conversions, date(2026, 10, 4), 10)
        assert first == second

    def test_to_dict(self):
        bucket = compute_daily_stats([], [], date(2026, 10, 1), 1)[0]
        assert bucket.to_dict() == {"date": "2026-10-01", "clicks": 0, "conversions": 0, "revenue": 0.0}


# ── Device breakdown ────────────────────────────────────────────────────────

class TestDeviceStats:
    def test_scenario_allocation(self, scenario):
        clicks, conversions = scenario
        devices = {b.device: b for b in compute_device_stats(clicks, conversions)}
        assert devices["desktop"].clicks == 7
        assert devices["mobile"].clicks == 3
        assert devices["unknown"].clicks == 0
        assert devices["desktop"].revenue == 105.0
        assert devices["mobile"].revenue == 45.0
        assert devices["unknown"].revenue == 0.0
        assert devices["desktop"].conversions == 2  # round(3 * 0.7)
        assert devices["mobile"].conversions == 1  # round(3 * 0.3)

    def test_fixed_device_order(self):
        buckets = compute_device_stats([click("unknown"), click("mobile")], [])
        assert [b.device for b in buckets] == [d.value for d in DEVICE_ORDER]

    def test_clicks_sum_to_input(self):
        clicks = [click("mobile"), click("desktop"), click(None), click("tablet"), click("desktop")]
        buckets = compute_device_stats(clicks, [])
        assert sum(b.clicks for b in buckets) == len(clicks)

    def test_missing_or_unrecognized_device_is_unknown(self):
        devices = {b.device: b for b in compute_device_stats([click(None), click("smart-tv")], [])}
        assert devices["unknown"].clicks == 2

    def test_zero_clicks_all_zero(self):
        buckets = compute_device_stats([], [conversion(500.0), conversion(20.0)])
        assert len(buckets) == 3
        for b in buckets:
            assert b.clicks == 0
            assert b.conversions == 0
            assert b.revenue == 0.0

    def test_half_rounds_up(self):
        # 1 conversion over 2 devices with equal clicks: 0.5 each rounds to 1
        devices = {b.device: b for b in compute_device_stats([click("mobile"), click("desktop")], [conversion(1.0)])}
        assert devices["mobile"].conversions == 1
        assert devices["desktop"].conversions == 1
        assert devices["mobile"].revenue == 0.5

    def test_revenue_rounded_to_cents(self):
        clicks = [click("mobile"), click("desktop"), click("desktop")]
        devices = {b.device: b for b in compute_device_stats(clicks, [conversion(100.0)])}
        assert devices["mobile"].revenue == 33.33
        assert devices["desktop"].revenue == 66.67


# ── Summary ─────────────────────────────────────────────────────────────────

class TestSummary:
    def test_scenario(self, scenario):
        clicks, conversions = scenario
        summary = compute_summary(clicks, conversions)
        assert summary.total_clicks == 10
        assert summary.total_conversions == 3
        assert summary.total_revenue == 150.0
        assert summary.conversion_rate == 30.0

    def test_no_clicks_rate_is_zero(self):
        summary = compute_summary([], [conversion(10.0)])
        assert summary.conversion_rate == 0
        assert summary.total_conversions == 1
        assert summary.total_revenue == 10.0

    def test_empty(self):
        summary = compute_summary([], [])
        assert summary.to_dict() == {
            "total_clicks": 0,
            "total_conversions": 0,
            "conversion_rate": 0.0,
            "total_revenue": 0.0,
        }

    def test_rate_rounded(self):
        summary = compute_summary([click(), click(), click()], [conversion(5.0)])
        assert summary.conversion_rate == 33.33

    def test_pending_only_has_no_revenue(self):
        summary = compute_summary([click()], [conversion(80.0, status="pending")])
        assert summary.total_revenue == 0.0
        assert summary.conversion_rate == 100.0


def test_normalize_device():
    assert normalize_device("mobile") == "mobile"
    assert normalize_device("desktop") == "desktop"
    assert normalize_device(None) == "unknown"
    assert normalize_device("Mobile") == "unknown"


class TestRevenueRounding:
    def test_daily_revenue_in_cents(self):
        day = datetime(2026, 10, 1, 9, tzinfo=timezone.utc)
        conversions = [conversion(0.1, at=day) for _ in range(3)]
        bucket = compute_daily_stats([], conversions, date(2026, 10, 1), 1)[0]
        assert bucket.revenue == 0.3

    def test_summary_revenue_in_cents(self):
        summary = compute_summary([click()], [conversion(0.1), conversion(0.1), conversion(0.1)])
        assert summary.total_revenue == 0.3

    def test_daily_summary_and_devices_agree(self):
        day = datetime(2026, 10, 10, 8, tzinfo=timezone.utc)
        clicks = [click("mobile", at=day)]
        conversions = [conversion(19.99, at=day), conversion(0.01, at=day), conversion(49.9, at=day)]
        daily = compute_daily_stats(clicks, conversions, date(2026, 10, 10), 1)[0]
        summary = compute_summary(clicks, conversions)
        mobile = compute_device_stats(clicks, conversions)[0]
        assert daily.revenue == summary.total_revenue == mobile.revenue == 69.9
