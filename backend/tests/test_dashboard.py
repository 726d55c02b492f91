"""
Tests for the monthly approval dashboard.
"""

from datetime import date
from fnmatch import fnmatch

import pytest

from venue_booking.schemas.reservation import MonthBucket
from venue_booking.services import cache_service, dashboard_service
from venue_booking.services.dashboard_service import month_window

TODAY = date(2025, 11, 15)


def test_month_window_runs_forward_twelve_months():
    window = month_window(TODAY)

    assert len(window) == 12
    assert window[0] == (date(2025, 11, 1), date(2025, 11, 30))
    assert window[1] == (date(2025, 12, 1), date(2025, 12, 31))
    assert window[3] == (date(2026, 2, 1), date(2026, 2, 28))
    assert window[-1] == (date(2026, 10, 1), date(2026, 10, 31))


@pytest.mark.asyncio
async def test_empty_dashboard_has_twelve_zero_buckets(engine):
    buckets = await engine.get_monthly_stats(today=TODAY)

    assert [(b.month, b.year) for b in buckets[:3]] == [("Nov", 2025), ("Dec", 2025), ("Jan", 2026)]
    assert all(b.approved == 0 and b.pending == 0 for b in buckets)


@pytest.mark.asyncio
async def test_counts_by_start_month(engine, catalog, make_request):
    approved = await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 3), date(2025, 11, 4)))
    await engine.set_approval(catalog["admin"], approved.id, approve=True)
    await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 20), date(2025, 11, 21)))
    # starts in November, ends in December: counted in November only
    await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 30), date(2025, 12, 2)))
    await engine.create_reservation(catalog["customer"], make_request(date(2026, 1, 5), date(2026, 1, 6)))
    # outside the window
    await engine.create_reservation(catalog["customer"], make_request(date(2025, 10, 5), date(2025, 10, 6)))

    buckets = await engine.get_monthly_stats(today=TODAY)

    november, december, january = buckets[:3]
    assert (november.approved, november.pending) == (1, 2)
    assert (december.approved, december.pending) == (0, 0)
    assert (january.approved, january.pending) == (0, 1)


@pytest.mark.asyncio
async def test_rejected_counts_as_pending(engine, catalog, make_request):
    reservation = await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 3), date(2025, 11, 4)))
    await engine.set_approval(catalog["admin"], reservation.id, approve=False)

    buckets = await engine.get_monthly_stats(today=TODAY)

    assert (buckets[0].approved, buckets[0].pending) == (0, 1)


@pytest.mark.asyncio
async def test_resource_filter(engine, catalog, make_request):
    await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 3), date(2025, 11, 4)))
    await engine.create_reservation(
        catalog["customer"],
        make_request(date(2025, 11, 3), date(2025, 11, 4), resource_id=catalog["garden"]),
    )

    everything = await engine.get_monthly_stats(today=TODAY)
    garden_only = await engine.get_monthly_stats(catalog["garden"], today=TODAY)

    assert everything[0].pending == 2
    assert garden_only[0].pending == 1


class InMemoryRedis:
    """Just the commands the stats cache uses."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def incr(self, key):
        self.store[key] = str(int(self.store.get(key) or 0) + 1)
        return int(self.store[key])

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch(key, match):
                yield key


@pytest.fixture
def redis_store(monkeypatch):
    client = InMemoryRedis()

    async def _get_redis():
        return client

    monkeypatch.setattr(cache_service, "get_redis", _get_redis)
    return client


@pytest.mark.asyncio
async def test_stats_are_cached_until_a_mutation(engine, catalog, make_request, redis_store):
    await engine.get_monthly_stats(today=TODAY)
    assert await cache_service.get_cached_stats(None, TODAY) is not None

    await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 3), date(2025, 11, 4)))

    assert await cache_service.get_cached_stats(None, TODAY) is None
    buckets = await engine.get_monthly_stats(today=TODAY)
    assert buckets[0].pending == 1


@pytest.mark.asyncio
async def test_stats_read_racing_a_mutation_is_not_cached(engine, catalog, make_request, redis_store, monkeypatch):
    original = dashboard_service.monthly_approval_counts

    async def _counts_then_mutation(db, resource_id=None, today=None):
        buckets = await original(db, resource_id, today)
        # a reservation commits after the read took its snapshot
        await engine.create_reservation(catalog["customer"], make_request(date(2025, 11, 3), date(2025, 11, 4)))
        return buckets

    monkeypatch.setattr(dashboard_service, "monthly_approval_counts", _counts_then_mutation)
    stale = await engine.get_monthly_stats(today=TODAY)
    assert stale[0].pending == 0
    assert await cache_service.get_cached_stats(None, TODAY) is None

    monkeypatch.setattr(dashboard_service, "monthly_approval_counts", original)
    fresh = await engine.get_monthly_stats(today=TODAY)
    assert fresh[0].pending == 1


@pytest.mark.asyncio
async def test_cache_write_after_invalidation_is_dropped(redis_store):
    buckets = [MonthBucket(month="Nov", year=2025, approved=1, pending=0)]
    generation = await cache_service.get_stats_generation()

    await cache_service.invalidate_stats_cache()
    await cache_service.set_cached_stats(None, TODAY, buckets, generation)

    assert await cache_service.get_cached_stats(None, TODAY) is None
