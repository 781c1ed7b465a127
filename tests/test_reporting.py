from __future__ import annotations

from datetime import timedelta

import pytest

from burnlink.services import drops, reporting
from burnlink.services.drops import DropCreate


def _drop(session, clock, *, max_views=5, ttl_ms=3_600_000):
    payload = DropCreate(title="stats", body="payload", ttl_ms=ttl_ms, max_views=max_views)
    return drops.create(session, payload, clock=clock)


class TestDropStats:
    def test_unknown_drop(self, session, clock):
        assert reporting.drop_stats(session, "missing", clock=clock) is None

    @pytest.mark.parametrize("window", [0, -5, reporting.MAX_WINDOW_MINUTES + 1])
    def test_window_bounds(self, session, clock, window):
        with pytest.raises(ValueError):
            reporting.drop_stats(session, "missing", window, clock=clock)

    def test_buckets_and_ips(self, session, clock):
        res = _drop(session, clock)
        clock.advance(seconds=30)
        drops.consume(session, res.token, ip="10.0.0.1", clock=clock)
        clock.advance(seconds=60)
        drops.consume(session, res.token, ip="10.0.0.1", clock=clock)
        drops.consume(session, res.token, ip="10.0.0.2", clock=clock)
        drops.consume(session, res.token, clock=clock)

        stats = reporting.drop_stats(session, res.id, 60, clock=clock)

        assert stats.used_views == 4
        assert stats.max_views == 5
        assert stats.total_in_window == 4
        assert stats.unique_ips == 2
        assert stats.peak_rpm == 3
        assert stats.time_to_first_sec == 30
        assert stats.time_to_exhaust_sec is None

        assert len(stats.per_minute) == 61
        times = [b.t for b in stats.per_minute]
        assert times == sorted(times)
        assert all(b.t.second == 0 and b.t.microsecond == 0 for b in stats.per_minute)
        assert stats.per_minute[-1].t == clock.now().replace(second=0)
        assert stats.per_minute[-1].c == 3
        assert stats.per_minute[-2].c == 1

    def test_time_to_exhaust(self, session, clock):
        res = _drop(session, clock, max_views=2)
        clock.advance(seconds=10)
        drops.consume(session, res.token, clock=clock)
        clock.advance(seconds=5)
        drops.consume(session, res.token, clock=clock)

        stats = reporting.drop_stats(session, res.id, clock=clock)
        assert stats.time_to_first_sec == 10
        assert stats.time_to_exhaust_sec == 15
        assert stats.exhausted_at == stats.created_at + timedelta(seconds=15)

    def test_old_views_fall_out_of_window(self, session, clock):
        res = _drop(session, clock, ttl_ms=24 * 3_600_000)
        drops.consume(session, res.token, ip="10.0.0.9", clock=clock)
        clock.advance(minutes=90)

        stats = reporting.drop_stats(session, res.id, 60, clock=clock)
        assert stats.used_views == 1
        assert stats.total_in_window == 0
        assert stats.peak_rpm == 0
        assert stats.unique_ips == 0

        wide = reporting.drop_stats(session, res.id, 120, clock=clock)
        assert wide.total_in_window == 1
        assert wide.unique_ips == 1


class TestOverview:
    def test_empty(self, session, clock):
        ov = reporting.overview(session, clock=clock)
        assert (ov.total_drops, ov.exhausted_drops, ov.total_views) == (0, 0, 0)
        assert ov.window_minutes == 60

    def test_counts_drops_created_in_window(self, session, clock):
        stale = _drop(session, clock, max_views=1)
        drops.consume(session, stale.token, clock=clock)
        clock.advance(hours=2)

        spent = _drop(session, clock, max_views=1)
        partial = _drop(session, clock, max_views=3)
        drops.consume(session, spent.token, clock=clock)
        drops.consume(session, partial.token, clock=clock)

        ov = reporting.overview(session, 60, clock=clock)
        assert ov.total_drops == 2
        assert ov.exhausted_drops == 1
        assert ov.total_views == 2

        assert reporting.overview(session, 180, clock=clock).total_drops == 3

    def test_window_bounds(self, session, clock):
        with pytest.raises(ValueError):
            reporting.overview(session, 0, clock=clock)
