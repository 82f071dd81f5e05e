"""Tests for the event aggregator: refresh, merge, health and supplements."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import pytest

from hoodpulse.exceptions import ConfigurationError
from tests.helpers import FakeSearchSource, FakeSource, make_record


class TestRefresh:
    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_refresh(self, make_aggregator):
        slow = FakeSource("slow", [make_record("Jazz Night")], delay=0.05)
        agg = make_aggregator(slow)

        results = await asyncio.gather(*(agg.get_events("East Village") for _ in range(10)))

        assert slow.calls == 1
        assert all([e.name for e in r] == ["Jazz Night"] for r in results)
        assert not agg.refreshing

    @pytest.mark.asyncio
    async def test_fresh_cache_is_not_refetched(self, make_aggregator, clock):
        source = FakeSource("one", [make_record("Jazz Night")])
        agg = make_aggregator(source, ttl=timedelta(hours=2))

        await agg.get_events("East Village")
        clock.advance(minutes=90)
        await agg.get_events("East Village")
        assert source.calls == 1

        clock.advance(minutes=31)
        await agg.get_events("East Village")
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_higher_trust_copy_wins_duplicates(self, make_aggregator):
        low = FakeSource("low", [make_record("Jazz Night", venue_name="Smalls", price="$30")], weight=0.5)
        high = FakeSource("high", [make_record("JAZZ NIGHT (sold out)", venue_name="Smalls", price="$20")], weight=0.9)
        agg = make_aggregator(low, high)

        events = await agg.refresh()

        assert len(events) == 1
        assert events[0].source_name == "high"
        assert events[0].price == "$20"

    @pytest.mark.asyncio
    async def test_merge_rank_breaks_weight_ties(self, make_aggregator):
        b = FakeSource("b", [make_record("Jazz Night")], weight=0.7, merge_rank=1)
        a = FakeSource("a", [make_record("Jazz Night")], weight=0.7, merge_rank=0)
        agg = make_aggregator(b, a)
        assert [s.name for s in agg.sources] == ["a", "b"]
        events = await agg.refresh()
        assert events[0].source_name == "a"

    @pytest.mark.asyncio
    async def test_failing_source_does_not_fail_refresh(self, make_aggregator):
        good = FakeSource("good", [make_record("Jazz Night")])
        bad = FakeSource("bad", error=RuntimeError("boom"))
        agg = make_aggregator(good, bad)

        events = await agg.get_events("East Village")

        assert [e.name for e in events] == ["Jazz Night"]
        health = agg.status()["sources"]["bad"]
        assert health["status"] == "error"
        assert health["last_error"] == "boom"

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self, make_aggregator):
        slow = FakeSource("slow", [make_record("Too Late")], delay=1.0)
        agg = make_aggregator(slow, source_timeout=0.01)

        events = await agg.refresh()

        assert events == ()
        assert agg.status()["sources"]["slow"]["status"] == "timeout"

    @pytest.mark.asyncio
    async def test_family_listings_screened(self, make_aggregator):
        parks = FakeSource(
            "parks",
            [make_record("Kids Storytime"), make_record("Sunset Jazz")],
            screen_family_listings=True,
        )
        agg = make_aggregator(parks)
        events = await agg.refresh()
        assert [e.name for e in events] == ["Sunset Jazz"]

    def test_duplicate_source_names_rejected(self, make_aggregator):
        with pytest.raises(ConfigurationError):
            make_aggregator(FakeSource("same"), FakeSource("same"))


class TestHealth:
    @pytest.mark.asyncio
    async def test_warns_after_three_empty_refreshes(self, make_aggregator, caplog):
        empty = FakeSource("empty")
        agg = make_aggregator(empty)

        with caplog.at_level(logging.WARNING):
            for _ in range(3):
                await agg.refresh()

        assert "[HEALTH] empty" in caplog.text
        health = agg.status()["sources"]["empty"]
        assert health["consecutive_empty"] == 3
        assert health["success_rate"] == 0.0
        assert len(health["history"]) == 3

    @pytest.mark.asyncio
    async def test_status_snapshot(self, make_aggregator):
        agg = make_aggregator(FakeSource("one", [make_record("A"), make_record("B")]))
        assert agg.status()["cache_fresh"] is False

        await agg.refresh()
        status = agg.status()

        assert status["cache_size"] == 2
        assert status["cache_fresh"] is True
        assert status["cache_age_minutes"] == 0.0
        assert status["last_refresh"]["raw_count"] == 2
        assert status["last_refresh"]["sources_ok"] == 1


class TestGetEvents:
    @pytest.mark.asyncio
    async def test_filters_ranks_and_caps(self, make_aggregator):
        records = [make_record(f"Show {i}") for i in range(30)]
        records.append(make_record("Queens Thing", locality="Astoria"))
        records.append(make_record("Old Thing", start="2026-03-13T21:00:00"))
        agg = make_aggregator(FakeSource("one", records), max_results=20, min_upcoming=0)

        events = await agg.get_events("East Village")

        assert len(events) == 20
        names = {e.name for e in events}
        assert "Queens Thing" not in names
        assert "Old Thing" not in names

    @pytest.mark.asyncio
    async def test_thin_area_supplemented_once_per_refresh(self, make_aggregator):
        search = FakeSearchSource({"Astoria": [make_record("Astoria Trivia", locality="Astoria")]})
        source = FakeSource("one", [make_record("Jazz Night")])
        agg = make_aggregator(source, search_source=search, min_upcoming=5)

        first = await agg.get_events("Astoria")
        second = await agg.get_events("Astoria")

        assert [e.name for e in first] == ["Astoria Trivia"]
        assert [e.name for e in second] == ["Astoria Trivia"]
        assert search.searches == ["Astoria"]

        await agg.refresh()
        await agg.get_events("Astoria")
        assert search.searches == ["Astoria", "Astoria"]

    @pytest.mark.asyncio
    async def test_thin_area_without_search_source(self, make_aggregator):
        agg = make_aggregator(FakeSource("one", [make_record("Jazz Night")]), min_upcoming=5)
        assert await agg.get_events("Astoria") == []
        assert agg.status()["cache_size"] == 1

    @pytest.mark.asyncio
    async def test_no_supplement_when_area_is_busy(self, make_aggregator):
        search = FakeSearchSource({})
        records = [make_record(f"Show {i}") for i in range(6)]
        agg = make_aggregator(FakeSource("one", records), search_source=search, min_upcoming=5)

        await agg.get_events("East Village")
        assert search.searches == []
