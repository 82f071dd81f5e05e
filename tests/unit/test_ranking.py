"""Tests for upcoming filtering, proximity ranking and user filters."""

from __future__ import annotations

import pytest

from hoodpulse.models import Category, Filters
from hoodpulse.ranking import (
    POOL_MATCH_CAP,
    POOL_SIZE,
    apply_filters,
    build_tagged_pool,
    filter_by_time_after,
    filter_kids_events,
    filter_upcoming,
    rank_by_proximity_and_date,
)
from tests.helpers import NOW, TODAY, TOMORROW, make_event


class TestFilterUpcoming:
    def test_drops_ended_events(self):
        ended = make_event("Matinee", start=f"{TODAY}T14:00:00", end=f"{TODAY}T16:00:00")
        running = make_event("Marathon", start=f"{TODAY}T12:00:00", end=f"{TODAY}T23:00:00")
        assert filter_upcoming([ended, running], NOW) == [running]

    def test_start_grace_period(self):
        just_started = make_event("Set One", start=f"{TODAY}T17:30:00")
        long_started = make_event("Brunch", start=f"{TODAY}T11:00:00")
        assert filter_upcoming([just_started, long_started], NOW) == [just_started]

    def test_date_only_events(self):
        today = make_event("All Day", start=TODAY)
        yesterday = make_event("Old", start="2026-03-13")
        assert filter_upcoming([today, yesterday], NOW) == [today]

    def test_keeps_events_without_time(self):
        undated = make_event("Whenever", start=None)
        assert filter_upcoming([undated], NOW) == [undated]


class TestRankByProximityAndDate:
    def test_date_tier_beats_distance(self):
        # Today a short walk away vs. tomorrow right next door
        today_near = make_event("Today", area="NoHo", start=f"{TODAY}T21:00:00")
        tomorrow_here = make_event("Tomorrow", area="East Village", start=f"{TOMORROW}T21:00:00")
        ranked = rank_by_proximity_and_date([tomorrow_here, today_near], "East Village", NOW)
        assert [e.name for e in ranked] == ["Today", "Tomorrow"]

    def test_distance_orders_within_tier(self):
        here = make_event("Here", area="East Village")
        near = make_event("Near", area="Lower East Side")
        ranked = rank_by_proximity_and_date([near, here], "East Village", NOW)
        assert [e.name for e in ranked] == ["Here", "Near"]

    def test_far_and_unresolved_events_dropped(self):
        far = make_event("Far", area="Astoria")
        unresolved = make_event("Unknown", area=None)
        here = make_event("Here", area="East Village")
        assert rank_by_proximity_and_date([far, unresolved, here], "East Village", NOW) == [here]

    def test_unknown_target_returns_input(self):
        events = [make_event("A", area="Astoria"), make_event("B", area=None)]
        assert rank_by_proximity_and_date(events, None, NOW) == events
        assert rank_by_proximity_and_date(events, "Atlantis", NOW) == events


class TestApplyFilters:
    @pytest.fixture
    def events(self):
        return [
            make_event("Paid Jazz", category=Category.LIVE_MUSIC),
            make_event("Free Jazz", category=Category.LIVE_MUSIC, is_free=True),
            make_event("Free Art", category=Category.ART, is_free=True),
        ]

    def test_free_is_hard(self, events):
        assert [e.name for e in apply_filters(events, Filters(free_only=True))] == ["Free Jazz", "Free Art"]

    def test_category_soft_fallback(self, events):
        result = apply_filters(events, Filters(category=Category.COMEDY), strict=False)
        assert result == events

    def test_category_strict_may_be_empty(self, events):
        assert apply_filters(events, Filters(category=Category.COMEDY), strict=True) == []

    def test_free_and_category(self, events):
        result = apply_filters(events, Filters(free_only=True, category=Category.ART), strict=True)
        assert [e.name for e in result] == ["Free Art"]

    def test_no_filters(self, events):
        assert apply_filters(events, None) == events


class TestTimeAfter:
    def test_late_night_wraps_past_midnight(self):
        early = make_event("Early", start=f"{TODAY}T19:00:00")
        late = make_event("Late", start=f"{TOMORROW}T01:00:00")
        result = filter_by_time_after([early, late], "22:00")
        assert [e.name for e in result] == ["Late"]

    def test_soft_when_nothing_qualifies(self):
        early = make_event("Early", start=f"{TODAY}T19:00:00")
        assert filter_by_time_after([early], "23:00") == [early]

    def test_events_without_clock_time_qualify(self):
        all_day = make_event("All Day", start=TODAY)
        early = make_event("Early", start=f"{TODAY}T19:00:00")
        assert filter_by_time_after([all_day, early], "22:00") == [all_day]


class TestTaggedPool:
    def test_matches_first_and_capped(self):
        comedy = [make_event(f"Comedy {i}", category=Category.COMEDY) for i in range(12)]
        music = [make_event(f"Music {i}") for i in range(10)]
        pool = build_tagged_pool(music + comedy, Filters(category=Category.COMEDY))
        assert len(pool.pool) == POOL_SIZE
        assert pool.match_count == 12
        assert [t.filter_match for t in pool.pool] == [True] * POOL_MATCH_CAP + [False] * (POOL_SIZE - POOL_MATCH_CAP)
        assert not pool.is_sparse

    def test_sparse_matches(self):
        events = [make_event("Comedy", category=Category.COMEDY)] + [make_event(f"Music {i}") for i in range(5)]
        pool = build_tagged_pool(events, Filters(category=Category.COMEDY))
        assert pool.match_count == 1
        assert pool.is_sparse
        assert pool.events[0].name == "Comedy"

    def test_no_filters_tags_nothing(self):
        pool = build_tagged_pool([make_event("A"), make_event("B")], Filters())
        assert not any(t.filter_match for t in pool.pool)
        assert pool.match_count == 0


def test_kids_screen_only_applies_to_listed_sources():
    parks_kids = make_event("Kids Storytime", source="nyc_parks")
    parks_adult = make_event("Sunset Jazz", source="nyc_parks")
    other_kids = make_event("Kids Rave", source="dice")
    result = filter_kids_events([parks_kids, parks_adult, other_kids], ["nyc_parks"])
    assert result == [parks_adult, other_kids]
