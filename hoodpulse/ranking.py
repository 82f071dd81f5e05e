"""Upcoming-event filtering, proximity ranking and user filters."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, tzinfo
from typing import NamedTuple, Optional

from hoodpulse.areas import AREAS
from hoodpulse.geo import (
    CITY_TZ,
    NEAREST_CUTOFF_KM,
    event_local_date,
    has_clock_time,
    haversine_km,
    local_date_string,
    local_minutes,
    parse_local_datetime,
)
from hoodpulse.models import Event, Filters

STARTED_GRACE = timedelta(hours=2)
UNRESOLVED_DISTANCE_KM = 4.0  # beyond the cutoff, so unplaced events drop out of area results
LATE_NIGHT_WRAP = 6 * 60  # minutes; earlier times belong to the previous night

POOL_MATCH_CAP = 10
POOL_SIZE = 15
SPARSE_BELOW = 3

KIDS_PATTERN = re.compile(
    r"\b(kids|children|storytime|story\s*time|family\s*day|toddler|pre-?school|youth|"
    r"ages?\s*\d+-\d+|puppet|family-?friendly)\b",
    re.IGNORECASE,
)

_HHMM = re.compile(r"^\d{2}:\d{2}$")


# ------------------------------------------------------------------
# Upcoming + proximity
# ------------------------------------------------------------------

def is_upcoming(event: Event, now: datetime, tz: tzinfo = CITY_TZ) -> bool:
    """Whether *event* is still worth recommending at *now*."""
    if has_clock_time(event.end):
        end = parse_local_datetime(event.end, tz)
        if end is not None:
            return end > now

    if has_clock_time(event.start):
        start = parse_local_datetime(event.start, tz)
        if start is not None:
            return start > now - STARTED_GRACE

    day = event_local_date(event.start, event.date, tz)
    if day and day < local_date_string(now, 0, tz):
        return False
    return True


def filter_upcoming(events: Iterable[Event], now: datetime, tz: tzinfo = CITY_TZ) -> list[Event]:
    """Drop events that have ended, started over two hours ago, or fall on a past date."""
    return [e for e in events if is_upcoming(e, now, tz)]


def rank_by_proximity_and_date(
    events: Sequence[Event],
    area: Optional[str],
    now: datetime,
    tz: tzinfo = CITY_TZ,
) -> list[Event]:
    """Order by (date tier, distance from *area*) and drop events out of reach.

    Date tier is 0 for today or unknown, 1 for tomorrow, 2 for later. Events
    whose area is unresolved count as ``UNRESOLVED_DISTANCE_KM`` away. With no
    known target area the input order is returned unchanged.
    """
    target = AREAS.get(area) if area else None
    if target is None:
        return list(events)

    today = local_date_string(now, 0, tz)
    tomorrow = local_date_string(now, 1, tz)

    scored: list[tuple[int, float, int, Event]] = []
    for index, event in enumerate(events):
        other = AREAS.get(event.area) if event.area else None
        if other is None:
            dist = UNRESOLVED_DISTANCE_KM
        else:
            dist = haversine_km(target.lat, target.lng, other.lat, other.lng)
        if dist > NEAREST_CUTOFF_KM:
            continue

        day = event_local_date(event.start, event.date, tz)
        if not day or day == today:
            tier = 0
        elif day == tomorrow:
            tier = 1
        else:
            tier = 2
        scored.append((tier, dist, index, event))

    scored.sort(key=lambda s: s[:3])
    return [s[3] for s in scored]


# ------------------------------------------------------------------
# User filters
# ------------------------------------------------------------------

def _wrapped(minutes: int) -> int:
    return minutes + 24 * 60 if minutes < LATE_NIGHT_WRAP else minutes


def starts_after(event: Event, time_after: str, tz: tzinfo = CITY_TZ) -> bool:
    """True if the event starts at/after HH:MM, or has no usable start time."""
    if not has_clock_time(event.start):
        return True
    minutes = local_minutes(event.start, tz)
    if minutes is None:
        return True
    hour, minute = (int(x) for x in time_after.split(":"))
    return _wrapped(minutes) >= _wrapped(hour * 60 + minute)


def filter_by_time_after(events: Sequence[Event], time_after: Optional[str], tz: tzinfo = CITY_TZ) -> list[Event]:
    """Soft time-of-day filter: when nothing qualifies the input is returned as-is."""
    if not time_after or not _HHMM.match(time_after):
        return list(events)
    kept = [e for e in events if starts_after(e, time_after, tz)]
    return kept or list(events)


def apply_filters(
    events: Sequence[Event],
    filters: Optional[Filters],
    *,
    strict: bool = False,
    tz: tzinfo = CITY_TZ,
) -> list[Event]:
    """Apply user filters.

    Free-only is always hard. A category that matches nothing falls back to
    the unfiltered set unless *strict*, in which case the result may be empty.
    Time-of-day is always soft.
    """
    result = list(events)
    if filters is None:
        return result
    if filters.free_only:
        result = [e for e in result if e.is_free]
    if filters.category is not None:
        matching = [e for e in result if e.category == filters.category]
        if strict or matching:
            result = matching
    if filters.time_after:
        result = filter_by_time_after(result, filters.time_after, tz)
    return result


def event_matches_filters(event: Event, filters: Filters, tz: tzinfo = CITY_TZ) -> bool:
    """Whether *event* satisfies every filter dimension. Vibe is not checked here."""
    if filters.free_only and not event.is_free:
        return False
    if filters.category is not None and event.category != filters.category:
        return False
    if filters.time_after and _HHMM.match(filters.time_after):
        if not starts_after(event, filters.time_after, tz):
            return False
    return True


def filter_kids_events(events: Iterable[Event], source_names: Iterable[str]) -> list[Event]:
    """Drop child-oriented listings coming from the given sources."""
    screened = set(source_names)
    return [
        e for e in events
        if e.source_name not in screened or not KIDS_PATTERN.search(f"{e.name} {e.description or ''}")
    ]


# ------------------------------------------------------------------
# Tagged pool
# ------------------------------------------------------------------

class TaggedEvent(NamedTuple):
    event: Event
    filter_match: bool


class TaggedPool(NamedTuple):
    pool: list[TaggedEvent]
    match_count: int
    is_sparse: bool

    @property
    def events(self) -> list[Event]:
        return [t.event for t in self.pool]


def build_tagged_pool(events: Sequence[Event], filters: Optional[Filters], tz: tzinfo = CITY_TZ) -> TaggedPool:
    """Matching events first (up to 10), padded to 15 with non-matching ones."""
    if filters is None or not filters.any():
        return TaggedPool([TaggedEvent(e, False) for e in events[:POOL_SIZE]], 0, False)

    matched: list[Event] = []
    unmatched: list[Event] = []
    for event in events:
        (matched if event_matches_filters(event, filters, tz) else unmatched).append(event)

    head = matched[:POOL_MATCH_CAP]
    pool = [TaggedEvent(e, True) for e in head]
    pool += [TaggedEvent(e, False) for e in unmatched[: POOL_SIZE - len(head)]]
    return TaggedPool(pool, len(matched), 0 < len(matched) < SPARSE_BELOW)
