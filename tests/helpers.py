"""Fakes and factories shared by the unit tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional, Sequence

from hoodpulse.geo import CITY_TZ
from hoodpulse.models import Category, Event, RawRecord
from hoodpulse.ports import Pick, Rendered, Route, SessionSummary
from hoodpulse.sources.base import BaseSource

# Saturday evening in the city
NOW = datetime(2026, 3, 14, 19, 0, tzinfo=CITY_TZ)
TODAY = "2026-03-14"
TOMORROW = "2026-03-15"


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSource(BaseSource):
    """Source that returns canned raw records without touching the network."""

    def __init__(
        self,
        name: str,
        records: Sequence[RawRecord] = (),
        *,
        weight: float = 0.5,
        merge_rank: int = 0,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        screen_family_listings: bool = False,
    ) -> None:
        super().__init__()
        self.name = name
        self.weight = weight
        self.merge_rank = merge_rank
        self.screen_family_listings = screen_family_listings
        self.records = list(records)
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch(self) -> list[RawRecord]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)

    async def _fetch_impl(self) -> list[RawRecord]:
        return list(self.records)


class FakeSearchSource(FakeSource):
    """Stands in for the web-search source: answers per-area searches."""

    def __init__(self, results: dict[str, list[RawRecord]], **kwargs) -> None:
        super().__init__("tavily", weight=0.6, **kwargs)
        self.results = results
        self.searches: list[str] = []

    async def search(self, area: str, query: Optional[str] = None) -> list[RawRecord]:
        self.searches.append(area)
        return list(self.results.get(area, []))


class FakeClassifier:
    def __init__(self, route: Optional[Route] = None, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.route = route
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, Optional[SessionSummary]]] = []

    async def classify(self, text: str, session: Optional[SessionSummary], areas: Sequence[str]) -> Route:
        self.calls.append((text, session))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        assert self.route is not None, f"unexpected classifier call for {text!r}"
        return self.route


class FakeRenderer:
    """Picks every candidate (up to ``max_picks``) and lists their names."""

    def __init__(self, max_picks: int = 15, error: Optional[Exception] = None, suggested_area: Optional[str] = None):
        self.max_picks = max_picks
        self.error = error
        self.suggested_area = suggested_area
        self.calls: list[dict] = []

    async def render(self, message, candidates, area, filters) -> Rendered:
        self.calls.append({"message": message, "candidates": list(candidates), "area": area, "filters": filters})
        if self.error is not None:
            raise self.error
        chosen = list(candidates)[: self.max_picks]
        lines = [f"{i}. {t.event.name}" for i, t in enumerate(chosen, start=1)]
        lines.append("Reply a number for details, MORE for extra picks")
        return Rendered(
            text="\n".join(lines),
            picks=tuple(Pick(t.event.id) for t in chosen),
            area_used=area,
            suggested_area=self.suggested_area,
        )


def make_event(
    name: str,
    area: Optional[str] = "East Village",
    *,
    start: Optional[str] = f"{TODAY}T21:00:00",
    end: Optional[str] = None,
    date: Optional[str] = None,
    venue: Optional[str] = None,
    is_free: bool = False,
    category: Category = Category.LIVE_MUSIC,
    source: str = "test",
    weight: float = 0.5,
    **kwargs,
) -> Event:
    return Event(
        name=name,
        source_name=source,
        source_weight=weight,
        venue_name=venue if venue is not None else f"{name} Hall",
        area=area,
        category=category,
        start=start,
        end=end,
        date=date,
        is_free=is_free,
        **kwargs,
    )


def make_record(name: str, locality: Optional[str] = "East Village", **kwargs) -> RawRecord:
    kwargs.setdefault("venue_name", f"{name} Hall")
    kwargs.setdefault("start", f"{TODAY}T21:00:00")
    return RawRecord(name=name, locality=locality, **kwargs)


