"""Evergreen venue picks: recurring nights used when the live pool runs dry."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import NamedTuple, Optional

from hoodpulse.geo import CITY_TZ, adjacent_areas
from hoodpulse.models import Category, Event

logger = logging.getLogger(__name__)

SOURCE_NAME = "evergreen"
SOURCE_WEIGHT = 0.78
LOCAL_CONFIDENCE = 0.7
NEARBY_CONFIDENCE = 0.6
NEARBY_AREAS = 3

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

# A pick must name something that actually happens there
ACTIVITY_PATTERN = re.compile(
    r"\b(trivia|jazz|dj|karaoke|comedy|danc(e|ing)|vinyl|live\s*(music|band|show)|happy\s*hour|"
    r"open\s*mic|bingo|drag|burlesque|poetry|improv|stand-?up|salsa|bachata|swing|hip-?hop|funk|"
    r"soul|r&b|punk|metal|folk|indie|electronic|techno|house|afrobeat|reggae|latin|cumbia)\b",
    re.IGNORECASE,
)


class EvergreenPick(NamedTuple):
    venue: str
    area: str
    vibe: str = ""
    category: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    is_free: bool = False
    days: tuple[str, ...] = ()

    def runs_on(self, day: str) -> bool:
        return not self.days or "any" in self.days or day in self.days

    def has_activity(self) -> bool:
        return bool(ACTIVITY_PATTERN.search(self.vibe))


class EvergreenPicks:
    """Per-area evergreen picks loaded from a JSON file keyed by area name."""

    def __init__(self, picks: dict[str, list[EvergreenPick]]) -> None:
        self._picks = picks

    @classmethod
    def load(cls, path: Path) -> EvergreenPicks:
        """Read picks from *path*. A missing or broken file yields an empty pool."""
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load evergreen picks from %s: %s", path, exc)
            return cls({})
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> EvergreenPicks:
        picks: dict[str, list[EvergreenPick]] = {}
        for area, entries in raw.items():
            for entry in entries or []:
                if not isinstance(entry, dict) or not entry.get("venue"):
                    logger.warning("Skipping evergreen entry without a venue in %s", area)
                    continue
                picks.setdefault(area, []).append(
                    EvergreenPick(
                        venue=entry["venue"],
                        area=area,
                        vibe=entry.get("vibe") or "",
                        category=entry.get("category"),
                        address=entry.get("address"),
                        url=entry.get("url"),
                        is_free=bool(entry.get("is_free")),
                        days=tuple(d.lower() for d in entry.get("days") or ()),
                    )
                )
        return cls(picks)

    def __len__(self) -> int:
        return sum(len(v) for v in self._picks.values())

    def for_area(self, area: str, day: str) -> tuple[list[EvergreenPick], list[EvergreenPick]]:
        """(local, nearby) picks running on *day*, nearby from the adjacent areas."""
        local = [p for p in self._picks.get(area, []) if p.runs_on(day)]
        nearby = [
            p
            for other in adjacent_areas(area, NEARBY_AREAS)
            for p in self._picks.get(other, [])
            if p.runs_on(day)
        ]
        return local, nearby

    def events_for(self, area: Optional[str], now: datetime) -> list[Event]:
        """Tonight's evergreen picks for *area* as Events, local ones first."""
        if not area:
            return []
        day = DAY_NAMES[now.astimezone(CITY_TZ).weekday()]
        local, nearby = self.for_area(area, day)
        return to_events(local, nearby=False) + to_events(nearby, nearby=True)


def to_events(picks: list[EvergreenPick], *, nearby: bool) -> list[Event]:
    """Convert picks with a concrete recurring activity into Events."""
    events = []
    for pick in picks:
        if not pick.has_activity():
            logger.debug("Dropping evergreen pick %s: no recurring activity", pick.venue)
            continue
        events.append(
            Event(
                name=pick.venue,
                source_name=SOURCE_NAME,
                source_weight=SOURCE_WEIGHT,
                venue_name=pick.venue,
                venue_address=pick.address,
                area=pick.area,
                category=Category.parse(pick.category) or Category.NIGHTLIFE,
                is_free=pick.is_free,
                price="free" if pick.is_free else None,
                confidence=NEARBY_CONFIDENCE if nearby else LOCAL_CONFIDENCE,
                description=pick.vibe or None,
                source_url=pick.url,
                ticket_url=pick.url,
            )
        )
    return events
