"""Plain-text formatting of events for short-message replies."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from hoodpulse.geo import CITY_TZ, has_clock_time, parse_local_datetime
from hoodpulse.models import Event, Filters
from hoodpulse.ports import Pick, Rendered

if TYPE_CHECKING:
    from hoodpulse.ranking import TaggedEvent

logger = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 480

_TRACKING_KEYS = {"ref", "fbclid", "aff"}

_MORE_REFERENCES = [
    re.compile(r",?\s*MORE for extra picks", re.IGNORECASE),
    re.compile(r",?\s*or MORE for more", re.IGNORECASE),
    re.compile(r",?\s*MORE for more picks", re.IGNORECASE),
    re.compile(r"\s*Reply MORE[^.!\n]*", re.IGNORECASE),
    re.compile(r",?\s*MORE for more", re.IGNORECASE),
]


# ------------------------------------------------------------------
# Time
# ------------------------------------------------------------------

def _clock(dt: datetime) -> str:
    """'19:30' -> '7:30 PM'."""
    return dt.strftime("%I:%M %p").lstrip("0")


def _day(dt: datetime) -> str:
    """'Sat, Mar 14'."""
    return f"{dt:%a, %b} {dt.day}"


def format_time(value: str) -> str:
    """Human-readable city-local time for an ISO date or datetime string."""
    if not has_clock_time(value):
        try:
            return _day(datetime.strptime(value[:10], "%Y-%m-%d"))
        except ValueError:
            return value
    parsed = parse_local_datetime(value)
    if parsed is None:
        return value
    local = parsed.astimezone(CITY_TZ)
    return f"{_day(local)}, {_clock(local)}"


def format_time_range(event: Event) -> Optional[str]:
    if not event.start:
        return None
    text = format_time(event.start)
    if not event.end:
        return text
    start = parse_local_datetime(event.start)
    end = parse_local_datetime(event.end)
    if start and end and has_clock_time(event.end):
        start, end = start.astimezone(CITY_TZ), end.astimezone(CITY_TZ)
        if start.date() == end.date():
            return f"{text} - {_clock(end)}"
    return f"{text} - {format_time(event.end)}"


# ------------------------------------------------------------------
# Links
# ------------------------------------------------------------------

def is_search_url(url: Optional[str]) -> bool:
    """True for search-result pages, which make poor outbound links."""
    if not url:
        return True
    parts = urlsplit(url)
    host = parts.hostname or ""
    if ("yelp.com" in host or "google.com" in host) and parts.path.startswith("/search"):
        return True
    return False


def clean_url(url: str) -> str:
    """Strip tracking parameters and shorten well-known ticket links."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.startswith("utm_") and k not in _TRACKING_KEYS
    ]
    clean = urlunsplit(parts._replace(query=urlencode(query)))

    match = re.search(r"eventbrite\.com/e/.*?(\d{10,})$", clean)
    if match:
        return f"https://www.eventbrite.com/e/{match.group(1)}"
    match = re.search(r"dice\.fm/event/([a-z0-9]+)-", clean)
    if match:
        return f"https://dice.fm/event/{match.group(1)}"
    match = re.search(r"(songkick\.com/concerts/\d+)", clean)
    if match:
        return f"https://www.{match.group(1)}"
    return clean


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------

def format_event_details(event: Event) -> str:
    """Name, venue, time range, price, address and a link, capped for one message."""
    venue = event.venue_name
    detail = event.name
    if venue and venue.lower() not in detail.lower():
        detail += f" at {venue}"

    when = format_time_range(event)
    if when:
        detail += f"\n{when}"

    if event.is_free:
        detail += "\nFree!"
    elif event.price:
        detail += f"\n{event.price}"

    if event.venue_address:
        detail += f"\n{event.venue_address}"

    direct = next((u for u in (event.ticket_url, event.source_url) if u and not is_search_url(u)), None)
    if direct:
        detail += f"\n{clean_url(direct)}"
    else:
        place = " ".join(p for p in (event.venue_name or event.name, event.area or "", "NYC") if p)
        detail += f"\nhttps://www.google.com/maps/search/{quote(place)}"

    return detail[:MAX_MESSAGE_LEN]


def strip_more_references(text: str) -> str:
    """Remove 'reply MORE' prompts from a message that is the last batch."""
    for pattern in _MORE_REFERENCES:
        text = pattern.sub("", text)
    return text


def smart_truncate(text: str, limit: int = MAX_MESSAGE_LEN) -> str:
    """Cut *text* to *limit* characters at a line or word boundary."""
    if len(text) <= limit:
        return text
    cut = text[: limit - 3]
    boundary = max(cut.rfind("\n"), cut.rfind(" "))
    if boundary > limit // 2:
        cut = cut[:boundary]
    return cut.rstrip(" ,;:-") + "..."


class PlainRenderer:
    """Deterministic renderer: numbers the first few candidates, matches first."""

    def __init__(self, max_picks: int = 3) -> None:
        self._max_picks = max_picks

    async def render(
        self,
        message: str,
        candidates: Sequence[TaggedEvent],
        area: Optional[str],
        filters: Filters,
    ) -> Rendered:
        chosen = sorted(candidates, key=lambda t: not t.filter_match)[: self._max_picks]
        if not chosen:
            return Rendered(text=f"Nothing good near {area or 'you'} right now.", area_used=area)

        lines = [f"Tonight near {area}:" if area else "Tonight:"]
        picks: list[Pick] = []
        for i, tagged in enumerate(chosen, start=1):
            event = tagged.event
            line = f"{i}. {event.name}"
            if event.venue_name and event.venue_name.lower() not in event.name.lower():
                line += f" @ {event.venue_name}"
            if event.start and has_clock_time(event.start):
                parsed = parse_local_datetime(event.start)
                if parsed is not None:
                    line += f", {_clock(parsed.astimezone(CITY_TZ))}"
            if event.is_free:
                line += " (free)"
            lines.append(line)
            picks.append(Pick(event.id, "matches what you asked for" if tagged.filter_match else ""))
        lines.append(f"Reply 1-{len(chosen)} for details, MORE for extra picks")
        return Rendered(text=smart_truncate("\n".join(lines)), picks=tuple(picks), area_used=area)
