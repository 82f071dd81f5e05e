"""Area resolution, distances and city-local time helpers."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, tzinfo
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from hoodpulse.areas import (
    AREAS,
    BOROUGH_ALIASES,
    BOROUGHS,
    LANDMARKS,
    Area,
)

CITY_TZ = ZoneInfo("America/New_York")

NEAREST_CUTOFF_KM = 3.0  # coordinate match radius around an area center
CROSS_BOROUGH_PENALTY = 3.0  # rivers and bridges make cross-borough hops longer

_CLOCK_TIME = re.compile(r"T\d{2}:")
_HAS_OFFSET = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")


# ------------------------------------------------------------------
# Distance
# ------------------------------------------------------------------

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    r = 6371.0
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return r * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ------------------------------------------------------------------
# Alias matching
# ------------------------------------------------------------------

def _boundary_pattern(alias: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(alias)}(?!\w)")


def _build_alias_patterns() -> list[tuple[re.Pattern[str], str]]:
    entries: dict[str, str] = {}
    for area in AREAS.values():
        entries[area.name.lower()] = area.name
        for alias in area.aliases:
            entries[alias] = area.name
    for landmark, name in LANDMARKS.items():
        entries.setdefault(landmark, name)
    # Longest first so "east village" wins over "ev" and "east williamsburg" over "williamsburg"
    ordered = sorted(entries.items(), key=lambda kv: len(kv[0]), reverse=True)
    return [(_boundary_pattern(alias), name) for alias, name in ordered]


_ALIAS_PATTERNS = _build_alias_patterns()
_BOROUGH_PATTERNS = [(_boundary_pattern(alias), borough) for alias, borough in BOROUGH_ALIASES.items()]


def extract_area(text: Optional[str]) -> Optional[str]:
    """Find the first area alias mentioned in *text* (word-boundary, longest alias first)."""
    if not text:
        return None
    lower = text.lower()
    for pattern, name in _ALIAS_PATTERNS:
        if pattern.search(lower):
            return name
    return None


class BoroughMatch(NamedTuple):
    borough: str
    areas: tuple[str, ...]


def detect_borough(text: str) -> Optional[BoroughMatch]:
    """Detect a message that names a whole borough rather than an area."""
    lower = text.lower().strip()
    for pattern, borough in _BOROUGH_PATTERNS:
        if pattern.search(lower):
            return BoroughMatch(borough, BOROUGHS.get(borough, ()))
    return None


def resolve_area(
    text: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
) -> Optional[str]:
    """Resolve a locality hint and/or coordinate to a canonical area name.

    Order: alias match on the text, then the nearest area center within
    ``NEAREST_CUTOFF_KM`` of the coordinate. A borough-only locality without a
    coordinate is too coarse to place and stays unresolved.
    """
    if text:
        found = extract_area(text)
        if found:
            return found

    if _valid_coord(lat) and _valid_coord(lng):
        nearest: Optional[Area] = None
        nearest_dist = math.inf
        for area in AREAS.values():
            dist = haversine_km(lat, lng, area.lat, area.lng)
            if dist < nearest_dist:
                nearest, nearest_dist = area, dist
        if nearest is not None and nearest_dist < NEAREST_CUTOFF_KM:
            return nearest.name
    return None


def _valid_coord(value: Optional[float]) -> bool:
    return isinstance(value, (int, float)) and not math.isnan(value)


def adjacent_areas(name: str, n: int = 3) -> list[str]:
    """Return the *n* nearest other areas, preferring the same borough.

    Cross-borough distances are multiplied by ``CROSS_BOROUGH_PENALTY``.
    """
    target = AREAS.get(name)
    if target is None:
        return []
    scored: list[tuple[float, str]] = []
    for other in AREAS.values():
        if other.name == name:
            continue
        dist = haversine_km(target.lat, target.lng, other.lat, other.lng)
        if other.borough != target.borough:
            dist *= CROSS_BOROUGH_PENALTY
        scored.append((dist, other.name))
    scored.sort()
    return [area_name for _dist, area_name in scored[:n]]


# ------------------------------------------------------------------
# City-local time
# ------------------------------------------------------------------

def has_clock_time(value: Optional[str]) -> bool:
    """True when an ISO string carries a time of day, not just a date."""
    return bool(value and _CLOCK_TIME.search(value))


def parse_local_datetime(value: Optional[str], tz: tzinfo = CITY_TZ) -> Optional[datetime]:
    """Parse an ISO datetime; naive values are read as city-local time."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def local_date(now: datetime, offset_days: int = 0, tz: tzinfo = CITY_TZ) -> date:
    """Calendar date in the city, shifted by whole days."""
    return now.astimezone(tz).date() + timedelta(days=offset_days)


def local_date_string(now: datetime, offset_days: int = 0, tz: tzinfo = CITY_TZ) -> str:
    return local_date(now, offset_days, tz).isoformat()


def event_local_date(start: Optional[str], day: Optional[str], tz: tzinfo = CITY_TZ) -> Optional[str]:
    """City-local ISO date of an event from its explicit date or its start."""
    if day:
        return day[:10]
    if not start:
        return None
    if has_clock_time(start) and _HAS_OFFSET.search(start.strip()):
        parsed = parse_local_datetime(start, tz)
        if parsed is not None:
            return parsed.astimezone(tz).date().isoformat()
    match = re.match(r"^(\d{4}-\d{2}-\d{2})", start.strip())
    return match.group(1) if match else None


def local_minutes(value: str, tz: tzinfo = CITY_TZ) -> Optional[int]:
    """Minutes past local midnight for an ISO datetime, or None."""
    parsed = parse_local_datetime(value, tz)
    if parsed is None:
        return None
    local = parsed.astimezone(tz)
    return local.hour * 60 + local.minute
