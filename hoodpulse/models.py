"""Event data model."""

from __future__ import annotations

import hashlib
import re
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Optional

_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")


class Category(str, Enum):
    """Closed set of event categories."""

    ART = "art"
    NIGHTLIFE = "nightlife"
    LIVE_MUSIC = "live_music"
    COMEDY = "comedy"
    COMMUNITY = "community"
    FOOD_DRINK = "food_drink"
    THEATER = "theater"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> Optional[Category]:
        """Map 'live-music', 'Live Music' or 'live_music' to a member; None if unknown."""
        if isinstance(value, Category):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        key = re.sub(r"[\s\-&]+", "_", value.strip().lower())
        key = key.replace("theatre", "theater").replace("food_and_drink", "food_drink")
        try:
            return cls(key)
        except ValueError:
            return None


# ------------------------------------------------------------------
# Fingerprinting
# ------------------------------------------------------------------

def normalize_event_name(name: Optional[str]) -> str:
    """Normalize an event name so billing variants of one show compare equal.

    Strips parentheticals ("(SOLD OUT)"), "& Friends"-style suffixes, featured
    artist tails ("ft. X", "with Y"), punctuation and extra whitespace.
    """
    text = (name or "").lower()
    text = re.sub(r"\s*\(.*?\)\s*", " ", text)
    text = re.sub(r"\s*&\s*(friends|more|guests)\b.*", "", text)
    text = re.sub(r"(?:\b(?:ft\.?|feat\.?|featuring|with)(?=\s|$)|\bw/).*", "", text)
    text = re.sub(r"[^\w\s]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def date_part(value: Optional[str]) -> str:
    """Return the leading YYYY-MM-DD of an ISO string, or ''."""
    if not value:
        return ""
    match = _DATE_PREFIX.match(value.strip())
    return match.group(1) if match else ""


def make_fingerprint(
    name: Optional[str],
    venue: Optional[str],
    date: Optional[str],
    *,
    source: str = "",
    link: Optional[str] = None,
) -> str:
    """Create a deterministic dedup key from name + venue + date.

    When all three are empty the key falls back to source + link, so that
    nameless records from different listings do not collapse into one.
    """
    norm_name = normalize_event_name(name)
    norm_venue = (venue or "").strip().lower()
    norm_date = (date or "").strip()
    if norm_name or norm_venue or norm_date:
        key = f"{norm_name}|{norm_venue}|{norm_date}"
    else:
        key = f"{source}|{link or ''}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------

@dataclass
class RawRecord:
    """One listing as an adapter scraped it, before normalization."""

    name: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    locality: Optional[str] = None  # free-text area/borough hint
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start: Optional[str] = None  # ISO date or datetime, local time unless offset given
    end: Optional[str] = None
    date: Optional[str] = None  # ISO date: "2026-03-15"
    is_free: Optional[bool] = None
    price: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    source_url: Optional[str] = None
    ticket_url: Optional[str] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class Event:
    """A single normalized event listing."""

    name: str
    source_name: str
    source_weight: float
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    area: Optional[str] = None  # canonical area name, None when unresolved
    category: Category = Category.OTHER
    subcategory: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    date: Optional[str] = None
    is_free: bool = False
    price: Optional[str] = None
    confidence: float = 0.5
    description: Optional[str] = None
    source_url: Optional[str] = None
    ticket_url: Optional[str] = None
    fingerprint: str = field(default="", init=False)

    def __post_init__(self) -> None:
        """Derive the stable fingerprint from core fields."""
        object.__setattr__(self, "fingerprint", self._generate_fingerprint())

    def _generate_fingerprint(self) -> str:
        return make_fingerprint(
            self.name,
            self.venue_name,
            self.day,
            source=self.source_name,
            link=self.ticket_url or self.source_url,
        )

    @property
    def id(self) -> str:
        return self.fingerprint

    @property
    def day(self) -> str:
        """ISO date of the event ('' if unknown)."""
        return date_part(self.date) or date_part(self.start)

    @property
    def link(self) -> Optional[str]:
        return self.ticket_url or self.source_url

    def to_dict(self) -> dict:
        """Serialize to a plain dict."""
        data = asdict(self)
        data["category"] = self.category.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Event:
        """Deserialize from a plain dict."""
        # Drop fingerprint so __post_init__ regenerates it
        allowed = {f.name for f in fields(cls) if f.init}
        kwargs = {k: v for k, v in data.items() if k in allowed}
        kwargs["category"] = Category.parse(kwargs.get("category")) or Category.OTHER
        return cls(**kwargs)

    def __repr__(self) -> str:
        when = self.start or self.date or "?"
        return f"<Event '{self.name}' on {when} @ {self.venue_name or '?'} [{self.area or '?'}]>"


@dataclass(frozen=True)
class Filters:
    """User-requested constraints on the candidate pool."""

    free_only: bool = False
    category: Optional[Category] = None
    time_after: Optional[str] = None  # "HH:MM", local time
    vibe: Optional[str] = None  # free text; only the renderer interprets it

    def any(self) -> bool:
        return bool(self.free_only or self.category or self.time_after or self.vibe)

    def with_free(self) -> Filters:
        return Filters(free_only=True, category=self.category, time_after=self.time_after, vibe=self.vibe)

    def to_dict(self) -> dict:
        return {
            "free_only": self.free_only,
            "category": self.category.value if self.category else None,
            "time_after": self.time_after,
            "vibe": self.vibe,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Filters:
        if not data:
            return cls()
        time_after = data.get("time_after")
        if not (isinstance(time_after, str) and re.fullmatch(r"\d{2}:\d{2}", time_after)):
            time_after = None
        return cls(
            free_only=bool(data.get("free_only")),
            category=Category.parse(data.get("category")),
            time_after=time_after,
            vibe=data.get("vibe") or None,
        )
