"""Map raw source records into canonical Event records."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from typing import Optional

from hoodpulse.exceptions import MalformedRecordError
from hoodpulse.geo import event_local_date, resolve_area
from hoodpulse.models import Category, Event, RawRecord, date_part

logger = logging.getLogger(__name__)

DESCRIPTION_MAX = 180
DEFAULT_CONFIDENCE = 0.5

# Ordered: the first matching rule wins
_CATEGORY_RULES: list[tuple[re.Pattern[str], Category]] = [
    (re.compile(r"\b(comedy|stand-?up|improv|open mic)\b"), Category.COMEDY),
    (re.compile(r"\b(gallery|exhibit|art show|opening reception|installation)\b"), Category.ART),
    (re.compile(r"\b(dj|dance party|club night|rave|techno|house music)\b"), Category.NIGHTLIFE),
    (re.compile(r"\b(concert|live music|band|singer|songwriter|jazz|acoustic)\b"), Category.LIVE_MUSIC),
    (re.compile(r"\b(theater|theatre|musical|play|performance|broadway)\b"), Category.THEATER),
    (re.compile(r"\b(food|tasting|wine|beer|cocktail|brunch|dinner)\b"), Category.FOOD_DRINK),
    (re.compile(r"\b(workshop|class|meetup|volunteer|community|market|fair|festival)\b"), Category.COMMUNITY),
]


def infer_category(text: str) -> Category:
    """Guess a category from free text (name + description)."""
    lower = text.lower()
    for pattern, category in _CATEGORY_RULES:
        if pattern.search(lower):
            return category
    return Category.OTHER


def truncate(text: Optional[str], max_len: int = DESCRIPTION_MAX) -> Optional[str]:
    """Collapse whitespace and cut *text* to *max_len* characters."""
    if not text:
        return None
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _coerce_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(str(value).split())
    return value or None


def normalize_record(raw: RawRecord, source_name: str, source_weight: float) -> Event:
    """Convert one raw record into an Event.

    Raises:
        MalformedRecordError: the record has no usable name or a date that
            cannot be read.
    """
    name = _clean(raw.name)
    if not name:
        raise MalformedRecordError(f"{source_name}: record without a name")

    # An offset start converts to the city-local calendar day
    day = date_part(raw.date) or event_local_date(raw.start, None) or None
    if raw.date and not date_part(raw.date):
        raise MalformedRecordError(f"{source_name}: unreadable date {raw.date!r} for {name!r}")

    venue = _clean(raw.venue_name)
    if venue and venue.upper() == "TBA":
        venue = None

    area = resolve_area(
        _clean(raw.locality),
        _coerce_float(raw.latitude),
        _coerce_float(raw.longitude),
    )

    category = Category.parse(raw.category) or infer_category(f"{name} {raw.description or ''}")

    is_free = raw.is_free is True
    price = _clean(raw.price)
    if is_free and not price:
        price = "free"

    confidence = _coerce_float(raw.confidence)
    confidence = DEFAULT_CONFIDENCE if confidence is None else min(1.0, max(0.0, confidence))

    return Event(
        name=name,
        source_name=source_name,
        source_weight=source_weight,
        venue_name=venue,
        venue_address=_clean(raw.venue_address),
        area=area,
        category=category,
        subcategory=_clean(raw.subcategory),
        start=_clean(raw.start),
        end=_clean(raw.end),
        date=day,
        is_free=is_free,
        price=price,
        confidence=confidence,
        description=truncate(raw.description),
        source_url=_clean(raw.source_url),
        ticket_url=_clean(raw.ticket_url),
    )


def normalize_batch(records: Iterable[RawRecord], source_name: str, source_weight: float) -> list[Event]:
    """Normalize every record, skipping the ones that are malformed."""
    events: list[Event] = []
    skipped = 0
    for raw in records:
        try:
            events.append(normalize_record(raw, source_name, source_weight))
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning("Skipping record: %s", exc)
        except Exception:
            skipped += 1
            logger.exception("%s: failed to normalize record %r", source_name, raw)
    if skipped:
        logger.info("%s: normalized %d record(s), skipped %d", source_name, len(events), skipped)
    return events
