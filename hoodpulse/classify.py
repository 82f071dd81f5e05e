"""Keyword classifier used when no external classifier is wired (CLI chat, tests)."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Optional

from hoodpulse.geo import extract_area
from hoodpulse.models import Category, Filters
from hoodpulse.ports import Intent, Route, SessionSummary

_CATEGORY_WORDS: list[tuple[re.Pattern[str], Category]] = [
    (re.compile(r"\b(comedy|stand-?up|improv|funny)\b"), Category.COMEDY),
    (re.compile(r"\b(jazz|music|concert|band|live|show|rock|punk|folk|indie)\b"), Category.LIVE_MUSIC),
    (re.compile(r"\b(dj|techno|house|dance|dancing|club|party)\b"), Category.NIGHTLIFE),
    (re.compile(r"\b(art|gallery|museum|exhibit)\b"), Category.ART),
    (re.compile(r"\b(theater|theatre|play|musical|broadway)\b"), Category.THEATER),
    (re.compile(r"\b(food|drinks?|wine|beer|tasting)\b"), Category.FOOD_DRINK),
]
_FREE = re.compile(r"\b(free|no cover)\b")
_AFTER = re.compile(r"\b(?:after|past|from)\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b")
_LATE = re.compile(r"\b(late night|late|after midnight)\b")

FALLBACK_REPLY = "I'm all about what's happening tonight. Text a neighborhood and I'll find you something good!"


def parse_time_after(text: str) -> Optional[str]:
    """Turn 'after 9', 'past 10:30pm' or 'late' into local HH:MM."""
    match = _AFTER.search(text)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2) or 0), match.group(3)
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        elif meridiem is None and 6 <= hour < 12:
            hour += 12  # bare "after 9" is the evening; "after 1" stays past midnight
        if hour >= 24 or minute >= 60:
            return None
        return f"{hour:02d}:{minute:02d}"
    if _LATE.search(text):
        return "22:00"
    return None


def parse_filters(text: str) -> Filters:
    lower = text.lower()
    category = next((c for pattern, c in _CATEGORY_WORDS if pattern.search(lower)), None)
    return Filters(free_only=bool(_FREE.search(lower)), category=category, time_after=parse_time_after(lower))


class KeywordClassifier:
    """Area mention or filter words mean EVENTS; anything else is small talk."""

    async def classify(self, text: str, session: Optional[SessionSummary], areas: Sequence[str]) -> Route:
        area = extract_area(text)
        if area is not None and area not in areas:
            area = None
        filters = parse_filters(text)
        if area is None and not filters.any():
            return Route(Intent.CONVERSATIONAL, reply=FALLBACK_REPLY, confidence=0.3, source="keywords")
        return Route(Intent.EVENTS, area=area, filters=filters, confidence=0.7 if area else 0.5, source="keywords")
