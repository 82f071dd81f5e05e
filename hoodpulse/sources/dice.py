"""Source for Dice.fm's New York browse page (Next.js page data)."""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from hoodpulse.geo import event_local_date
from hoodpulse.models import RawRecord
from hoodpulse.sources.base import BaseSource, SourceRegistry

logger = logging.getLogger(__name__)

_NEXT_DATA = re.compile(r'<script id="__NEXT_DATA__"[^>]*>(.*?)</script>', re.DOTALL)

_TAG_CATEGORIES = [
    (re.compile(r"dj|club|techno|house|electronic|dance"), "nightlife"),
    (re.compile(r"comedy|stand.?up|improv"), "comedy"),
    (re.compile(r"gig|live|concert|band|acoustic|jazz|singer"), "live_music"),
    (re.compile(r"art|gallery|exhibit"), "art"),
    (re.compile(r"theatre|theater|musical|play"), "theater"),
    (re.compile(r"food|drink|wine|beer|tasting"), "food_drink"),
    (re.compile(r"community|workshop|market|festival"), "community"),
    (re.compile(r"music"), "live_music"),
]


def map_dice_category(tag_types: object) -> Optional[str]:
    """Map Dice tag types to a category value, or None to let normalization infer one."""
    if not isinstance(tag_types, list) or not tag_types:
        return None
    text = " ".join(
        str(t.get("value") or t.get("title") or "").lower() for t in tag_types if isinstance(t, dict)
    )
    for pattern, category in _TAG_CATEGORIES:
        if pattern.search(text):
            return category
    return None


@SourceRegistry.register
class DiceSource(BaseSource):
    """Reads the event list embedded in Dice's ``__NEXT_DATA__`` script."""

    name = "dice"
    base_url = "https://dice.fm/browse/new_york-5bbf4db0f06331478e9b2c59"
    weight = 0.8
    merge_rank = 0

    async def _fetch_impl(self) -> list[RawRecord]:
        resp = await self.get(self.base_url)
        if resp is None:
            return []
        records = self.parse_page(resp.text)
        logger.info("%s: scraped %d event(s)", self.name, len(records))
        return records

    def parse_page(self, html: str) -> list[RawRecord]:
        match = _NEXT_DATA.search(html)
        if not match:
            logger.warning("%s: __NEXT_DATA__ not found", self.name)
            return []
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.warning("%s: __NEXT_DATA__ is not valid JSON", self.name)
            return []

        raw_events = (((data.get("props") or {}).get("pageProps") or {}).get("events")) or []
        if not isinstance(raw_events, list):
            return []

        today, tomorrow = self.window_dates()
        records: list[RawRecord] = []
        for item in raw_events:
            if not isinstance(item, dict):
                continue
            try:
                record = self._to_record(item, (today, tomorrow))
            except Exception:
                logger.exception("%s: failed to parse event", self.name)
                continue
            if record is not None:
                records.append(record)
        return records

    def _to_record(self, item: dict, window: tuple[str, str]) -> Optional[RawRecord]:
        dates = item.get("dates") or {}
        if not item.get("name") or not dates:
            return None
        if item.get("status") in ("sold-out", "off-sale"):
            return None

        start = dates.get("event_start_date")
        day = event_local_date(start, None)
        if day and day not in window:
            return None

        venues = item.get("venues") or [{}]
        venue = venues[0] if isinstance(venues[0], dict) else {}
        location = venue.get("location") or {}
        city = venue.get("city") or {}

        price = item.get("price") or {}
        amount = price.get("amount_from")
        is_free = amount == 0
        price_text = None
        if isinstance(amount, (int, float)) and amount > 0:
            price_text = f"${amount / 100:.0f}+"

        about = item.get("about") or {}
        description = about.get("description")
        if not description:
            artists = [
                a.get("name") for a in (item.get("summary_lineup") or {}).get("top_artists") or [] if a.get("name")
            ]
            if artists:
                description = ", ".join(artists[:3])
                if len(artists) > 3:
                    description += f" + {len(artists) - 3} more"

        tag_types = item.get("tags_types") or []
        perm_name = item.get("perm_name")

        return RawRecord(
            name=item["name"],
            venue_name=venue.get("name"),
            venue_address=venue.get("address"),
            locality=city.get("name"),
            latitude=self.parse_float(location.get("lat")),
            longitude=self.parse_float(location.get("lng")),
            start=start,
            end=dates.get("event_end_date"),
            is_free=is_free,
            price=price_text,
            category=map_dice_category(tag_types),
            subcategory=(tag_types[0] or {}).get("title") if tag_types else None,
            description=description,
            ticket_url=f"https://dice.fm/event/{perm_name}" if perm_name else None,
        )
