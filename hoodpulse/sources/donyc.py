"""Source for DoNYC listing pages (schema.org microdata event cards)."""

from __future__ import annotations

import logging
import re
from typing import ClassVar, Optional

from bs4 import BeautifulSoup, Tag

from hoodpulse.models import RawRecord
from hoodpulse.sources.base import BaseSource, SourceRegistry

logger = logging.getLogger(__name__)

_FREE = re.compile(r"\bfree\b", re.IGNORECASE)

_CARD_CATEGORIES = {
    "dj-parties": "nightlife",
    "performing-arts": "theater",
    "theatre-performing-arts": "theater",
    "art": "art",
}


def _meta(card: Tag, prop: str) -> Optional[str]:
    el = card.select_one(f'meta[itemprop="{prop}"]')
    value = el.get("content") if el else None
    return value or None


@SourceRegistry.register
class DoNYCSource(BaseSource):
    """Walks DoNYC's per-category day pages for today and tomorrow."""

    name = "donyc"
    base_url = "https://donyc.com/events"
    weight = 0.75
    merge_rank = 1

    # slug -> category override (None: read from the card)
    categories: ClassVar[dict[str, Optional[str]]] = {
        "music": None,
        "comedy": "comedy",
        "theatre-art-design": None,
    }
    max_pages: ClassVar[int] = 3

    async def _fetch_impl(self) -> list[RawRecord]:
        records: list[RawRecord] = []
        seen: set[tuple] = set()
        for day in self.window_dates():
            yyyy, mm, dd = day.split("-")
            for slug, override in self.categories.items():
                for page in range(1, self.max_pages + 1):
                    url = f"{self.base_url}/{slug}/{yyyy}/{int(mm)}/{int(dd)}?page={page}"
                    resp = await self.get(url)
                    if resp is None:
                        break
                    cards = self.parse_page(resp.text, day, override)
                    if not cards:
                        break
                    for record in cards:
                        key = (record.name, record.venue_name, record.date)
                        if key in seen:
                            continue
                        seen.add(key)
                        records.append(record)
                if self.aborted:
                    break

        logger.info("%s: scraped %d event(s)", self.name, len(records))
        return records

    def parse_page(self, html: str, day: str, category: Optional[str] = None) -> list[RawRecord]:
        soup = BeautifulSoup(html, "html.parser")
        records: list[RawRecord] = []
        for card in soup.select(".ds-listing.event-card"):
            record = self._parse_card(card, day, category)
            if record is not None:
                records.append(record)
        return records

    def _parse_card(self, card: Tag, day: str, category: Optional[str]) -> Optional[RawRecord]:
        title_el = card.select_one(".ds-listing-event-title-text")
        name = title_el.get_text(strip=True) if title_el else ""
        if not name:
            return None

        link_el = card.select_one('a[itemprop="url"]')
        url = self.absolute_url("https://donyc.com", link_el.get("href") if link_el else None)

        venue_el = card.select_one('.ds-venue-name [itemprop="name"]')
        venue = venue_el.get_text(strip=True) if venue_el else None

        # Listings sometimes sit on the prior day's page; trust startDate
        start = _meta(card, "startDate")
        if start and re.match(r"\d{4}-\d{2}-\d{2}", start):
            day = start[:10]

        if category is None:
            match = re.search(r"ds-event-category-(\S+)", " ".join(card.get("class") or []))
            category = _CARD_CATEGORIES.get(match.group(1)) if match else None

        is_free = bool(_FREE.search(card.get_text(" ")))

        return RawRecord(
            name=name,
            venue_name=venue,
            venue_address=_meta(card, "streetAddress"),
            locality=_meta(card, "addressLocality"),
            latitude=self.parse_float(_meta(card, "latitude")),
            longitude=self.parse_float(_meta(card, "longitude")),
            start=start,
            date=day,
            is_free=is_free,
            category=category,
            source_url=url,
            ticket_url=url,
        )
