"""Source for NYC Parks events (schema.org Event microdata)."""

from __future__ import annotations

import logging
from typing import ClassVar, Optional

from bs4 import BeautifulSoup, Tag

from hoodpulse.geo import event_local_date
from hoodpulse.models import RawRecord
from hoodpulse.sources.base import BaseSource, SourceRegistry

logger = logging.getLogger(__name__)


@SourceRegistry.register
class NYCParksSource(BaseSource):
    """Scrapes the first pages of the NYC Parks event calendar. Everything is free."""

    name = "nyc_parks"
    base_url = "https://www.nycgovparks.org/events"
    weight = 0.75
    merge_rank = 0
    screen_family_listings = True
    max_pages: ClassVar[int] = 2

    async def _fetch_impl(self) -> list[RawRecord]:
        records: list[RawRecord] = []
        for page in range(1, self.max_pages + 1):
            url = self.base_url if page == 1 else f"{self.base_url}/p{page}"
            resp = await self.get(url)
            if resp is None:
                continue
            records.extend(self.parse_page(resp.text))
        logger.info("%s: scraped %d event(s)", self.name, len(records))
        return records

    def parse_page(self, html: str) -> list[RawRecord]:
        soup = BeautifulSoup(html, "html.parser")
        window = self.window_dates()
        records: list[RawRecord] = []
        for el in soup.select('[itemscope][itemtype="http://schema.org/Event"]'):
            record = self._parse_item(el, window)
            if record is not None:
                records.append(record)
        return records

    def _parse_item(self, el: Tag, window: tuple[str, str]) -> Optional[RawRecord]:
        title_el = el.select_one('[itemprop="name"] > a') or el.select_one('h3[itemprop="name"]')
        title = title_el.get_text(strip=True) if title_el else ""
        if not title:
            return None

        start = self._meta(el, "startDate")
        day = event_local_date(start, None)
        if day and day not in window:
            return None

        venue_el = el.select_one('[itemprop="location"] [itemprop="name"]')
        borough_el = el.select_one('[itemprop="addressLocality"]')
        desc_el = el.select_one('[itemprop="description"]')
        link_el = el.select_one('h3 a, [itemprop="name"] a')
        url = self.absolute_url("https://www.nycgovparks.org", link_el.get("href") if link_el else None)

        subcategory = None
        for link in el.select('a[href^="/events/"]'):
            slug = (link.get("href") or "").removeprefix("/events/")
            if slug and "/" not in slug and slug != "all":
                subcategory = slug
                break

        return RawRecord(
            name=title,
            venue_name=(venue_el.get_text(strip=True) if venue_el else None) or "NYC Park",
            venue_address=self._meta(el, "streetAddress"),
            locality=borough_el.get_text(strip=True) if borough_el else None,
            start=start,
            end=self._meta(el, "endDate"),
            is_free=True,
            subcategory=subcategory,
            description=desc_el.get_text(" ", strip=True) if desc_el else None,
            source_url=url,
            ticket_url=url,
        )

    @staticmethod
    def _meta(el: Tag, prop: str) -> Optional[str]:
        meta = el.select_one(f'meta[itemprop="{prop}"]')
        return (meta.get("content") if meta else None) or None
