"""Base source for listing pages that publish schema.org events as JSON-LD."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import ClassVar, Optional

from bs4 import BeautifulSoup

from hoodpulse.geo import event_local_date
from hoodpulse.models import RawRecord
from hoodpulse.sources.base import BaseSource

logger = logging.getLogger(__name__)

EVENT_TYPES = ("Event", "MusicEvent", "ComedyEvent", "TheaterEvent", "DanceEvent", "SocialEvent")

_FREE_TEXT = re.compile(r"\bfree (admission|entry)\b", re.IGNORECASE)


@dataclass(frozen=True)
class ListingDefaults:
    """Fallbacks for fields a listing page leaves out."""

    venue: Optional[str] = None
    address: Optional[str] = None
    locality: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None
    confidence: float = 0.85


class JsonLdListingSource(BaseSource):
    """Base for sites that embed their event list as JSON-LD.

    Subclasses set ``name``, ``base_url``, ``weight``, ``merge_rank`` and
    optionally ``defaults`` and ``event_types``. Only today's and tomorrow's
    events are kept.
    """

    defaults: ClassVar[ListingDefaults] = ListingDefaults()
    event_types: ClassVar[tuple[str, ...]] = EVENT_TYPES
    max_pages: ClassVar[int] = 1

    async def _fetch_impl(self) -> list[RawRecord]:
        records: list[RawRecord] = []
        url: Optional[str] = self.base_url
        page = 0
        while url and page < self.max_pages:
            page += 1
            resp = await self.get(url)
            if resp is None:
                break
            soup = BeautifulSoup(resp.text, "html.parser")
            page_records = self.parse_soup(soup)
            if not page_records:
                break
            records.extend(page_records)
            url = self._next_page(soup)

        logger.info("%s: scraped %d event(s) across %d page(s)", self.name, len(records), page)
        return records

    def parse_page(self, html: str) -> list[RawRecord]:
        return self.parse_soup(BeautifulSoup(html, "html.parser"))

    def parse_soup(self, soup: BeautifulSoup) -> list[RawRecord]:
        window = self.window_dates()
        records: list[RawRecord] = []
        for item in self._iter_events(soup):
            try:
                record = self._to_record(item)
            except Exception:
                logger.exception("%s: failed to parse JSON-LD event", self.name)
                continue
            if record is None:
                continue
            day = event_local_date(record.start, record.date)
            if day and day not in window:
                continue
            records.append(record)
        return records

    def _iter_events(self, soup: BeautifulSoup) -> Iterator[dict]:
        for item in self.iter_jsonld(soup):
            elements = item.get("itemListElement")
            if isinstance(elements, list):
                for element in elements:
                    if isinstance(element, dict):
                        inner = element.get("item", element)
                        if isinstance(inner, dict) and self._is_event(inner):
                            yield inner
                continue
            if self._is_event(item):
                yield item

    def _is_event(self, item: dict) -> bool:
        t = item.get("@type")
        if isinstance(t, list):
            return any(x in self.event_types for x in t)
        return t in self.event_types

    def _to_record(self, data: dict) -> Optional[RawRecord]:
        name = (data.get("name") or "").strip()
        if not name:
            return None
        start = data.get("startDate") or None
        d = self.defaults

        location = data.get("location") or {}
        if isinstance(location, list):
            location = location[0] if location else {}
        address = location.get("address") or {} if isinstance(location, dict) else {}
        geo = location.get("geo") or {} if isinstance(location, dict) else {}
        if isinstance(address, str):
            street, locality = address, None
        else:
            street, locality = address.get("streetAddress"), address.get("addressLocality")

        offers = data.get("offers") or {}
        if isinstance(offers, list):
            offers = offers[0] if offers else {}
        low = self.parse_float(offers.get("lowPrice", offers.get("price")))
        description = data.get("description") or ""
        is_free = low == 0 or bool(_FREE_TEXT.search(f"{name} {description}"))
        price = None
        if low is not None:
            price = "free" if low == 0 else f"${low:g}+"

        venue_address = ", ".join(p for p in (street, locality) if p) or d.address

        return RawRecord(
            name=name,
            venue_name=(location.get("name") if isinstance(location, dict) else None) or d.venue,
            venue_address=venue_address,
            locality=locality or d.locality,
            latitude=self.parse_float(geo.get("latitude")) if geo else d.latitude,
            longitude=self.parse_float(geo.get("longitude")) if geo else d.longitude,
            start=start,
            end=data.get("endDate") or None,
            is_free=is_free,
            price=price,
            category=d.category,
            description=description or None,
            source_url=data.get("url") or None,
            ticket_url=offers.get("url") or data.get("url") or None,
            confidence=d.confidence,
        )

    def _next_page(self, soup: BeautifulSoup) -> Optional[str]:
        link = soup.select_one('a[rel="next"]') or soup.select_one('link[rel="next"]')
        return self.absolute_url(self.base_url, link.get("href")) if link else None
