"""Web-search source used on demand when an area's cache is thin."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Optional

from hoodpulse.geo import CITY_TZ, extract_area, parse_local_datetime
from hoodpulse.models import RawRecord
from hoodpulse.ports import Extractor
from hoodpulse.sources.base import BaseSource

logger = logging.getLogger(__name__)

MAX_RESULT_AGE = timedelta(days=7)

_RESULT_BLOCK = re.compile(r"^\[Source: (.*?)\]\n([^\n]*)\n?(.*)$", re.DOTALL)


def _published_at(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    parsed = parse_local_datetime(value, CITY_TZ)
    if parsed is not None:
        return parsed
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=CITY_TZ)


class TavilySearchSource(BaseSource):
    """Searches the web for tonight's events and hands the text to an extractor.

    Not registered: it needs an API key and an extractor, so the wiring
    layer builds it explicitly. Without a key every call returns nothing.
    """

    name = "tavily"
    base_url = "https://api.tavily.com/search"
    weight = 0.6
    merge_rank = 0

    free_queries = (
        "free events NYC tonight {today} no cover",
        "free things to do in New York City {today} free entry",
    )

    def __init__(
        self,
        api_key: Optional[str],
        extractor: Extractor,
        *,
        url: Optional[str] = None,
        max_results: int = 5,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key
        self._extractor = extractor
        self._url = url or self.base_url
        self._max_results = max_results

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def search(self, area: str, query: Optional[str] = None) -> list[RawRecord]:
        """Look up events for one area. Returns [] when disabled or on failure."""
        if not self.enabled:
            return []
        now = self._clock().astimezone(CITY_TZ)
        today = f"{now:%B} {now.day}, {now.year}"
        query = query or f"events tonight {area} NYC {today}"
        return await self._run(self._search_impl, [query], False)

    async def _fetch_impl(self) -> list[RawRecord]:
        """Daily sweep for free events across the city."""
        if not self.enabled:
            return []
        now = self._clock().astimezone(CITY_TZ)
        today = f"{now:%A, %B} {now.day}, {now.year}"
        queries = [q.format(today=today) for q in self.free_queries]
        return await self._search_impl(queries, True)

    async def _search_impl(self, queries: list[str], force_free: bool) -> list[RawRecord]:
        seen_urls: set[str] = set()
        results: list[dict] = []
        for query in queries:
            for result in await self._query(query):
                url = result.get("url") or ""
                if url in seen_urls:
                    continue
                seen_urls.add(url)
                results.append(result)

        fresh = self.drop_stale(results)
        text = "\n\n---\n\n".join(
            f"[Source: {r.get('url', '')}]\n{r.get('title', '')}\n{r.get('content', '')}" for r in fresh
        )
        if not text.strip():
            return []

        records = await self._extractor.extract(text, self.name, " | ".join(queries))
        if force_free:
            for record in records:
                record.is_free = True
        logger.info("%s: %d record(s) from %d search result(s)", self.name, len(records), len(fresh))
        return records

    async def _query(self, query: str) -> list[dict]:
        resp = await self.post(
            self._url,
            json={
                "api_key": self._api_key,
                "query": query,
                "search_depth": "basic",
                "max_results": self._max_results,
                "include_answer": False,
            },
        )
        if resp is None:
            return []
        try:
            data = resp.json()
        except ValueError:
            logger.warning("%s: search response was not JSON", self.name)
            return []
        results = data.get("results") if isinstance(data, dict) else None
        return [r for r in results or [] if isinstance(r, dict)]

    def drop_stale(self, results: list[dict]) -> list[dict]:
        """Drop results published more than a week ago; undated results stay."""
        cutoff = self._clock() - MAX_RESULT_AGE
        fresh = []
        for result in results:
            published = _published_at(result.get("published_date"))
            if published is None or published > cutoff:
                fresh.append(result)
        if len(fresh) < len(results):
            logger.info("%s: dropped %d stale result(s)", self.name, len(results) - len(fresh))
        return fresh


class HeadlineExtractor:
    """Extractor that turns each search result into one low-confidence record.

    Stands in for a language-model extractor: the result title becomes the
    event name and the area named in the query becomes the locality.
    """

    confidence = 0.4

    async def extract(self, text: str, source: str, query: str) -> list[RawRecord]:
        locality = extract_area(query)
        records = []
        for block in text.split("\n\n---\n\n"):
            match = _RESULT_BLOCK.match(block.strip())
            if match is None:
                continue
            url, title, content = match.group(1), match.group(2).strip(), match.group(3).strip()
            if not title:
                continue
            records.append(RawRecord(
                name=title,
                locality=locality,
                description=content or None,
                source_url=url or None,
                confidence=self.confidence,
            ))
        logger.debug("%s: %d headline record(s)", source, len(records))
        return records
