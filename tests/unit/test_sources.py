"""Tests for the source adapters, the registry and the HTTP helper."""

from __future__ import annotations

import json

import httpx
import pytest

from hoodpulse.exceptions import ConfigurationError, SourceError
from hoodpulse.sources import BaseSource, SourceRegistry, merge_order
from hoodpulse.sources.dice import DiceSource, map_dice_category
from hoodpulse.sources.donyc import DoNYCSource
from hoodpulse.sources.listings import EventbriteSource, NYPLSource, SongkickSource
from hoodpulse.sources.nycparks import NYCParksSource
from hoodpulse.sources.tavily import HeadlineExtractor, TavilySearchSource
from tests.helpers import TODAY, TOMORROW


def _next_data(events: list[dict]) -> str:
    payload = json.dumps({"props": {"pageProps": {"events": events}}})
    return f'<html><body><script id="__NEXT_DATA__" type="application/json">{payload}</script></body></html>'


def _jsonld(data: dict) -> str:
    return f'<html><head><script type="application/ld+json">{json.dumps(data)}</script></head></html>'


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


DICE_EVENTS = [
    {
        "name": "Floating Points (DJ Set)",
        "dates": {"event_start_date": f"{TODAY}T23:00:00-04:00", "event_end_date": f"{TOMORROW}T04:00:00-04:00"},
        "venues": [
            {
                "name": "Nowadays",
                "address": "56-06 Cooper Ave",
                "city": {"name": "Queens"},
                "location": {"lat": 40.7009, "lng": -73.9036},
            }
        ],
        "price": {"amount_from": 2500},
        "tags_types": [{"value": "music:dj", "title": "DJ"}],
        "perm_name": "floating-points-x1",
    },
    {
        "name": "Sold Out Show",
        "status": "sold-out",
        "dates": {"event_start_date": f"{TODAY}T20:00:00-04:00"},
    },
    {"name": "Next Week", "dates": {"event_start_date": "2026-03-21T20:00:00-04:00"}},
    {
        "name": "Open Decks",
        "dates": {"event_start_date": f"{TOMORROW}T19:00:00-04:00"},
        "price": {"amount_from": 0},
        "summary_lineup": {"top_artists": [{"name": n} for n in ("Ana", "Bo", "Cy", "Di")]},
    },
]

DONYC_PAGE = """
<div class="ds-listing event-card ds-event-category-dj-parties">
  <a itemprop="url" href="/events/2026/3/14/mixtape-night"></a>
  <span class="ds-listing-event-title-text">Mixtape Night</span>
  <div class="ds-venue-name"><span itemprop="name">Baby's All Right</span></div>
  <meta itemprop="startDate" content="2026-03-14T22:00">
  <meta itemprop="streetAddress" content="146 Broadway">
  <meta itemprop="addressLocality" content="Brooklyn">
  <meta itemprop="latitude" content="40.7101">
  <meta itemprop="longitude" content="-73.9629">
  <span class="price">FREE w/ RSVP</span>
</div>
<div class="ds-listing event-card">
  <span class="ds-listing-event-title-text"></span>
</div>
"""

PARKS_PAGE = """
<div itemscope itemtype="http://schema.org/Event">
  <h3 itemprop="name"><a href="/events/2026/03/14/sunset-jazz">Sunset Jazz</a></h3>
  <meta itemprop="startDate" content="2026-03-14T18:00">
  <meta itemprop="endDate" content="2026-03-14T20:00">
  <div itemprop="location">
    <span itemprop="name">Tompkins Square Park</span>
    <meta itemprop="streetAddress" content="Avenue A and E 7th St">
    <span itemprop="addressLocality">Manhattan</span>
  </div>
  <div itemprop="description">Bring a blanket.</div>
  <a href="/events/concerts">Concerts</a>
</div>
<div itemscope itemtype="http://schema.org/Event">
  <h3 itemprop="name"><a href="/events/2026/03/20/later">Later Thing</a></h3>
  <meta itemprop="startDate" content="2026-03-20T18:00">
</div>
"""

LISTING_PAGE = {
    "@context": "https://schema.org",
    "@type": "ItemList",
    "itemListElement": [
        {
            "@type": "ListItem",
            "position": 1,
            "item": {
                "@type": "Event",
                "name": "Rooftop Salsa",
                "startDate": f"{TODAY}T20:00:00-04:00",
                "location": {
                    "@type": "Place",
                    "name": "Le Bain",
                    "address": {"streetAddress": "848 Washington St", "addressLocality": "New York"},
                    "geo": {"latitude": 40.7407, "longitude": -74.0079},
                },
                "offers": {"lowPrice": "15", "url": "https://www.eventbrite.com/e/rooftop-salsa-1"},
                "url": "https://www.eventbrite.com/e/rooftop-salsa-1",
            },
        },
        {
            "item": {
                "@type": "Event",
                "name": "Gallery Walk",
                "startDate": TOMORROW,
                "description": "Free admission all night.",
            }
        },
        {"item": {"@type": "Event", "name": "Next Week Thing", "startDate": "2026-03-21T20:00"}},
    ],
}


class TestRegistry:
    def test_adapters_register_on_import(self):
        names = set(SourceRegistry.all())
        assert {"dice", "donyc", "nyc_parks", "songkick", "eventbrite", "nypl", "eventbrite_comedy"} <= names
        assert "tavily" not in names

    def test_duplicate_name_rejected(self):
        class Impostor(BaseSource):
            name = "dice"

            async def _fetch_impl(self):
                return []

        with pytest.raises(ConfigurationError):
            SourceRegistry.register(Impostor)
        assert SourceRegistry.get("dice") is DiceSource

    @pytest.mark.parametrize("attrs", [{"name": ""}, {"name": "heavy", "weight": 1.5}])
    def test_bad_declarations_rejected(self, attrs):
        cls = type("Bad", (BaseSource,), {"_fetch_impl": lambda self: [], **attrs})
        with pytest.raises(ConfigurationError):
            SourceRegistry.register(cls)

    def test_merge_order(self, clock):
        sources = [cls(clock=clock) for cls in SourceRegistry.all().values()]
        ordered = [s.name for s in merge_order(sources)]
        assert ordered[:4] == ["dice", "nyc_parks", "donyc", "songkick"]
        assert ordered.index("eventbrite") < ordered.index("nypl") < ordered.index("eventbrite_comedy")


class TestDice:
    def test_parse_page(self, clock):
        records = DiceSource(clock=clock).parse_page(_next_data(DICE_EVENTS))

        assert [r.name for r in records] == ["Floating Points (DJ Set)", "Open Decks"]
        dj, decks = records
        assert dj.venue_name == "Nowadays"
        assert dj.locality == "Queens"
        assert dj.latitude == pytest.approx(40.7009)
        assert dj.date is None
        assert dj.start == f"{TODAY}T23:00:00-04:00"
        assert dj.price == "$25+"
        assert dj.is_free is False
        assert dj.category == "nightlife"
        assert dj.subcategory == "DJ"
        assert dj.ticket_url == "https://dice.fm/event/floating-points-x1"
        assert decks.is_free is True
        assert decks.description == "Ana, Bo, Cy + 1 more"

    def test_window_uses_city_local_day(self, clock):
        items = [
            {"name": "Tomorrow Late", "dates": {"event_start_date": "2026-03-16T02:00:00Z"}},
            {"name": "Last Night", "dates": {"event_start_date": f"{TODAY}T02:00:00Z"}},
        ]
        records = DiceSource(clock=clock).parse_page(_next_data(items))
        assert [r.name for r in records] == ["Tomorrow Late"]

    def test_missing_page_data(self, clock):
        assert DiceSource(clock=clock).parse_page("<html></html>") == []
        broken = '<script id="__NEXT_DATA__">{not json</script>'
        assert DiceSource(clock=clock).parse_page(broken) == []

    @pytest.mark.parametrize(
        "tags,expected",
        [
            ([{"value": "comedy:standup"}], "comedy"),
            ([{"title": "Jazz"}], "live_music"),
            ([{"value": "culture:gallery"}], "art"),
            ([], None),
            (None, None),
        ],
    )
    def test_category_mapping(self, tags, expected):
        assert map_dice_category(tags) == expected

    @pytest.mark.asyncio
    async def test_fetch_over_http(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "dice.fm"
            return httpx.Response(200, text=_next_data(DICE_EVENTS[:1]))

        source = DiceSource(client=_mock_client(handler), clock=clock)
        records = await source.fetch()
        assert [r.name for r in records] == ["Floating Points (DJ Set)"]

    @pytest.mark.asyncio
    async def test_http_error_yields_nothing(self, clock):
        source = DiceSource(client=_mock_client(lambda request: httpx.Response(503)), clock=clock)
        assert await source.fetch() == []
        assert not source.aborted

    @pytest.mark.asyncio
    async def test_repeated_errors_abort_the_fetch(self, clock, monkeypatch):
        monkeypatch.setattr(DoNYCSource, "request_delay", 0.0)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(500)

        source = DoNYCSource(client=_mock_client(handler), clock=clock)
        with pytest.raises(SourceError):
            await source.fetch()
        assert len(calls) == 3
        assert source.aborted


class TestDoNYC:
    def test_parse_cards(self, clock):
        records = DoNYCSource(clock=clock).parse_page(DONYC_PAGE, "2026-03-13")

        assert len(records) == 1
        card = records[0]
        assert card.name == "Mixtape Night"
        assert card.venue_name == "Baby's All Right"
        assert card.locality == "Brooklyn"
        assert card.date == TODAY
        assert card.category == "nightlife"
        assert card.is_free is True
        assert card.longitude == pytest.approx(-73.9629)
        assert card.source_url == "https://donyc.com/events/2026/3/14/mixtape-night"

    def test_page_category_overrides_card(self, clock):
        records = DoNYCSource(clock=clock).parse_page(DONYC_PAGE, TODAY, "comedy")
        assert records[0].category == "comedy"


class TestNYCParks:
    def test_parse_page(self, clock):
        source = NYCParksSource(clock=clock)
        records = source.parse_page(PARKS_PAGE)

        assert source.screen_family_listings
        assert len(records) == 1
        jazz = records[0]
        assert jazz.name == "Sunset Jazz"
        assert jazz.venue_name == "Tompkins Square Park"
        assert jazz.locality == "Manhattan"
        assert jazz.is_free is True
        assert jazz.end == "2026-03-14T20:00"
        assert jazz.subcategory == "concerts"
        assert jazz.description == "Bring a blanket."
        assert jazz.source_url == "https://www.nycgovparks.org/events/2026/03/14/sunset-jazz"


class TestJsonLdListings:
    def test_item_list(self, clock):
        records = EventbriteSource(clock=clock).parse_page(_jsonld(LISTING_PAGE))

        assert [r.name for r in records] == ["Rooftop Salsa", "Gallery Walk"]
        salsa, walk = records
        assert salsa.venue_name == "Le Bain"
        assert salsa.venue_address == "848 Washington St, New York"
        assert salsa.price == "$15+"
        assert salsa.is_free is False
        assert salsa.latitude == pytest.approx(40.7407)
        assert salsa.ticket_url == "https://www.eventbrite.com/e/rooftop-salsa-1"
        assert walk.is_free is True
        assert walk.start == TOMORROW

    def test_event_types_restrict_songkick(self, clock):
        page = {
            "@graph": [
                {"@type": "MusicEvent", "name": "Big Thief", "startDate": f"{TODAY}T20:00"},
                {"@type": "Event", "name": "Book Club", "startDate": f"{TODAY}T19:00"},
            ]
        }
        records = SongkickSource(clock=clock).parse_page(_jsonld(page))
        assert [r.name for r in records] == ["Big Thief"]
        assert records[0].category == "live_music"

    def test_defaults_fill_missing_location(self, clock):
        page = {"@type": "Event", "name": "Chamber Music Hour", "startDate": f"{TODAY}T18:00"}
        record = NYPLSource(clock=clock).parse_page(_jsonld(page))[0]
        assert record.venue_name == "NYPL for the Performing Arts"
        assert record.locality == "Lincoln Center"
        assert record.latitude == pytest.approx(40.7736)

    def test_malformed_block_skipped(self, clock):
        html = '<script type="application/ld+json">{oops</script>' + _jsonld(LISTING_PAGE)
        assert len(EventbriteSource(clock=clock).parse_page(html)) == 2


class TestTavily:
    RESULTS = {
        "results": [
            {
                "url": "https://example.com/astoria-trivia",
                "title": "Trivia Night at Sweet Afton",
                "content": "Tuesday trivia, teams of up to six.",
                "published_date": "2026-03-13",
            },
            {
                "url": "https://example.com/old",
                "title": "Last Month's Roundup",
                "content": "Stale.",
                "published_date": "2026-02-01",
            },
        ]
    }

    @pytest.mark.asyncio
    async def test_disabled_without_key(self, clock):
        source = TavilySearchSource(None, HeadlineExtractor(), clock=clock)
        assert not source.enabled
        assert await source.search("Astoria") == []
        assert await source.fetch() == []

    @pytest.mark.asyncio
    async def test_search_extracts_fresh_results(self, clock):
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(200, json=self.RESULTS)

        source = TavilySearchSource("key", HeadlineExtractor(), client=_mock_client(handler), clock=clock)
        records = await source.search("Astoria")

        assert sent[0]["api_key"] == "key"
        assert "Astoria" in sent[0]["query"]
        assert [r.name for r in records] == ["Trivia Night at Sweet Afton"]
        assert records[0].locality == "Astoria"
        assert records[0].description == "Tuesday trivia, teams of up to six."
        assert records[0].confidence == HeadlineExtractor.confidence

    @pytest.mark.asyncio
    async def test_daily_sweep_marks_free(self, clock):
        source = TavilySearchSource(
            "key",
            HeadlineExtractor(),
            client=_mock_client(lambda request: httpx.Response(200, json=self.RESULTS)),
            clock=clock,
        )
        records = await source.fetch()
        assert records and all(r.is_free for r in records)

    def test_drop_stale(self, clock):
        source = TavilySearchSource("key", HeadlineExtractor(), clock=clock)
        undated = {"url": "u", "title": "t"}
        fresh = source.drop_stale(self.RESULTS["results"] + [undated])
        assert [r["url"] for r in fresh] == ["https://example.com/astoria-trivia", "u"]
