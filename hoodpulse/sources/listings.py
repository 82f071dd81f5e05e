"""Listing sites and venue calendars read through JSON-LD."""

from hoodpulse.sources.base import SourceRegistry
from hoodpulse.sources.jsonld import JsonLdListingSource, ListingDefaults


@SourceRegistry.register
class SongkickSource(JsonLdListingSource):
    """Songkick's New York metro page. Concerts only."""

    name = "songkick"
    base_url = "https://www.songkick.com/metro-areas/7644-us-new-york"
    weight = 0.75
    merge_rank = 2
    event_types = ("MusicEvent",)
    defaults = ListingDefaults(category="live_music")


@SourceRegistry.register
class EventbriteSource(JsonLdListingSource):
    name = "eventbrite"
    base_url = "https://www.eventbrite.com/d/ny--new-york/events--today/"
    weight = 0.7
    merge_rank = 0
    max_pages = 2


@SourceRegistry.register
class NYPLSource(JsonLdListingSource):
    """Library for the Performing Arts calendar (Lincoln Center)."""

    name = "nypl"
    base_url = "https://www.eventbrite.com/o/new-york-public-library-for-the-performing-arts-5993389089"
    weight = 0.7
    merge_rank = 1
    defaults = ListingDefaults(
        venue="NYPL for the Performing Arts",
        address="40 Lincoln Center Plaza, New York, NY",
        locality="Lincoln Center",
        latitude=40.7736,
        longitude=-73.9845,
    )


@SourceRegistry.register
class EventbriteComedySource(JsonLdListingSource):
    name = "eventbrite_comedy"
    base_url = "https://www.eventbrite.com/d/ny--new-york/comedy--events--today/"
    weight = 0.7
    merge_rank = 2
    defaults = ListingDefaults(category="comedy")
