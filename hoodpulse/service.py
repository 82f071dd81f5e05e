"""Wires settings, sources and the conversation together."""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import hoodpulse.sources as sources_pkg
from hoodpulse.cache import EventAggregator
from hoodpulse.classify import KeywordClassifier
from hoodpulse.config import Settings
from hoodpulse.conversation import Conversation
from hoodpulse.evergreen import EvergreenPicks
from hoodpulse.formatters import PlainRenderer
from hoodpulse.limits import RateLimiter
from hoodpulse.ports import Classifier, Extractor, LoggingObserver, Observer, Renderer
from hoodpulse.session import SessionStore
from hoodpulse.sources import BaseSource, SourceRegistry
from hoodpulse.sources.tavily import HeadlineExtractor, TavilySearchSource
from hoodpulse.sweeper import Sweeper

logger = logging.getLogger(__name__)

# Modules that hold base classes or unregistered sources
_NOT_ADAPTERS = {"base", "jsonld", "tavily"}


def discover_sources() -> None:
    """Import every module in hoodpulse.sources so @register decorators fire."""
    for _importer, modname, _ispkg in pkgutil.iter_modules(sources_pkg.__path__):
        if modname in _NOT_ADAPTERS:
            continue
        importlib.import_module(f"hoodpulse.sources.{modname}")


@dataclass
class Service:
    aggregator: EventAggregator
    sessions: SessionStore
    conversation: Conversation
    sweeper: Sweeper
    rate_limiter: Optional[RateLimiter] = None


def build_service(
    settings: Settings,
    *,
    classifier: Optional[Classifier] = None,
    renderer: Optional[Renderer] = None,
    extractor: Optional[Extractor] = None,
    observer: Optional[Observer] = None,
) -> Service:
    """Build the full object graph from *settings*.

    Without an external classifier or renderer the keyword classifier and
    the plain renderer are used.
    """
    tz = ZoneInfo(settings.timezone)

    def clock() -> datetime:
        return datetime.now(tz)

    observer = observer or LoggingObserver()

    discover_sources()
    sources: list[BaseSource] = [cls(timeout=settings.source_timeout) for cls in SourceRegistry.all().values()]

    search_source = None
    if settings.search_api_key:
        search_source = TavilySearchSource(
            settings.search_api_key,
            extractor or HeadlineExtractor(),
            url=settings.search_api_url,
            clock=clock,
            timeout=settings.source_timeout,
        )
        sources.append(search_source)
    else:
        logger.info("No search API key configured; search supplement disabled")

    aggregator = EventAggregator(
        sources,
        search_source=search_source,
        clock=clock,
        ttl=timedelta(minutes=settings.cache_ttl_minutes),
        source_timeout=settings.source_timeout,
        min_upcoming=settings.min_upcoming,
        max_results=settings.max_results,
        observer=observer,
        tz=tz,
    )
    sessions = SessionStore(
        clock=clock,
        ttl=timedelta(minutes=settings.session_ttl_minutes),
        history_length=settings.history_length,
    )
    rate_limiter = None
    if settings.rate_limit_enabled:
        rate_limiter = RateLimiter(
            max_turns=settings.rate_limit_max,
            window=timedelta(minutes=settings.rate_limit_window_minutes),
            clock=clock,
        )

    conversation = Conversation(
        aggregator,
        sessions,
        classifier or KeywordClassifier(),
        renderer or PlainRenderer(),
        evergreen=EvergreenPicks.load(settings.evergreen_path),
        observer=observer,
        rate_limiter=rate_limiter,
        clock=clock,
        classifier_timeout=settings.classifier_timeout,
        renderer_timeout=settings.renderer_timeout,
    )

    sweeps = [sessions.sweep] + ([rate_limiter.sweep] if rate_limiter else [])
    sweeper = Sweeper(sweeps, interval=settings.sweep_interval_seconds)
    logger.debug("Built service with %d source(s)", len(sources))
    return Service(aggregator, sessions, conversation, sweeper, rate_limiter)
