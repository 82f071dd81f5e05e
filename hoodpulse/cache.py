"""Multi-source event aggregation behind a single-flight TTL cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Any, NamedTuple, Optional

from hoodpulse.exceptions import ConfigurationError
from hoodpulse.geo import CITY_TZ
from hoodpulse.models import Event
from hoodpulse.normalize import normalize_batch
from hoodpulse.ports import Observer
from hoodpulse.ranking import filter_kids_events, filter_upcoming, rank_by_proximity_and_date
from hoodpulse.sources.base import BaseSource, merge_order
from hoodpulse.sources.tavily import TavilySearchSource

logger = logging.getLogger(__name__)

HEALTH_WARN_THRESHOLD = 3  # consecutive empty refreshes before a warning
HISTORY_MAX = 7


class FetchResult(NamedTuple):
    events: list[Event]
    duration_ms: int
    status: str  # ok | empty | error | timeout
    error: Optional[str] = None


@dataclass
class SourceHealth:
    """Rolling health counters for one source. Observability only."""

    last_status: Optional[str] = None
    last_count: int = 0
    last_error: Optional[str] = None
    last_duration_ms: Optional[int] = None
    last_refresh_at: Optional[str] = None
    consecutive_empty: int = 0
    total_refreshes: int = 0
    total_successes: int = 0
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_MAX))

    def record(self, result: FetchResult, at: datetime) -> None:
        count = len(result.events)
        self.last_status = result.status
        self.last_count = count
        self.last_error = result.error
        self.last_duration_ms = result.duration_ms
        self.last_refresh_at = at.isoformat()
        self.total_refreshes += 1
        if count > 0:
            self.total_successes += 1
            self.consecutive_empty = 0
        else:
            self.consecutive_empty += 1
        self.history.append(
            {"at": at.isoformat(), "count": count, "duration_ms": result.duration_ms, "status": result.status}
        )

    @property
    def success_rate(self) -> Optional[float]:
        if not self.total_refreshes:
            return None
        return round(self.total_successes / self.total_refreshes, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.last_status,
            "last_count": self.last_count,
            "consecutive_empty": self.consecutive_empty,
            "last_error": self.last_error,
            "last_duration_ms": self.last_duration_ms,
            "last_refresh_at": self.last_refresh_at,
            "success_rate": self.success_rate,
            "history": list(self.history),
        }


@dataclass(frozen=True)
class RefreshStats:
    started_at: str
    duration_ms: int
    raw_count: int
    deduped_count: int
    sources_ok: int
    sources_empty: int
    sources_failed: int


class EventAggregator:
    """Fetches every source, merges by fingerprint and serves per-area event lists.

    The merged list is held for ``ttl``; the first read after it goes stale
    starts a refresh and every concurrent reader awaits that same refresh.
    """

    def __init__(
        self,
        sources: Sequence[BaseSource],
        *,
        search_source: Optional[TavilySearchSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl: timedelta = timedelta(hours=2),
        source_timeout: float = 10.0,
        min_upcoming: int = 5,
        max_results: int = 20,
        observer: Optional[Observer] = None,
        tz: tzinfo = CITY_TZ,
    ) -> None:
        names = [s.name for s in sources]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ConfigurationError(f"Duplicate source names: {', '.join(sorted(duplicates))}")

        self._sources = merge_order(list(sources))
        self._search_source = search_source
        self._clock = clock or (lambda: datetime.now(tz))
        self._ttl = ttl
        self._source_timeout = source_timeout
        self._min_upcoming = min_upcoming
        self._max_results = max_results
        self._observer = observer
        self._tz = tz

        self._events: tuple[Event, ...] = ()
        self._refreshed_at: Optional[datetime] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._last_stats: Optional[RefreshStats] = None
        self._health: dict[str, SourceHealth] = {s.name: SourceHealth() for s in self._sources}

        self._supplements: dict[str, tuple[Event, ...]] = {}
        self._supplement_tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Cache state
    # ------------------------------------------------------------------

    @property
    def sources(self) -> list[BaseSource]:
        """Sources in merge order."""
        return list(self._sources)

    @property
    def events(self) -> tuple[Event, ...]:
        return self._events

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None

    def is_fresh(self) -> bool:
        if self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self._ttl

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> tuple[Event, ...]:
        """Refresh the cache, joining the in-flight refresh if there is one."""
        task = self._refresh_task
        if task is None:
            task = asyncio.create_task(self._do_refresh())
            self._refresh_task = task
            task.add_done_callback(self._refresh_done)
        # A cancelled caller must not cancel the refresh other callers await
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Cache refresh failed: %s", task.exception())

    async def _do_refresh(self) -> tuple[Event, ...]:
        started = self._clock()
        t0 = time.monotonic()
        logger.info("Refreshing event cache (%d sources)...", len(self._sources))

        results = await asyncio.gather(*(self._timed_fetch(s) for s in self._sources))
        by_name = {s.name: r for s, r in zip(self._sources, results)}
        screened = [s.name for s in self._sources if s.screen_family_listings]

        merged: list[Event] = []
        seen: set[str] = set()
        ok = empty = failed = raw = 0
        for source in self._sources:
            result = by_name[source.name]
            raw += len(result.events)
            for event in filter_kids_events(result.events, screened):
                if event.fingerprint not in seen:
                    seen.add(event.fingerprint)
                    merged.append(event)

            health = self._health.setdefault(source.name, SourceHealth())
            health.record(result, started)
            if health.consecutive_empty >= HEALTH_WARN_THRESHOLD:
                logger.warning(
                    "[HEALTH] %s has returned 0 events for %d consecutive refreshes",
                    source.name,
                    health.consecutive_empty,
                )

            if result.status == "ok":
                ok += 1
            elif result.status == "empty":
                empty += 1
            else:
                failed += 1

        # Swap in one assignment so readers never see a half-built list
        self._events = tuple(merged)
        self._refreshed_at = self._clock()
        self._generation += 1
        self._supplements = {}

        stats = RefreshStats(
            started_at=started.isoformat(),
            duration_ms=int((time.monotonic() - t0) * 1000),
            raw_count=raw,
            deduped_count=len(merged),
            sources_ok=ok,
            sources_empty=empty,
            sources_failed=failed,
        )
        self._last_stats = stats
        logger.info(
            "Cache refreshed: %d deduped events (%d raw from %d ok / %d failed / %d empty sources)",
            len(merged), raw, ok, failed, empty,
        )
        self._notify("refresh", **stats.__dict__)
        return self._events

    async def _timed_fetch(self, source: BaseSource) -> FetchResult:
        t0 = time.monotonic()
        try:
            records = await asyncio.wait_for(source.fetch(), timeout=self._source_timeout)
        except asyncio.TimeoutError:
            duration = int((time.monotonic() - t0) * 1000)
            logger.warning("%s: timed out after %.1fs", source.name, self._source_timeout)
            return FetchResult([], duration, "timeout", f"timed out after {self._source_timeout}s")
        except Exception as exc:
            duration = int((time.monotonic() - t0) * 1000)
            logger.error("%s failed: %s", source.name, exc)
            return FetchResult([], duration, "error", str(exc) or type(exc).__name__)

        events = normalize_batch(records, source.name, source.weight)
        duration = int((time.monotonic() - t0) * 1000)
        logger.debug("%s: %d event(s) in %dms", source.name, len(events), duration)
        return FetchResult(events, duration, "ok" if events else "empty")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_events(self, area: Optional[str]) -> list[Event]:
        """Upcoming events for *area*, nearest and soonest first, capped."""
        if not self.is_fresh():
            await self.refresh()

        now = self._clock()
        ranked = rank_by_proximity_and_date(filter_upcoming(self._events, now, self._tz), area, now, self._tz)

        supplemented = 0
        search_source = self._search_source
        if area and len(ranked) < self._min_upcoming and search_source is not None:
            extra = await self._supplement(search_source, area)
            seen = {e.fingerprint for e in ranked}
            additions = [e for e in extra if e.fingerprint not in seen]
            if additions:
                supplemented = len(additions)
                combined = list(ranked) + additions
                ranked = rank_by_proximity_and_date(filter_upcoming(combined, now, self._tz), area, now, self._tz)

        result = ranked[: self._max_results]
        logger.debug("%d event(s) near %s (cache: %d)", len(result), area, len(self._events))
        self._notify("get_events", area=area, count=len(result), supplemented=supplemented)
        return result

    async def _supplement(self, source: TavilySearchSource, area: str) -> tuple[Event, ...]:
        cached = self._supplements.get(area)
        if cached is not None:
            return cached
        task = self._supplement_tasks.get(area)
        if task is None:
            task = asyncio.create_task(self._search(source, area))
            self._supplement_tasks[area] = task
            task.add_done_callback(lambda _t, a=area: self._supplement_tasks.pop(a, None))
        return await asyncio.shield(task)

    async def _search(self, source: TavilySearchSource, area: str) -> tuple[Event, ...]:
        generation = self._generation
        try:
            records = await asyncio.wait_for(source.search(area), timeout=self._source_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s: search for %s timed out", source.name, area)
            return ()
        except Exception as exc:
            logger.error("%s: search for %s failed: %s", source.name, area, exc)
            return ()

        events = tuple(normalize_batch(records, source.name, source.weight))
        if generation == self._generation:
            self._supplements[area] = events
        logger.info("%s: %d supplemental event(s) for %s", source.name, len(events), area)
        return events

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Read-only snapshot of cache and source health."""
        age = None
        if self._refreshed_at is not None:
            age = round((self._clock() - self._refreshed_at).total_seconds() / 60, 1)
        return {
            "cache_size": len(self._events),
            "cache_age_minutes": age,
            "cache_fresh": self.is_fresh(),
            "refreshing": self.refreshing,
            "last_refresh": dict(self._last_stats.__dict__) if self._last_stats else None,
            "sources": {name: health.to_dict() for name, health in self._health.items()},
        }

    def _notify(self, stage: str, **data: Any) -> None:
        if self._observer is not None:
            self._observer.record(stage, **data)
