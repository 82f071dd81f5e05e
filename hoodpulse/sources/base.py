"""Base source class and registry."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar, Optional
from urllib.parse import urljoin

import httpx

from hoodpulse.exceptions import ConfigurationError, SourceError
from hoodpulse.geo import CITY_TZ, local_date_string
from hoodpulse.models import RawRecord

if TYPE_CHECKING:
    from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.2  # seconds between requests to the same source
MAX_BACKOFF_MULTIPLIER = 4  # max multiplier on delay after errors (0.2 -> 0.8s)
MAX_CONSECUTIVE_ERRORS = 3  # skip remaining requests after this many errors in a row

FETCH_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class SourceRegistry:
    """Central registry of all available sources."""

    _sources: ClassVar[dict[str, type[BaseSource]]] = {}

    @classmethod
    def register(cls, source_cls: type[BaseSource]) -> type[BaseSource]:
        """Register a source class. Used as a decorator.

        Raises:
            ConfigurationError: missing or duplicate name, or a weight
                outside [0, 1].
        """
        name = source_cls.name
        if not name:
            raise ConfigurationError(f"{source_cls.__name__} must define a 'name' attribute.")
        existing = cls._sources.get(name)
        if existing is not None and existing is not source_cls:
            raise ConfigurationError(f"Duplicate source name {name!r} ({existing.__name__}, {source_cls.__name__})")
        if not isinstance(source_cls.weight, (int, float)) or not 0.0 <= source_cls.weight <= 1.0:
            raise ConfigurationError(f"{name}: weight must be between 0 and 1, got {source_cls.weight!r}")
        cls._sources[name] = source_cls
        logger.debug("Registered source: %s (weight=%.2f, rank=%d)", name, source_cls.weight, source_cls.merge_rank)
        return source_cls

    @classmethod
    def get(cls, name: str) -> type[BaseSource] | None:
        """Look up a source by name."""
        return cls._sources.get(name)

    @classmethod
    def all(cls) -> dict[str, type[BaseSource]]:
        """Return all registered sources."""
        return dict(cls._sources)

    @classmethod
    def clear(cls) -> None:
        """Remove all registrations (useful for testing)."""
        cls._sources.clear()


def merge_order(sources: list[BaseSource]) -> list[BaseSource]:
    """Sort sources by trust: weight descending, merge_rank ascending, then name."""
    return sorted(sources, key=lambda s: (-s.weight, s.merge_rank, s.name))


class BaseSource(ABC):
    """Abstract base class every source adapter must implement.

    Provides shared parsing helpers and an async ``get()`` helper that:
    - Waits ``request_delay`` seconds between requests.
    - Backs off (doubles the delay) when the server returns 4xx/5xx.
    - Aborts the fetch after ``MAX_CONSECUTIVE_ERRORS`` failures in a row.

    ``fetch()`` closes the HTTP client when done; subclasses implement
    ``_fetch_impl()`` and return raw records, never normalized events.

    To add a source:

        1. Create a module in hoodpulse/sources/.
        2. Subclass BaseSource and set ``name``, ``base_url``, ``weight``
           and ``merge_rank``.
        3. Implement ``_fetch_impl()``.
        4. Decorate the class with ``@SourceRegistry.register``.
    """

    name: ClassVar[str] = ""
    base_url: ClassVar[str] = ""
    weight: ClassVar[float] = 0.5
    merge_rank: ClassVar[int] = 0
    request_delay: ClassVar[float] = DEFAULT_DELAY
    # Listings from this source pass through the family-event screen
    screen_family_listings: ClassVar[bool] = False

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timeout: float = 10.0,
    ) -> None:
        self._injected_client = client
        self._client: Optional[httpx.AsyncClient] = client
        self._timeout = timeout
        # One fetch at a time per instance; they share the client and backoff state
        self._run_lock = asyncio.Lock()
        self._clock = clock or (lambda: datetime.now(CITY_TZ))
        self._current_delay = self.request_delay
        self._consecutive_errors = 0
        self._request_count = 0
        self._aborted = False

    # ------------------------------------------------------------------
    # Shared utilities
    # ------------------------------------------------------------------

    def window_dates(self) -> tuple[str, str]:
        """Today's and tomorrow's city-local ISO dates."""
        now = self._clock()
        return local_date_string(now, 0), local_date_string(now, 1)

    @staticmethod
    def absolute_url(base: str, href: Optional[str]) -> Optional[str]:
        """Join *href* against *base*; None when there is no href."""
        if not href:
            return None
        return urljoin(base, href)

    @staticmethod
    def parse_float(value: object) -> Optional[float]:
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @staticmethod
    def iter_jsonld(soup: BeautifulSoup) -> Iterator[dict]:
        """Yield every JSON-LD object found in ``<script>`` tags.

        Handles single objects, lists, and ``@graph`` arrays.
        """
        for script in soup.select('script[type="application/ld+json"]'):
            raw = script.string or ""
            if not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Skipped malformed JSON-LD block")
                continue

            stack = data if isinstance(data, list) else [data]
            for item in stack:
                if not isinstance(item, dict):
                    continue
                graph = item.get("@graph")
                if isinstance(graph, list):
                    for g in graph:
                        if isinstance(g, dict):
                            yield g
                yield item

    @classmethod
    def iter_jsonld_of_type(cls, soup: BeautifulSoup, *type_names: str) -> Iterator[dict]:
        """Yield JSON-LD objects whose ``@type`` is one of *type_names*."""
        wanted = set(type_names)
        for item in cls.iter_jsonld(soup):
            t = item.get("@type")
            if t in wanted or (isinstance(t, list) and wanted.intersection(t)):
                yield item

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs) -> httpx.Response | None:
        """GET a URL with polite delay and automatic backoff.

        Returns:
            The ``httpx.Response`` on success, or ``None`` if the request
            failed and should be skipped.
        """
        return await self._request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response | None:
        return await self._request("POST", url, **kwargs)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response | None:
        if self._aborted:
            return None

        # Polite delay (skip before the very first request)
        if self._request_count > 0:
            await asyncio.sleep(self._current_delay)
        self._request_count += 1

        try:
            logger.debug("%s: %s %s (delay=%.2fs)", self.name, method, url, self._current_delay)
            resp = await self._client.request(method, url, **kwargs)

            if resp.status_code >= 400:
                self._handle_error(url, status=resp.status_code)
                return None

            self._current_delay = self.request_delay
            self._consecutive_errors = 0
            return resp

        except httpx.HTTPError as exc:
            self._handle_error(url, exc=exc)
            return None

    def _handle_error(
        self,
        url: str,
        *,
        status: int | None = None,
        exc: Exception | None = None,
    ) -> None:
        """Log the error, increase backoff, and maybe abort the fetch."""
        self._consecutive_errors += 1

        reason = f"HTTP {status}" if status else str(exc) or type(exc).__name__
        logger.warning(
            "%s: request failed for %s (%s) [%d/%d consecutive errors]",
            self.name,
            url,
            reason,
            self._consecutive_errors,
            MAX_CONSECUTIVE_ERRORS,
        )

        if self._consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
            logger.error(
                "%s: %d consecutive errors, aborting remaining requests.",
                self.name,
                self._consecutive_errors,
            )
            self._aborted = True
            return

        self._current_delay = min(
            self._current_delay * 2,
            self.request_delay * MAX_BACKOFF_MULTIPLIER,
        )
        logger.info("%s: backing off, next delay %.2fs", self.name, self._current_delay)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._client is not None and self._client is not self._injected_client:
            await self._client.aclose()
        self._client = self._injected_client

    @property
    def aborted(self) -> bool:
        """Whether this fetch was aborted due to repeated errors."""
        return self._aborted

    async def fetch(self) -> list[RawRecord]:
        """Fetch and parse raw records from this source.

        Subclasses implement ``_fetch_impl()`` instead of overriding this.

        Raises:
            SourceError: the fetch was aborted on repeated request errors
                before any record came back.
        """
        return await self._run(self._fetch_impl)

    async def _run(self, impl: Callable[..., Awaitable[list[RawRecord]]], *args) -> list[RawRecord]:
        """Run *impl* with fresh backoff state and an open HTTP client."""
        async with self._run_lock:
            return await self._run_locked(impl, *args)

    async def _run_locked(self, impl: Callable[..., Awaitable[list[RawRecord]]], *args) -> list[RawRecord]:
        self._current_delay = self.request_delay
        self._consecutive_errors = 0
        self._request_count = 0
        self._aborted = False
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout, follow_redirects=True, headers=FETCH_HEADERS
            )
        try:
            records = await impl(*args)
        finally:
            await self.close()
        if self._aborted and not records:
            raise SourceError(f"{self.name}: aborted after {self._consecutive_errors} consecutive request errors")
        return records

    @abstractmethod
    async def _fetch_impl(self) -> list[RawRecord]:
        """Subclass hook: fetch and parse raw records."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} weight={self.weight}>"
