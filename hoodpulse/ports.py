"""Interfaces of the external collaborators the core calls.

The classifier, renderer and search extractor are black boxes (language
models in production). The observer is the trace side channel: the core
reports each decision point to it and never reads anything back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Protocol, Sequence

from hoodpulse.models import Filters, RawRecord

if TYPE_CHECKING:
    from hoodpulse.ranking import TaggedEvent

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """Closed set of per-turn actions."""

    EVENTS = "events"
    MORE = "more"
    FREE = "free"
    DETAILS = "details"
    NUDGE_ACCEPT = "nudge_accept"
    HELP = "help"
    CONVERSATIONAL = "conversational"


@dataclass(frozen=True)
class Route:
    """A classified turn: what to do, and the slots that came with it."""

    intent: Intent
    area: Optional[str] = None
    filters: Optional[Filters] = None  # None: the turn said nothing about filters
    confidence: float = 1.0
    reply: Optional[str] = None  # canned reply for help / conversational turns
    event_ref: Optional[int] = None  # 1-based pick number for details
    source: str = "classifier"


@dataclass(frozen=True)
class Pick:
    """An event the renderer chose to show, with its one-line reason."""

    event_id: str
    why: str = ""


@dataclass(frozen=True)
class Rendered:
    text: str
    picks: tuple[Pick, ...] = ()
    area_used: Optional[str] = None
    suggested_area: Optional[str] = None


@dataclass(frozen=True)
class SessionSummary:
    """What the classifier is allowed to know about the conversation."""

    area: Optional[str] = None
    filters: Filters = field(default_factory=Filters)
    pending_area: Optional[str] = None
    offered_names: tuple[str, ...] = ()
    history: tuple[str, ...] = ()


class Classifier(Protocol):
    async def classify(self, text: str, session: Optional[SessionSummary], areas: Sequence[str]) -> Route:
        """Turn free text into a Route. Raises on failure."""
        ...


class Renderer(Protocol):
    async def render(
        self,
        message: str,
        candidates: Sequence[TaggedEvent],
        area: Optional[str],
        filters: Filters,
    ) -> Rendered:
        """Compose user-facing text from a capped candidate list. Raises on failure."""
        ...


class Extractor(Protocol):
    async def extract(self, text: str, source: str, query: str) -> list[RawRecord]:
        """Pull event records out of free-form search result text."""
        ...


class Observer(Protocol):
    def record(self, stage: str, **data: Any) -> None:
        ...


class LoggingObserver:
    """Observer that writes each decision point to the log at DEBUG."""

    def __init__(self, name: str = "hoodpulse.trace") -> None:
        self._log = logging.getLogger(name)

    def record(self, stage: str, **data: Any) -> None:
        if self._log.isEnabledFor(logging.DEBUG):
            details = " ".join(f"{k}={v!r}" for k, v in data.items())
            self._log.debug("[%s] %s", stage, details)
