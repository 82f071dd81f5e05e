"""Per-user conversation state with a TTL.

A turn that shows anything writes a complete ``SessionFrame`` through
``SessionStore.replace``; there is no way to update a single field. Turns
that show nothing new only ``touch`` the session (history + timestamp).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Optional

from hoodpulse.models import Event, Filters
from hoodpulse.ports import Pick, SessionSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pending:
    """A proposal awaiting the user's yes/no, or filters awaiting an area."""

    area: Optional[str] = None
    filters: Optional[Filters] = None
    candidate_ids: tuple[str, ...] = ()  # matches already found in the proposed area


@dataclass(frozen=True)
class HistoryEntry:
    user_text: str
    reply: str
    intent: Optional[str] = None


@dataclass(frozen=True)
class SessionFrame:
    """Everything a response leaves behind for the next turn. No defaults on purpose."""

    area: Optional[str]
    filters: Filters
    offered_ids: tuple[str, ...]  # cumulative within the topic
    picks: tuple[Pick, ...]  # this turn's picks, numbered for details
    all_pick_ids: tuple[str, ...]  # cumulative within the topic
    events: Mapping[str, Event]  # id -> event for everything referenced above
    pending: Optional[Pending]
    visited_areas: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "events", MappingProxyType(dict(self.events)))

    @classmethod
    def empty(cls) -> SessionFrame:
        return cls(
            area=None,
            filters=Filters(),
            offered_ids=(),
            picks=(),
            all_pick_ids=(),
            events={},
            pending=None,
            visited_areas=(),
        )


@dataclass(frozen=True)
class Session:
    frame: SessionFrame
    history: tuple[HistoryEntry, ...]
    updated_at: datetime

    def summary(self) -> SessionSummary:
        """The slice of state the external classifier gets to see."""
        frame = self.frame
        names = tuple(frame.events[p.event_id].name for p in frame.picks if p.event_id in frame.events)
        return SessionSummary(
            area=frame.area,
            filters=frame.filters,
            pending_area=frame.pending.area if frame.pending else None,
            offered_names=names,
            history=tuple(h.user_text for h in self.history),
        )


class SessionStore:
    """In-memory sessions keyed by user id. Expired sessions read as absent."""

    def __init__(
        self,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        ttl: timedelta = timedelta(hours=2),
        history_length: int = 6,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ttl = ttl
        self._history_length = history_length
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _expired(self, session: Session, now: datetime) -> bool:
        return now - session.updated_at >= self._ttl

    def get(self, user_id: str) -> Optional[Session]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._expired(session, self._clock()):
            del self._sessions[user_id]
            return None
        return session

    def replace(self, user_id: str, frame: SessionFrame, entry: Optional[HistoryEntry] = None) -> Session:
        """Swap in *frame* wholesale, keeping (and extending) the turn history."""
        previous = self.get(user_id)
        history = previous.history if previous else ()
        session = Session(frame=frame, history=self._append(history, entry), updated_at=self._clock())
        self._sessions[user_id] = session
        return session

    def touch(self, user_id: str, entry: HistoryEntry) -> Session:
        """Record a turn that leaves the frame as it was."""
        previous = self.get(user_id)
        frame = previous.frame if previous else SessionFrame.empty()
        history = previous.history if previous else ()
        session = Session(frame=frame, history=self._append(history, entry), updated_at=self._clock())
        self._sessions[user_id] = session
        return session

    def sweep(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        now = self._clock()
        expired = [uid for uid, s in self._sessions.items() if self._expired(s, now)]
        for uid in expired:
            del self._sessions[uid]
        if expired:
            logger.debug("Swept %d expired session(s)", len(expired))
        return len(expired)

    def _append(self, history: tuple[HistoryEntry, ...], entry: Optional[HistoryEntry]) -> tuple[HistoryEntry, ...]:
        if entry is None:
            return history
        return (history + (entry,))[-self._history_length:]
