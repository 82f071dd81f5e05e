"""Turn handling: route a message, resolve area and filters, act, save the frame.

Every action returns an ``Outcome``. Only ``Conversation._handle`` writes to
the session store, and only after the action finished without raising, so a
failed turn leaves the session exactly as it was.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from hoodpulse.areas import AREA_NAMES, AREAS
from hoodpulse.cache import EventAggregator
from hoodpulse.evergreen import EvergreenPicks
from hoodpulse.exceptions import ClassifierError, RendererError
from hoodpulse.formatters import format_event_details, smart_truncate, strip_more_references
from hoodpulse.geo import CITY_TZ, adjacent_areas, extract_area
from hoodpulse.limits import RateLimiter
from hoodpulse.models import Event, Filters
from hoodpulse.ports import Classifier, Intent, Observer, Pick, Renderer, Route
from hoodpulse.preclassify import HELP_TEXT, preclassify
from hoodpulse.ranking import (
    TaggedEvent,
    apply_filters,
    build_tagged_pool,
    event_matches_filters,
)
from hoodpulse.session import HistoryEntry, Pending, Session, SessionFrame, SessionStore

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, something went wrong on my end. Give it another try in a minute!"
ASK_AREA = "Where are you headed? Drop me a neighborhood like East Village, Williamsburg, or LES."
RATE_LIMITED = "You're texting faster than I can keep up! Give me a bit and try again."
NO_PICKS = "I don't have any recent picks to pull up. Text me a neighborhood and let's start fresh!"
DEFAULT_CONVERSATIONAL = "Hey! Text a neighborhood whenever you're ready to go out."

COMPOSE_CAP = 8  # candidates handed to the renderer per turn
EVERGREEN_CAP = 4
NUDGE_HOPS = 3  # adjacent areas searched for a free alternative
NUDGE_CHAIN_HOPS = 5  # adjacent areas tried after an accepted nudge comes up empty
EXHAUSTION_HOPS = 4

NEEDS_AREA = {Intent.EVENTS, Intent.FREE, Intent.MORE, Intent.NUDGE_ACCEPT}

_TEXT_A_NEIGHBORHOOD = re.compile(r"text (?:me )?a neighborhood[^.!]*", re.IGNORECASE)


@dataclass(frozen=True)
class Outcome:
    text: str
    frame: Optional[SessionFrame] = None  # None: keep the frame, record history only


@dataclass(frozen=True)
class TurnResult:
    text: str
    intent: Optional[Intent]
    area: Optional[str] = None
    route_source: Optional[str] = None
    session_updated: bool = False


def resolve_area(text: str, route: Route, session: Optional[Session]) -> Optional[str]:
    """Area named in the text > classifier's guess > the session's last area."""
    explicit = extract_area(text)
    if explicit:
        return explicit
    if route.area in AREAS:
        return route.area
    return session.frame.area if session else None


def resolve_filters(route: Route, session: Optional[Session]) -> Filters:
    """This turn's filters > pending filters > the session's last filters."""
    if route.filters is not None and route.filters.any():
        return route.filters
    if session is not None:
        pending = session.frame.pending
        if pending is not None and pending.filters is not None and pending.filters.any():
            return pending.filters
        if session.frame.filters.any():
            return session.frame.filters
    return route.filters or Filters()


def _ids(events: Iterable[Event]) -> tuple[str, ...]:
    return tuple(e.id for e in events)


def _event_map(*groups: Iterable[Event]) -> dict[str, Event]:
    return {e.id: e for group in groups for e in group}


def _category_label(filters: Filters) -> str:
    return f"{filters.category.value.replace('_', ' ')} " if filters.category else ""


def _nearby_offer(area: str, suggestion: Optional[str], what: str = "picks") -> str:
    if suggestion:
        return f"That's everything I've got in {area}! {suggestion} is right nearby. Want {what} from there?"
    return f"That's everything I've got in {area}! Try a different neighborhood for more."


class Conversation:
    """Turn handler tying the pre-classifier, classifier, cache and renderer together."""

    def __init__(
        self,
        aggregator: EventAggregator,
        sessions: SessionStore,
        classifier: Classifier,
        renderer: Renderer,
        *,
        evergreen: Optional[EvergreenPicks] = None,
        observer: Optional[Observer] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Optional[Callable[[], datetime]] = None,
        classifier_timeout: float = 12.0,
        renderer_timeout: float = 15.0,
    ) -> None:
        self._aggregator = aggregator
        self._sessions = sessions
        self._classifier = classifier
        self._renderer = renderer
        self._evergreen = evergreen or EvergreenPicks({})
        self._observer = observer
        self._rate_limiter = rate_limiter
        self._clock = clock or (lambda: datetime.now(CITY_TZ))
        self._classifier_timeout = classifier_timeout
        self._renderer_timeout = renderer_timeout

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_turn(self, user_id: str, text: str) -> TurnResult:
        """Process one inbound message. Never raises; failures become an apology."""
        if self._rate_limiter is not None and not self._rate_limiter.allow(user_id):
            return TurnResult(RATE_LIMITED, None)
        try:
            return await self._handle(user_id, text)
        except (ClassifierError, RendererError) as exc:
            logger.warning("Turn for %s degraded to apology: %s", user_id, exc)
            self._notify("failure", user=user_id, error=str(exc))
            return TurnResult(APOLOGY, None)
        except Exception:
            logger.exception("Unexpected error handling turn for %s", user_id)
            self._notify("failure", user=user_id, error="unexpected")
            return TurnResult(APOLOGY, None)

    async def _handle(self, user_id: str, text: str) -> TurnResult:
        session = self._sessions.get(user_id)
        route = preclassify(text, session)
        if route is None:
            route = await self._classify(text, session)
        logger.info("Route for %s: %s via %s", user_id, route.intent.value, route.source)
        self._notify("route", user=user_id, intent=route.intent.value, source=route.source, area=route.area)

        area = resolve_area(text, route, session)
        filters = resolve_filters(route, session)
        self._notify("resolve", user=user_id, area=area, filters=filters.to_dict())

        if route.intent in NEEDS_AREA and area is None:
            outcome = self._ask_for_area(route, filters)
        elif route.intent is Intent.EVENTS:
            outcome = await self._show_events(text, area, filters)
        elif route.intent is Intent.FREE:
            outcome = await self._show_free(text, area, filters.with_free())
        elif route.intent is Intent.MORE:
            outcome = await self._show_more(text, area, filters, session)
        elif route.intent is Intent.DETAILS:
            outcome = self._show_details(route, session)
        elif route.intent is Intent.NUDGE_ACCEPT:
            outcome = await self._nudge_accept(text, area, filters, session)
        elif route.intent is Intent.HELP:
            outcome = Outcome(smart_truncate(route.reply or HELP_TEXT))
        else:
            outcome = self._conversational(route, session)

        entry = HistoryEntry(user_text=text, reply=outcome.text, intent=route.intent.value)
        if outcome.frame is not None:
            self._sessions.replace(user_id, outcome.frame, entry)
        else:
            self._sessions.touch(user_id, entry)
        self._notify("reply", user=user_id, intent=route.intent.value, replaced=outcome.frame is not None)

        served = outcome.frame.area if outcome.frame is not None else area
        return TurnResult(outcome.text, route.intent, served, route.source, outcome.frame is not None)

    # ------------------------------------------------------------------
    # External calls
    # ------------------------------------------------------------------

    async def _classify(self, text: str, session: Optional[Session]) -> Route:
        summary = session.summary() if session else None
        try:
            return await asyncio.wait_for(
                self._classifier.classify(text, summary, AREA_NAMES), timeout=self._classifier_timeout
            )
        except asyncio.TimeoutError as exc:
            raise ClassifierError(f"classifier timed out after {self._classifier_timeout}s") from exc
        except ClassifierError:
            raise
        except Exception as exc:
            raise ClassifierError(f"classifier failed: {exc}") from exc

    async def _render(
        self,
        text: str,
        candidates: Sequence[TaggedEvent],
        area: Optional[str],
        filters: Filters,
    ) -> tuple[str, tuple[Pick, ...], Optional[str], Optional[str]]:
        """Call the renderer; returns (text, valid picks, area used, suggested area)."""
        try:
            rendered = await asyncio.wait_for(
                self._renderer.render(text, candidates, area, filters), timeout=self._renderer_timeout
            )
        except asyncio.TimeoutError as exc:
            raise RendererError(f"renderer timed out after {self._renderer_timeout}s") from exc
        except RendererError:
            raise
        except Exception as exc:
            raise RendererError(f"renderer failed: {exc}") from exc

        known = {t.event.id for t in candidates}
        picks = tuple(p for p in rendered.picks if p.event_id in known)
        if len(picks) < len(rendered.picks):
            logger.warning("Dropped %d pick(s) not among the candidates", len(rendered.picks) - len(picks))
        area_used = rendered.area_used if rendered.area_used in AREAS else area
        return rendered.text, picks, area_used, rendered.suggested_area

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _ask_for_area(self, route: Route, filters: Filters) -> Outcome:
        if route.intent is Intent.FREE:
            filters = filters.with_free()
        pending = Pending(filters=filters) if filters.any() else None
        frame = SessionFrame(
            area=None,
            filters=Filters(),
            offered_ids=(),
            picks=(),
            all_pick_ids=(),
            events={},
            pending=pending,
            visited_areas=(),
        )
        return Outcome(ASK_AREA, frame)

    def _evergreen_for(self, area: str, filters: Filters, *, local_only: bool) -> list[Event]:
        events = self._evergreen.events_for(area, self._clock())
        if local_only:
            events = [e for e in events if e.area == area]
        if filters.free_only:
            events = [e for e in events if e.is_free]
        return events

    async def _show_events(self, text: str, area: str, filters: Filters) -> Outcome:
        events = await self._aggregator.get_events(area)
        # Free is hard and time-of-day soft here; category only biases the pool
        events = apply_filters(events, Filters(free_only=filters.free_only, time_after=filters.time_after))
        pool = build_tagged_pool(events, filters)

        evergreen_cap = min(EVERGREEN_CAP, COMPOSE_CAP - min(len(pool.pool), COMPOSE_CAP))
        evergreen = self._evergreen_for(area, filters, local_only=True)[:evergreen_cap]
        candidates = pool.pool[: COMPOSE_CAP - len(evergreen)]
        candidates += [TaggedEvent(e, filters.any() and event_matches_filters(e, filters)) for e in evergreen]
        nearby = adjacent_areas(area, 3)
        self._notify(
            "candidates", area=area, pool=len(pool.pool), matches=pool.match_count,
            sparse=pool.is_sparse, evergreen=len(evergreen),
        )

        if not candidates:
            suggestion = nearby[0] if nearby else None
            tail = f" {suggestion} is right nearby. Want picks from there?" if suggestion else (
                " Try a different neighborhood or check back later!"
            )
            frame = SessionFrame(
                area=area,
                filters=filters,
                offered_ids=(),
                picks=(),
                all_pick_ids=(),
                events={},
                pending=Pending(area=suggestion, filters=filters if filters.any() else None) if suggestion else None,
                visited_areas=(area,),
            )
            return Outcome(f"Quiet night in {area}, not seeing much right now.{tail}", frame)

        reply, picks, area_used, suggested = await self._render(text, candidates, area, filters)
        pending = None
        if suggested in nearby:
            pending = Pending(area=suggested, filters=filters if filters.any() else None)
        offered = [t.event for t in candidates]
        frame = SessionFrame(
            area=area_used,
            filters=filters,
            offered_ids=_ids(offered),
            picks=picks,
            all_pick_ids=tuple(p.event_id for p in picks),
            events=_event_map(offered),
            pending=pending,
            visited_areas=(area,),
        )
        return Outcome(reply, frame)

    async def _matches_in(self, area: str, filters: Filters) -> list[Event]:
        """Events in *area* that satisfy *filters* strictly."""
        events = await self._aggregator.get_events(area)
        return apply_filters([e for e in events if e.area == area], filters, strict=True)

    async def _show_free(self, text: str, area: str, filters: Filters) -> Outcome:
        free = await self._matches_in(area, filters)
        if free:
            batch = free[:COMPOSE_CAP]
            reply, picks, area_used, _ = await self._render(
                text, [TaggedEvent(e, True) for e in batch], area, filters
            )
            frame = SessionFrame(
                area=area_used,
                filters=filters,
                offered_ids=_ids(batch),
                picks=picks,
                all_pick_ids=tuple(p.event_id for p in picks),
                events=_event_map(batch),
                pending=None,
                visited_areas=(area,),
            )
            return Outcome(reply, frame)

        suggestion: Optional[str] = None
        found: list[Event] = []
        for other in adjacent_areas(area, NUDGE_HOPS):
            found = await self._matches_in(other, filters)
            if found:
                suggestion = other
                break

        label = _category_label(filters)
        if suggestion:
            reply = f"Nothing free {label}near {area} tonight. {suggestion} is right nearby. Want free picks from there?"
            pending = Pending(area=suggestion, filters=filters, candidate_ids=_ids(found[:COMPOSE_CAP]))
        else:
            reply = f"Nothing free {label}near {area} tonight. Try a different neighborhood!"
            pending = None
        frame = SessionFrame(
            area=area,
            filters=filters,
            offered_ids=(),
            picks=(),
            all_pick_ids=(),
            events=_event_map(found[:COMPOSE_CAP]),
            pending=pending,
            visited_areas=(area,),
        )
        return Outcome(reply, frame)

    async def _show_more(self, text: str, area: str, filters: Filters, session: Optional[Session]) -> Outcome:
        prev = session.frame if session else SessionFrame.empty()
        shown = set(prev.offered_ids) | set(prev.all_pick_ids)
        visited = tuple(dict.fromkeys(prev.visited_areas + (area,)))

        events = await self._aggregator.get_events(area)
        events = apply_filters(events, Filters(free_only=filters.free_only, time_after=filters.time_after))
        remaining = [e for e in events if e.id not in shown]
        if remaining:
            batch = ([e for e in remaining if e.area == area] or remaining)[:COMPOSE_CAP]
            last_batch = len(remaining) <= COMPOSE_CAP
            return await self._more_batch(text, area, filters, prev, batch, visited, last_batch)

        evergreen = [e for e in self._evergreen_for(area, filters, local_only=False) if e.id not in shown]
        if evergreen:
            return await self._more_batch(text, area, filters, prev, evergreen[:EVERGREEN_CAP], visited, True)

        # Everything shown: point at the nearest area not visited yet
        unvisited = [a for a in adjacent_areas(area, EXHAUSTION_HOPS) if a not in visited]
        suggestion = unvisited[0] if unvisited else None
        if suggestion:
            reply = f"That's all I've got in {area} tonight! {suggestion} is right nearby. Want picks from there?"
        else:
            reply = f"That's all I've got in {area} tonight! Try a different neighborhood or check back later!"
        frame = SessionFrame(
            area=area,
            filters=filters,
            offered_ids=prev.offered_ids,
            picks=prev.picks,
            all_pick_ids=prev.all_pick_ids,
            events=prev.events,
            pending=Pending(area=suggestion, filters=filters if filters.any() else None) if suggestion else None,
            visited_areas=visited,
        )
        self._notify("exhausted", area=area, suggestion=suggestion, visited=list(visited))
        return Outcome(reply, frame)

    async def _more_batch(
        self,
        text: str,
        area: str,
        filters: Filters,
        prev: SessionFrame,
        batch: list[Event],
        visited: tuple[str, ...],
        last_batch: bool,
    ) -> Outcome:
        candidates = [TaggedEvent(e, filters.any() and event_matches_filters(e, filters)) for e in batch]
        reply, picks, area_used, _ = await self._render(text, candidates, area, filters)

        # The same show can come back under a new id from another listing
        seen_names = {prev.events[i].name.lower() for i in prev.all_pick_ids if i in prev.events}
        by_id = _event_map(batch)
        picks = tuple(p for p in picks if by_id[p.event_id].name.lower() not in seen_names)

        pending = None
        if last_batch:
            reply = strip_more_references(reply)
            unvisited = [a for a in adjacent_areas(area, 3) if a not in visited]
            if unvisited:
                pending = Pending(area=unvisited[0], filters=filters if filters.any() else None)

        kept = {i: prev.events[i] for i in prev.all_pick_ids if i in prev.events}
        frame = SessionFrame(
            area=area_used,
            filters=filters,
            offered_ids=tuple(dict.fromkeys(prev.offered_ids + _ids(batch))),
            picks=picks,
            all_pick_ids=prev.all_pick_ids + tuple(p.event_id for p in picks),
            events={**kept, **by_id},
            pending=pending,
            visited_areas=visited,
        )
        return Outcome(reply, frame)

    async def _nudge_accept(self, text: str, area: str, filters: Filters, session: Optional[Session]) -> Outcome:
        prev = session.frame if session else SessionFrame.empty()
        pending = prev.pending
        if pending is not None and pending.filters is not None:
            filters = pending.filters
        visited = tuple(dict.fromkeys(prev.visited_areas + (area,)))

        served = area
        candidates: list[Event] = []
        if pending is not None and pending.area == area and pending.candidate_ids:
            saved = [prev.events[i] for i in pending.candidate_ids if i in prev.events]
            candidates = apply_filters(saved, filters, strict=True)
        if not candidates:
            candidates = await self._matches_in(area, filters)
        if not candidates:
            # Keep walking outward instead of bouncing back to an area already tried
            for other in adjacent_areas(area, NUDGE_CHAIN_HOPS):
                if other in visited:
                    continue
                candidates = await self._matches_in(other, filters)
                if candidates:
                    served = other
                    break

        visited = tuple(dict.fromkeys(visited + (served,)))
        if not candidates:
            frame = SessionFrame(
                area=area,
                filters=filters,
                offered_ids=(),
                picks=(),
                all_pick_ids=(),
                events={},
                pending=None,
                visited_areas=visited,
            )
            label = f"{'free ' if filters.free_only else ''}{_category_label(filters)}"
            return Outcome(
                f"Nothing {label}near {area} or nearby tonight either. Try a different neighborhood!", frame
            )

        batch = candidates[:COMPOSE_CAP]
        tagged = [TaggedEvent(e, filters.any()) for e in batch]
        reply, picks, area_used, _ = await self._render(text, tagged, served, filters)
        frame = SessionFrame(
            area=area_used,
            filters=filters,
            offered_ids=_ids(batch),
            picks=picks,
            all_pick_ids=tuple(p.event_id for p in picks),
            events=_event_map(batch),
            pending=None,
            visited_areas=visited,
        )
        return Outcome(reply, frame)

    def _show_details(self, route: Route, session: Optional[Session]) -> Outcome:
        frame = session.frame if session else None
        if frame is None or not frame.picks:
            return Outcome(NO_PICKS)

        picks = frame.picks
        if route.event_ref is None:
            details = [
                f"{i}. {format_event_details(frame.events[p.event_id])}"
                for i, p in enumerate(picks, start=1)
                if p.event_id in frame.events
            ]
            return Outcome(smart_truncate("\n\n".join(details)))

        if route.event_ref > len(picks) or route.event_ref < 1:
            if len(picks) == 1:
                return Outcome("I only showed you 1 pick. Reply 1 for details.")
            return Outcome(f"I only showed you {len(picks)} picks. Reply 1-{len(picks)} for details.")

        event = frame.events.get(picks[route.event_ref - 1].event_id)
        if event is None:
            return Outcome(NO_PICKS)
        return Outcome(format_event_details(event))

    def _conversational(self, route: Route, session: Optional[Session]) -> Outcome:
        reply = route.reply or DEFAULT_CONVERSATIONAL
        area = session.frame.area if session else None
        if area:
            tail = f'ay "more" for more {area} picks, or text a different neighborhood'
            reply = _TEXT_A_NEIGHBORHOOD.sub(
                lambda m: ("S" if m.group(0)[0].isupper() else "s") + tail, reply, count=1
            )
        return Outcome(smart_truncate(reply))

    def _notify(self, stage: str, **data) -> None:
        if self._observer is not None:
            self._observer.record(stage, **data)
