"""Deterministic shortcut rules evaluated before the external classifier.

Rules are data: an ordered tuple of (name, predicate, action). The first rule
whose predicate holds produces the Route; when none does, the caller falls
back to the classifier. Adding a shortcut phrase means adding a rule.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Optional

from hoodpulse.geo import detect_borough, extract_area
from hoodpulse.models import Filters
from hoodpulse.ports import Intent, Route
from hoodpulse.session import Session

HELP_TEXT = (
    "Hey! Text me a neighborhood and I'll find tonight's best events.\n\n"
    'Try: "East Village", "prospect park", "bedford ave"\n\n'
    'You can ask for comedy, jazz, free events, or any vibe. Reply a number for details '
    'on a pick, or "more" for more options.'
)
GREETING_TEXT = "Hey! Text me a neighborhood and I'll find you something good tonight."
THANKS_TEXT = "Anytime! Text a neighborhood when you're ready to go out again."
BYE_TEXT = "Later! Hit me up whenever."
NO_PICKS_TEXT = "I don't have any picks loaded right now. Text me a neighborhood and I'll find what's good tonight!"
SPORTS_TEXT = (
    "Ha I wish I knew, I'm all about events and nightlife! "
    "Text me a neighborhood and I'll find you something fun tonight."
)
FOOD_TEXT = (
    "I'm more of a nightlife expert than a food guide! But text me a neighborhood "
    "and I'll find you something fun to do after dinner."
)
WEATHER_TEXT = "No clue but I know what's happening indoors! Text me a neighborhood and I'll hook you up."

_HELP = re.compile(r"^(help|\?)$", re.IGNORECASE)
_NUMBER = re.compile(r"^[1-5]$")
_AFFIRMATIVE = re.compile(
    r"^(yes|yeah|ya|yea|yep|yup|sure|ok|okay|down|let's go|lets go|bet|absolutely|definitely|"
    r"why not|i'm down|im down)\b",
    re.IGNORECASE,
)
_MORE = re.compile(r"^(more|show me more|what else|anything else|what else you got|next|what's next)$", re.IGNORECASE)
_FREE = re.compile(r"^(free|free stuff|free events|free tonight|anything free)$", re.IGNORECASE)
_GREETING = re.compile(r"^(hey|hi|hello|yo|sup|what's up|wassup|hola|howdy)$", re.IGNORECASE)
_THANKS = re.compile(r"^(thanks|thank you|thx|ty|appreciate it|cheers)$", re.IGNORECASE)
_BYE = re.compile(r"^(bye|later|peace|gn|good night|night|see ya|cya|deuces)$", re.IGNORECASE)
_IMPATIENT = re.compile(r"^(hello\?+|hey\?+|\?\?+|yo\?+|you there\??|hello{3,})$", re.IGNORECASE)
_SPORTS = re.compile(
    r"\b(score|knicks|yankees|mets|nets|rangers|giants|jets|nfl|nba|mlb|nhl|game score|who won|playoffs)\b",
    re.IGNORECASE,
)
_WATCH_PARTY = re.compile(r"\b(watch|viewing|bar|screen)\b", re.IGNORECASE)
_FOOD = re.compile(
    r"\b(restaurant|dinner|lunch|brunch|eat|food rec|where.*eat|where.*get (food|dinner|lunch|brunch)|"
    r"best (food|pizza|tacos|sushi|ramen|burgers?))\b",
    re.IGNORECASE,
)
_FOOD_EVENT = re.compile(r"\b(event|show|fest|festival|pop.?up|tasting)\b", re.IGNORECASE)
_WEATHER = re.compile(r"\b(weather|forecast|temperature|degrees|rain|sunny|umbrella)\b", re.IGNORECASE)
_CATEGORY_WORDS = re.compile(
    r"\b(comedy|standup|stand-up|music|jazz|rock|techno|house|art|gallery|theater|theatre|dance|food|"
    r"drink|free|cheap|underground|improv|hip hop|hip-hop|rap|r&b|soul|funk|punk|metal|folk|indie|"
    r"electronic|dj)\b",
    re.IGNORECASE,
)
_ARTICLE = re.compile(r"^(the|a|an)\s+")
BARE_AREA_MAX_LEN = 25


@dataclass(frozen=True)
class Turn:
    """One inbound message plus the state a rule may look at."""

    text: str
    session: Optional[Session]

    @property
    def lower(self) -> str:
        return self.text.lower()

    @property
    def has_picks(self) -> bool:
        return bool(self.session and self.session.frame.picks)

    @property
    def pending_area(self) -> Optional[str]:
        pending = self.session.frame.pending if self.session else None
        return pending.area if pending else None


@dataclass(frozen=True)
class Rule:
    name: str
    when: Callable[[Turn], bool]
    then: Callable[[Turn], Route]


def _reply(text: str) -> Callable[[Turn], Route]:
    return lambda turn: Route(Intent.CONVERSATIONAL, reply=text)


def _picked_name_index(turn: Turn) -> Optional[int]:
    """1-based index of the last pick whose name matches the message."""
    if not turn.session or len(turn.lower) < 3:
        return None
    frame = turn.session.frame
    for i, pick in enumerate(frame.picks, start=1):
        event = frame.events.get(pick.event_id)
        if event is None or not event.name:
            continue
        name = event.name.lower()
        bare = _ARTICLE.sub("", name)
        if turn.lower in name or (len(bare) >= 3 and bare in turn.lower):
            return i
    return None


def _impatient(turn: Turn) -> Route:
    frame = turn.session.frame if turn.session else None
    if frame is not None and frame.picks:
        return Route(
            Intent.CONVERSATIONAL,
            reply=(
                f"Sorry for the wait! Your {frame.area} picks should be above. "
                "Reply MORE for extra picks or try a different neighborhood."
            ),
        )
    return Route(Intent.CONVERSATIONAL, reply=GREETING_TEXT)


def _bare_area(turn: Turn) -> Optional[str]:
    if len(turn.text) > BARE_AREA_MAX_LEN or _CATEGORY_WORDS.search(turn.text):
        return None
    return extract_area(turn.text)


def _borough(turn: Turn) -> Route:
    match = detect_borough(turn.text)
    if match is None:
        raise ValueError(f"no borough named in {turn.text!r}")
    return Route(
        Intent.CONVERSATIONAL,
        reply=f"{match.borough.capitalize()}'s a big place! Which neighborhood?\n\n{', '.join(match.areas)}",
    )


RULES: tuple[Rule, ...] = (
    Rule("help", lambda t: bool(_HELP.match(t.text)), lambda t: Route(Intent.HELP, reply=HELP_TEXT)),
    Rule(
        "pick-number",
        lambda t: bool(_NUMBER.match(t.text)),
        lambda t: Route(Intent.DETAILS, event_ref=int(t.text)) if t.has_picks else Route(
            Intent.CONVERSATIONAL, reply=NO_PICKS_TEXT
        ),
    ),
    Rule(
        "nudge-yes",
        lambda t: t.pending_area is not None and bool(_AFFIRMATIVE.match(t.text)),
        lambda t: Route(Intent.NUDGE_ACCEPT, area=extract_area(t.text) or t.pending_area),
    ),
    Rule("more", lambda t: bool(_MORE.match(t.text)), lambda t: Route(Intent.MORE)),
    Rule("free", lambda t: bool(_FREE.match(t.text)), lambda t: Route(Intent.FREE, filters=Filters(free_only=True))),
    Rule(
        "pick-name",
        lambda t: _picked_name_index(t) is not None,
        lambda t: Route(Intent.DETAILS, event_ref=_picked_name_index(t)),
    ),
    Rule("greeting", lambda t: bool(_GREETING.match(t.text)), _reply(GREETING_TEXT)),
    Rule("thanks", lambda t: bool(_THANKS.match(t.text)), _reply(THANKS_TEXT)),
    Rule("bye", lambda t: bool(_BYE.match(t.text)), _reply(BYE_TEXT)),
    Rule("impatient", lambda t: bool(_IMPATIENT.match(t.text)), _impatient),
    Rule(
        "sports",
        lambda t: bool(_SPORTS.search(t.text)) and not _WATCH_PARTY.search(t.text),
        _reply(SPORTS_TEXT),
    ),
    Rule("food", lambda t: bool(_FOOD.search(t.text)) and not _FOOD_EVENT.search(t.text), _reply(FOOD_TEXT)),
    Rule("weather", lambda t: bool(_WEATHER.search(t.text)), _reply(WEATHER_TEXT)),
    Rule("bare-area", lambda t: _bare_area(t) is not None, lambda t: Route(Intent.EVENTS, area=_bare_area(t))),
    Rule("borough", lambda t: detect_borough(t.text) is not None, _borough),
)


def preclassify(text: str, session: Optional[Session], rules: tuple[Rule, ...] = RULES) -> Optional[Route]:
    """Return the first matching rule's Route, or None to defer to the classifier."""
    turn = Turn(text.strip(), session)
    if not turn.text:
        return None
    for rule in rules:
        if rule.when(turn):
            return replace(rule.then(turn), confidence=1.0, source=f"rule:{rule.name}")
    return None
