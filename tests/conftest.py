"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from hoodpulse.cache import EventAggregator
from hoodpulse.evergreen import EvergreenPicks
from hoodpulse.session import SessionStore
from hoodpulse.sources.base import BaseSource
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(clock: FakeClock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def no_evergreen() -> EvergreenPicks:
    return EvergreenPicks({})


@pytest.fixture
def make_aggregator(clock: FakeClock):
    """Build an EventAggregator over the given sources on the fake clock."""

    def _make(*sources: BaseSource, **kwargs) -> EventAggregator:
        kwargs.setdefault("clock", clock)
        return EventAggregator(list(sources), **kwargs)

    return _make
