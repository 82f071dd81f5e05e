"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from hoodpulse.classify import KeywordClassifier
from hoodpulse.cli import cli
from hoodpulse.conversation import Conversation
from hoodpulse.formatters import PlainRenderer
from hoodpulse.service import Service
from hoodpulse.session import SessionStore
from hoodpulse.sweeper import Sweeper
from tests.helpers import FakeSource, make_record


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def service(make_aggregator, clock, no_evergreen) -> Service:
    records = [make_record("Jazz Night", venue_name="Smalls"), make_record("Free Poetry", is_free=True)]
    aggregator = make_aggregator(FakeSource("listings", records), FakeSource("broken", error=RuntimeError("503")))
    sessions = SessionStore(clock=clock)
    conversation = Conversation(
        aggregator, sessions, KeywordClassifier(), PlainRenderer(), evergreen=no_evergreen, clock=clock
    )
    return Service(aggregator, sessions, conversation, Sweeper([sessions.sweep], interval=60))


def test_areas(runner):
    result = runner.invoke(cli, ["areas"])
    assert result.exit_code == 0
    assert "Manhattan:" in result.output
    assert "East Village" in result.output


def test_list_sources(runner):
    result = runner.invoke(cli, ["list-sources"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[2].startswith("dice")
    assert "eventbrite_comedy" in result.output


def test_events_unknown_area(runner):
    result = runner.invoke(cli, ["events", "Narnia"], obj={})
    assert result.exit_code == 2
    assert "Unknown neighborhood" in result.output


def test_events(runner, service):
    result = runner.invoke(cli, ["events", "ev"], obj={"service": service})
    assert result.exit_code == 0
    assert "2 event(s) near East Village" in result.output
    assert "Free Poetry (free)" in result.output


def test_refresh_reports_each_source(runner, service):
    result = runner.invoke(cli, ["refresh"], obj={"service": service})
    assert result.exit_code == 0
    assert "listings" in result.output
    assert "(503)" in result.output
    assert "Done. 2 event(s) cached" in result.output


def test_status_json(runner, service):
    result = runner.invoke(cli, ["status"], obj={"service": service})
    assert result.exit_code == 0
    status = json.loads(result.output[result.output.index("{"):])
    assert status["cache_size"] == 2
    assert status["sources"]["broken"]["status"] == "error"


def test_chat(runner, service):
    result = runner.invoke(cli, ["chat"], input="East Village\n1\nquit\n", obj={"service": service})
    assert result.exit_code == 0
    assert "Tonight near East Village:" in result.output
    assert "Smalls" in result.output
    assert not service.sweeper.running
