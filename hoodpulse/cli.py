"""Command-line interface for HoodPulse."""

from __future__ import annotations

import asyncio
import json
import logging

import click

from hoodpulse.areas import AREAS, BOROUGHS
from hoodpulse.config import get_settings
from hoodpulse.geo import extract_area
from hoodpulse.service import Service, build_service, discover_sources
from hoodpulse.sources import SourceRegistry, merge_order

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"

CHAT_USER = "local"
QUIT_WORDS = {"quit", "exit", ":q"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(format=LOG_FORMAT, level=level)


def _service(ctx: click.Context) -> Service:
    if "service" not in ctx.obj:
        ctx.obj["service"] = build_service(get_settings())
    return ctx.obj["service"]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """HoodPulse: what's happening tonight, one neighborhood at a time."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Fetch every source once and print per-source counts."""
    service = _service(ctx)
    aggregator = service.aggregator
    if not aggregator.sources:
        click.echo("No sources registered. Add adapter modules to hoodpulse/sources/.")
        return

    click.echo(f"Refreshing {len(aggregator.sources)} source(s)...\n")
    events = asyncio.run(aggregator.refresh())

    status = aggregator.status()
    for name, health in status["sources"].items():
        line = f"  > {name:<20} {health['status'] or '-':<8} {health['last_count']:>4} event(s)"
        if health["last_error"]:
            line += f"  ({health['last_error']})"
        click.echo(line)
    stats = status["last_refresh"] or {}
    click.echo(
        f"\nDone. {len(events)} event(s) cached "
        f"({stats.get('raw_count', 0)} raw, {stats.get('duration_ms', 0)}ms)."
    )


@cli.command()
@click.option("--refresh/--no-refresh", "do_refresh", default=True, help="Refresh before reporting.")
@click.pass_context
def status(ctx: click.Context, do_refresh: bool) -> None:
    """Print cache and source health as JSON."""
    service = _service(ctx)
    if do_refresh:
        asyncio.run(service.aggregator.refresh())
    click.echo(json.dumps(service.aggregator.status(), indent=2, default=str))


@cli.command("list-sources")
def list_sources() -> None:
    """Show all registered sources in merge order."""
    discover_sources()
    all_sources = SourceRegistry.all()
    if not all_sources:
        click.echo("No sources registered.")
        return

    click.echo(f"{'Name':<20} {'Weight':<7} {'URL'}")
    click.echo(f"{'-' * 20} {'-' * 7} {'-' * 50}")
    for cls in merge_order(list(all_sources.values())):
        click.echo(f"{cls.name:<20} {cls.weight:<7.2f} {cls.base_url}")


@cli.command()
def areas() -> None:
    """List the supported neighborhoods by borough."""
    for borough, names in BOROUGHS.items():
        click.echo(f"{borough.title()}:")
        for name in names:
            aliases = ", ".join(AREAS[name].aliases[:3])
            click.echo(f"  {name:<20} {aliases}")


@cli.command()
@click.argument("area")
@click.option("-n", "--limit", default=10, show_default=True, help="How many events to print.")
@click.pass_context
def events(ctx: click.Context, area: str, limit: int) -> None:
    """Print upcoming events near AREA, nearest and soonest first."""
    resolved = area if area in AREAS else extract_area(area)
    if resolved is None:
        raise click.BadParameter(f"Unknown neighborhood: {area}", param_hint="AREA")

    service = _service(ctx)
    found = asyncio.run(service.aggregator.get_events(resolved))
    if not found:
        click.echo(f"Nothing upcoming near {resolved}.")
        return

    click.echo(f"{len(found)} event(s) near {resolved}:\n")
    for event in found[:limit]:
        when = event.start or event.date or "?"
        free = " (free)" if event.is_free else ""
        click.echo(f"  {when:<25} {event.name}{free}")
        click.echo(f"  {'':<25} {event.venue_name or '?'} [{event.area or '?'}] via {event.source_name}")


@cli.command()
@click.pass_context
def chat(ctx: click.Context) -> None:
    """Chat with the recommender locally. Type 'quit' to stop."""
    service = _service(ctx)
    asyncio.run(_chat(service))


async def _chat(service: Service) -> None:
    service.sweeper.start()
    try:
        while True:
            try:
                text = await asyncio.to_thread(click.prompt, "you", prompt_suffix="> ")
            except (EOFError, click.Abort):
                break
            if text.strip().lower() in QUIT_WORDS:
                break
            result = await service.conversation.handle_turn(CHAT_USER, text)
            click.echo(f"\n{result.text}\n")
    finally:
        service.sweeper.stop()
