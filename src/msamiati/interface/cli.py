"""msamiati CLI: study commands, catalog sync, and cache/config subgroups."""

import asyncio
import json
import logging
import sys
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from msamiati.application.config import AppConfig, resolve_config

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="msamiati: Swahili/Korean vocabulary trainer with spaced repetition.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

cache_app = typer.Typer(help="Inspect and maintain the offline catalog cache.")
app.add_typer(cache_app, name="cache")

config_app = typer.Typer(help="Manage msamiati configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


class ModeChoice(str, Enum):
    sw = "sw"
    ko = "ko"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context, **overrides) -> AppConfig:
    verbose = (ctx.obj or {}).get("verbose", 1)
    return resolve_config({**overrides, "verbose": verbose})


def _format_ms(ms: float | None) -> str:
    if ms is None:
        return "never"
    from datetime import datetime

    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for msamiati."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose > 1:
        logging.getLogger().setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def status(ctx: typer.Context):
    """Show local study data and offline cache status."""
    from msamiati.application.factory import open_services
    from msamiati.application.utils.clock import wall_clock_ms
    from msamiati.domain.srs import due_items

    config = _config(ctx)

    async def run():
        async with open_services(config) as services:
            state = services.session.state
            cache_status = await services.cache.status()

        due = due_items(state.items, wall_clock_ms())
        typer.echo(f"Decks: {len(state.decks)}")
        typer.echo(f"Words: {len(state.items)} ({len(due)} due)")
        typer.echo(f"Wrong answers: {len(state.wrong)}")
        typer.echo(f"Reviews logged: {len(state.review_log)}")
        typer.echo(
            f"Offline cache: {cache_status.total_count} words "
            + ", ".join(f"{m}={n}" for m, n in cache_status.per_mode_counts.items())
        )
        typer.echo(f"Last synced: {_format_ms(cache_status.last_updated)}")
        if not config.catalog_configured:
            typer.secho("No catalog_url configured; running offline only.", fg="yellow")

    asyncio.run(run())


@app.command()
def sync(
    ctx: typer.Context,
    mode: Annotated[
        ModeChoice | None, typer.Option(help="Sync only this mode (sw or ko).")
    ] = None,
    category: Annotated[
        str | None, typer.Option(help="Sync only this category (requires --mode).")
    ] = None,
    catalog_url: Annotated[str | None, typer.Option(help="Catalog endpoint override.")] = None,
):
    """[bold green]Download[/bold green] the word catalog into the offline cache."""
    from msamiati.application.factory import open_services

    if category and not mode:
        typer.secho("--category requires --mode.", fg="red")
        raise typer.Exit(2)

    config = _config(ctx, catalog_url=catalog_url)
    if not config.catalog_configured:
        typer.secho("No catalog_url configured. Set MSAMIATI_CATALOG_URL.", fg="red")
        raise typer.Exit(1)

    async def run() -> bool:
        async with open_services(config, hydrate=False) as services:
            if mode:
                reports = [await services.sync.sync(mode.value, category)]
            else:
                reports = await services.sync.sync_all()
        for report in reports:
            typer.secho(report.describe(), fg="green" if report.ok else "red")
        return all(r.ok for r in reports)

    if not asyncio.run(run()):
        raise typer.Exit(1)


@app.command()
def day(
    ctx: typer.Context,
    mode: Annotated[ModeChoice, typer.Argument(help="Catalog mode.")],
    day_number: Annotated[int, typer.Argument(min=1, help="Study day, starting at 1.")],
    category: Annotated[str | None, typer.Option(help="Restrict to one category.")] = None,
    offline: Annotated[
        bool, typer.Option("--offline", help="Read from the offline cache only.")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List the words of one study day."""
    from msamiati.application.factory import open_services
    from msamiati.application.utils.text import truncate

    config = _config(ctx)

    async def run():
        async with open_services(config, hydrate=False) as services:
            if offline:
                services.connectivity.set_online(False)
            result = await services.reader.day(mode.value, day_number, category)
            days = await services.reader.day_count(mode.value, category)
        return result, days

    result, days = asyncio.run(run())

    if json_output:
        payload = {
            "mode": mode.value,
            "category": category,
            "day_number": day_number,
            "day_count": days,
            "source": result.source,
            "records": [r.model_dump() for r in result.records],
        }
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    typer.echo(f"Day {day_number}/{days} ({len(result.records)} words, from {result.source})")
    meaning_field = "meaning_ko" if mode is ModeChoice.sw else "meaning_sw"
    for record in result.records:
        meaning = getattr(record, meaning_field) or record.meaning_en or ""
        typer.echo(f"  {record.word}  {truncate(meaning, 60)}")


@app.command()
def stats(ctx: typer.Context):
    """Per-deck word counts and review history."""
    from msamiati.application.factory import open_services
    from msamiati.application.utils.clock import wall_clock_ms
    from msamiati.domain.srs import is_due

    config = _config(ctx)

    async def run():
        async with open_services(config) as services:
            return services.session.state

    state = asyncio.run(run())

    per_deck = Counter(item.deck_id for item in state.items)
    now = wall_clock_ms()
    due_per_deck = Counter(item.deck_id for item in state.items if is_due(item.srs, now))
    typer.echo("Decks:")
    for deck in state.decks:
        typer.echo(f"  {deck.name}: {per_deck[deck.id]} words, {due_per_deck[deck.id]} due")

    grades = Counter(entry.grade.value for entry in state.review_log)
    typer.echo(
        f"Reviews: {len(state.review_log)} "
        f"(again={grades['again']}, hard={grades['hard']}, good={grades['good']})"
    )
    if state.wrong:
        worst = sorted(state.wrong, key=lambda w: w.wrong_count, reverse=True)[:5]
        typer.echo("Most missed:")
        for entry in worst:
            item = state.find_item(entry.id)
            label = item.sw if item else entry.id
            typer.echo(f"  {label}: {entry.wrong_count}x")


@app.command()
def add(
    ctx: typer.Context,
    sw: Annotated[str, typer.Argument(help="Swahili term.")],
    ko: Annotated[str, typer.Argument(help="Korean term.")],
    deck: Annotated[
        str | None, typer.Option(help="Local deck name. Created if missing.")
    ] = None,
    en: Annotated[str | None, typer.Option(help="English gloss.")] = None,
    pos: Annotated[str | None, typer.Option(help="Part of speech.")] = None,
    example: Annotated[str | None, typer.Option(help="Example sentence.")] = None,
    tag: Annotated[list[str] | None, typer.Option(help="Tag. Repeatable.")] = None,
):
    """Add a word to a local deck."""
    from msamiati.application.factory import open_services
    from msamiati.application.state import AddItem, DeckAdd
    from msamiati.domain.constants import MY_WORDS_DECK
    from msamiati.domain.models import NewVocab, is_cloud_deck

    config = _config(ctx)
    deck_name = MY_WORDS_DECK if deck is None else deck.strip()
    if not deck_name:
        typer.secho("--deck must not be blank.", fg="red")
        raise typer.Exit(2)
    if is_cloud_deck(deck_name):
        typer.secho(f"'{deck_name}' shows the cloud catalog; pick a local deck.", fg="red")
        raise typer.Exit(2)

    async def run():
        async with open_services(config) as services:
            store = services.session.store
            target = store.state.find_deck_by_name(deck_name)
            if target is None:
                store.dispatch(DeckAdd(deck_name))
                target = store.state.find_deck_by_name(deck_name)
            store.dispatch(
                AddItem(
                    NewVocab(
                        deck_id=target.id,
                        sw=sw.strip(),
                        ko=ko.strip(),
                        en=en,
                        pos=pos,
                        example=example,
                        tags=tuple(tag or ()),
                    )
                )
            )
            await services.session.flush()
            return store.state.items[0]

    item = asyncio.run(run())
    typer.secho(f"Added '{item.sw}' to {deck_name}.", fg="green")


@app.command()
def review(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Only review this deck.")] = None,
    limit: Annotated[int, typer.Option(min=1, help="Maximum cards this session.")] = 20,
):
    """Review due words interactively."""
    from msamiati.application.factory import open_services
    from msamiati.application.state import Review
    from msamiati.application.utils.clock import wall_clock_ms
    from msamiati.domain.models import Grade
    from msamiati.domain.srs import due_items

    config = _config(ctx)
    choices = {g.value: g for g in Grade}

    async def run() -> int:
        async with open_services(config) as services:
            store = services.session.store
            state = store.state
            deck_id = None
            if deck:
                target = state.find_deck_by_name(deck)
                if target is None:
                    typer.secho(f"No deck named '{deck}'.", fg="red")
                    raise typer.Exit(1)
                deck_id = target.id

            queue = [
                item
                for item in due_items(state.items, wall_clock_ms())
                if deck_id is None or item.deck_id == deck_id
            ][:limit]
            if not queue:
                typer.secho("Nothing due. Come back later.", fg="green")
                return 0

            for item in queue:
                typer.echo(f"\n{item.sw}")
                typer.prompt("Press Enter to reveal", default="", show_default=False)
                typer.echo(f"  {item.ko}" + (f"  ({item.en})" if item.en else ""))
                answer = typer.prompt("Grade [again/hard/good]", default=Grade.GOOD.value)
                while answer not in choices:
                    typer.secho("Please answer again, hard or good.", fg="yellow")
                    answer = typer.prompt("Grade [again/hard/good]", default=Grade.GOOD.value)
                store.dispatch(Review(item.id, choices[answer]))
            await services.session.flush()
            return len(queue)

    reviewed = asyncio.run(run())
    if reviewed:
        typer.secho(f"Reviewed {reviewed} words.", fg="green")


@app.command()
def reset(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Delete local words, wrong answers and review history (keeps one deck)."""
    from msamiati.application.factory import open_services
    from msamiati.application.state import ResetForCloudAllWords

    if not force:
        typer.confirm("This deletes all local study data. Continue?", abort=True)

    config = _config(ctx)

    async def run():
        async with open_services(config) as services:
            services.session.store.dispatch(ResetForCloudAllWords())
            await services.session.flush()

    asyncio.run(run())
    typer.secho("Local study data cleared.", fg="green")


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Host to bind to.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port to bind to.")] = 8777,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the local companion HTTP server."""
    import uvicorn

    typer.secho(f"Starting msamiati server on {host}:{port}", fg="green")
    uvicorn.run("msamiati.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Cache subgroup
# ---------------------------------------------------------------------------


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Remove every cached catalog word."""
    from msamiati.application.factory import build_offline_cache

    if not force:
        typer.confirm("Clear the offline cache?", abort=True)

    config = _config(ctx)

    async def run():
        async with build_offline_cache(config) as cache:
            await cache.clear()

    asyncio.run(run())
    typer.secho("Offline cache cleared.", fg="green")


@cache_app.command("verify")
def cache_verify(ctx: typer.Context):
    """Check cached words against their stored integrity hashes."""
    from msamiati.application.factory import build_offline_cache

    config = _config(ctx)

    async def run():
        async with build_offline_cache(config) as cache:
            return await cache.verify_integrity()

    report = asyncio.run(run())
    if report.ok:
        typer.secho("Offline cache OK.", fg="green")
        return

    typer.secho(
        f"Missing hashes: {len(report.missing)}, mismatched: {len(report.mismatched)}, "
        f"bad batches: {len(report.bad_batches)}",
        fg="yellow",
    )
    for key in report.bad_batches:
        typer.echo(f"  batch {key}")
    typer.echo("Run 'msamiati sync' to refresh the cache.")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    if d.get("catalog_key"):
        d["catalog_key"] = "***"
    typer.echo(json.dumps(d, indent=2))
