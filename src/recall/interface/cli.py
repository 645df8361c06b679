"""recall CLI: study sessions, queue inspection, card administration and stats."""

import asyncio
import json
import logging
import random
import sys
import time
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from recall.application.config import AppConfig, resolve_config
from recall.domain.constants import DAY_MS, MINUTE_MS
from recall.domain.deck_config import DeckConfig
from recall.domain.errors import CardNotFoundError, CardStoreError, ContractViolation, RecallError
from recall.domain.models import Card, Grade
from recall.domain.ports import CardStore

# Answers slower than this count as this long.
MAX_ANSWER_TIME_MS = 60_000

LOG_FILE_NAME = "recall.log"
LOG_HANDLER_NAME = "recall-file"

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="recall: spaced-repetition study sessions from the terminal.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage recall configuration.")
app.add_typer(config_app, name="config")

deck_app = typer.Typer(help="Show or change a deck's scheduling options.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")


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
    ] = 0,
    collection: Annotated[
        Path | None, typer.Option(help="Collection file (YAML backend).")
    ] = None,
    backend: Annotated[str | None, typer.Option(help="Card store backend: yaml, memory.")] = None,
):
    """Global settings for recall."""
    ctx.ensure_object(dict)
    # A bare invocation falls back on the configured verbosity.
    ctx.obj["overrides"] = {
        "collection_path": collection,
        "backend": backend,
        "verbose": verbose or None,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(ctx: typer.Context) -> AppConfig:
    obj = ctx.obj or {}
    try:
        config = resolve_config(obj.get("overrides"))
    except ValidationError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(1)
    configure_logging(config)
    return config


def configure_logging(config: AppConfig) -> None:
    """
    Set the root level from config.verbose and mirror records into
    <log_dir>/recall.log.
    """
    level = logging.WARNING
    if config.verbose == 1:
        level = logging.INFO
    elif config.verbose >= 2:
        level = logging.DEBUG
    root = logging.getLogger()
    root.setLevel(level)

    log_file = (config.log_dir / LOG_FILE_NAME).absolute()
    for existing in list(root.handlers):
        if existing.get_name() == LOG_HANDLER_NAME:
            if Path(existing.baseFilename) == log_file:
                return
            root.removeHandler(existing)
            existing.close()

    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return
    handler.set_name(LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))
    root.addHandler(handler)


def humanize_error(error: Exception) -> str:
    """Turn core exceptions into one-line messages for the terminal."""
    if isinstance(error, CardNotFoundError):
        return f"No such card: {error.card_id}"
    if isinstance(error, CardStoreError):
        return f"Storage error (nothing was lost, try again): {error}"
    if isinstance(error, ContractViolation):
        return f"Invalid request: {error}"
    return str(error)


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except RecallError as e:
        typer.secho(humanize_error(e), fg="red", err=True)
        raise typer.Exit(1)


async def _deck_config(store: CardStore, deck: str) -> DeckConfig:
    return await store.get_deck_config(deck) or DeckConfig()


def format_interval(card: Card, now: int) -> str:
    """Human-readable time until a card is next due."""
    if card.state.is_stepped:
        minutes = max(0, (card.due - now) // MINUTE_MS)
        if minutes < 60:
            return f"{minutes}m"
        if minutes < 24 * 60:
            return f"{minutes // 60}h"
        return f"{(card.due - now) // DAY_MS}d"
    days = card.interval_days
    if days < 31:
        return f"{days}d"
    if days < 365:
        return f"{days / 30:.1f}mo"
    return f"{days / 365:.1f}y"


def _card_line(card: Card) -> str:
    note = f" note={card.note_id}" if card.note_id else ""
    return (
        f"{card.id} [{card.state.value}] ivl={card.interval_days}d "
        f"ease={card.ease_permille / 1000:.2f} reps={card.reps} lapses={card.lapses}{note}"
    )


# ---------------------------------------------------------------------------
# Study
# ---------------------------------------------------------------------------


@app.command()
def study(
    ctx: typer.Context,
    deck: Annotated[str, typer.Argument(help="Deck to study.")],
):
    """[bold green]Study[/bold green] the cards due in a deck."""
    from recall.application.factory import get_card_store, get_clock
    from recall.application.scheduler import Scheduler
    from recall.application.session import StudySession

    config = _resolve(ctx)

    async def run():
        store = get_card_store(config)
        clock = get_clock(config)
        deck_config = await _deck_config(store, deck)
        rng = random.Random(config.random_seed) if config.random_seed is not None else None
        scheduler = Scheduler(clock)
        session = StudySession(
            store, clock, scheduler=scheduler, undo_limit=config.undo_limit, rng=rng
        )

        await session.start(deck, deck_config)
        card = await session.current()
        if card is None:
            typer.secho("Nothing due. Come back later.", fg="green")
            return

        while card is not None:
            stats = session.stats()
            typer.echo(
                f"\n[{stats.new_remaining} new | {stats.learning_remaining} learning | "
                f"{stats.review_remaining} review]"
            )
            typer.echo(_card_line(card))
            now = clock.now()
            options = scheduler.preview(card, deck_config, now)
            typer.echo(
                "  ".join(
                    f"{g.value}:{g.name.title()} ({format_interval(c, now)})"
                    for g, c in options.items()
                )
            )

            started = time.monotonic()
            choice = typer.prompt("Grade [1-4], u=undo, q=quit").strip().lower()

            if choice in ("q", "quit"):
                break
            if choice in ("u", "undo"):
                if not await session.undo():
                    typer.secho("Nothing to undo.", fg="yellow")
                card = await session.current()
                continue
            try:
                grade = Grade.parse(choice)
            except ContractViolation:
                typer.secho("Please answer 1-4, u or q.", fg="yellow")
                continue

            elapsed = min(int((time.monotonic() - started) * 1000), MAX_ANSWER_TIME_MS)
            card = await session.answer(grade, elapsed)

        stats = session.stats()
        if card is None and stats.learning_pending:
            typer.secho(
                f"Done for now. {stats.learning_pending} learning card(s) due again later today.",
                fg="green",
            )
        elif card is None:
            typer.secho("Congratulations! Deck finished for today.", fg="green")
        typer.echo(
            f"Answered {stats.answered} card(s) in {stats.time_spent_ms // 1000}s "
            f"({', '.join(f'{k}={v}' for k, v in stats.answers_by_grade.items())})"
        )
        session.abandon()

    _run(run())


# ---------------------------------------------------------------------------
# Queue / preview / stats
# ---------------------------------------------------------------------------


@app.command("queue")
def queue(
    ctx: typer.Context,
    deck: Annotated[str, typer.Argument(help="Deck to inspect.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show the queue a session would start with, without studying."""
    from recall.application.factory import get_card_store, get_clock
    from recall.application.queue_builder import build_study_queue

    config = _resolve(ctx)

    async def run():
        store = get_card_store(config)
        clock = get_clock(config)
        deck_config = await _deck_config(store, deck)
        counters = await store.get_daily_counters(deck)
        rng = random.Random(config.random_seed) if config.random_seed is not None else None
        result = await build_study_queue(
            store, clock, deck, deck_config, clock.now(), rng=rng, counters=counters
        )

        if json_output:
            typer.echo(
                json.dumps(
                    {
                        "ordered": result.ordered,
                        "new": len(result.new_ids),
                        "learning": len(result.learning_ids),
                        "learning_later": len(result.learning_later),
                        "review": len(result.review_ids),
                        "capped_new": result.capped_new,
                        "capped_review": result.capped_review,
                        "excluded": result.excluded,
                    },
                    indent=2,
                )
            )
            return

        typer.echo(
            f"New: {len(result.new_ids)}  Learning: {len(result.learning_ids)}  "
            f"Review: {len(result.review_ids)}"
        )
        if result.learning_later:
            typer.echo(f"Learning later today: {len(result.learning_later)}")
        if result.capped_new or result.capped_review:
            typer.secho(
                f"Over daily limit: {result.capped_new} new, {result.capped_review} review",
                fg="yellow",
            )
        if result.excluded:
            typer.echo(f"Suspended/buried: {result.excluded}")
        for position, card_id in enumerate(result.ordered, start=1):
            typer.echo(f"  {position:>3}. {card_id} [{result.states[card_id].value}]")

    _run(run())


@app.command()
def preview(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to preview.")],
):
    """Show what each grade would do to a card."""
    from recall.application.factory import get_card_store, get_clock
    from recall.application.scheduler import Scheduler

    config = _resolve(ctx)

    async def run():
        store = get_card_store(config)
        clock = get_clock(config)
        card = await store.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        deck_config = await _deck_config(store, card.deck_id)
        now = clock.now()

        typer.echo(_card_line(card))
        for grade, result in Scheduler(clock).preview(card, deck_config, now).items():
            typer.echo(
                f"  {grade.name.title():<5} -> {result.state.value:<10} "
                f"in {format_interval(result, now):<7} ease={result.ease_permille / 1000:.2f}"
            )

    _run(run())


@app.command()
def stats(
    ctx: typer.Context,
    deck: Annotated[str, typer.Argument(help="Deck to summarize.")],
    days: Annotated[int, typer.Option(help="Forecast length in days.")] = 7,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Card counts, recent retention and the due forecast for a deck."""
    from dataclasses import asdict

    from recall.application.factory import get_card_store, get_clock
    from recall.application.stats import ReviewStatsService

    config = _resolve(ctx)

    async def run():
        service = ReviewStatsService(get_card_store(config), get_clock(config))
        summary = await service.deck_summary(deck, forecast_days=days)

        if json_output:
            typer.echo(json.dumps(asdict(summary), indent=2))
            return

        c = summary.counts
        typer.echo(f"Deck: {deck}  Cards: {c.total}")
        typer.echo(f"  New: {c.new}  Learning: {c.learning}  Review: {c.review}")
        typer.echo(f"  Due now: {c.learning_due} learning, {c.review_due} review")
        typer.echo(f"  Suspended: {c.suspended}  Buried: {c.buried}")
        if summary.retention is None:
            typer.echo("  Retention: no reviews yet")
        else:
            typer.echo(
                f"  Retention: {summary.retention:.1f}% over {summary.reviews_in_window} reviews"
            )
        typer.echo(f"  Forecast: {' '.join(str(n) for n in summary.forecast)}")
        typer.echo(f"  Estimated time for due cards: {summary.estimated_time_ms // 1000}s")

    _run(run())


# ---------------------------------------------------------------------------
# Card administration
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    deck: Annotated[str, typer.Argument(help="Deck to add cards to.")],
    count: Annotated[int, typer.Option("--count", "-n", min=1, help="Cards to add.")] = 1,
    note: Annotated[str | None, typer.Option(help="Note the cards belong to.")] = None,
):
    """Add new cards to a deck."""
    from recall.application.card_service import CardService
    from recall.application.factory import get_card_store

    config = _resolve(ctx)

    async def run():
        service = CardService(get_card_store(config))
        for _ in range(count):
            card = await service.add_card(deck, note_id=note)
            typer.echo(card.id)

    _run(run())


def _status_command(action: str, card_id: str, ctx: typer.Context) -> None:
    from recall.application.card_service import CardService
    from recall.application.factory import get_card_store

    config = _resolve(ctx)

    async def run():
        service = CardService(get_card_store(config))
        card = await getattr(service, action)(card_id)
        typer.echo(f"{card.id}: {card.queue_status.value}")

    _run(run())


@app.command()
def suspend(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Suspend a card until it is unsuspended."""
    _status_command("suspend", card_id, ctx)


@app.command()
def unsuspend(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Return a suspended card to the queue."""
    _status_command("unsuspend", card_id, ctx)


@app.command()
def bury(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Hide a card until the next day."""
    _status_command("bury", card_id, ctx)


@app.command()
def unbury(ctx: typer.Context, deck: Annotated[str, typer.Argument()]):
    """Return every buried card of a deck to the queue."""
    from recall.application.card_service import CardService
    from recall.application.factory import get_card_store

    config = _resolve(ctx)

    async def run():
        count = await CardService(get_card_store(config)).unbury_deck(deck)
        typer.echo(f"Unburied {count} card(s).")

    _run(run())


# ---------------------------------------------------------------------------
# Deck options
# ---------------------------------------------------------------------------


@deck_app.command("show")
def deck_show(ctx: typer.Context, deck: Annotated[str, typer.Argument()]):
    """Display a deck's scheduling options."""
    from recall.application.factory import get_card_store

    config = _resolve(ctx)

    async def run():
        deck_config = await _deck_config(get_card_store(config), deck)
        typer.echo(json.dumps(deck_config.model_dump(mode="json"), indent=2))

    _run(run())


@deck_app.command("set")
def deck_set(
    ctx: typer.Context,
    deck: Annotated[str, typer.Argument()],
    options: Annotated[
        list[str], typer.Argument(help="KEY=VALUE pairs, e.g. new_per_day=10.")
    ],
):
    """Change a deck's scheduling options."""
    import yaml

    from recall.application.factory import get_card_store

    config = _resolve(ctx)

    updates: dict[str, Any] = {}
    for option in options:
        key, sep, value = option.partition("=")
        if not sep:
            typer.secho(f"Expected KEY=VALUE, got {option!r}", fg="red", err=True)
            raise typer.Exit(2)
        # Floats stay strings so Decimal options keep their exact value.
        parsed = yaml.safe_load(value)
        updates[key.strip()] = value if isinstance(parsed, float) else parsed

    async def run():
        store = get_card_store(config)
        current = await _deck_config(store, deck)
        unknown = set(updates) - set(DeckConfig.model_fields)
        if unknown:
            typer.secho(f"Unknown option(s): {', '.join(sorted(unknown))}", fg="red", err=True)
            raise typer.Exit(2)
        try:
            merged = DeckConfig.model_validate({**current.model_dump(), **updates})
        except ValidationError as e:
            typer.secho(f"Invalid deck options: {e}", fg="red", err=True)
            raise typer.Exit(1)
        await store.put_deck_config(deck, merged)
        typer.secho(f"Updated deck {deck}.", fg="green")

    _run(run())


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


@config_app.command("logs")
def config_logs(ctx: typer.Context):
    """Print the path of the log file, creating the log directory if needed."""
    config = _resolve(ctx)
    config.log_dir.mkdir(parents=True, exist_ok=True)
    typer.echo(str(config.log_dir / LOG_FILE_NAME))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Serve the study-session API over HTTP."""
    import uvicorn

    uvicorn.run("recall.server:app", host=host, port=port, reload=reload)
