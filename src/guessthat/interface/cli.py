"""guessthat CLI: bootstrap, play loop, card library and trash management."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer

from guessthat.application.config import AppConfig, resolve_config
from guessthat.application.factory import bootstrap, open_cache
from guessthat.application.utils.text import apply_edit, split_forbidden
from guessthat.domain.constants import TURN_DRAW_SIZE
from guessthat.domain.errors import DuplicateTarget, InvalidCard, StorageError
from guessthat.domain.models import Card, CardDraft

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="guessthat: offline-first card cache for the Guess That word game.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

cards_app = typer.Typer(help="Browse and edit the local card library.", no_args_is_help=True)
app.add_typer(cards_app, name="cards")

trash_app = typer.Typer(help="Recover or purge deleted cards.", no_args_is_help=True)
app.add_typer(trash_app, name="trash")

config_app = typer.Typer(help="Inspect guessthat configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")


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
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only show warnings.")] = False,
    offline: Annotated[
        bool, typer.Option("--offline", help="Never contact the card service.")
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the card database.")] = None,
    lang: Annotated[str | None, typer.Option("--lang", help="Bucket language, e.g. de-CH.")] = None,
    category: Annotated[str | None, typer.Option(help="Bucket category.")] = None,
    difficulty: Annotated[
        str | None, typer.Option(help="Bucket difficulty: easy, medium, hard.")
    ] = None,
):
    """Global settings for guessthat."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "offline": True if offline else None,
        "db_path": db,
        "language": lang,
        "category": category,
        "difficulty": difficulty,
        "verbose": 0 if quiet else (verbose + 1 if verbose else None),
    }


def _apply_verbosity(verbose: int) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG
    logging.getLogger().setLevel(level)


def _config(ctx: typer.Context) -> AppConfig:
    overrides = (ctx.obj or {}).get("overrides", {})
    try:
        config = resolve_config(overrides)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2) from e
    _apply_verbosity(config.verbose)
    return config


def _run(coro):
    """Run a coroutine, turning user-facing errors into a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except (DuplicateTarget, InvalidCard, StorageError) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


def _echo_card(card: Card) -> None:
    typer.secho(card.target, bold=True)
    typer.echo(f"  id: {card.id}")
    typer.echo(f"  bucket: {card.bucket}")
    typer.echo(f"  forbidden: {', '.join(card.forbidden) or '-'}")


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def init(ctx: typer.Context):
    """Open the card store, seed the current bucket and top it up."""
    config = _config(ctx)

    async def run():
        cache = await bootstrap(config)
        try:
            stock = await cache.store.count(cache.bucket)
        finally:
            await cache.aclose()
        typer.secho(f"{cache.bucket}: {stock} card(s) ready.", fg="green")

    _run(run())


@app.command()
def draw(
    ctx: typer.Context,
    count: Annotated[int, typer.Option("--count", "-n", help="Number of cards.")] = 10,
):
    """Draw random cards for a turn (tops up first) and print them as JSON."""
    config = _config(ctx)

    async def run():
        cache = await bootstrap(config)
        try:
            cards = await cache.policy.draw_for_turn(count, cache.bucket)
        finally:
            await cache.aclose()
        typer.echo(json.dumps([asdict(c) for c in cards], indent=2, ensure_ascii=False))

    _run(run())


@app.command()
def play(
    ctx: typer.Context,
    count: Annotated[
        int, typer.Option("--count", "-n", help="Cards drawn per refill.")
    ] = TURN_DRAW_SIZE,
):
    """Play through cards interactively; fresh cards are fetched in the background."""
    config = _config(ctx)

    async def run():
        cache = await bootstrap(config)
        cache.on_foreground()
        queue = cache.new_turn_queue()
        refilled = False
        try:
            queue.load(await cache.policy.draw_for_turn(count, cache.bucket))
            while True:
                card = queue.current
                if card is None:
                    if refilled:
                        typer.secho("No fresh cards left in this bucket.", fg="yellow")
                        break
                    refilled = True
                    queue.load(await cache.policy.draw_for_turn(count, cache.bucket))
                    continue
                refilled = False

                typer.secho(f"\n{card.target}", bold=True)
                typer.echo(f"  not allowed: {', '.join(card.forbidden)}")
                choice = await asyncio.to_thread(
                    typer.prompt, "[c]orrect / [s]kip / [q]uit", default="c"
                )
                choice = choice.strip().lower()[:1]
                if choice == "q":
                    break
                if choice == "s":
                    queue.skip()
                else:
                    queue.correct()
        finally:
            await cache.aclose()
        typer.echo(f"Cards used this session: {len(cache.used)}")

    _run(run())


@app.command()
def stats(ctx: typer.Context):
    """Show active card counts per bucket and the trash size."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            counts = await cache.store.bucket_counts()
            trashed = await cache.store.list_trash()
        finally:
            await cache.aclose()

        if not counts:
            typer.secho("No cards stored yet. Run 'guessthat init'.", fg="yellow")
        for bucket, n in counts.items():
            marker = "*" if bucket == config.bucket else " "
            typer.echo(f"{marker} {bucket}: {n}")
        typer.echo(f"Trash: {len(trashed)}")

    _run(run())


# ---------------------------------------------------------------------------
# Cards subgroup
# ---------------------------------------------------------------------------


@cards_app.command("list")
def cards_list(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
):
    """List all active cards, sorted by target."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            cards = await cache.store.list_all()
        finally:
            await cache.aclose()

        if as_json:
            typer.echo(json.dumps([asdict(c) for c in cards], indent=2, ensure_ascii=False))
            return
        for card in cards:
            typer.echo(f"{card.target:<24} {str(card.bucket):<24} {card.id}")
        typer.echo(f"{len(cards)} card(s)")

    _run(run())


@cards_app.command("show")
def cards_show(ctx: typer.Context, card_id: Annotated[str, typer.Argument(help="Card id.")]):
    """Show one card with its forbidden words."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.get_by_id(card_id)
        finally:
            await cache.aclose()

    card = _run(run())
    if card is None:
        typer.secho(f"No card with id {card_id}.", fg="yellow")
        raise typer.Exit(1)
    _echo_card(card)


@cards_app.command("add")
def cards_add(
    ctx: typer.Context,
    target: Annotated[str, typer.Argument(help="The word to guess.")],
    forbidden: Annotated[
        list[str] | None,
        typer.Option("--forbidden", "-f", help="Forbidden word; repeat or comma separate."),
    ] = None,
):
    """Create a custom card in the current bucket."""
    config = _config(ctx)
    words = split_forbidden("\n".join(forbidden or []))
    draft = CardDraft(
        language=config.language,
        category=config.category,
        difficulty=config.difficulty,
        target=target,
        forbidden=words,
    )

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.create_custom_card(draft)
        finally:
            await cache.aclose()

    card = _run(run())
    typer.secho("Card created.", fg="green")
    _echo_card(card)


@cards_app.command("edit")
def cards_edit(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    target: Annotated[str | None, typer.Option(help="New target word.")] = None,
    forbidden: Annotated[
        list[str] | None,
        typer.Option("--forbidden", "-f", help="Replace forbidden words; repeat or comma separate."),
    ] = None,
    set_lang: Annotated[str | None, typer.Option("--set-lang", help="Move to language.")] = None,
    set_category: Annotated[
        str | None, typer.Option("--set-category", help="Move to category.")
    ] = None,
    set_difficulty: Annotated[
        str | None, typer.Option("--set-difficulty", help="Move to difficulty.")
    ] = None,
):
    """Edit an existing card; unspecified fields keep their value."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            card = await cache.store.get_by_id(card_id)
            if card is None:
                return None
            draft = CardDraft(
                language=set_lang or "",
                category=set_category or "",
                difficulty=set_difficulty or card.difficulty,
                target=target if target is not None else card.target,
                forbidden=(
                    split_forbidden("\n".join(forbidden)) if forbidden is not None else card.forbidden
                ),
            )
            edited = apply_edit(card, draft)
            await cache.store.update_card(edited)
            return edited
        finally:
            await cache.aclose()

    card = _run(run())
    if card is None:
        typer.secho(f"No card with id {card_id}.", fg="yellow")
        raise typer.Exit(1)
    typer.secho("Card updated.", fg="green")
    _echo_card(card)


@cards_app.command("delete")
def cards_delete(ctx: typer.Context, card_id: Annotated[str, typer.Argument(help="Card id.")]):
    """Move a card to the trash (restorable until it expires)."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.delete_card(card_id)
        finally:
            await cache.aclose()

    if not _run(run()):
        typer.secho(f"No card with id {card_id}.", fg="yellow")
        raise typer.Exit(1)
    minutes = config.trash_ttl // 60
    typer.secho(f"Moved {card_id} to trash. Restore within {minutes} minute(s).", fg="green")


# ---------------------------------------------------------------------------
# Trash subgroup
# ---------------------------------------------------------------------------


@trash_app.command("list")
def trash_list(ctx: typer.Context):
    """List trashed cards with the time left before they are purged."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.list_trash(), cache.store.trash.now()
        finally:
            await cache.aclose()

    trashed, now = _run(run())
    if not trashed:
        typer.echo("Trash is empty.")
        return
    for card in trashed:
        left = card.seconds_left(now)
        typer.echo(f"{card.target:<24} {str(card.bucket):<24} {card.id}  {left // 60:02d}:{left % 60:02d}")


@trash_app.command("restore")
def trash_restore(ctx: typer.Context, card_id: Annotated[str, typer.Argument(help="Card id.")]):
    """Restore a trashed card under its original id."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.restore_card(card_id)
        finally:
            await cache.aclose()

    if not _run(run()):
        typer.secho(f"No trashed card with id {card_id} (it may have expired).", fg="yellow")
        raise typer.Exit(1)
    typer.secho(f"Restored {card_id}.", fg="green")


@trash_app.command("purge")
def trash_purge(ctx: typer.Context):
    """Delete expired trash entries now."""
    config = _config(ctx)

    async def run():
        cache = await open_cache(config)
        try:
            return await cache.store.purge_expired()
        finally:
            await cache.aclose()

    purged = _run(run())
    typer.echo(f"Purged {purged} expired card(s).")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
