"""CLI entrypoint for newswire."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from newswire import __version__
from newswire.client.controllers import FeedCliController, WatchCommand
from newswire.client.feed import FeedOrder
from newswire.wire.controllers import (
    AcknowledgeCommand,
    ArticlesImportCommand,
    ArticlesListCommand,
    CycleCommand,
    WireCliController,
)

click.rich_click.USE_MARKDOWN = True
WIRE_CONTROLLER = WireCliController()
FEED_CONTROLLER = FeedCliController()


@click.group()
@click.version_option(version=__version__, prog_name="newswire")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def newswire(log_level: str) -> None:
    """Live news wire simulation CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@newswire.command("serve")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--host", default=None, help="Bind host. Defaults to NEWSWIRE_API_HOST.")
@click.option("--port", type=click.IntRange(min=1, max=65535), default=None, help="Bind port.")
@click.option(
    "--mode",
    type=click.Choice(["cycling", "simple"]),
    default=None,
    help="`cycling` advances on GET /, `simple` only lists valid articles.",
)
@click.option(
    "--gated/--no-gated",
    default=None,
    help="Wait for consumption of the current article before advancing.",
)
def serve(
    db_path: Path | None,
    host: str | None,
    port: int | None,
    mode: str | None,
    gated: bool | None,
) -> None:
    """Serve the wire API over HTTP."""

    import uvicorn

    from newswire.api.app import build_app
    from newswire.config import Settings

    settings = Settings.from_env(db_path=db_path)
    if host is not None:
        settings.api.host = host
    if port is not None:
        settings.api.port = port
    if mode is not None:
        settings.api.mode = mode
    if gated is not None:
        settings.engine.gated = gated
    try:
        app = build_app(settings)
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)


@newswire.group()
def articles() -> None:
    """Article store commands."""


@articles.command("import")
@click.argument("source_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def articles_import(source_file: Path, db_path: Path | None) -> None:
    """Load articles from a JSON array or JSON Lines file (upsert by message_id)."""

    try:
        lines = WIRE_CONTROLLER.import_articles(
            ArticlesImportCommand(db_path=db_path, source_file=source_file),
        )
    except ValueError as error:
        raise click.ClickException(f"Could not import {source_file}: {error}") from error
    _emit_lines(lines)


@articles.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--show-excluded/--no-show-excluded",
    default=False,
    show_default=True,
    help="Also print stored articles dropped by the link validity filter.",
)
def articles_list(db_path: Path | None, show_excluded: bool) -> None:
    """List publishable articles in cycling order."""

    _run_controller(
        lambda: WIRE_CONTROLLER.list_articles(
            ArticlesListCommand(db_path=db_path, show_excluded=show_excluded),
        ),
    )


@newswire.group()
def cycle() -> None:
    """Drive the cycling engine against the local database."""


@cycle.command("advance")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--gated/--no-gated",
    default=None,
    help="Wait for consumption of the current article before advancing.",
)
def cycle_advance(db_path: Path | None, gated: bool | None) -> None:
    """Publish the next article."""

    _run_controller(lambda: WIRE_CONTROLLER.advance(CycleCommand(db_path=db_path, gated=gated)))


@cycle.command("current")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def cycle_current(db_path: Path | None) -> None:
    """Show the current article without advancing."""

    _run_controller(lambda: WIRE_CONTROLLER.current(CycleCommand(db_path=db_path)))


@cycle.command("articles")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def cycle_articles(db_path: Path | None) -> None:
    """Show articles published so far in the active cycle, newest first."""

    _run_controller(lambda: WIRE_CONTROLLER.cycle_articles(CycleCommand(db_path=db_path)))


@cycle.command("reset")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def cycle_reset(db_path: Path | None) -> None:
    """Clear cycle state and the cycle article map."""

    _run_controller(lambda: WIRE_CONTROLLER.reset(CycleCommand(db_path=db_path)))


@cycle.command("ack")
@click.argument("index", type=click.IntRange(min=0))
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def cycle_ack(index: int, db_path: Path | None) -> None:
    """Acknowledge that the article at INDEX was displayed."""

    _run_controller(
        lambda: WIRE_CONTROLLER.acknowledge(AcknowledgeCommand(db_path=db_path, index=index)),
    )


@newswire.command("watch")
@click.option("--api-url", default=None, help="Wire API base URL. Defaults to NEWSWIRE_API_URL.")
@click.option(
    "--order",
    type=click.Choice([order.value for order in FeedOrder]),
    default=FeedOrder.NEWEST_FIRST.value,
    show_default=True,
    help="Feed order: newest publish time first, or cycle position.",
)
@click.option(
    "--max-updates",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many feed updates.",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds between polls. Defaults to NEWSWIRE_POLL_INTERVAL_SECONDS.",
)
def watch(
    api_url: str | None,
    order: str,
    max_updates: int | None,
    poll_interval: float | None,
) -> None:
    """Poll a running wire API and print the live feed."""

    try:
        summary = FEED_CONTROLLER.watch(
            WatchCommand(
                api_url=api_url,
                order=FeedOrder(order),
                max_updates=max_updates,
                poll_interval_seconds=poll_interval,
            ),
            click.echo,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    if summary.stopped_by_retries:
        raise click.ClickException("Polling stopped after exceeding the retry limit.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


def _run_controller(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


if __name__ == "__main__":  # pragma: no cover
    newswire()
