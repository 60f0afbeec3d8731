"""CLI entry-point for the cafe harvester."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import NoReturn, TypeVar

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import STOP_POLICIES, HarvesterConfig, load_config
from .cursor import first_id
from .errors import HarvesterError
from .harvester import Harvester

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=err_console)],
    )
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _print_stats(stats: dict) -> None:
    table = Table(title="Harvest Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, val in stats.items():
        table.add_row(key.capitalize(), str(val))
    console.print(table)


def _fail(exc: BaseException) -> NoReturn:
    """Print *exc* and its causes, outermost first, then exit non-zero."""
    cause: BaseException | None = exc
    while cause is not None:
        err_console.print(str(cause) or type(cause).__name__, style="red", markup=False)
        if cause.__cause__ is not None or cause.__suppress_context__:
            cause = cause.__cause__
        else:
            cause = cause.__context__
    sys.exit(1)


def _run(ctx: click.Context, job: Callable[[Harvester], Awaitable[T]]) -> T:
    cfg: HarvesterConfig = ctx.obj["cfg"]

    async def main() -> T:
        async with Harvester(cfg) as h:
            return await job(h)

    try:
        return asyncio.run(main())
    except (HarvesterError, httpx.HTTPError) as exc:
        _fail(exc)


@click.group()
@click.option(
    "-c", "--config", "config_path", envvar="CAFE_HARVESTER_CONFIG", default="config.toml",
    type=click.Path(dir_okay=False), help="Settings file",
)
@click.option("--policy", type=click.Choice(STOP_POLICIES), default=None, help="Override stop_policy")
@click.option("--no-cache", is_flag=True, help="Ignore the refreshed cookie cache")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str, policy: str | None, no_cache: bool, verbose: bool) -> None:
    """Daum Cafe Harvester – Archive cafe boards to disk.

    Logs in with a browser-exported cookie jar and downloads every post
    (text, images, attachments) newer than the local archive.
    """
    _setup_logging(verbose)
    try:
        cfg = load_config(config_path)
    except HarvesterError as exc:
        _fail(exc)
    ctx.ensure_object(dict)
    ctx.obj["cfg"] = cfg.with_overrides(
        stop_policy=policy,
        use_cookie_cache=False if no_cache else None,
    )


# ─── Commands ────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Harvest every configured cafe board.

    Example: cafe-harvester run
    """

    async def job(h: Harvester) -> tuple[dict[str, int], dict]:
        await h.login()
        return await h.harvest_all(), h.stats

    results, stats = _run(ctx, job)
    for key, count in results.items():
        console.print(f"  {key}: {count} posts")
    _print_stats(stats)


@cli.command()
@click.argument("cafe")
@click.argument("board")
@click.pass_context
def board(ctx: click.Context, cafe: str, board: str) -> None:
    """Harvest a single board of a configured cafe.

    Example: cafe-harvester board somecafe AbCd
    """
    cafe_cfg = ctx.obj["cfg"].cafes.get(cafe)
    if cafe_cfg is None:
        console.print(f"[red]✗[/red] Cafe {cafe!r} is not in the settings file")
        sys.exit(1)

    async def job(h: Harvester) -> tuple[int, dict]:
        await h.login()
        count = await h.harvest_board(cafe, board, cafe_cfg)
        return count, h.stats

    count, stats = _run(ctx, job)
    console.print(f"[green]✓[/green] Archived {count} posts from {cafe}/{board}")
    _print_stats(stats)


@cli.command()
@click.pass_context
def login(ctx: click.Context) -> None:
    """Check that the cookie jar yields a cafe session."""

    async def job(h: Harvester) -> list[str]:
        return list(await h.login())

    names = _run(ctx, job)
    console.print(f"[green]✓[/green] Logged in, session cookies: {', '.join(names)}")


@cli.command(name="next-id")
@click.argument("cafe")
@click.argument("board")
@click.pass_context
def next_id(ctx: click.Context, cafe: str, board: str) -> None:
    """Print the post ID the next run would start from."""
    cafe_cfg = ctx.obj["cfg"].cafes.get(cafe)
    if cafe_cfg is None:
        console.print(f"[red]✗[/red] Cafe {cafe!r} is not in the settings file")
        sys.exit(1)
    click.echo(first_id(cafe_cfg.board_dir(cafe, board)))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
