"""CLI entry point for the NFT marketplace client.

Provides the ``nft-market`` command with subcommands for browsing listings,
auctions and owned NFTs, checking the ledger node, and watching a view as it
is polled.

This is the ONLY module where console output is allowed. All other modules
use ``logging``. Async internals are bridged to typer's synchronous
interface via ``asyncio.run()``.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Coroutine, Iterable
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

import pydantic
import typer
from rich.console import Console
from rich.table import Table

from NFT_Market.client import MarketplaceClient
from NFT_Market.config import MarketConfig, load_config
from NFT_Market.logging_config import configure_logging
from NFT_Market.models import (
    NFT,
    Auction,
    QueryFilters,
    RarityTier,
    SortOrder,
    ViewState,
)
from NFT_Market.query.engine import paginate
from NFT_Market.repositories.base import Snapshot
from NFT_Market.utils.exceptions import MarketError

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(name="nft-market", help="Browse and watch an on-ledger NFT marketplace")

# Rich console for formatted output
console = Console()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

ConfigOption = Annotated[
    Path | None, typer.Option("--config", help="JSON settings file (default data/nft_market.json)")
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress info logging")]
PageOption = Annotated[int, typer.Option(min=1, help="1-indexed page number")]


class WatchTarget(StrEnum):
    """Views that can be watched with ``nft-market watch``."""

    AUCTIONS = "auctions"
    MARKET = "market"


def _build_client(config: MarketConfig) -> MarketplaceClient:
    """Create the read-only client used by every command."""
    return MarketplaceClient(config)


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run *coro* and turn domain failures into a red message and exit code 1."""
    try:
        asyncio.run(coro)
    except MarketError as exc:
        console.print(f"[red]Error ({exc.source}): {exc}[/red]")
        raise typer.Exit(code=1) from exc


def _load_config(path: Path | None) -> MarketConfig:
    try:
        return load_config(path)
    except pydantic.ValidationError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def _parse_amount(value: str | None, option: str) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise typer.BadParameter(f"{value!r} is not a number", param_hint=option) from exc
    if amount < 0:
        raise typer.BadParameter("must not be negative", param_hint=option)
    return amount


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _format_amount(value: Decimal) -> str:
    return f"{value.normalize():f}"


def _short_address(address: str) -> str:
    if len(address) <= 14:  # noqa: PLR2004
        return address
    return f"{address[:6]}...{address[-4:]}"


def _format_time(value: datetime.datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _render_nfts(title: str, nfts: Iterable[NFT]) -> None:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", justify="right", style="dim", width=6)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Rarity", width=11)
    table.add_column("Price", justify="right", width=12)
    table.add_column("For sale", width=8)
    table.add_column("Owner", width=15)
    table.add_column("Listed", width=20)

    for nft in nfts:
        table.add_row(
            str(nft.id),
            nft.name or "[dim](unnamed)[/dim]",
            nft.rarity.label,
            _format_amount(nft.price),
            "[green]yes[/green]" if nft.for_sale else "no",
            _short_address(nft.owner),
            _format_time(nft.listed_at),
        )
    console.print(table)


def _render_auctions(auctions: Iterable[Auction], now: datetime.datetime) -> None:
    table = Table(title="Auctions", show_lines=False)
    table.add_column("ID", justify="right", style="dim", width=6)
    table.add_column("NFT", style="bold", width=24)
    table.add_column("Rarity", width=11)
    table.add_column("Current bid", justify="right", width=12)
    table.add_column("Highest bidder", width=15)
    table.add_column("Ends", width=20)
    table.add_column("Status", width=8)

    for auction in auctions:
        name = auction.nft.name if auction.nft is not None else f"#{auction.nft_id}"
        rarity = auction.nft.rarity.label if auction.nft is not None else "-"
        status = "[red]Ended[/red]" if auction.is_ended(now) else "[green]Active[/green]"
        table.add_row(
            str(auction.id),
            name,
            rarity,
            _format_amount(auction.current_bid),
            _short_address(auction.highest_bidder),
            _format_time(auction.end_time),
            status,
        )
    console.print(table)


def _render_page_footer(page: int, page_count: int, total: int) -> None:
    console.print(f"[dim]Page {page} of {max(page_count, 1)} ({total} total)[/dim]")


# ---------------------------------------------------------------------------
# market command
# ---------------------------------------------------------------------------


@app.command()
def market(
    rarity: Annotated[
        int | None, typer.Option(min=1, max=4, help="Rarity tier 1-4 (4 = Super Rare)")
    ] = None,
    min_price: Annotated[str | None, typer.Option(help="Minimum price (inclusive)")] = None,
    max_price: Annotated[str | None, typer.Option(help="Maximum price (inclusive)")] = None,
    search: Annotated[str | None, typer.Option(help="Search name and description")] = None,
    sort: Annotated[SortOrder, typer.Option(help="Sort order")] = SortOrder.PRICE_ASC,
    page: PageOption = 1,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show NFTs listed for sale."""
    configure_logging(verbose=verbose, quiet=quiet)
    filters = QueryFilters(
        rarity=RarityTier(rarity) if rarity is not None else None,
        min_price=_parse_amount(min_price, "--min-price"),
        max_price=_parse_amount(max_price, "--max-price"),
        search=search or None,
    )
    config = _load_config(config_path)
    view = ViewState(filters=filters, sort=sort, page=page, page_size=config.page_size)
    _run(_market_async(config, view))


async def _market_async(config: MarketConfig, view: ViewState) -> None:
    async with _build_client(config) as client:
        result = await client.market_view(view)

    if not result.items:
        console.print("[yellow]No NFTs match the current filters.[/yellow]")
    else:
        _render_nfts("Marketplace", result.items)
    _render_page_footer(result.page, result.page_count, result.total_count)


# ---------------------------------------------------------------------------
# auctions command
# ---------------------------------------------------------------------------


@app.command()
def auctions(
    page: PageOption = 1,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show all auctions, running and ended."""
    configure_logging(verbose=verbose, quiet=quiet)
    config = _load_config(config_path)
    _run(_auctions_async(config, page))


async def _auctions_async(config: MarketConfig, page: int) -> None:
    async with _build_client(config) as client:
        snapshot = await client.load_auctions()
    _show_auction_page(snapshot, page, config.page_size)


def _show_auction_page(snapshot: Snapshot[Any, Auction], page: int, page_size: int) -> None:
    items = paginate(snapshot.items, page, page_size)
    if not items:
        console.print("[yellow]No auctions on this page.[/yellow]")
    else:
        _render_auctions(items, datetime.datetime.now(datetime.UTC))
    page_count = -(-len(snapshot) // page_size)
    _render_page_footer(page, page_count, len(snapshot))


# ---------------------------------------------------------------------------
# owned command
# ---------------------------------------------------------------------------


@app.command()
def owned(
    address: Annotated[str, typer.Argument(help="Account address of the owner")],
    page: PageOption = 1,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show the NFTs held by ADDRESS."""
    configure_logging(verbose=verbose, quiet=quiet)
    config = _load_config(config_path)
    _run(_owned_async(config, address, page))


async def _owned_async(config: MarketConfig, address: str, page: int) -> None:
    async with _build_client(config) as client:
        snapshot = await client.load_owned(address)

    items = paginate(snapshot.items, page, config.page_size)
    if not items:
        console.print(f"[yellow]No NFTs found for {address}.[/yellow]")
    else:
        _render_nfts(f"NFTs of {_short_address(address)}", items)
    page_count = -(-len(snapshot) // config.page_size)
    _render_page_footer(page, page_count, len(snapshot))


# ---------------------------------------------------------------------------
# health command
# ---------------------------------------------------------------------------


@app.command()
def health(
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Check the configured ledger node."""
    configure_logging(verbose=verbose)
    config = _load_config(config_path)
    _run(_health_async(config))


async def _health_async(config: MarketConfig) -> None:
    async with _build_client(config) as client:
        console.print("\n[bold]Running health checks...[/bold]\n")
        status = await client.health.check_node()

    table = Table(title="Health Status")
    table.add_column("Service", style="bold", width=15)
    table.add_column("Status", width=12)
    table.add_column("Details", width=50)

    node_status = "[green]OK[/green]" if status.node_available else "[red]DOWN[/red]"
    details = (
        f"chain {status.chain_id}, version {status.ledger_version}"
        if status.node_available
        else status.node_url
    )
    table.add_row("Ledger node", node_status, details)
    table.add_row("Marketplace", "[dim]-[/dim]", config.marketplace_address)

    console.print(table)
    console.print(f"\n[dim]Last check: {status.last_check.isoformat()}[/dim]")

    if not status.node_available:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# watch command
# ---------------------------------------------------------------------------


@app.command()
def watch(
    target: Annotated[WatchTarget, typer.Argument(help="View to keep refreshed")],
    interval: Annotated[
        float | None, typer.Option(min=0.1, help="Seconds between polls (default from config)")
    ] = None,
    ticks: Annotated[int, typer.Option(min=0, help="Stop after N refreshes (0 = until Ctrl+C)")] = 0,
    page: PageOption = 1,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Poll a view and print it after every refresh."""
    configure_logging(verbose=verbose, quiet=quiet)
    config = _load_config(config_path)
    if interval is not None:
        config = config.model_copy(update={"poll_interval_seconds": interval})
    try:
        _run(_watch_async(config, target, ticks, page))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped watching.[/yellow]")


async def _watch_async(config: MarketConfig, target: WatchTarget, ticks: int, page: int) -> None:
    done = asyncio.Event()
    refreshes = 0

    def on_refresh(snapshot: Snapshot[Any, Any]) -> None:
        nonlocal refreshes
        refreshes += 1
        stamp = _format_time(snapshot.fetched_at)
        console.print(f"\n[bold]Refresh {refreshes}[/bold] [dim]{stamp}[/dim]")
        if target is WatchTarget.AUCTIONS:
            _show_auction_page(snapshot, page, config.page_size)
        else:
            items = paginate(snapshot.items, page, config.page_size)
            _render_nfts("Marketplace", items)
        if ticks and refreshes >= ticks:
            done.set()

    def on_error(exc: Exception) -> None:
        # Stale data stays on screen; the next tick retries
        console.print(f"[yellow]Refresh failed, showing previous data: {exc}[/yellow]")

    async with _build_client(config) as client:
        if target is WatchTarget.AUCTIONS:
            repository: Any = client.auctions
            scope: Any = client.auctions_scope
        else:
            repository = client.listings
            scope = client.listings_scope

        console.print(
            f"[bold]Watching {target.value} every {config.poll_interval_seconds:g}s[/bold]"
        )
        with client.scheduler.subscribe(repository, scope, on_refresh, on_error):
            await done.wait()
