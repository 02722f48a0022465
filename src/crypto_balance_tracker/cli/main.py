"""CLI for crypto balance tracker."""

import asyncio
import json
import logging
import time
from enum import StrEnum

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from crypto_balance_tracker.config import TrackerSettings
from crypto_balance_tracker.core.aggregator import (
    format_token_amount,
    format_usd_value,
    networks_with_errors,
    sort_portfolios_by_value,
)
from crypto_balance_tracker.core.exceptions import TrackerError
from crypto_balance_tracker.core.models import (
    AddressPortfolio,
    BatchPriceResult,
    PortfolioSummary,
    PriceRequest,
    ScanProgress,
    WatchedAddress,
)
from crypto_balance_tracker.core.registry import NetworkRegistry, TokenRegistry, truncate_address
from crypto_balance_tracker.service import BalanceTrackerService

# Install rich traceback handler
install(show_locals=False)

app = typer.Typer(
    name="crypto-balance-tracker",
    help="Scan wallet balances across EVM networks with cached USD pricing",
    add_completion=False,
)

console = Console()


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


@app.command()
def scan(
    addresses: list[str] = typer.Argument(..., help="Wallet addresses to scan"),
    network: list[str] | None = typer.Option(None, "--network", "-n", help="Network id to scan (repeatable)"),
    force: bool = typer.Option(False, "--force", help="Ignore cached balances"),
    format: OutputFormat = typer.Option(
        OutputFormat.TABLE,
        "--format",
        "-f",
        help="Output format",
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """
    Scan native and token balances for one or more wallet addresses.

    Examples:

        # Scan every configured network
        crypto-balance-tracker scan 0xABC...

        # Scan two addresses on specific networks
        crypto-balance-tracker scan 0xABC... 0xDEF... -n ethereum -n base

        # Output as JSON
        crypto-balance-tracker scan 0xABC... --format json
    """
    _configure_logging(debug)
    now = time.time()
    watched = [
        WatchedAddress(id=str(index), address=address, added_at=now) for index, address in enumerate(addresses, 1)
    ]

    try:
        portfolios, summary = asyncio.run(
            _scan(watched, network or None, force, show_progress=format is OutputFormat.TABLE)
        )
    except TrackerError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        if debug:
            raise
        raise typer.Exit(1)

    if format == OutputFormat.JSON:
        _output_json(portfolios, summary)
    else:
        _output_table(portfolios, summary)


async def _scan(
    watched: list[WatchedAddress],
    networks_to_scan: list[str] | None,
    force_refresh: bool,
    show_progress: bool,
) -> tuple[list[AddressPortfolio], PortfolioSummary]:
    service = BalanceTrackerService.from_settings(TrackerSettings())
    try:
        if networks_to_scan:
            # Unknown ids fail here rather than once per address
            for network_id in networks_to_scan:
                service.networks.get(network_id)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
            disable=not show_progress,
        ) as progress:
            task = progress.add_task("Scanning...", total=None)

            def on_progress(address: WatchedAddress, update: ScanProgress) -> None:
                progress.update(
                    task,
                    description=f"{truncate_address(address.address)} {update.network_name}: {update.status.value}",
                )

            portfolios = await service.scan_portfolios(
                watched,
                force_refresh=force_refresh,
                networks_to_scan=networks_to_scan,
                on_progress=on_progress,
            )
        return portfolios, service.summarize(portfolios)
    finally:
        await service.close()


@app.command()
def prices(
    assets: list[str] = typer.Argument(..., help="Assets as SYMBOL:PRICE_ID, e.g. ETH:ethereum"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Look up USD prices (stablecoins are pegged at $1, wrapped tokens use their underlying)."""
    _configure_logging(debug)

    requests = []
    for asset in assets:
        symbol, sep, price_id = asset.partition(":")
        if not sep or not symbol or not price_id:
            console.print(f"[bold red]Error:[/bold red] expected SYMBOL:PRICE_ID, got {asset!r}")
            raise typer.Exit(1)
        requests.append(PriceRequest(price_id=price_id, symbol=symbol))

    result = asyncio.run(_prices(requests))

    table = Table(title="USD Prices", show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Price ID", style="blue")
    table.add_column("USD Price", style="bold green", justify="right")
    table.add_column("Source", style="yellow")

    for request in requests:
        price = result.prices.get(request.price_id)
        if request.price_id in result.errored_ids:
            source = "unavailable"
        elif request.price_id in result.cached_ids:
            source = "cache"
        else:
            source = "fetched"
        table.add_row(request.symbol, request.price_id, format_usd_value(price), source)

    console.print(table)


async def _prices(requests: list[PriceRequest]) -> BatchPriceResult:
    service = BalanceTrackerService.from_settings(TrackerSettings())
    try:
        return await service.get_prices(requests)
    finally:
        await service.close()


@app.command()
def list_networks() -> None:
    """List all configured networks."""
    settings = TrackerSettings()
    registry = NetworkRegistry.from_config(settings.networks_file)

    table = Table(title="Supported Networks", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Chain ID", style="yellow", justify="right")
    table.add_column("Native", style="white")

    for net in registry.list_networks():
        table.add_row(net.id, net.name, str(net.chain_id), net.native_token.symbol)

    console.print(table)


@app.command()
def list_tokens(
    network: str | None = typer.Option(None, "--network", "-n", help="Only list tokens of this network"),
) -> None:
    """List default tokens scanned on each network."""
    settings = TrackerSettings()
    networks = NetworkRegistry.from_config(settings.networks_file)
    tokens = TokenRegistry.from_config(settings.networks_file)

    if network is not None and network not in networks:
        console.print(f"[bold red]Error:[/bold red] unknown network {network!r}")
        raise typer.Exit(1)

    table = Table(title="Default Tokens", show_header=True, header_style="bold magenta")
    table.add_column("Network", style="blue")
    table.add_column("Symbol", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Address", style="white")
    table.add_column("Decimals", style="yellow", justify="right")

    network_ids = [network] if network else [n.id for n in networks.list_networks()]
    for network_id in network_ids:
        for token in tokens.tokens_for(network_id):
            table.add_row(network_id, token.symbol, token.name or "", token.address, str(token.decimals))

    console.print(table)


def _output_table(portfolios: list[AddressPortfolio], summary: PortfolioSummary) -> None:
    """Output balances and summary as rich tables."""
    for portfolio in sort_portfolios_by_value(portfolios):
        if portfolio.error:
            console.print(f"\n[bold red]{portfolio.address}:[/bold red] {portfolio.error}")
            continue

        table = Table(
            title=f"Balances for {truncate_address(portfolio.address, 10, 8)}",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Network", style="blue")
        table.add_column("Token", style="green")
        table.add_column("Balance", style="white", justify="right")
        table.add_column("USD Value", style="bold green", justify="right")

        for network_balance in portfolio.network_balances:
            balances = list(network_balance.token_balances)
            if network_balance.native_balance is not None:
                balances.insert(0, network_balance.native_balance)
            for balance in balances:
                table.add_row(
                    network_balance.network_name,
                    balance.symbol,
                    format_token_amount(balance.formatted_amount, balance.decimals),
                    format_usd_value(balance.usd_value),
                )

        console.print("\n")
        console.print(table)
        for failure in networks_with_errors(portfolio):
            console.print(f"[yellow]  {failure['network_id']} failed:[/yellow] {failure['error']}")

    # Summary table
    summary_table = Table(show_header=False, box=None)
    summary_table.add_column("Label", style="bold")
    summary_table.add_column("Value", style="bold green")

    summary_table.add_row("Total Value:", format_usd_value(summary.total_usd_value))
    summary_table.add_row("Addresses:", str(summary.total_addresses))

    if summary.network_breakdown:
        summary_table.add_row("", "")
        summary_table.add_row("[bold]By Network:[/bold]", "")
        for item in summary.network_breakdown:
            summary_table.add_row(
                f"  {item.network_name}", f"{format_usd_value(item.total_usd_value)} ({item.percentage:.1f}%)"
            )

    if summary.asset_breakdown:
        summary_table.add_row("", "")
        summary_table.add_row("[bold]By Asset:[/bold]", "")
        for item in summary.asset_breakdown:
            summary_table.add_row(
                f"  {item.symbol}", f"{format_usd_value(item.total_usd_value)} ({item.percentage:.1f}%)"
            )

    console.print("\n")
    console.print(summary_table)
    console.print("\n")


def _output_json(portfolios: list[AddressPortfolio], summary: PortfolioSummary) -> None:
    """Output portfolios and summary as JSON."""
    data = {
        "portfolios": [p.model_dump(mode="json") for p in portfolios],
        "summary": summary.model_dump(mode="json"),
    }
    console.print_json(json.dumps(data))


if __name__ == "__main__":
    app()
