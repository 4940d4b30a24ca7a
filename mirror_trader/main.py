"""
Polymarket Mirror Trader - Main Entry Point

Usage:
    mirror-trader run              # Mirror pending trades from the ledger
    mirror-trader run --dry-run    # Same, without placing orders
    mirror-trader pending          # List trades waiting to be mirrored
    mirror-trader book TOKEN_ID    # Show the best levels of a book
    mirror-trader market MARKET_ID # Show fees and minimum order size
    mirror-trader balance          # Show follower / target USDC balances
"""

import asyncio
import sys
from typing import Optional

import click
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api_client import PolymarketDataClient
from .backoff import BackoffPolicy
from .balance import UsdcBalanceOracle
from .config import Settings, get_settings
from .gateway import ClobGateway, DryRunGateway
from .metadata import MarketMetadataResolver
from .order_book import OrderBookAnalyzer
from .strategy import PositionMirroringStrategy
from .trade_executor import MirrorExecutor
from .trade_ledger import TradeLedger

console = Console()


def configure_logging(settings: Settings):
    """Configure loguru sinks"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level,
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


class MirrorTradingBot:
    """
    Wires the gateway, ledger and strategy together and runs the executor
    """

    def __init__(self, settings: Settings, dry_run: bool = False):
        self.settings = settings
        self.dry_run = dry_run or settings.dry_run
        self.gateway = DryRunGateway(settings) if self.dry_run else ClobGateway(settings)
        self.executor: Optional[MirrorExecutor] = None

    async def initialize(self):
        console.print("[bold blue]Initializing Mirror Trader...[/bold blue]")

        if not self.settings.target_address or not self.settings.follower_address:
            raise click.UsageError("TARGET_ADDRESS and FOLLOWER_ADDRESS must be configured")

        self.gateway.initialize()
        ledger = await TradeLedger.open(self.settings.database_url)
        strategy = PositionMirroringStrategy.from_settings(self.settings, self.gateway, ledger)
        self.executor = MirrorExecutor(
            strategy,
            ledger,
            PolymarketDataClient(self.settings),
            UsdcBalanceOracle(self.settings),
            self.settings,
        )
        console.print("[bold green]✓ Initialization complete[/bold green]")

    async def run(self):
        await self.initialize()

        mode = "DRY RUN" if self.dry_run else "LIVE"
        console.print(Panel(
            f"[bold]Mirror Trader Started[/bold]\n"
            f"Mode: [yellow]{mode}[/yellow]\n"
            f"Target: {self.settings.target_address}\n"
            f"Follower: {self.settings.follower_address}\n"
            f"Amplification: {self.settings.amplification:g}x\n"
            f"Press Ctrl+C to stop",
            title="Status"
        ))

        try:
            await self.executor.run()
        finally:
            await self.stop()

    async def stop(self):
        if self.executor:
            self.executor.stop()
            await self.executor.close()
        console.print("[green]Bot stopped successfully[/green]")


# CLI Commands
@click.group()
@click.pass_context
def cli(ctx):
    """Polymarket Mirror Trader"""
    settings = get_settings()
    configure_logging(settings)
    ctx.obj = settings


@cli.command()
@click.option('--dry-run', is_flag=True, help='Read live books but never place orders')
@click.pass_obj
def run(settings: Settings, dry_run: bool):
    """Mirror pending trades from the ledger"""
    bot = MirrorTradingBot(settings, dry_run=dry_run)
    try:
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")


@cli.command()
@click.pass_obj
def pending(settings: Settings):
    """List trades waiting to be mirrored"""
    async def _pending():
        ledger = await TradeLedger.open(settings.database_url)
        try:
            events = await ledger.pending(settings.retry_limit)
        finally:
            await ledger.close()

        if not events:
            console.print("[yellow]No pending trades[/yellow]")
            return

        table = Table(title="Pending Trades")
        table.add_column("ID", justify="right")
        table.add_column("Side")
        table.add_column("Token")
        table.add_column("Size", justify="right")
        table.add_column("Price", justify="right")
        table.add_column("USDC", justify="right")
        table.add_column("Retries", justify="right")

        for e in events:
            table.add_row(
                str(e.id),
                e.side.value,
                f"{e.token_id[:10]}...",
                f"{e.size:.4f}",
                f"{e.price:.4f}",
                f"${e.usdc_size:,.2f}",
                str(e.retry_count),
            )

        console.print(table)

    asyncio.run(_pending())


@cli.command()
@click.argument('token_id')
@click.pass_obj
def book(settings: Settings, token_id: str):
    """Show the best bid and ask for a token"""
    async def _book():
        gateway = DryRunGateway(settings)
        gateway.initialize()
        snapshot = await OrderBookAnalyzer(gateway, BackoffPolicy.from_settings(settings)).snapshot(token_id)

        if snapshot is None:
            console.print("[red]✗ No order book[/red]")
            return

        table = Table(title=f"Order Book {token_id[:16]}...")
        table.add_column("Side", style="cyan")
        table.add_column("Price", justify="right")
        table.add_column("Size", justify="right")

        for label, level in (("Best ask", snapshot.best_ask), ("Best bid", snapshot.best_bid)):
            if level:
                table.add_row(label, f"{level.price:.4f}", f"{level.size:,.2f}")
            else:
                table.add_row(label, "-", "-")

        console.print(table)
        if snapshot.spread is not None:
            console.print(f"Spread: {snapshot.spread:.4f}")

    asyncio.run(_book())


@cli.command()
@click.argument('market_id')
@click.pass_obj
def market(settings: Settings, market_id: str):
    """Show fee rates and minimum order size of a market"""
    async def _market():
        gateway = DryRunGateway(settings)
        gateway.initialize()
        metadata = await MarketMetadataResolver(gateway, BackoffPolicy.from_settings(settings)).resolve(market_id)

        console.print(Panel(
            f"Maker fee: {metadata.maker_fee_bps:g} bps\n"
            f"Taker fee: {metadata.taker_fee_bps:g} bps\n"
            f"Min order size: {metadata.min_order_size:g} shares",
            title=f"Market {market_id[:16]}..."
        ))

    asyncio.run(_market())


@cli.command()
@click.argument('address', required=False)
@click.pass_obj
def balance(settings: Settings, address: Optional[str]):
    """Show USDC balances (follower and target by default)"""
    async def _balance():
        oracle = UsdcBalanceOracle(settings)
        addresses = [address] if address else [
            a for a in (settings.follower_address, settings.target_address) if a
        ]
        if not addresses:
            console.print("[yellow]No address given or configured[/yellow]")
            return

        table = Table(title="USDC Balances")
        table.add_column("Address", style="cyan")
        table.add_column("Balance", justify="right", style="green")

        for a in addresses:
            try:
                table.add_row(f"{a[:10]}...{a[-6:]}", f"${await oracle.get_balance(a):,.2f}")
            except Exception as e:
                table.add_row(f"{a[:10]}...{a[-6:]}", f"[red]{e}[/red]")

        console.print(table)

    asyncio.run(_balance())


if __name__ == "__main__":
    cli()
