"""
Command line inspection tools for the sync layer.
"""

import asyncio
import sys
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from cubesync.client import GameSyncClient
from cubesync.core.exceptions import CubeSyncException
from cubesync.core.logging import get_logger, setup_logging
from cubesync.models.common import AccountContext
from cubesync.utils.validation import EvmValidator

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="CubeSync chain state inspection commands")

WEI = 10 ** 18


def _format_amount(value: int) -> str:
    return f"{value / WEI:,.4f}"


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except CubeSyncException as e:
        logger.error("Command failed", code=e.code, error=e.message)
        console.print(f"[red]❌ {e.code}: {e.message}[/red]")
        sys.exit(1)


@app.command()
def graveyard():
    """Show graveyard readiness."""
    async def _graveyard():
        setup_logging()
        async with GameSyncClient(poll=False) as client:
            model = await client.refresh_graveyard()

        data = model.data
        status = "✅ ready" if data["ready"] else "⏳ not ready"
        console.print(f"Graveyard: {status} ({data['state']})")
        console.print(f"Tokens in window: {len(data['token_ids'])} / total {data['total_count']}")
        if model.error:
            console.print(f"[yellow]⚠️ {model.error} (stale={model.is_stale})[/yellow]")

    _run(_graveyard())


@app.command()
def burned(address: str, force: bool = typer.Option(False, help="Bypass fresh cache entries")):
    """List burned NFTs and claim status for an address."""
    async def _burned():
        setup_logging()
        async with GameSyncClient(poll=False) as client:
            model = await client.burned_nfts(address, force=force)

        table = Table(title=f"Burned NFTs for {address}")
        table.add_column("Token", justify="right")
        table.add_column("Status")
        table.add_column("Wait (min)", justify="right")
        table.add_column("Claim at", justify="right")
        table.add_column("Player share", justify="right")
        table.add_column("Pool", justify="right")
        table.add_column("Burned", justify="right")

        for item in model.data:
            table.add_row(
                str(item.token_id),
                item.lifecycle.value,
                str(item.record.wait_period_minutes),
                str(item.record.claim_available_time),
                _format_amount(item.player_share),
                _format_amount(item.pool_share),
                _format_amount(item.burned_share),
            )

        console.print(table)
        if model.is_stale:
            console.print(f"[yellow]⚠️ Showing cached data: {model.error}[/yellow]")

    _run(_burned())


@app.command()
def nft(address: str, token_ids: List[int]):
    """Show NFT game state."""
    async def _nft():
        setup_logging()
        async with GameSyncClient(poll=False) as client:
            model = await client.nft_states(token_ids, address=address)

        table = Table(title="NFT state")
        for column in ("Token", "Rarity", "Stars", "Bonus", "Active", "Graveyard", "Locked"):
            table.add_column(column)
        for state in model.data:
            table.add_row(
                str(state.token_id),
                str(state.rarity),
                f"{state.current_stars}/{state.initial_stars}",
                str(state.bonus_stars),
                "yes" if state.is_activated else "no",
                "yes" if state.is_in_graveyard else "no",
                _format_amount(state.locked_value),
            )
        console.print(table)
        if model.error:
            console.print(f"[yellow]⚠️ {model.error}[/yellow]")

    _run(_nft())


@app.command()
def cache(address: str, clear: bool = typer.Option(False, help="Invalidate every feature for the address")):
    """Show (or clear) cache entries for an address."""
    async def _cache():
        setup_logging()
        async with GameSyncClient(poll=False) as client:
            account = AccountContext(EvmValidator.normalize_address(address), client.chain.chain_id)
            if clear:
                deleted = await client.cache.invalidate_account(account)
                console.print(f"🗑️ Deleted {deleted} cache entries")
                return
            entries = await client.cache.describe(account)

        table = Table(title=f"Cache for {address}")
        table.add_column("Feature")
        table.add_column("Age (s)", justify="right")
        table.add_column("TTL (s)", justify="right")
        table.add_column("Fresh")
        for feature, info in entries.items():
            table.add_row(
                feature,
                str(info["age"]),
                "∞" if info["ttl"] is None else str(info["ttl"]),
                "✅" if info["fresh"] else "❌",
            )
        console.print(table)

    _run(_cache())


@app.command()
def health():
    """Check RPC endpoints and Redis."""
    async def _health():
        setup_logging()
        async with GameSyncClient(poll=False) as client:
            block = await client.reader.block_number()
            redis_status = await client.redis.health_check()
            stats = client.reader.get_stats()

        console.print(f"Latest block: {block}")
        console.print(f"Redis: {redis_status['status']}")
        table = Table(title="RPC endpoints")
        table.add_column("URL")
        table.add_column("Priority", justify="right")
        table.add_column("Errors", justify="right")
        table.add_column("Success rate", justify="right")
        for ep in stats["endpoints"]:
            table.add_row(ep["url"], str(ep["priority"]), str(ep["error_count"]), str(ep["success_rate"]))
        console.print(table)

    _run(_health())


if __name__ == "__main__":
    app()
