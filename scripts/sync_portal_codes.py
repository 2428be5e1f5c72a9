"""Provision portal codes for upcoming reservations and push them to Guesty.

Reads the same environment as the gateway (REDIS_URL, GUESTY_*).

Usage:
    uv run --extra scripts scripts/sync_portal_codes.py              # create + push, confirmed only
    uv run --extra scripts scripts/sync_portal_codes.py --no-push    # create only
    uv run --extra scripts scripts/sync_portal_codes.py --tsv codes.tsv
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

import httpx
import tyro
from rich.console import Console
from rich.table import Table

from stayportal.gateway.cache import create_cache
from stayportal.gateway.config import Settings
from stayportal.gateway.guesty import AccessTokenProvider, GuestyClient
from stayportal.gateway.portal_sync import sync_portal_codes, to_tsv
from stayportal.gateway.redis_client import create_redis_client

console = Console()


@dataclass
class Args:
    push: bool = True
    """Write codes to the Guesty portal_code custom field"""

    create_missing: bool = True
    """Generate codes for reservations that have none yet"""

    all_statuses: bool = False
    """Include unconfirmed reservations"""

    delay: float = 5.0
    """Seconds between Guesty writes"""

    tsv: Path | None = None
    """Also write a tab-separated export here"""


async def run(args: Args) -> None:
    settings = Settings()  # type: ignore
    redis = await create_redis_client(settings)
    if redis is None:
        console.print("[yellow]REDIS_URL not set, codes cannot be persisted[/yellow]")

    try:
        async with httpx.AsyncClient(timeout=settings.guesty_request_timeout_seconds) as http:
            tokens = AccessTokenProvider(settings, create_cache(settings.token_cache_type, redis), http)
            guesty = GuestyClient(settings, tokens, http)
            report = await sync_portal_codes(
                redis,
                guesty,
                create_missing=args.create_missing,
                push=args.push,
                confirmed_only=not args.all_statuses,
                delay_seconds=args.delay,
            )
    finally:
        if redis is not None:
            await redis.aclose()

    table = Table(title=f"{report.total} reservations")
    for column in ("Check-In", "Guest", "Confirmation", "Portal Code", "Property", "Guesty"):
        table.add_column(column)
    for r in report.results:
        synced = {None: "-", True: "[green]ok[/green]", False: f"[red]{r.error}[/red]"}[r.guesty_synced]
        code = f"[bold]{r.portal_code}[/bold]" if r.is_new else (r.portal_code or "")
        table.add_row(r.check_in, r.guest_name, r.confirmation_code, code, r.property, synced)
    console.print(table)
    console.print(
        f"new codes: {report.new_codes}  synced: {report.synced}  failed: {report.failed}  skipped: {report.skipped}"
    )

    if args.tsv:
        args.tsv.write_text(to_tsv(report))
        console.print(f"Wrote {args.tsv}")


if __name__ == "__main__":
    asyncio.run(run(tyro.cli(Args)))
