from __future__ import annotations
import argparse
import asyncio
import logging
import sys
import uvicorn
from package_catalog.domain.entities import SyncState, SyncStatus
from package_catalog.infrastructure.config import Settings, get_settings
from package_catalog.interface.dependencies import (
    build_http_client,
    build_sync_registry,
    close_store,
    open_store,
)

SOURCES = ("debian", "ubuntu", "arch", "aur", "fedora", "homebrew", "winget")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )


def main() -> None:
    """Start the uvicorn ASGI server."""
    settings = get_settings()
    _configure_logging(settings.log_level)
    uvicorn.run(
        "package_catalog.interface.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


async def run_sync(settings: Settings, source: str) -> SyncStatus:
    """Run one source's sync in the foreground against the configured store."""
    store = await open_store(settings.database_url)
    client = build_http_client(settings)
    try:
        registry = build_sync_registry(settings, store, client)
        return await registry.get(source).run()
    finally:
        await client.aclose()
        await close_store(store)


def sync_main(argv: list[str] | None = None) -> int:
    """CLI: ``package-catalog-sync <source>``."""
    parser = argparse.ArgumentParser(
        prog="package-catalog-sync",
        description="Fetch one upstream package repository and upsert it into the catalog.",
    )
    parser.add_argument("source", choices=SOURCES)
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    args = parser.parse_args(argv)

    settings = get_settings()
    _configure_logging(args.log_level or settings.log_level)

    status = asyncio.run(run_sync(settings, args.source))
    counts = status.counts
    if status.state is not SyncState.COMPLETE:
        print(f"{args.source}: sync failed: {status.error}", file=sys.stderr)
        return 1
    print(
        f"{args.source}: {counts.inserted} new, {counts.updated} updated, "
        f"{counts.skipped} unchanged, {counts.failed} failed"
    )
    return 0


if __name__ == "__main__":
    main()
