"""FastAPI dependency injection wiring."""

from __future__ import annotations

import logging

import httpx

from package_catalog.domain.ports.package_store import PackageStore
from package_catalog.infrastructure.config import Settings, get_settings
from package_catalog.infrastructure.http_client import HttpFetchClient
from package_catalog.infrastructure.memory_store import InMemoryPackageStore
from package_catalog.infrastructure.source_factory import build_sources
from package_catalog.infrastructure.sql_store import SqlPackageStore
from package_catalog.services.catalog_upserter import CatalogUpserter
from package_catalog.services.platform_registry import PlatformRegistry
from package_catalog.services.progress import ProgressChannel
from package_catalog.services.sync_orchestrator import SyncOrchestrator, SyncRegistry

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"

_http_client: httpx.AsyncClient | None = None
_store: PackageStore | None = None
_platforms: PlatformRegistry | None = None
_sync_registry: SyncRegistry | None = None


# ── Builders (shared with the CLI) ──────────────────────────────────────────


async def open_store(database_url: str) -> PackageStore:
    """Open the store named by *database_url*, creating tables if needed."""
    if database_url == MEMORY_URL:
        logger.info("Using the in-memory package store")
        return InMemoryPackageStore()
    store = SqlPackageStore.from_url(database_url)
    await store.init_schema()
    return store


async def close_store(store: PackageStore) -> None:
    if isinstance(store, SqlPackageStore):
        await store.close()


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout),
        follow_redirects=True,
    )


def build_sync_registry(
    settings: Settings,
    store: PackageStore,
    client: httpx.AsyncClient,
    platforms: PlatformRegistry | None = None,
) -> SyncRegistry:
    """Wire one orchestrator per configured source around *store*."""
    platforms = platforms or PlatformRegistry(store)
    upserter = CatalogUpserter(
        store,
        batch_size=settings.upsert_batch_size,
        progress_every=settings.progress_every,
    )
    http = HttpFetchClient(client, user_agent=settings.user_agent)
    return SyncRegistry(
        SyncOrchestrator(source, platforms, upserter, ProgressChannel())
        for source in build_sources(settings, http)
    )


# ── Lifespan ────────────────────────────────────────────────────────────────


async def startup() -> None:
    """Initialise shared resources: called from the lifespan context manager."""
    global _http_client, _store, _platforms, _sync_registry  # noqa: PLW0603

    settings = get_settings()
    _http_client = build_http_client(settings)
    _store = await open_store(settings.database_url)
    _platforms = PlatformRegistry(_store)
    _sync_registry = build_sync_registry(settings, _store, _http_client, _platforms)


async def shutdown() -> None:
    """Stop running syncs and release shared resources."""
    global _http_client, _store, _platforms, _sync_registry  # noqa: PLW0603

    if _sync_registry:
        await _sync_registry.cancel_all()
        _sync_registry = None
    if _http_client:
        await _http_client.aclose()
        _http_client = None
    if _store:
        await close_store(_store)
        _store = None
    _platforms = None


# ── Dependencies ────────────────────────────────────────────────────────────


def get_store() -> PackageStore:
    assert _store is not None, "startup() was not called"
    return _store


def get_platform_registry() -> PlatformRegistry:
    assert _platforms is not None, "startup() was not called"
    return _platforms


def get_sync_registry() -> SyncRegistry:
    assert _sync_registry is not None, "startup() was not called"
    return _sync_registry
