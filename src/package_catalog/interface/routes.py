"""API routes: thin controllers over the store and the sync registry."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from package_catalog.domain.entities import PackageFilter, PackageType, PlatformId, Repository
from package_catalog.domain.ports.package_store import PackageStore
from package_catalog.interface.dependencies import (
    get_platform_registry,
    get_store,
    get_sync_registry,
)
from package_catalog.interface.schemas import (
    ErrorResponse,
    PackageListResponse,
    PackageOut,
    PlatformOut,
    PlatformsInitResponse,
    ProgressEventOut,
    SyncStatusOut,
)
from package_catalog.services.platform_registry import PlatformRegistry
from package_catalog.services.sync_orchestrator import SyncOrchestrator, SyncRegistry

router = APIRouter()

KEEPALIVE_SECONDS = 15.0
MAX_PAGE_SIZE = 100


# ── Catalog ─────────────────────────────────────────────────────────────────


@router.get("/packages", response_model=PackageListResponse)
async def list_packages(
    platform: PlatformId | None = None,
    package_type: PackageType | None = Query(None, alias="type"),
    repository: Repository | None = None,
    search: str | None = None,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    sort_by: Literal["name", "popularity_score", "updated_at"] = "name",
    sort_order: Literal["asc", "desc"] = "asc",
    store: PackageStore = Depends(get_store),
) -> PackageListResponse:
    """Search and page through active packages."""
    limit = min(limit, MAX_PAGE_SIZE)
    page = await store.list_packages(
        PackageFilter(
            platform_id=platform,
            package_type=package_type,
            repository=repository,
            search=search.strip() if search and search.strip() else None,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    )
    return PackageListResponse(
        packages=[PackageOut.from_entity(p) for p in page.packages],
        total=page.total,
        limit=limit,
        offset=offset,
    )


@router.post("/platforms/init", response_model=PlatformsInitResponse)
async def init_platforms(
    platforms: PlatformRegistry = Depends(get_platform_registry),
) -> PlatformsInitResponse:
    ensured = await platforms.ensure_platforms()
    return PlatformsInitResponse(platforms=[PlatformOut.from_entity(p) for p in ensured])


# ── Sync ────────────────────────────────────────────────────────────────────


@router.get("/sync", response_model=list[SyncStatusOut])
async def list_sync_statuses(
    registry: SyncRegistry = Depends(get_sync_registry),
) -> list[SyncStatusOut]:
    return [SyncStatusOut.from_entity(s) for s in registry.statuses()]


@router.get(
    "/sync/{source}",
    response_model=SyncStatusOut,
    responses={404: {"model": ErrorResponse, "description": "Unknown source"}},
)
async def get_sync_status(
    source: str,
    registry: SyncRegistry = Depends(get_sync_registry),
) -> SyncStatusOut:
    return SyncStatusOut.from_entity(registry.get(source).status)


@router.post(
    "/sync/{source}",
    status_code=202,
    response_model=SyncStatusOut,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown source"},
        409: {
            "model": ErrorResponse,
            "description": "A sync for this source is already running",
        },
    },
)
async def start_sync(
    source: str,
    registry: SyncRegistry = Depends(get_sync_registry),
) -> SyncStatusOut:
    """Start a background sync of one source."""
    orchestrator = registry.start(source)
    return SyncStatusOut.from_entity(orchestrator.status)


def _sse(event: str, payload: str) -> str:
    return f"event: {event}\ndata: {payload}\n\n"


async def _event_stream(orchestrator: SyncOrchestrator) -> AsyncIterator[str]:
    async with orchestrator.channel.subscribe() as queue:
        yield _sse("status", SyncStatusOut.from_entity(orchestrator.status).model_dump_json())
        if not orchestrator.is_running:
            return
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                if not orchestrator.is_running:
                    return
                yield ": keep-alive\n\n"
                continue
            yield _sse(event.phase, ProgressEventOut.from_entity(event).model_dump_json())
            if event.phase in ("done", "error"):
                return


@router.get(
    "/sync/{source}/events",
    responses={404: {"model": ErrorResponse, "description": "Unknown source"}},
)
async def stream_sync_events(
    source: str,
    registry: SyncRegistry = Depends(get_sync_registry),
) -> StreamingResponse:
    """Server-sent progress events until the current run finishes."""
    orchestrator = registry.get(source)
    return StreamingResponse(
        _event_stream(orchestrator),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
