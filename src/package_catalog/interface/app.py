"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI

from package_catalog.interface.dependencies import get_sync_registry, shutdown, startup
from package_catalog.interface.error_handlers import register_error_handlers
from package_catalog.interface.routes import router
from package_catalog.services.sync_orchestrator import SyncRegistry


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and HTTP client; cancel in-flight syncs on exit."""
    await startup()
    yield
    await shutdown()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Package Catalog",
        version="1.0.0",
        description=(
            "Keeps a catalog of installable software packages in sync with "
            "the Debian, Ubuntu, Arch, AUR, Fedora, Homebrew and Winget "
            "repositories, and serves it for search."
        ),
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health", include_in_schema=False)
    async def health(
        registry: SyncRegistry = Depends(get_sync_registry),
    ) -> dict[str, object]:
        running = [name for name in registry.names() if registry.get(name).is_running]
        return {"status": "ok", "sources": len(registry.names()), "syncing": running}

    return app
