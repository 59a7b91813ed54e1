"""Per-source sync lifecycle: ensure platforms, fetch, upsert, report.

Each source gets one :class:`SyncOrchestrator`.  A run moves the source's
status ``idle → running → complete | error``; a second start while a run is
in flight is rejected, and the running flag is released on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone

from package_catalog.domain.entities import (
    ProgressEvent,
    SyncState,
    SyncStatus,
    UpsertCounts,
)
from package_catalog.domain.exceptions import SyncAlreadyRunningError, UnknownSourceError
from package_catalog.domain.ports.source_parser import SourceParser
from package_catalog.services.catalog_upserter import CatalogUpserter
from package_catalog.services.platform_registry import PlatformRegistry
from package_catalog.services.progress import ProgressChannel

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Drive one source through a full sync.

    Parameters
    ----------
    source:
        The parser for the upstream repository.
    platforms:
        Registry whose platforms must exist before any package write.
    upserter:
        Applies the fetched records to storage.
    channel:
        Optional fan-out for progress events.
    """

    def __init__(
        self,
        source: SourceParser,
        platforms: PlatformRegistry,
        upserter: CatalogUpserter,
        channel: ProgressChannel | None = None,
    ) -> None:
        self.source = source
        self.channel = channel or ProgressChannel()
        self.status = SyncStatus(source=source.name)
        self._platforms = platforms
        self._upserter = upserter
        self._running = False
        self._task: asyncio.Task[SyncStatus] | None = None

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task[SyncStatus]:
        """Claim the source and run the sync as a background task.

        Raises :class:`SyncAlreadyRunningError` immediately when a run is
        already in flight.  Must be called from inside a running event loop.
        """
        self._claim()
        self._task = asyncio.get_running_loop().create_task(
            self._run_claimed(), name=f"sync-{self.name}"
        )
        return self._task

    async def run(self) -> SyncStatus:
        """Run the sync in the foreground and return the final status."""
        self._claim()
        return await self._run_claimed()

    async def cancel(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # A task cancelled before its first step never enters the run body.
        if self._running:
            self._running = False
            self.status.state = SyncState.ERROR
            self.status.error = "Sync cancelled"

    # ── Internals ───────────────────────────────────────────────────────

    def _claim(self) -> None:
        if self._running:
            raise SyncAlreadyRunningError(f"Sync for {self.name} is already running")
        self._running = True
        self.status = SyncStatus(
            source=self.name,
            state=SyncState.RUNNING,
            message="Starting",
            started_at=_utcnow(),
        )

    def _emit(self, phase: str, current: int = 0, total: int = 0, message: str = "") -> None:
        self.status.message = message
        self.channel.publish(
            ProgressEvent(
                source=self.name, phase=phase, current=current, total=total, message=message
            )
        )

    def _on_fetch_progress(self, current: int, total: int, sample: str) -> None:
        self.status.fetched = current
        self.status.total = total
        self._emit("fetch", current, total, f"Fetched {current} packages (latest: {sample})")

    def _on_store_progress(self, processed: int, total: int, counts: UpsertCounts) -> None:
        self.status.counts = replace(counts)
        self._emit(
            "store",
            processed,
            total,
            f"Stored {counts.inserted} new, updated {counts.updated}, "
            f"skipped {counts.skipped}, failed {counts.failed}",
        )

    async def _run_claimed(self) -> SyncStatus:
        source = self.source
        logger.info("Starting %s sync", source.name)
        try:
            self._emit("platforms", message="Ensuring platforms")
            await self._platforms.ensure_platforms()
            await self._upserter.preflight(source.required_repositories)

            self._emit("fetch", message=f"Fetching {source.name} packages")
            records = await source.fetch_all(self._on_fetch_progress)
            self.status.fetched = len(records)
            self.status.total = len(records)

            self._emit("store", 0, len(records), f"Storing {len(records)} packages")
            counts = await self._upserter.upsert(
                source.platform_id,
                records,
                self._on_store_progress,
                track_liveness=source.tracks_liveness,
            )
            self.status.counts = counts
            self.status.state = SyncState.COMPLETE
            self._emit(
                "done",
                counts.processed,
                len(records),
                f"{source.name} sync complete: {counts.inserted} new, "
                f"{counts.updated} updated, {counts.skipped} unchanged, {counts.failed} failed",
            )
            logger.info("%s sync completed", source.name)
        except asyncio.CancelledError:
            self.status.state = SyncState.ERROR
            self.status.error = "Sync cancelled"
            self._emit("error", message="Sync cancelled")
            raise
        except Exception as exc:
            logger.exception("%s sync failed", source.name)
            self.status.state = SyncState.ERROR
            self.status.error = str(exc) or type(exc).__name__
            self._emit("error", message=self.status.error)
        finally:
            self.status.finished_at = _utcnow()
            self._running = False
        return self.status


class SyncRegistry:
    """Name → orchestrator lookup for every configured source."""

    def __init__(self, orchestrators: Iterable[SyncOrchestrator]) -> None:
        self._orchestrators = {o.name: o for o in orchestrators}

    def names(self) -> list[str]:
        return list(self._orchestrators)

    def get(self, name: str) -> SyncOrchestrator:
        try:
            return self._orchestrators[name]
        except KeyError:
            raise UnknownSourceError(
                f"Unknown source {name!r}; expected one of: {', '.join(self._orchestrators)}"
            ) from None

    def statuses(self) -> list[SyncStatus]:
        return [o.status for o in self._orchestrators.values()]

    def start(self, name: str) -> SyncOrchestrator:
        orchestrator = self.get(name)
        orchestrator.start()
        return orchestrator

    async def cancel_all(self) -> None:
        for orchestrator in self._orchestrators.values():
            await orchestrator.cancel()
