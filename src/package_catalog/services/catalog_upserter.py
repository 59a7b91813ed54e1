"""Record-by-record upsert of a normalized stream into the catalog.

Each record is matched on ``(name, platform_id)``.  A missing row is
inserted, a row whose version differs is updated in place (id unchanged),
and an identical version is skipped.  Liveness-tracking sources also touch
``last_seen_at`` on skipped rows.

Records are processed sequentially in batches so two writes for the same
key can never race inside one run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository, UpsertCounts
from package_catalog.domain.exceptions import SchemaConstraintViolation
from package_catalog.domain.ports.package_store import PackageStore

logger = logging.getLogger(__name__)

UpsertProgress = Callable[[int, int, UpsertCounts], None]


class CatalogUpserter:
    """Diff incoming records against storage and apply the minimal writes.

    Parameters
    ----------
    store:
        The package store.
    batch_size:
        Records per batch.
    progress_every:
        Emit ``on_progress`` after this many processed records.
    """

    def __init__(
        self,
        store: PackageStore,
        batch_size: int = 100,
        progress_every: int = 100,
    ) -> None:
        self._store = store
        self._batch_size = max(1, batch_size)
        self._progress_every = max(1, progress_every)

    async def preflight(self, repositories: Sequence[Repository]) -> None:
        """Fail fast when the schema cannot hold a repository tag we will write."""
        for repository in repositories:
            if not await self._store.supports_enum_value("repository", repository.value):
                raise SchemaConstraintViolation(
                    f"Storage does not permit repository {repository.value!r}; "
                    "migrate the packages.repository constraint before syncing this source."
                )

    async def upsert(
        self,
        platform_id: PlatformId,
        records: Sequence[RawPackageRecord],
        on_progress: UpsertProgress | None = None,
        *,
        track_liveness: bool = False,
    ) -> UpsertCounts:
        """Store *records* for *platform_id* and return the tallies."""
        total = len(records)
        counts = UpsertCounts()
        logger.info("Storing %d packages for platform %s", total, platform_id.value)

        for start in range(0, total, self._batch_size):
            for record in records[start : start + self._batch_size]:
                try:
                    await self._upsert_one(platform_id, record, counts, track_liveness)
                except SchemaConstraintViolation:
                    logger.error(
                        "Schema rejected %s/%s; aborting the batch", platform_id.value, record.name
                    )
                    raise
                except Exception:
                    counts.failed += 1
                    logger.exception("Error storing package %s", record.name)

                if on_progress and counts.processed % self._progress_every == 0:
                    on_progress(counts.processed, total, counts)

        logger.info(
            "Stored %d new packages, updated %d, skipped %d, failed %d (%s)",
            counts.inserted,
            counts.updated,
            counts.skipped,
            counts.failed,
            platform_id.value,
        )
        if on_progress:
            on_progress(counts.processed, total, counts)
        return counts

    async def _upsert_one(
        self,
        platform_id: PlatformId,
        record: RawPackageRecord,
        counts: UpsertCounts,
        track_liveness: bool,
    ) -> None:
        if record.platform_id != platform_id:
            record = replace(record, platform_id=platform_id)

        existing = await self._store.find_package(record.name, platform_id)
        if existing is None:
            await self._store.insert_package(record)
            counts.inserted += 1
            return

        if existing.version != record.version:
            fields: dict[str, Any] = {
                "description": record.description,
                "version": record.version,
                "repository": record.repository,
                "popularity_score": record.popularity_score,
            }
            if record.package_type is not None:
                fields["package_type"] = record.package_type
            if record.homepage is not None:
                fields["homepage_url"] = record.homepage
            if record.license is not None:
                fields["license"] = record.license
            if track_liveness:
                fields["last_seen_at"] = datetime.now(timezone.utc)
                fields["is_active"] = True
            await self._store.update_package(existing.id, fields)
            counts.updated += 1
            return

        if track_liveness:
            await self._store.touch_package(existing.id)
        counts.skipped += 1
