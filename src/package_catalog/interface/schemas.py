"""Pydantic response DTOs for the API boundary."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from package_catalog.domain.entities import (
    PackageType,
    Platform,
    PlatformId,
    ProgressEvent,
    Repository,
    StoredPackage,
    SyncState,
    SyncStatus,
    UpsertCounts,
)


class PackageOut(BaseModel):
    id: str
    name: str
    version: str
    platform_id: PlatformId
    repository: Repository
    description: str | None = None
    package_type: PackageType | None = None
    popularity_score: int = 0
    homepage_url: str | None = None
    license: str | None = None
    updated_at: datetime | None = None
    last_seen_at: datetime | None = None

    @classmethod
    def from_entity(cls, package: StoredPackage) -> PackageOut:
        return cls(
            id=package.id,
            name=package.name,
            version=package.version,
            platform_id=package.platform_id,
            repository=package.repository,
            description=package.description,
            # Untyped rows are served as CLI packages.
            package_type=package.package_type or PackageType.CLI,
            popularity_score=package.popularity_score,
            homepage_url=package.homepage_url,
            license=package.license,
            updated_at=package.updated_at,
            last_seen_at=package.last_seen_at,
        )


class PackageListResponse(BaseModel):
    """Successful response from ``GET /packages``."""

    packages: list[PackageOut]
    total: int
    limit: int
    offset: int


class PlatformOut(BaseModel):
    id: PlatformId
    name: str
    package_manager: str
    icon: str | None = None

    @classmethod
    def from_entity(cls, platform: Platform) -> PlatformOut:
        return cls(
            id=platform.id,
            name=platform.name,
            package_manager=platform.package_manager,
            icon=platform.icon,
        )


class PlatformsInitResponse(BaseModel):
    status: str = "ok"
    platforms: list[PlatformOut]


class UpsertCountsOut(BaseModel):
    inserted: int
    updated: int
    skipped: int
    failed: int

    @classmethod
    def from_entity(cls, counts: UpsertCounts) -> UpsertCountsOut:
        return cls(
            inserted=counts.inserted,
            updated=counts.updated,
            skipped=counts.skipped,
            failed=counts.failed,
        )


class SyncStatusOut(BaseModel):
    """Current state of one source's sync."""

    source: str
    state: SyncState
    error: str | None = None
    message: str = ""
    fetched: int = 0
    total: int = 0
    counts: UpsertCountsOut
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_entity(cls, status: SyncStatus) -> SyncStatusOut:
        return cls(
            source=status.source,
            state=status.state,
            error=status.error,
            message=status.message,
            fetched=status.fetched,
            total=status.total,
            counts=UpsertCountsOut.from_entity(status.counts),
            started_at=status.started_at,
            finished_at=status.finished_at,
        )


class ProgressEventOut(BaseModel):
    source: str
    phase: str
    current: int
    total: int
    message: str

    @classmethod
    def from_entity(cls, event: ProgressEvent) -> ProgressEventOut:
        return cls(
            source=event.source,
            phase=event.phase,
            current=event.current,
            total=event.total,
            message=event.message,
        )


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    status: str = "error"
    message: str
