"""Domain entities: pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PlatformId(str, Enum):
    """Closed set of target platforms stored in the catalog."""

    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    ARCH = "arch"
    FEDORA = "fedora"
    MACOS = "macos"
    WINDOWS = "windows"


class Repository(str, Enum):
    """Where a package comes from, relative to its platform."""

    OFFICIAL = "official"
    THIRD_PARTY = "third-party"
    AUR = "aur"


class PackageType(str, Enum):
    GUI = "gui"
    CLI = "cli"


class SyncState(str, Enum):
    """Lifecycle of one source's sync run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class RawPackageRecord:
    """One normalized package as produced by a source parser.

    ``(name, platform_id)`` is the natural key used for upsert matching.
    ``version`` is an opaque token: it is compared for equality only.
    """

    name: str
    version: str
    platform_id: PlatformId
    repository: Repository = Repository.OFFICIAL
    description: str | None = None
    popularity_score: int = 0
    package_type: PackageType | None = None
    homepage: str | None = None
    license: str | None = None


@dataclass(slots=True)
class StoredPackage:
    """A catalog row, as returned by the package store."""

    id: str
    name: str
    version: str
    platform_id: PlatformId
    repository: Repository
    description: str | None = None
    popularity_score: int = 0
    package_type: PackageType | None = None
    homepage_url: str | None = None
    license: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_seen_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Platform:
    id: PlatformId
    name: str
    package_manager: str
    icon: str | None = None


@dataclass(slots=True)
class UpsertCounts:
    """Running tally of upsert decisions."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + self.skipped + self.failed


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """A single progress notification emitted while a sync runs."""

    source: str
    phase: str  # "platforms" | "fetch" | "store" | "done" | "error"
    current: int = 0
    total: int = 0
    message: str = ""


@dataclass(slots=True)
class SyncStatus:
    """Process-lifetime status of one source. Never persisted."""

    source: str
    state: SyncState = SyncState.IDLE
    error: str | None = None
    message: str = ""
    fetched: int = 0
    total: int = 0
    counts: UpsertCounts = field(default_factory=UpsertCounts)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (SyncState.COMPLETE, SyncState.ERROR)


@dataclass(frozen=True, slots=True)
class PackageFilter:
    """Read-side query over the catalog."""

    platform_id: PlatformId | None = None
    package_type: PackageType | None = None
    repository: Repository | None = None
    search: str | None = None
    limit: int = 50
    offset: int = 0
    sort_by: str = "name"
    sort_order: str = "asc"


@dataclass(frozen=True, slots=True)
class PackagePage:
    packages: list[StoredPackage]
    total: int
