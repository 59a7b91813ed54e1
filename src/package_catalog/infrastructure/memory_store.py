"""Dict-backed package store: implements the PackageStore port in memory.

Selected with ``DATABASE_URL=memory://``.  Enforces the same invariants as
the SQL schema: unique ``(name, platform_id)``, platform foreign key and the
enum domains reported by :meth:`supports_enum_value`.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from package_catalog.domain.entities import (
    PackageFilter,
    PackagePage,
    PackageType,
    Platform,
    PlatformId,
    RawPackageRecord,
    Repository,
    StoredPackage,
)
from package_catalog.domain.exceptions import PackageCatalogError, SchemaConstraintViolation

MUTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "description",
        "version",
        "repository",
        "popularity_score",
        "package_type",
        "homepage_url",
        "license",
        "is_active",
        "last_seen_at",
    }
)
SORTABLE_FIELDS: tuple[str, ...] = ("name", "popularity_score", "updated_at")
MAX_PAGE_SIZE = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def search_rank(package: StoredPackage, term: str) -> int | None:
    """Rank a search hit: exact, prefix, name-contains, description-only.

    Returns ``None`` when *package* does not match at all.
    """
    term = term.lower()
    name = package.name.lower()
    if name == term:
        return 0
    if name.startswith(term):
        return 1
    if term in name or term in name.replace("-", " ") or term in name.replace("-", ""):
        return 2
    if term in (package.description or "").lower():
        return 3
    return None


class InMemoryPackageStore:
    """Process-local store, mainly for tests and throwaway runs."""

    def __init__(self, allowed_repositories: Iterable[Repository] | None = None) -> None:
        self._packages: dict[str, StoredPackage] = {}
        self._by_key: dict[tuple[str, PlatformId], str] = {}
        self.platforms: dict[PlatformId, Platform] = {}
        repositories = allowed_repositories if allowed_repositories is not None else Repository
        self._enum_domains: dict[str, frozenset[str]] = {
            "repository": frozenset(r.value for r in repositories),
            "package_type": frozenset(t.value for t in PackageType),
            "platform_id": frozenset(p.value for p in PlatformId),
        }

    def __len__(self) -> int:
        return len(self._packages)

    # ── Port: writes ────────────────────────────────────────────────────

    async def find_package(
        self, name: str, platform_id: PlatformId
    ) -> StoredPackage | None:
        package_id = self._by_key.get((name, PlatformId(platform_id)))
        if package_id is None:
            return None
        return replace(self._packages[package_id])

    async def insert_package(self, record: RawPackageRecord) -> StoredPackage:
        self._check_enum("repository", record.repository.value)
        if record.platform_id not in self.platforms:
            raise SchemaConstraintViolation(
                f"Platform {record.platform_id.value!r} does not exist; ensure platforms first."
            )
        key = (record.name, record.platform_id)
        if key in self._by_key:
            raise PackageCatalogError(
                f"Package {record.name!r} already exists on {record.platform_id.value}"
            )

        now = _utcnow()
        package = StoredPackage(
            id=str(uuid.uuid4()),
            name=record.name,
            version=record.version,
            platform_id=record.platform_id,
            repository=record.repository,
            description=record.description,
            popularity_score=record.popularity_score,
            package_type=record.package_type,
            homepage_url=record.homepage,
            license=record.license,
            is_active=True,
            created_at=now,
            updated_at=now,
            last_seen_at=now,
        )
        self._packages[package.id] = package
        self._by_key[key] = package.id
        return replace(package)

    async def update_package(self, package_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "repository" in fields:
            self._check_enum("repository", Repository(fields["repository"]).value)

        package = self._packages[package_id]
        for key, value in fields.items():
            setattr(package, key, value)
        package.updated_at = _utcnow()

    async def touch_package(self, package_id: str) -> None:
        package = self._packages[package_id]
        package.last_seen_at = _utcnow()
        package.is_active = True

    async def ensure_platform(
        self,
        platform_id: PlatformId,
        name: str,
        package_manager: str,
        icon: str | None = None,
    ) -> None:
        pid = PlatformId(platform_id)
        self.platforms[pid] = Platform(id=pid, name=name, package_manager=package_manager, icon=icon)

    async def supports_enum_value(self, field: str, value: str) -> bool:
        return value in self._enum_domains.get(field, frozenset())

    def _check_enum(self, field: str, value: str) -> None:
        if value not in self._enum_domains[field]:
            raise SchemaConstraintViolation(
                f"Value {value!r} is not permitted for packages.{field}"
            )

    # ── Port: reads ─────────────────────────────────────────────────────

    async def list_packages(self, query: PackageFilter) -> PackagePage:
        rows = [p for p in self._packages.values() if p.is_active]
        if query.platform_id:
            rows = [p for p in rows if p.platform_id == query.platform_id]
        if query.package_type:
            # Untyped rows are served as CLI packages.
            rows = [
                p for p in rows if (p.package_type or PackageType.CLI) == query.package_type
            ]
        if query.repository:
            rows = [p for p in rows if p.repository == query.repository]

        if query.search:
            ranked = [(search_rank(p, query.search), p) for p in rows]
            hits = [(rank, p) for rank, p in ranked if rank is not None]
            hits.sort(key=lambda item: (item[0], -item[1].popularity_score, item[1].name))
            rows = [p for _, p in hits]
        else:
            sort_by = query.sort_by if query.sort_by in SORTABLE_FIELDS else "name"
            epoch = datetime.min.replace(tzinfo=timezone.utc)
            rows.sort(
                key=lambda p: getattr(p, sort_by) or (epoch if sort_by == "updated_at" else 0),
                reverse=query.sort_order == "desc",
            )

        total = len(rows)
        limit = max(1, min(query.limit, MAX_PAGE_SIZE))
        offset = max(0, query.offset)
        return PackagePage(
            packages=[replace(p) for p in rows[offset : offset + limit]],
            total=total,
        )
