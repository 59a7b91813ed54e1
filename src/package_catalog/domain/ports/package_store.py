"""Port: package store, defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Any, Protocol

from package_catalog.domain.entities import (
    PackageFilter,
    PackagePage,
    PlatformId,
    RawPackageRecord,
    StoredPackage,
)


class PackageStore(Protocol):
    """Minimal storage contract consumed by the ingestion core."""

    async def find_package(
        self, name: str, platform_id: PlatformId
    ) -> StoredPackage | None:
        """Look up a row by its natural key ``(name, platform_id)``."""
        ...

    async def insert_package(self, record: RawPackageRecord) -> StoredPackage:
        """Insert a new active row with a fresh opaque id.

        Raises ``SchemaConstraintViolation`` when an enum value is not
        permitted by the schema.
        """
        ...

    async def update_package(self, package_id: str, fields: dict[str, Any]) -> None:
        """Apply *fields* to an existing row and refresh ``updated_at``."""
        ...

    async def touch_package(self, package_id: str) -> None:
        """Mark a row as seen (``last_seen_at``, ``is_active``) without other changes."""
        ...

    async def ensure_platform(
        self,
        platform_id: PlatformId,
        name: str,
        package_manager: str,
        icon: str | None = None,
    ) -> None:
        """Idempotent upsert-by-id of a platform row."""
        ...

    async def supports_enum_value(self, field: str, value: str) -> bool:
        """Return whether the schema permits *value* in the enum column *field*."""
        ...

    async def list_packages(self, query: PackageFilter) -> PackagePage:
        """Filtered, paginated read over active rows."""
        ...
