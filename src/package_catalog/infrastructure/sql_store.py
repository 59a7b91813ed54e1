"""SQLAlchemy adapter: implements the PackageStore port on any async engine.

Two tables, ``platforms`` and ``packages``.  ``packages`` carries a unique
``(name, platform_id)`` index and CHECK constraints for its enum columns;
the permitted values are also what :meth:`SqlPackageStore.supports_enum_value`
reports, so callers can verify a precondition before starting a write batch.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    case,
    event,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from package_catalog.domain.entities import (
    PackageFilter,
    PackagePage,
    PackageType,
    PlatformId,
    RawPackageRecord,
    Repository,
    StoredPackage,
)
from package_catalog.domain.exceptions import PackageCatalogError, SchemaConstraintViolation

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SORTABLE_COLUMNS: tuple[str, ...] = ("name", "popularity_score", "updated_at")
LIKE_ESCAPE = "\\"
MUTABLE_COLUMNS: frozenset[str] = frozenset(
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


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _in_list(column: str, values: Iterable[str]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


REPOSITORY_VALUES: tuple[str, ...] = tuple(r.value for r in Repository)
PACKAGE_TYPE_VALUES: tuple[str, ...] = tuple(t.value for t in PackageType)


# ── Schema ──────────────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    pass


class PlatformRow(Base):
    __tablename__ = "platforms"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    package_manager: Mapped[str] = mapped_column(String(50), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)


class PackageRow(Base):
    __tablename__ = "packages"
    __table_args__ = (
        UniqueConstraint("name", "platform_id", name="uq_packages_name_platform"),
        CheckConstraint(
            _in_list("repository", REPOSITORY_VALUES), name="packages_repository_check"
        ),
        CheckConstraint(
            f"package_type IS NULL OR {_in_list('package_type', PACKAGE_TYPE_VALUES)}",
            name="packages_type_check",
        ),
        Index("ix_packages_platform", "platform_id"),
        Index("ix_packages_popularity", "popularity_score"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("platforms.id"), nullable=False
    )
    version: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    package_type: Mapped[str | None] = mapped_column(String(8), nullable=True)
    repository: Mapped[str] = mapped_column(String(16), nullable=False, default="official")
    popularity_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    homepage_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    license: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=_utcnow
    )


def _to_entity(row: PackageRow) -> StoredPackage:
    return StoredPackage(
        id=row.id,
        name=row.name,
        version=row.version,
        platform_id=PlatformId(row.platform_id),
        repository=Repository(row.repository),
        description=row.description,
        popularity_score=row.popularity_score,
        package_type=PackageType(row.package_type) if row.package_type else None,
        homepage_url=row.homepage_url,
        license=row.license,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_seen_at=row.last_seen_at,
    )


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


# ── Store ───────────────────────────────────────────────────────────────────


class SqlPackageStore:
    """Concrete ``PackageStore`` backed by an async SQLAlchemy engine."""

    def __init__(
        self,
        engine: AsyncEngine,
        repository_values: Iterable[str] = REPOSITORY_VALUES,
    ) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)
        self._enum_domains: dict[str, frozenset[str]] = {
            "repository": frozenset(repository_values),
            "package_type": frozenset(PACKAGE_TYPE_VALUES),
            "platform_id": frozenset(p.value for p in PlatformId),
        }

    @classmethod
    def from_url(cls, url: str) -> SqlPackageStore:
        engine = create_async_engine(url)
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return cls(engine)

    async def init_schema(self) -> None:
        """Create missing tables (no migrations)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    # ── Port: writes ────────────────────────────────────────────────────

    async def find_package(
        self, name: str, platform_id: PlatformId
    ) -> StoredPackage | None:
        stmt = select(PackageRow).where(
            PackageRow.name == name, PackageRow.platform_id == _plain(platform_id)
        )
        async with self._sessions() as session:
            row = await session.scalar(stmt)
        return _to_entity(row) if row else None

    async def insert_package(self, record: RawPackageRecord) -> StoredPackage:
        self._check_enum("repository", record.repository.value)
        row = PackageRow(
            id=_new_id(),
            name=record.name,
            platform_id=record.platform_id.value,
            version=record.version,
            description=record.description,
            package_type=_plain(record.package_type),
            repository=record.repository.value,
            popularity_score=record.popularity_score,
            homepage_url=record.homepage,
            license=record.license,
            is_active=True,
        )
        async with self._sessions() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                message = str(exc.orig)
                if "check" in message.lower() or "foreign key" in message.lower():
                    raise SchemaConstraintViolation(
                        f"Insert of {record.name!r} rejected by schema: {message}"
                    ) from exc
                raise PackageCatalogError(
                    f"Insert of {record.name!r} failed: {message}"
                ) from exc
        return _to_entity(row)

    async def update_package(self, package_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")
        values = {key: _plain(value) for key, value in fields.items()}
        if "repository" in values:
            self._check_enum("repository", values["repository"])
        values["updated_at"] = _utcnow()
        await self._execute(update(PackageRow).where(PackageRow.id == package_id).values(**values))

    async def touch_package(self, package_id: str) -> None:
        await self._execute(
            update(PackageRow)
            .where(PackageRow.id == package_id)
            .values(last_seen_at=_utcnow(), is_active=True)
        )

    async def ensure_platform(
        self,
        platform_id: PlatformId,
        name: str,
        package_manager: str,
        icon: str | None = None,
    ) -> None:
        async with self._sessions() as session:
            await session.merge(
                PlatformRow(
                    id=_plain(platform_id), name=name, package_manager=package_manager, icon=icon
                )
            )
            await session.commit()

    async def supports_enum_value(self, field: str, value: str) -> bool:
        return value in self._enum_domains.get(field, frozenset())

    def _check_enum(self, field: str, value: str) -> None:
        if value not in self._enum_domains[field]:
            raise SchemaConstraintViolation(
                f"Value {value!r} is not permitted for packages.{field}"
            )

    async def _execute(self, stmt: Any) -> None:
        async with self._sessions() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise PackageCatalogError(f"Storage write failed: {exc}") from exc

    # ── Port: reads ─────────────────────────────────────────────────────

    async def list_packages(self, query: PackageFilter) -> PackagePage:
        conditions: list[Any] = [PackageRow.is_active.is_(True)]
        if query.platform_id:
            conditions.append(PackageRow.platform_id == _plain(query.platform_id))
        if query.package_type == PackageType.CLI:
            # Untyped rows are served as CLI packages.
            conditions.append(
                or_(PackageRow.package_type == "cli", PackageRow.package_type.is_(None))
            )
        elif query.package_type:
            conditions.append(PackageRow.package_type == _plain(query.package_type))
        if query.repository:
            conditions.append(PackageRow.repository == _plain(query.repository))

        name_spaced = func.replace(PackageRow.name, "-", " ")
        name_stripped = func.replace(PackageRow.name, "-", "")
        term = _escape_like(query.search) if query.search else ""
        contains = f"%{term}%"
        if query.search:
            conditions.append(
                or_(
                    PackageRow.name.ilike(contains, escape=LIKE_ESCAPE),
                    PackageRow.description.ilike(contains, escape=LIKE_ESCAPE),
                    name_spaced.ilike(contains, escape=LIKE_ESCAPE),
                    name_stripped.ilike(contains, escape=LIKE_ESCAPE),
                )
            )

        stmt = select(PackageRow).where(*conditions)
        if query.search:
            rank = case(
                (PackageRow.name.ilike(term, escape=LIKE_ESCAPE), 0),
                (PackageRow.name.ilike(f"{term}%", escape=LIKE_ESCAPE), 1),
                (PackageRow.name.ilike(contains, escape=LIKE_ESCAPE), 2),
                (name_spaced.ilike(contains, escape=LIKE_ESCAPE), 2),
                (name_stripped.ilike(contains, escape=LIKE_ESCAPE), 2),
                else_=3,
            )
            stmt = stmt.order_by(
                rank.asc(), PackageRow.popularity_score.desc(), PackageRow.name.asc()
            )
        else:
            sort_by = query.sort_by if query.sort_by in SORTABLE_COLUMNS else "name"
            column = getattr(PackageRow, sort_by)
            stmt = stmt.order_by(column.desc() if query.sort_order == "desc" else column.asc())

        limit = max(1, min(query.limit, MAX_PAGE_SIZE))
        stmt = stmt.limit(limit).offset(max(0, query.offset))
        count_stmt = select(func.count()).select_from(PackageRow).where(*conditions)

        async with self._sessions() as session:
            total = await session.scalar(count_stmt) or 0
            rows = (await session.scalars(stmt)).all()
        return PackagePage(packages=[_to_entity(r) for r in rows], total=int(total))


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
