"""Both store implementations honour the same contract."""

import asyncio

import pytest

from package_catalog.domain.entities import (
    PackageFilter,
    PackageType,
    PlatformId,
    RawPackageRecord,
    Repository,
)
from package_catalog.domain.exceptions import PackageCatalogError, SchemaConstraintViolation
from package_catalog.infrastructure.memory_store import InMemoryPackageStore, search_rank
from package_catalog.infrastructure.sql_store import SqlPackageStore
from package_catalog.services.platform_registry import PlatformRegistry


def run_async(coro):
    return asyncio.run(coro)


def record(name, version="1.0", platform_id=PlatformId.DEBIAN, **kwargs):
    return RawPackageRecord(name=name, version=version, platform_id=platform_id, **kwargs)


@pytest.fixture(params=["memory", "sqlite"])
def store_scenario(request, tmp_path):
    """Run ``scenario(store)`` against a fresh store with platforms in place."""

    def runner(scenario, ensure_platforms=True):
        async def wrapped():
            if request.param == "memory":
                store = InMemoryPackageStore()
            else:
                store = SqlPackageStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
                await store.init_schema()
            try:
                if ensure_platforms:
                    await PlatformRegistry(store).ensure_platforms()
                return await scenario(store)
            finally:
                if isinstance(store, SqlPackageStore):
                    await store.close()

        return run_async(wrapped())

    return runner


def test_insert_find_update(store_scenario):
    async def scenario(store):
        inserted = await store.insert_package(
            record("wget", "1.24", PlatformId.MACOS, package_type=PackageType.CLI, license="GPL")
        )
        await store.update_package(inserted.id, {"version": "1.25", "description": "retriever"})
        found = await store.find_package("wget", PlatformId.MACOS)
        missing = await store.find_package("wget", PlatformId.DEBIAN)
        return inserted, found, missing

    inserted, found, missing = store_scenario(scenario)

    assert found.id == inserted.id
    assert found.version == "1.25"
    assert found.description == "retriever"
    assert found.package_type == PackageType.CLI
    assert found.license == "GPL"
    assert found.is_active
    assert missing is None


def test_duplicate_natural_key_is_rejected(store_scenario):
    async def scenario(store):
        await store.insert_package(record("vim"))
        await store.insert_package(record("vim"))

    with pytest.raises(PackageCatalogError):
        store_scenario(scenario)


def test_missing_platform_is_a_schema_violation(store_scenario):
    async def scenario(store):
        await store.insert_package(record("vim"))

    with pytest.raises(SchemaConstraintViolation):
        store_scenario(scenario, ensure_platforms=False)


def test_unknown_update_field_is_rejected(store_scenario):
    async def scenario(store):
        inserted = await store.insert_package(record("vim"))
        await store.update_package(inserted.id, {"name": "nvim"})

    with pytest.raises(ValueError):
        store_scenario(scenario)


def test_enum_domains_are_reported(store_scenario):
    async def scenario(store):
        return (
            await store.supports_enum_value("repository", "aur"),
            await store.supports_enum_value("repository", "ppa"),
            await store.supports_enum_value("package_type", "gui"),
        )

    assert store_scenario(scenario) == (True, False, True)


def test_search_ranks_exact_prefix_contains_description(store_scenario):
    async def scenario(store):
        for rec in (
            record("neovim", popularity_score=50),
            record("editor-x", description="a vim-like editor"),
            record("vim-gtk", popularity_score=1),
            record("vim", popularity_score=5),
            record("emacs", description="extensible editor"),
        ):
            await store.insert_package(rec)
        return await store.list_packages(PackageFilter(search="vim"))

    page = store_scenario(scenario)

    assert [p.name for p in page.packages] == ["vim", "vim-gtk", "neovim", "editor-x"]
    assert page.total == 4


def test_search_matches_hyphen_normalized_names(store_scenario):
    async def scenario(store):
        await store.insert_package(record("google-chrome"))
        await store.insert_package(record("chromium"))
        return await store.list_packages(PackageFilter(search="google chrome"))

    assert [p.name for p in store_scenario(scenario).packages] == ["google-chrome"]


def test_search_wildcards_match_literally(store_scenario):
    async def scenario(store):
        await store.insert_package(record("lib_foo"))
        await store.insert_package(record("libxfoo"))
        await store.insert_package(record("pv", description="shows 100% done"))
        await store.insert_package(record("curl", description="transfer tool"))
        underscore = await store.list_packages(PackageFilter(search="lib_"))
        percent = await store.list_packages(PackageFilter(search="%"))
        return underscore, percent

    underscore, percent = store_scenario(scenario)

    assert [p.name for p in underscore.packages] == ["lib_foo"]
    assert [p.name for p in percent.packages] == ["pv"]


def test_filters_and_untyped_rows_served_as_cli(store_scenario):
    async def scenario(store):
        await store.insert_package(record("gimp", package_type=PackageType.GUI))
        await store.insert_package(record("curl", package_type=PackageType.CLI))
        await store.insert_package(record("tool"))
        await store.insert_package(record("foo", repository=Repository.THIRD_PARTY))
        await store.insert_package(record("htop", platform_id=PlatformId.FEDORA))
        cli = await store.list_packages(
            PackageFilter(platform_id=PlatformId.DEBIAN, package_type=PackageType.CLI)
        )
        gui = await store.list_packages(PackageFilter(package_type=PackageType.GUI))
        third = await store.list_packages(PackageFilter(repository=Repository.THIRD_PARTY))
        return cli, gui, third

    cli, gui, third = store_scenario(scenario)

    assert [p.name for p in cli.packages] == ["curl", "foo", "tool"]
    assert [p.name for p in gui.packages] == ["gimp"]
    assert [p.name for p in third.packages] == ["foo"]


def test_inactive_rows_hidden_and_pagination(store_scenario):
    async def scenario(store):
        for name in ("a", "b", "c", "d"):
            await store.insert_package(record(name))
        hidden = await store.find_package("d", PlatformId.DEBIAN)
        await store.update_package(hidden.id, {"is_active": False})
        page = await store.list_packages(PackageFilter(limit=2, offset=1))
        desc = await store.list_packages(PackageFilter(sort_order="desc", limit=1000))
        return page, desc

    page, desc = store_scenario(scenario)

    assert [p.name for p in page.packages] == ["b", "c"]
    assert page.total == 3
    assert [p.name for p in desc.packages] == ["c", "b", "a"]


def test_sort_by_popularity(store_scenario):
    async def scenario(store):
        await store.insert_package(record("low", popularity_score=1))
        await store.insert_package(record("high", popularity_score=90))
        return await store.list_packages(
            PackageFilter(sort_by="popularity_score", sort_order="desc")
        )

    assert [p.name for p in store_scenario(scenario).packages] == ["high", "low"]


def test_restricted_repository_domain():
    async def scenario():
        store = InMemoryPackageStore(allowed_repositories=[Repository.OFFICIAL])
        await PlatformRegistry(store).ensure_platforms()
        assert not await store.supports_enum_value("repository", "aur")
        await store.insert_package(record("yay", platform_id=PlatformId.ARCH, repository=Repository.AUR))

    with pytest.raises(SchemaConstraintViolation):
        run_async(scenario())


def test_search_rank_levels():
    async def scenario():
        store = InMemoryPackageStore()
        await PlatformRegistry(store).ensure_platforms()
        return await store.insert_package(record("vim-gtk", description="vim with gtk"))

    package = run_async(scenario())

    assert search_rank(package, "VIM-GTK") == 0
    assert search_rank(package, "vim") == 1
    assert search_rank(package, "gtk") == 2
    assert search_rank(package, "with") == 3
    assert search_rank(package, "emacs") is None
