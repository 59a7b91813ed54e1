import asyncio
from datetime import datetime, timezone

import pytest

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.domain.exceptions import SchemaConstraintViolation
from package_catalog.infrastructure.memory_store import InMemoryPackageStore
from package_catalog.services.catalog_upserter import CatalogUpserter
from package_catalog.services.platform_registry import PlatformRegistry


def run_async(coro):
    return asyncio.run(coro)


def record(name, version="1.0", platform_id=PlatformId.DEBIAN, **kwargs):
    return RawPackageRecord(name=name, version=version, platform_id=platform_id, **kwargs)


async def ready_store(**kwargs):
    store = InMemoryPackageStore(**kwargs)
    await PlatformRegistry(store).ensure_platforms()
    return store


class FlakyStore(InMemoryPackageStore):
    async def insert_package(self, record):
        if record.name == "boom":
            raise RuntimeError("disk on fire")
        return await super().insert_package(record)


def test_second_run_with_same_input_only_skips():
    async def scenario():
        store = await ready_store()
        upserter = CatalogUpserter(store)
        records = [record("vim"), record("bash")]
        first = await upserter.upsert(PlatformId.DEBIAN, records)
        ids = {r.name: (await store.find_package(r.name, PlatformId.DEBIAN)).id for r in records}
        second = await upserter.upsert(PlatformId.DEBIAN, records)
        ids_after = {
            r.name: (await store.find_package(r.name, PlatformId.DEBIAN)).id for r in records
        }
        return first, second, ids, ids_after, len(store)

    first, second, ids, ids_after, size = run_async(scenario())

    assert (first.inserted, first.updated, first.skipped) == (2, 0, 0)
    assert (second.inserted, second.updated, second.skipped) == (0, 0, 2)
    assert ids == ids_after
    assert size == 2


def test_version_change_updates_in_place():
    async def scenario():
        store = await ready_store()
        upserter = CatalogUpserter(store)
        await upserter.upsert(PlatformId.DEBIAN, [record("vim", "9.0", description="old")])
        before = await store.find_package("vim", PlatformId.DEBIAN)
        counts = await upserter.upsert(
            PlatformId.DEBIAN, [record("vim", "9.1", description="new")]
        )
        after = await store.find_package("vim", PlatformId.DEBIAN)
        return before, after, counts

    before, after, counts = run_async(scenario())

    assert counts.updated == 1
    assert after.id == before.id
    assert after.version == "9.1"
    assert after.description == "new"


def test_liveness_touch_only_when_tracked():
    old = datetime(2020, 1, 1, tzinfo=timezone.utc)

    async def scenario(track):
        store = await ready_store()
        upserter = CatalogUpserter(store)
        await upserter.upsert(PlatformId.DEBIAN, [record("vim")])
        existing = await store.find_package("vim", PlatformId.DEBIAN)
        await store.update_package(existing.id, {"last_seen_at": old})
        counts = await upserter.upsert(PlatformId.DEBIAN, [record("vim")], track_liveness=track)
        return counts, await store.find_package("vim", PlatformId.DEBIAN)

    counts, tracked = run_async(scenario(True))
    assert counts.skipped == 1
    assert tracked.last_seen_at > old

    _, untracked = run_async(scenario(False))
    assert untracked.last_seen_at == old


def test_record_platform_is_forced_to_target():
    async def scenario():
        store = await ready_store()
        await CatalogUpserter(store).upsert(PlatformId.UBUNTU, [record("vim")])
        return (
            await store.find_package("vim", PlatformId.UBUNTU),
            await store.find_package("vim", PlatformId.DEBIAN),
        )

    on_ubuntu, on_debian = run_async(scenario())

    assert on_ubuntu is not None
    assert on_debian is None


def test_preflight_rejects_unsupported_repository():
    async def scenario():
        store = await ready_store(
            allowed_repositories=[Repository.OFFICIAL, Repository.THIRD_PARTY]
        )
        await CatalogUpserter(store).preflight([Repository.AUR])

    with pytest.raises(SchemaConstraintViolation):
        run_async(scenario())


def test_schema_violation_during_write_aborts():
    async def scenario():
        store = await ready_store(allowed_repositories=[Repository.OFFICIAL])
        await CatalogUpserter(store).upsert(
            PlatformId.ARCH, [record("yay", repository=Repository.AUR)]
        )

    with pytest.raises(SchemaConstraintViolation):
        run_async(scenario())


def test_unexpected_failure_is_counted_and_run_continues():
    async def scenario():
        store = FlakyStore()
        await PlatformRegistry(store).ensure_platforms()
        counts = await CatalogUpserter(store).upsert(
            PlatformId.DEBIAN, [record("a"), record("boom"), record("b")]
        )
        return counts, len(store)

    counts, size = run_async(scenario())

    assert (counts.inserted, counts.failed) == (2, 1)
    assert size == 2


def test_progress_every_n_records_and_at_end():
    calls = []

    async def scenario():
        store = await ready_store()
        upserter = CatalogUpserter(store, batch_size=2, progress_every=2)
        await upserter.upsert(
            PlatformId.DEBIAN,
            [record(f"pkg{i}") for i in range(5)],
            lambda processed, total, counts: calls.append((processed, total)),
        )

    run_async(scenario())

    assert calls == [(2, 5), (4, 5), (5, 5)]
