import asyncio

import pytest

from package_catalog import main as cli
from package_catalog.domain.entities import (
    PlatformId,
    RawPackageRecord,
    SyncState,
    SyncStatus,
    UpsertCounts,
)
from package_catalog.infrastructure.config import Settings
from package_catalog.interface import dependencies


@pytest.fixture
def fake_run(monkeypatch):
    calls = []

    def install(status):
        async def run_sync(settings, source):
            calls.append(source)
            return status

        monkeypatch.setattr(cli, "run_sync", run_sync)
        return calls

    return install


def test_successful_sync_exits_zero(fake_run, capsys):
    calls = fake_run(
        SyncStatus(
            source="homebrew",
            state=SyncState.COMPLETE,
            counts=UpsertCounts(inserted=3, updated=1, skipped=2),
        )
    )

    assert cli.sync_main(["homebrew"]) == 0
    assert calls == ["homebrew"]
    assert "3 new, 1 updated, 2 unchanged, 0 failed" in capsys.readouterr().out


def test_failed_sync_exits_non_zero(fake_run, capsys):
    fake_run(SyncStatus(source="arch", state=SyncState.ERROR, error="index unreachable"))

    assert cli.sync_main(["arch"]) == 1
    assert "index unreachable" in capsys.readouterr().err


def test_unknown_source_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        cli.sync_main(["gentoo"])

    assert excinfo.value.code == 2


def test_run_sync_against_memory_store(monkeypatch, fake_source_cls):
    """run_sync wires a real registry; swap the sources for a fake one."""
    source = fake_source_cls(
        [RawPackageRecord(name="vim", version="9.0", platform_id=PlatformId.DEBIAN)],
        name="debian",
    )
    monkeypatch.setattr(dependencies, "build_sources", lambda settings, http: [source])

    status = asyncio.run(cli.run_sync(Settings(_env_file=None, database_url="memory://"), "debian"))

    assert status.state == SyncState.COMPLETE
    assert status.counts.inserted == 1
