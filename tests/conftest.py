"""Shared fixtures: mocked HTTP, a controllable clock and sync helpers."""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.infrastructure.http_client import HttpFetchClient


class FakeClock:
    """Clock + sleep pair; sleeping advances the clock instead of waiting."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSource:
    """In-memory source parser used to drive orchestrator and API tests."""

    tracks_liveness = False

    def __init__(
        self,
        records: list[RawPackageRecord],
        name: str = "fake",
        platform_id: PlatformId = PlatformId.DEBIAN,
        required_repositories: tuple[Repository, ...] = (Repository.OFFICIAL,),
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.platform_id = platform_id
        self.required_repositories = required_repositories
        self.records = records
        self.error = error
        self.gate = gate
        self.delay = delay
        self.calls = 0

    async def fetch_all(self, on_progress=None):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if on_progress:
            on_progress(len(self.records), len(self.records), self.records[-1].name)
        return list(self.records)


def make_fetcher(handler: Callable[[httpx.Request], httpx.Response]) -> HttpFetchClient:
    """Route every request of a real ``HttpFetchClient`` through *handler*."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpFetchClient(client, user_agent="package-catalog-tests/1.0")


@pytest.fixture
def fetcher_for():
    return make_fetcher


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_source_cls():
    return FakeSource
