"""Fedora source: two-level crawl of the static package index.

``index-static.html`` links one shard page per name prefix; every shard
lists package names only, so version and description are placeholders.
"""

from __future__ import annotations

import html
import logging
import re

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.domain.exceptions import (
    SourceUnavailableError,
    TransientFetchError,
)
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.ports.source_parser import ProgressCallback
from package_catalog.infrastructure.rate_governor import FixedIntervalGovernor

logger = logging.getLogger(__name__)

# <a href="./index/0a.html">0a</a>
_PREFIX_RE = re.compile(r'<a href="\./index/([^"]+)\.html">', re.IGNORECASE)
# <li><a href="../pkgs/ffmpeg/ffmpeg-free/index.html">ffmpeg-free</a></li>
_PACKAGE_RE = re.compile(r'<li><a href="\.\./pkgs/[^"]+">([^<]+)</a></li>', re.IGNORECASE)


def extract_prefixes(page: str) -> list[str]:
    prefixes: list[str] = []
    for match in _PREFIX_RE.finditer(page):
        if match[1] not in prefixes:
            prefixes.append(match[1])
    return prefixes


def extract_packages(page: str) -> list[RawPackageRecord]:
    records: list[RawPackageRecord] = []
    for match in _PACKAGE_RE.finditer(page):
        name = html.unescape(match[1].strip())
        if not name:
            continue
        records.append(
            RawPackageRecord(
                name=name,
                version="latest",
                platform_id=PlatformId.FEDORA,
                repository=Repository.OFFICIAL,
                description=f"Fedora package: {name}",
            )
        )
    return records


class FedoraSource:
    name = "fedora"
    platform_id = PlatformId.FEDORA
    required_repositories = (Repository.OFFICIAL,)
    tracks_liveness = False

    def __init__(
        self,
        http: HttpFetcher,
        base_url: str = "https://packages.fedoraproject.org",
        governor: FixedIntervalGovernor | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._governor = governor or FixedIntervalGovernor(0.1)

    async def _get_text(self, url: str) -> str:
        await self._governor.wait(url)
        resp = await self._http.get(url)
        if not resp.ok:
            raise TransientFetchError(f"HTTP {resp.status} for {url}")
        return resp.text()

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        logger.info("Starting Fedora package fetch")
        try:
            index = await self._get_text(f"{self._base_url}/index-static.html")
        except TransientFetchError as exc:
            raise SourceUnavailableError(f"Fedora index unreachable: {exc}") from exc

        prefixes = extract_prefixes(index)
        logger.info("Found %d Fedora index prefixes", len(prefixes))

        records: list[RawPackageRecord] = []
        for position, prefix in enumerate(prefixes, start=1):
            url = f"{self._base_url}/index/{prefix}.html"
            try:
                shard = await self._get_text(url)
            except TransientFetchError as exc:
                logger.warning("Skipping Fedora prefix %s: %s", prefix, exc)
                continue

            packages = extract_packages(shard)
            records.extend(packages)
            logger.debug(
                "Fedora prefix %s (%d/%d): %d packages",
                prefix,
                position,
                len(prefixes),
                len(packages),
            )
            if on_progress and packages:
                on_progress(len(records), len(records), packages[0].name)

        logger.info("Fedora fetch completed: %d packages", len(records))
        return records
