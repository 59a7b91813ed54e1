"""Winget source: crawl of the ``microsoft/winget-pkgs`` manifest tree.

There is no package-list API, so the GitHub contents API is walked three
levels deep (``manifests/<letter>/<publisher>/<package>``) and each package
directory becomes the identifier ``Publisher.Package``.  This is the only
source paced by response quota headers; unauthenticated GitHub access allows
60 requests per hour.
"""

from __future__ import annotations

import logging
import string
from typing import Any

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.domain.exceptions import (
    SourceUnavailableError,
    TransientFetchError,
)
from package_catalog.domain.ports.source_parser import ProgressCallback
from package_catalog.infrastructure.rate_governor import QuotaHeaderGovernor

logger = logging.getLogger(__name__)

MANIFEST_FOLDERS = string.digits + string.ascii_lowercase
# Rough publishers-per-folder guess used only for the progress total.
_ESTIMATED_PER_FOLDER = 300


def _directories(listing: Any) -> list[dict[str, Any]]:
    if not isinstance(listing, list):
        return []
    return [
        entry
        for entry in listing
        if isinstance(entry, dict) and entry.get("type") == "dir" and entry.get("name")
    ]


class WingetSource:
    name = "winget"
    platform_id = PlatformId.WINDOWS
    required_repositories = (Repository.OFFICIAL,)
    tracks_liveness = False

    def __init__(
        self,
        governor: QuotaHeaderGovernor,
        contents_url: str = (
            "https://api.github.com/repos/microsoft/winget-pkgs/contents/manifests"
        ),
        folders: str = MANIFEST_FOLDERS,
    ) -> None:
        self._governor = governor
        self._contents_url = contents_url.rstrip("/")
        self._folders = folders

    async def _list_dir(self, url: str) -> Any:
        resp = await self._governor.fetch(url)
        if not resp.ok:
            raise TransientFetchError(f"GitHub request failed: HTTP {resp.status} for {url}")
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientFetchError(f"GitHub returned invalid JSON for {url}") from exc

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        governor = self._governor
        logger.info(
            "Fetching Winget packages from GitHub (%d req/hour, pacing to %d)",
            governor.hourly_limit,
            governor.safe_limit,
        )

        records: list[RawPackageRecord] = []
        seen: set[str] = set()
        failed_folders = 0

        for position, letter in enumerate(self._folders, start=1):
            logger.info("Processing folder %s (%d/%d)", letter, position, len(self._folders))
            try:
                publishers = _directories(await self._list_dir(f"{self._contents_url}/{letter}"))
            except TransientFetchError as exc:
                failed_folders += 1
                logger.warning("Skipping folder %s: %s", letter, exc)
                continue
            logger.debug("Folder %s: %d publishers", letter, len(publishers))

            for publisher in publishers:
                publisher_name = publisher["name"]
                publisher_url = publisher.get("url") or (
                    f"{self._contents_url}/{letter}/{publisher_name}"
                )
                try:
                    packages = _directories(await self._list_dir(publisher_url))
                except TransientFetchError as exc:
                    logger.debug("Skipping publisher %s: %s", publisher_name, exc)
                    continue

                for package in packages:
                    identifier = f"{publisher_name}.{package['name']}"
                    if identifier in seen:
                        continue
                    seen.add(identifier)
                    records.append(
                        RawPackageRecord(
                            name=identifier,
                            version="latest",
                            platform_id=PlatformId.WINDOWS,
                            repository=Repository.OFFICIAL,
                            description=f"{package['name']} by {publisher_name}",
                        )
                    )

                await governor.adaptive_delay()

            if on_progress:
                on_progress(
                    len(records),
                    len(self._folders) * _ESTIMATED_PER_FOLDER,
                    records[-1].name if records else "N/A",
                )
            logger.info(
                "Requests so far: %d (%.1f/min)",
                governor.request_count,
                governor.requests_per_minute(),
            )
            await governor.adaptive_delay()

        if failed_folders == len(self._folders):
            raise SourceUnavailableError("Every winget manifest folder failed to load")

        logger.info("Winget fetch completed: %d packages", len(records))
        return records
