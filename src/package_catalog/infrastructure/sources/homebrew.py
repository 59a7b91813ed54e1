"""Homebrew source: the formulae.brew.sh JSON API.

Two complete arrays, no pagination: formulae (command-line tools) and casks
(GUI applications).
"""

from __future__ import annotations

import logging
from typing import Any

from package_catalog.domain.entities import (
    PackageType,
    PlatformId,
    RawPackageRecord,
    Repository,
)
from package_catalog.domain.exceptions import (
    MalformedRecordError,
    SourceUnavailableError,
    TransientFetchError,
)
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.ports.source_parser import ProgressCallback

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description available"
UNKNOWN_LICENSE = "Unknown"
_PROGRESS_EVERY = 500


def parse_formula(item: dict[str, Any]) -> RawPackageRecord:
    name = item.get("name")
    if not isinstance(name, str) or not name:
        raise MalformedRecordError("Homebrew formula without a name")
    versions = item.get("versions") or {}
    return RawPackageRecord(
        name=name,
        version=versions.get("stable") or "unknown",
        platform_id=PlatformId.MACOS,
        repository=Repository.OFFICIAL,
        description=item.get("desc") or NO_DESCRIPTION,
        package_type=PackageType.CLI,
        homepage=item.get("homepage") or None,
        license=item.get("license") or UNKNOWN_LICENSE,
    )


def parse_cask(item: dict[str, Any]) -> RawPackageRecord:
    token = item.get("token")
    if not isinstance(token, str) or not token:
        raise MalformedRecordError("Homebrew cask without a token")
    display_names = item.get("name") or []
    description = item.get("desc") or (display_names[0] if display_names else None)
    return RawPackageRecord(
        name=token,
        version=item.get("version") or "unknown",
        platform_id=PlatformId.MACOS,
        repository=Repository.OFFICIAL,
        description=description or NO_DESCRIPTION,
        package_type=PackageType.GUI,
        homepage=item.get("homepage") or None,
        # Casks carry no license metadata.
        license=UNKNOWN_LICENSE,
    )


class HomebrewSource:
    name = "homebrew"
    platform_id = PlatformId.MACOS
    required_repositories = (Repository.OFFICIAL,)
    tracks_liveness = False

    def __init__(
        self,
        http: HttpFetcher,
        formula_url: str = "https://formulae.brew.sh/api/formula.json",
        cask_url: str = "https://formulae.brew.sh/api/cask.json",
    ) -> None:
        self._http = http
        self._formula_url = formula_url
        self._cask_url = cask_url

    async def _get_array(self, url: str) -> list[Any]:
        try:
            resp = await self._http.get(url, headers={"Accept": "application/json"})
        except TransientFetchError as exc:
            raise SourceUnavailableError(f"Homebrew API unreachable: {exc}") from exc
        if not resp.ok:
            raise SourceUnavailableError(f"Homebrew API returned HTTP {resp.status} for {url}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise SourceUnavailableError(f"Homebrew API returned invalid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise SourceUnavailableError(f"Homebrew API returned {type(data).__name__}, not a list")
        return data

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        logger.info("Fetching Homebrew formulae from %s", self._formula_url)
        formulae = await self._get_array(self._formula_url)
        logger.info("Fetching Homebrew casks from %s", self._cask_url)
        casks = await self._get_array(self._cask_url)

        expected = len(formulae) + len(casks)
        records: list[RawPackageRecord] = []
        skipped = 0
        for parser, items in ((parse_formula, formulae), (parse_cask, casks)):
            for item in items:
                try:
                    records.append(parser(item))
                except (MalformedRecordError, AttributeError):
                    skipped += 1
                    continue
                if on_progress and len(records) % _PROGRESS_EVERY == 0:
                    on_progress(len(records), expected, records[-1].name)

        if on_progress:
            on_progress(len(records), len(records), records[-1].name if records else "")
        logger.info(
            "Homebrew fetch completed: %d packages (%d formulae + %d casks, %d skipped)",
            len(records),
            len(formulae),
            len(casks),
            skipped,
        )
        return records
