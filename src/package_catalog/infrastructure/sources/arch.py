"""Arch Linux source: the paginated package table on archlinux.org.

Plain regex scraping: the listing is a narrow, known shape, and rows that do
not match are skipped silently rather than failing the page.
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

_STATS_RE = re.compile(r"([\d,]+)\s+matching packages[\s\S]*?Page \d+ of ([\d,]+)")
_ROW_RE = re.compile(
    r"<tr>\s*<td>([^<]+)</td>\s*<td>([^<]+)</td>\s*<td><a[^>]*>([^<]+)</a></td>"
    r"\s*<td>([^<]+)</td>\s*<td[^>]*>([^<]*)</td>\s*<td>([^<]*)</td>",
    re.IGNORECASE,
)

NO_DESCRIPTION = "No description available"


def parse_page_stats(page: str) -> tuple[int, int]:
    """Return ``(total_packages, total_pages)`` from the results banner.

    Falls back to ``(0, 1)`` when the banner is missing.
    """
    match = _STATS_RE.search(page)
    if not match:
        return 0, 1
    return int(match[1].replace(",", "")), int(match[2].replace(",", ""))


def parse_rows(page: str) -> list[RawPackageRecord]:
    """Extract package rows; the six cells are arch, repo, name, version,
    description and last-updated."""
    records: list[RawPackageRecord] = []
    for match in _ROW_RE.finditer(page):
        name = html.unescape(match[3].strip())
        version = html.unescape(match[4].strip())
        if not name or not version:
            continue
        description = html.unescape(match[5].strip())
        records.append(
            RawPackageRecord(
                name=name,
                version=version,
                platform_id=PlatformId.ARCH,
                repository=Repository.OFFICIAL,
                description=description or NO_DESCRIPTION,
            )
        )
    return records


class ArchSource:
    """Crawl every page of the official package search."""

    name = "arch"
    platform_id = PlatformId.ARCH
    required_repositories = (Repository.OFFICIAL,)
    tracks_liveness = False

    def __init__(
        self,
        http: HttpFetcher,
        base_url: str = "https://archlinux.org/packages",
        governor: FixedIntervalGovernor | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._governor = governor or FixedIntervalGovernor(0.1)

    def _page_url(self, page: int) -> str:
        return f"{self._base_url}/?page={page}"

    async def _fetch_page(self, page: int) -> str:
        url = self._page_url(page)
        await self._governor.wait(url)
        resp = await self._http.get(url)
        if not resp.ok:
            raise TransientFetchError(f"HTTP {resp.status} for {url}")
        return resp.text()

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        logger.info("Starting Arch Linux package fetch")
        try:
            first_page = await self._fetch_page(1)
        except TransientFetchError as exc:
            raise SourceUnavailableError(f"Arch package index unreachable: {exc}") from exc

        total_packages, total_pages = parse_page_stats(first_page)
        logger.info("Arch reports %d packages over %d pages", total_packages, total_pages)

        records = parse_rows(first_page)
        if on_progress:
            on_progress(len(records), total_packages, records[0].name if records else "N/A")

        for page in range(2, total_pages + 1):
            try:
                html_text = await self._fetch_page(page)
            except TransientFetchError as exc:
                logger.warning("Skipping Arch page %d/%d: %s", page, total_pages, exc)
                continue

            rows = parse_rows(html_text)
            records.extend(rows)
            if on_progress and rows:
                on_progress(len(records), total_packages, rows[0].name)

        logger.info("Arch fetch completed: %d packages", len(records))
        return records
