"""AUR source: RPC search enumeration with an HTML fallback.

The AUR RPC cannot list everything, only search, so the catalog is
approximated by one name search per character of ``a-z0-9`` and the results
are deduplicated by name.  When the RPC yields nothing at all (blocked
network, ``type: error`` responses) the web listing is scraped instead.

AUR rows are stored on the ``arch`` platform with the ``aur`` repository
tag, which the store must support before anything is written.
"""

from __future__ import annotations

import html
import logging
import re
import string
from typing import Any

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.domain.exceptions import (
    MalformedRecordError,
    SourceUnavailableError,
    TransientFetchError,
)
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.ports.source_parser import ProgressCallback
from package_catalog.infrastructure.rate_governor import FixedIntervalGovernor

logger = logging.getLogger(__name__)

SEARCH_ALPHABET = string.ascii_lowercase + string.digits
HTML_PAGE_SIZE = 50

_TOTAL_RE = re.compile(r"([0-9][0-9,.]*)\s+packages\s+found\.", re.IGNORECASE)
_ROW_BLOCK_RE = re.compile(r"<tr[^>]*>([\s\S]*?)</tr>", re.IGNORECASE)
_NAME_RE = re.compile(r'<a\s+href="/packages/[^"]+"[^>]*>\s*([^<]+?)\s*</a>', re.IGNORECASE)
_CELL_RE = re.compile(r"<td[^>]*>\s*([^<]+?)\s*</td>", re.IGNORECASE)
_DESC_RE = re.compile(
    r'<td[^>]*class="[^"]*wrap[^"]*"[^>]*>\s*([\s\S]*?)\s*</td>', re.IGNORECASE
)
_TAG_RE = re.compile(r"<[^>]*>")


def _placeholder(name: str) -> str:
    return f"AUR package: {name}"


def _popularity(raw: Any) -> int:
    """Map the AUR decayed-vote popularity onto the catalog's 0–100 scale."""
    try:
        value = float(raw or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, round(value)))


def parse_rpc_result(item: dict[str, Any]) -> RawPackageRecord:
    name = item.get("Name")
    if not isinstance(name, str) or not name:
        raise MalformedRecordError(f"AUR RPC result without a name: {item!r:.80}")
    return RawPackageRecord(
        name=name,
        version=item.get("Version") or "latest",
        platform_id=PlatformId.ARCH,
        repository=Repository.AUR,
        description=item.get("Description") or _placeholder(name),
        popularity_score=_popularity(item.get("Popularity")),
    )


def extract_total(page: str) -> int | None:
    """Read ``"101,725 packages found."`` from the listing banner."""
    match = _TOTAL_RE.search(page)
    if not match:
        return None
    digits = re.sub(r"[,.]", "", match[1])
    return int(digits) if digits.isdigit() else None


def parse_html_rows(page: str) -> list[RawPackageRecord]:
    """Scrape listing rows.  The version is the first cell after the name link."""
    records: list[RawPackageRecord] = []
    for block in _ROW_BLOCK_RE.finditer(page):
        row = block[1]
        name_match = _NAME_RE.search(row)
        if not name_match:
            continue
        name = html.unescape(name_match[1].strip())
        if not name:
            continue

        version_match = _CELL_RE.search(row, name_match.end())
        version = html.unescape(version_match[1].strip()) if version_match else ""

        desc_match = _DESC_RE.search(row)
        description = ""
        if desc_match:
            description = html.unescape(_TAG_RE.sub("", desc_match[1])).strip()

        records.append(
            RawPackageRecord(
                name=name,
                version=version or "latest",
                platform_id=PlatformId.ARCH,
                repository=Repository.AUR,
                description=description or _placeholder(name),
            )
        )
    return records


class AurSource:
    """Enumerate the Arch User Repository."""

    name = "aur"
    platform_id = PlatformId.ARCH
    required_repositories = (Repository.AUR,)
    tracks_liveness = False

    def __init__(
        self,
        http: HttpFetcher,
        base_url: str = "https://aur.archlinux.org",
        rpc_governor: FixedIntervalGovernor | None = None,
        html_governor: FixedIntervalGovernor | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._rpc_governor = rpc_governor or FixedIntervalGovernor(0.12)
        self._html_governor = html_governor or FixedIntervalGovernor(0.1)

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        logger.info("Starting AUR package fetch via RPC")
        records = await self.fetch_via_rpc(on_progress)
        if records:
            logger.info("AUR RPC fetch completed: %d unique packages", len(records))
            return records

        logger.info("AUR RPC returned 0 results; falling back to HTML scraping")
        records = await self.fetch_via_html(on_progress)
        logger.info("AUR HTML fetch completed: %d rows", len(records))
        return records

    # ── RPC ─────────────────────────────────────────────────────────────

    async def fetch_via_rpc(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        url = f"{self._base_url}/rpc/"
        seen: set[str] = set()
        records: list[RawPackageRecord] = []
        total_approx = 0

        for char in SEARCH_ALPHABET:
            await self._rpc_governor.wait(url)
            try:
                resp = await self._http.get(
                    url, params={"v": "5", "type": "search", "by": "name", "arg": char}
                )
            except TransientFetchError as exc:
                logger.warning("AUR RPC error for %r: %s", char, exc)
                continue
            if not resp.ok:
                logger.warning("AUR RPC failed for %r: HTTP %d", char, resp.status)
                continue

            try:
                data = resp.json()
            except ValueError:
                logger.warning("AUR RPC returned non-JSON for %r", char)
                continue
            if not isinstance(data, dict):
                continue
            if data.get("type") == "error":
                logger.debug("AUR RPC error payload for %r: %s", char, data.get("error"))

            try:
                total_approx += int(data.get("resultcount") or 0)
            except (TypeError, ValueError):
                logger.warning(
                    "AUR RPC returned a bad resultcount for %r: %r", char, data.get("resultcount")
                )
            for item in data.get("results") or []:
                try:
                    record = parse_rpc_result(item)
                except (MalformedRecordError, AttributeError):
                    logger.debug("Skipping malformed AUR RPC result: %r", item)
                    continue
                if record.name in seen:
                    continue
                seen.add(record.name)
                records.append(record)

            if on_progress:
                sample = records[-1].name if records else char
                on_progress(len(records), total_approx or len(records), sample)

        return records

    # ── HTML fallback ───────────────────────────────────────────────────

    def _listing_url(self, offset: int) -> str:
        return f"{self._base_url}/packages?O={offset}&SeB=nd&SB=p"

    async def fetch_via_html(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        offset = 0
        first_url = self._listing_url(offset)
        await self._html_governor.wait(first_url)
        try:
            first = await self._http.get(first_url)
        except TransientFetchError as exc:
            raise SourceUnavailableError(f"AUR listing unreachable: {exc}") from exc
        if not first.ok:
            raise SourceUnavailableError(f"AUR listing returned HTTP {first.status}")

        first_page = first.text()
        total = extract_total(first_page) or 0
        records = parse_html_rows(first_page)
        if on_progress and records:
            on_progress(len(records), total or len(records), records[-1].name)

        while True:
            offset += HTML_PAGE_SIZE
            url = self._listing_url(offset)
            await self._html_governor.wait(url)
            try:
                resp = await self._http.get(url)
            except TransientFetchError as exc:
                logger.warning("AUR listing stopped at offset %d: %s", offset, exc)
                break
            if not resp.ok:
                logger.info("AUR listing stopped at offset %d: HTTP %d", offset, resp.status)
                break

            rows = parse_html_rows(resp.text())
            logger.debug("AUR HTML: parsed %d rows at offset %d", len(rows), offset)
            if not rows:
                break
            records.extend(rows)
            if on_progress:
                on_progress(len(records), total or len(records), rows[-1].name)

        return records
