"""Debian / Ubuntu source: the ``allpackages`` flat-text dump.

The mirror advertises ``format=txt.gz`` but depending on the deployment the
body arrives gzip-compressed or already inflated, so the payload is sniffed
for the gzip magic before anything else.  Each data line looks like::

    name (version) [component] description

Ubuntu lines always carry the bracketed component.  Debian lines have none,
so anything after the version is description and every row is official.
"""

from __future__ import annotations

import gzip
import logging
import re
import zlib

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository
from package_catalog.domain.exceptions import (
    MalformedRecordError,
    PayloadDecodeError,
    SourceUnavailableError,
)
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.ports.source_parser import ProgressCallback
from package_catalog.services.package_classifier import classify

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

_DEBIAN_ENTRY_RE = re.compile(
    r"^(?P<name>[a-z0-9][a-z0-9+.-]*)\s+\((?P<version>[^)]+)\)\s*(?P<description>.+)?$"
)
_UBUNTU_ENTRY_RE = re.compile(
    r"^(?P<name>[a-z0-9][a-z0-9+.-]*)\s+\((?P<version>[^)]+)\)"
    r"\s+\[(?P<component>[^\]]+)\]\s*(?P<description>.+)?$"
)
_BANNER_PREFIXES: tuple[str, ...] = ("All", "Generated", "Copyright")
_OFFICIAL_COMPONENTS: frozenset[str] = frozenset(
    {"main", "restricted", "universe", "multiverse"}
)
_STREAM_CHUNK = 64 * 1024

NO_DESCRIPTION = "No description available"


# ── Payload decoding ────────────────────────────────────────────────────────


def is_gzip(payload: bytes) -> bool:
    return payload[:2] == GZIP_MAGIC


def _inflate_stream(payload: bytes) -> bytes:
    """Chunked inflate; tolerates a truncated trailer that ``gzip`` rejects."""
    inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)
    chunks: list[bytes] = []
    for start in range(0, len(payload), _STREAM_CHUNK):
        chunks.append(inflater.decompress(payload[start : start + _STREAM_CHUNK]))
    chunks.append(inflater.flush())
    return b"".join(chunks)


def decode_listing(payload: bytes) -> str:
    """Turn the raw download into text.

    Plain payloads are decoded directly.  Gzip payloads are inflated in one
    buffer first, then with a streaming inflater if that fails.
    """
    if not is_gzip(payload):
        return payload.decode("utf-8", errors="replace")

    try:
        return gzip.decompress(payload).decode("utf-8", errors="replace")
    except (OSError, EOFError, zlib.error) as buffer_exc:
        logger.debug("Buffered gunzip failed (%s); trying streaming inflate", buffer_exc)
        try:
            return _inflate_stream(payload).decode("utf-8", errors="replace")
        except zlib.error as stream_exc:
            raise PayloadDecodeError(
                "All decompression methods failed. "
                f"Buffer error: {buffer_exc}, stream error: {stream_exc}"
            ) from stream_exc


# ── Line parsing ────────────────────────────────────────────────────────────


def map_component(component: str | None) -> Repository:
    if component is None:
        return Repository.OFFICIAL
    if component.strip().lower() in _OFFICIAL_COMPONENTS:
        return Repository.OFFICIAL
    return Repository.THIRD_PARTY


def _entry_re(platform_id: PlatformId) -> re.Pattern[str]:
    return _UBUNTU_ENTRY_RE if platform_id == PlatformId.UBUNTU else _DEBIAN_ENTRY_RE


def parse_line(line: str, platform_id: PlatformId) -> RawPackageRecord:
    """Parse one data line; raise :class:`MalformedRecordError` on mismatch."""
    match = _entry_re(platform_id).match(line.strip())
    if not match:
        raise MalformedRecordError(f"Unrecognised listing line: {line[:80]!r}")

    name = match["name"]
    description = (match["description"] or "").strip() or None
    return RawPackageRecord(
        name=name,
        version=match["version"].strip(),
        platform_id=platform_id,
        repository=map_component(match.groupdict().get("component")),
        description=description or NO_DESCRIPTION,
        package_type=classify(name, description),
    )


def _is_banner(line: str) -> bool:
    return line.startswith(_BANNER_PREFIXES)


def parse_listing(
    text: str,
    platform_id: PlatformId,
    on_progress: ProgressCallback | None = None,
    progress_every: int = 1000,
) -> list[RawPackageRecord]:
    """Parse a whole ``allpackages`` dump.

    Everything before the first line that looks like an entry is header.
    Banner lines and malformed lines after that are dropped and counted.
    """
    entry_re = _entry_re(platform_id)
    lines = text.splitlines()
    start = next(
        (i for i, line in enumerate(lines) if entry_re.match(line.strip())),
        len(lines),
    )

    records: list[RawPackageRecord] = []
    malformed = 0
    total = len(lines) - start
    for line in lines[start:]:
        stripped = line.strip()
        if not stripped or _is_banner(stripped):
            continue
        try:
            records.append(parse_line(stripped, platform_id))
        except MalformedRecordError:
            malformed += 1
            logger.debug("Skipping malformed %s line: %r", platform_id.value, stripped[:80])
            continue

        if on_progress and len(records) % progress_every == 0:
            on_progress(len(records), total, records[-1].name)

    if malformed:
        logger.info("Dropped %d malformed %s line(s)", malformed, platform_id.value)
    return records


# ── Source ──────────────────────────────────────────────────────────────────


class DebianFamilySource:
    """One ``allpackages`` mirror (Debian or Ubuntu)."""

    required_repositories = (Repository.OFFICIAL, Repository.THIRD_PARTY)
    tracks_liveness = True

    def __init__(
        self,
        name: str,
        platform_id: PlatformId,
        url: str,
        http: HttpFetcher,
    ) -> None:
        self.name = name
        self.platform_id = platform_id
        self._url = url
        self._http = http

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        logger.info("Fetching %s package listing from %s", self.name, self._url)
        resp = await self._http.get(self._url, headers={"Accept-Encoding": "gzip, deflate"})
        if not resp.ok:
            raise SourceUnavailableError(
                f"Failed to fetch {self.name} packages: HTTP {resp.status}"
            )

        text = decode_listing(resp.body)
        logger.info(
            "Downloaded %.1f MB of %s package data", len(text) / 1024 / 1024, self.name
        )
        records = parse_listing(text, self.platform_id, on_progress)
        if on_progress:
            on_progress(len(records), len(records), records[-1].name if records else "")
        logger.info("Parsed %d %s packages", len(records), self.name)
        return records
