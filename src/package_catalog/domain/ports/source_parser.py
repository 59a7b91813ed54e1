"""Port: source parser, one implementation per upstream package repository."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from package_catalog.domain.entities import PlatformId, RawPackageRecord, Repository

ProgressCallback = Callable[[int, int, str], None]
"""``on_progress(current, total, sample_name)``: advisory, must not raise."""


class SourceParser(Protocol):
    """Fetch one upstream source and normalize it into records."""

    #: Registry key, e.g. ``"debian"`` or ``"aur"``.
    name: str
    #: Platform every record of this source belongs to.
    platform_id: PlatformId
    #: Repository tags the store must accept before this source may write.
    required_repositories: tuple[Repository, ...]
    #: Whether unchanged rows get their liveness marker touched on sync.
    tracks_liveness: bool

    async def fetch_all(
        self, on_progress: ProgressCallback | None = None
    ) -> list[RawPackageRecord]:
        """Return every record the source currently lists."""
        ...
