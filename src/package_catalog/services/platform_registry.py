"""Fixed platform set and the step that makes sure it exists in storage."""

from __future__ import annotations

import logging

from package_catalog.domain.entities import Platform, PlatformId
from package_catalog.domain.ports.package_store import PackageStore

logger = logging.getLogger(__name__)

PLATFORMS: tuple[Platform, ...] = (
    Platform(PlatformId.DEBIAN, "Debian", "apt", "🐧"),
    Platform(PlatformId.UBUNTU, "Ubuntu", "apt", "🐧"),
    Platform(PlatformId.FEDORA, "Fedora", "dnf", "🎩"),
    Platform(PlatformId.ARCH, "Arch Linux", "pacman", "🏛️"),
    Platform(PlatformId.WINDOWS, "Windows", "winget", "🪟"),
    Platform(PlatformId.MACOS, "macOS", "homebrew", "🍎"),
)


class PlatformRegistry:
    """Upserts every known platform; safe to run before every sync."""

    def __init__(
        self, store: PackageStore, platforms: tuple[Platform, ...] = PLATFORMS
    ) -> None:
        self._store = store
        self.platforms = platforms

    async def ensure_platforms(self) -> list[Platform]:
        for platform in self.platforms:
            await self._store.ensure_platform(
                platform.id, platform.name, platform.package_manager, platform.icon
            )
            logger.debug("Ensured platform %s", platform.id.value)
        logger.info("Platform initialization completed (%d platforms)", len(self.platforms))
        return list(self.platforms)
