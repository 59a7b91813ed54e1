"""GUI / CLI heuristic for packages whose source gives no type.

Keyword substring search over ``name + description``.  GUI keywords are
checked first and win on overlap.  The lists are kept exactly as the catalog
has always used them: "editor" counts as GUI, so ``vim`` is classified as a
GUI package.
"""

from __future__ import annotations

from package_catalog.domain.entities import PackageType

GUI_KEYWORDS: tuple[str, ...] = (
    "gui", "gtk", "qt", "x11", "desktop", "window", "display",
    "graphical", "visual", "image", "video", "audio", "media",
    "browser", "editor", "viewer", "player", "manager",
    "game", "games", "steam", "wine",
)

CLI_KEYWORDS: tuple[str, ...] = (
    "cli", "command", "terminal", "console", "shell", "bash",
    "tool", "utility", "daemon", "service", "server", "client",
    "lib", "dev", "debug", "build", "compile",
)


def classify(name: str, description: str | None = None) -> PackageType:
    """Return the inferred package type; ``cli`` when nothing matches."""
    haystack = f"{name} {description or ''}".lower()
    if any(keyword in haystack for keyword in GUI_KEYWORDS):
        return PackageType.GUI
    if any(keyword in haystack for keyword in CLI_KEYWORDS):
        return PackageType.CLI
    return PackageType.CLI
