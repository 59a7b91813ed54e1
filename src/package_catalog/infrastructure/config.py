"""Application configuration: loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///./package_catalog.db"
    github_token: SecretStr | None = None
    github_rl_strict: bool = False
    user_agent: str = "package-catalog-fetcher/1.0"
    http_timeout: float = 60.0

    upsert_batch_size: int = 100
    progress_every: int = 100

    # ── Upstream endpoints ──────────────────────────────────────────────
    debian_packages_url: str = "https://packages.debian.org/stable/allpackages?format=txt.gz"
    ubuntu_packages_url: str = "https://packages.ubuntu.com/noble/allpackages?format=txt.gz"
    arch_base_url: str = "https://archlinux.org/packages"
    aur_base_url: str = "https://aur.archlinux.org"
    fedora_base_url: str = "https://packages.fedoraproject.org"
    homebrew_formula_url: str = "https://formulae.brew.sh/api/formula.json"
    homebrew_cask_url: str = "https://formulae.brew.sh/api/cask.json"
    winget_contents_url: str = (
        "https://api.github.com/repos/microsoft/winget-pkgs/contents/manifests"
    )

    # ── Fixed-interval pacing (seconds) ─────────────────────────────────
    arch_delay: float = 0.1
    aur_rpc_delay: float = 0.12
    aur_html_delay: float = 0.1
    fedora_delay: float = 0.1

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()
