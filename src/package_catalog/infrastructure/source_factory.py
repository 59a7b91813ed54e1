"""Build every configured source parser from settings."""

from __future__ import annotations

from package_catalog.domain.entities import PlatformId
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.ports.source_parser import SourceParser
from package_catalog.infrastructure.config import Settings
from package_catalog.infrastructure.rate_governor import (
    FixedIntervalGovernor,
    QuotaHeaderGovernor,
)
from package_catalog.infrastructure.sources.arch import ArchSource
from package_catalog.infrastructure.sources.aur import AurSource
from package_catalog.infrastructure.sources.debian import DebianFamilySource
from package_catalog.infrastructure.sources.fedora import FedoraSource
from package_catalog.infrastructure.sources.homebrew import HomebrewSource
from package_catalog.infrastructure.sources.winget import WingetSource


def build_sources(settings: Settings, http: HttpFetcher) -> list[SourceParser]:
    token = settings.github_token.get_secret_value() if settings.github_token else None
    return [
        DebianFamilySource("debian", PlatformId.DEBIAN, settings.debian_packages_url, http),
        DebianFamilySource("ubuntu", PlatformId.UBUNTU, settings.ubuntu_packages_url, http),
        ArchSource(http, settings.arch_base_url, FixedIntervalGovernor(settings.arch_delay)),
        AurSource(
            http,
            settings.aur_base_url,
            rpc_governor=FixedIntervalGovernor(settings.aur_rpc_delay),
            html_governor=FixedIntervalGovernor(settings.aur_html_delay),
        ),
        FedoraSource(http, settings.fedora_base_url, FixedIntervalGovernor(settings.fedora_delay)),
        HomebrewSource(http, settings.homebrew_formula_url, settings.homebrew_cask_url),
        WingetSource(
            QuotaHeaderGovernor(http, token=token, strict=settings.github_rl_strict),
            settings.winget_contents_url,
        ),
    ]
