import asyncio

import httpx
import pytest

from package_catalog.domain.entities import PlatformId
from package_catalog.domain.exceptions import RateLimitExceededError, SourceUnavailableError
from package_catalog.infrastructure.rate_governor import QuotaHeaderGovernor
from package_catalog.infrastructure.sources.winget import WingetSource

CONTENTS = "https://api.github.com/repos/microsoft/winget-pkgs/contents/manifests"
QUOTA = {"X-RateLimit-Remaining": "50", "X-RateLimit-Limit": "60"}


def run_async(coro):
    return asyncio.run(coro)


def make_source(fetcher_for, clock, listings, folders="ab"):
    def handler(request):
        listing = listings.get(str(request.url))
        if listing is None:
            return httpx.Response(500, headers=QUOTA)
        return httpx.Response(200, headers=QUOTA, json=listing)

    governor = QuotaHeaderGovernor(fetcher_for(handler), sleep=clock.sleep, clock=clock)
    return WingetSource(governor, CONTENTS, folders=folders)


def test_three_level_crawl_builds_identifiers(fetcher_for, clock):
    listings = {
        f"{CONTENTS}/a": [
            {"name": "Alacritty", "type": "dir", "url": f"{CONTENTS}/a/Alacritty"},
            {"name": "Audacity", "type": "dir"},
            {"name": "README.md", "type": "file"},
        ],
        f"{CONTENTS}/a/Alacritty": [
            {"name": "Alacritty", "type": "dir"},
            {"name": "Alacritty", "type": "dir"},
        ],
        f"{CONTENTS}/a/Audacity": [{"name": "Audacity", "type": "dir"}],
        f"{CONTENTS}/b": [{"name": "Broken", "type": "dir"}],
    }

    records = run_async(make_source(fetcher_for, clock, listings).fetch_all())

    assert [r.name for r in records] == ["Alacritty.Alacritty", "Audacity.Audacity"]
    assert records[0].description == "Alacritty by Alacritty"
    assert records[0].version == "latest"
    assert all(r.platform_id == PlatformId.WINDOWS for r in records)


def test_failed_folder_is_skipped(fetcher_for, clock):
    listings = {
        f"{CONTENTS}/b": [{"name": "Bitwarden", "type": "dir"}],
        f"{CONTENTS}/b/Bitwarden": [{"name": "CLI", "type": "dir"}],
    }

    records = run_async(make_source(fetcher_for, clock, listings).fetch_all())

    assert [r.name for r in records] == ["Bitwarden.CLI"]


def test_every_folder_failing_is_fatal(fetcher_for, clock):
    with pytest.raises(SourceUnavailableError):
        run_async(make_source(fetcher_for, clock, {}).fetch_all())


def test_exhausted_quota_propagates(fetcher_for, clock):
    def handler(request):
        return httpx.Response(403, headers={"X-RateLimit-Remaining": "0"})

    governor = QuotaHeaderGovernor(fetcher_for(handler), sleep=clock.sleep, clock=clock)
    source = WingetSource(governor, CONTENTS, folders="a")

    with pytest.raises(RateLimitExceededError):
        run_async(source.fetch_all())
