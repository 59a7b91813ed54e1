import asyncio

import httpx
import pytest

from package_catalog.domain.entities import PackageType, PlatformId
from package_catalog.domain.exceptions import SourceUnavailableError
from package_catalog.infrastructure.sources.homebrew import HomebrewSource

FORMULA_URL = "https://formulae.brew.sh/api/formula.json"
CASK_URL = "https://formulae.brew.sh/api/cask.json"

FORMULAE = [
    {
        "name": "wget",
        "desc": "Internet file retriever",
        "versions": {"stable": "1.24.5"},
        "homepage": "https://www.gnu.org/software/wget/",
        "license": "GPL-3.0-or-later",
    },
    {"name": "nover", "versions": {}},
    {"desc": "entry without a name"},
]
CASKS = [
    {
        "token": "firefox",
        "name": ["Mozilla Firefox"],
        "desc": "Web browser",
        "version": "125.0.2",
        "homepage": "https://www.mozilla.org/firefox/",
    },
    {"token": "iterm2", "name": ["iTerm2"], "version": None},
]


def run_async(coro):
    return asyncio.run(coro)


def make_source(fetcher_for, cask_status=200):
    def handler(request):
        if str(request.url) == FORMULA_URL:
            return httpx.Response(200, json=FORMULAE)
        return httpx.Response(cask_status, json=CASKS)

    return HomebrewSource(fetcher_for(handler), FORMULA_URL, CASK_URL)


def test_formulae_and_casks_are_normalized(fetcher_for):
    records = {r.name: r for r in run_async(make_source(fetcher_for).fetch_all())}

    assert set(records) == {"wget", "nover", "firefox", "iterm2"}
    assert all(r.platform_id == PlatformId.MACOS for r in records.values())

    wget = records["wget"]
    assert wget.version == "1.24.5"
    assert wget.package_type == PackageType.CLI
    assert wget.license == "GPL-3.0-or-later"
    assert wget.homepage == "https://www.gnu.org/software/wget/"

    nover = records["nover"]
    assert nover.version == "unknown"
    assert nover.license == "Unknown"
    assert nover.description == "No description available"

    firefox = records["firefox"]
    assert firefox.package_type == PackageType.GUI
    assert firefox.version == "125.0.2"
    assert firefox.license == "Unknown"

    assert records["iterm2"].description == "iTerm2"
    assert records["iterm2"].version == "unknown"


def test_either_endpoint_failing_is_fatal(fetcher_for):
    with pytest.raises(SourceUnavailableError):
        run_async(make_source(fetcher_for, cask_status=500).fetch_all())
