"""Port: outbound HTTP, defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from package_catalog.domain.value_objects import FetchResponse


class HttpFetcher(Protocol):
    """Issue a GET and hand back status, headers and body.

    Raises ``NetworkError`` on transport failure; never raises on HTTP status.
    """

    async def get(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        ...
