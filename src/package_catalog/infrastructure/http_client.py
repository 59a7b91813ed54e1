"""httpx adapter: implements the HttpFetcher port."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import httpx

from package_catalog.domain.exceptions import NetworkError
from package_catalog.domain.value_objects import FetchResponse

logger = logging.getLogger(__name__)

_DEFAULT_ACCEPT = "text/html,application/json;q=0.9,*/*;q=0.8"


class HttpFetchClient:
    """Thin wrapper around a shared ``httpx.AsyncClient``.

    Adds a User-Agent to every request and turns transport failures into
    :class:`NetworkError`.  HTTP error statuses are handed back to the caller.
    """

    def __init__(self, client: httpx.AsyncClient, user_agent: str) -> None:
        self._client = client
        self._base_headers: dict[str, str] = {
            "User-Agent": user_agent,
            "Accept": _DEFAULT_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def get(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        merged = dict(self._base_headers)
        if headers:
            merged.update(headers)
        try:
            resp = await self._client.get(url, headers=merged, params=params)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Network error fetching {url}: {exc}") from exc

        logger.debug("GET %s → %d (%d bytes)", resp.url, resp.status_code, len(resp.content))
        return FetchResponse(
            url=str(resp.url),
            status=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.content,
        )
