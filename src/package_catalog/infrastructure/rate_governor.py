"""Outbound request pacing.

Two modes:

* :class:`FixedIntervalGovernor` keeps a constant gap between consecutive
  requests to the same host.  Used by the scraping sources.
* :class:`QuotaHeaderGovernor` reads GitHub's ``x-ratelimit-*`` headers,
  paces the crawl against the hourly quota and waits for the quota reset
  when it is exhausted.

Both take injectable ``sleep`` and ``clock`` callables so tests can run
without real waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

from package_catalog.domain.exceptions import RateLimitExceededError
from package_catalog.domain.ports.http_fetcher import HttpFetcher
from package_catalog.domain.value_objects import FetchResponse, RateLimitSnapshot

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

_HOUR = 3600.0


class FixedIntervalGovernor:
    """Static per-host spacing; no adaptive feedback."""

    def __init__(
        self,
        interval: float,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._last_request: dict[str, float] = {}

    async def wait(self, url: str) -> None:
        """Block until *url*'s host may be hit again, then claim the slot."""
        host = urlsplit(url).netloc
        last = self._last_request.get(host)
        if last is not None:
            remaining = self.interval - (self._clock() - last)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_request[host] = self._clock()


class QuotaHeaderGovernor:
    """GitHub REST pacing driven by response quota headers.

    Parameters
    ----------
    http:
        Fetcher used for every request issued through :meth:`fetch`.
    token:
        Optional GitHub token; raises the assumed hourly quota from 60 to 5000.
    strict:
        Wait for the quota reset whenever ``remaining / limit`` drops to 20 %
        or less, even without a 403.
    max_retries:
        How many times an exhausted request is retried after waiting.
    """

    SAFE_FRACTION = 0.8
    TARGET_FRACTION = 0.9
    STRICT_FRACTION = 0.2
    RESET_BUFFER = 2.0
    BASE_DELAY = 0.1

    def __init__(
        self,
        http: HttpFetcher,
        *,
        token: str | None = None,
        strict: bool = False,
        max_retries: int = 3,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.time,
    ) -> None:
        self._http = http
        self._token = token
        self._strict = strict
        self._max_retries = max_retries
        self._sleep = sleep
        self._clock = clock

        self.hourly_limit = 5000 if token else 60
        self.safe_limit = int(self.hourly_limit * self.SAFE_FRACTION)
        self.request_count = 0
        self.last_snapshot = RateLimitSnapshot()
        self._started = clock()

        self._headers: dict[str, str] = {"Accept": "application/vnd.github.v3+json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    # ── Requests ────────────────────────────────────────────────────────

    async def fetch(self, url: str) -> FetchResponse:
        """GET *url*, waiting out quota exhaustion up to ``max_retries`` times.

        Non-2xx statuses other than rate-limit signals are returned as-is.
        """
        for attempt in range(self._max_retries + 1):
            resp = await self._http.get(url, headers=self._headers)
            self.request_count += 1
            snapshot = RateLimitSnapshot.from_headers(resp.headers)
            self.last_snapshot = snapshot

            if resp.status in (403, 429) or snapshot.exhausted:
                if attempt >= self._max_retries:
                    raise RateLimitExceededError(
                        f"GitHub rate limit still exhausted after {self._max_retries} "
                        f"retries for {url}. Set GITHUB_TOKEN to increase the limit."
                    )
                logger.warning(
                    "GitHub quota exhausted (HTTP %d, remaining=%s); waiting for reset "
                    "(retry %d/%d)",
                    resp.status,
                    snapshot.remaining,
                    attempt + 1,
                    self._max_retries,
                )
                await self.wait_until_reset(snapshot.reset_epoch)
                continue

            fraction = snapshot.remaining_fraction
            if self._strict and fraction is not None and fraction <= self.STRICT_FRACTION:
                logger.info(
                    "Strict mode: %d/%d requests left, waiting for quota reset",
                    snapshot.remaining,
                    snapshot.limit,
                )
                await self.wait_until_reset(snapshot.reset_epoch)

            return resp

        raise RateLimitExceededError(f"GitHub rate limit reached for {url}")  # pragma: no cover

    async def wait_until_reset(self, reset_epoch: int | None) -> float:
        """Sleep until *reset_epoch* plus a small buffer; return the wait in seconds.

        Without a usable reset timestamp, wait a full window: one hour with a
        token, one minute without.
        """
        now = self._clock()
        if reset_epoch is not None and reset_epoch > now:
            wait = reset_epoch - now + self.RESET_BUFFER
        else:
            wait = _HOUR if self._token else 60.0
        await self._sleep(wait)
        return wait

    # ── Pacing ──────────────────────────────────────────────────────────

    def compute_delay(self) -> float:
        """Seconds to pause before the next request.

        When the projected hourly rate is above the safe limit, return the
        gap that brings the effective rate down to 90 % of it.  Gaps of
        100 ms or less are not worth sleeping for.
        """
        if self.request_count == 0:
            return self.BASE_DELAY
        elapsed = max(self._clock() - self._started, 1e-6)
        current_rate = self.request_count / (elapsed / _HOUR)
        if current_rate <= self.safe_limit:
            return self.BASE_DELAY

        target_rate = self.safe_limit * self.TARGET_FRACTION
        per_request = _HOUR / target_rate
        delay = max(0.0, per_request - elapsed / self.request_count)
        return delay if delay > self.BASE_DELAY else 0.0

    async def adaptive_delay(self) -> None:
        delay = self.compute_delay()
        if delay > 0:
            await self._sleep(delay)

    def requests_per_minute(self) -> float:
        elapsed_min = max(self._clock() - self._started, 1e-6) / 60.0
        return self.request_count / elapsed_min
