"""Value objects: self-validating domain primitives."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class FetchResponse:
    """The outcome of one outbound GET.

    Non-2xx responses are returned, not raised: some sources treat a 404 as
    "no more pages".  Header names are lower-cased.
    """

    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


def _parse_int(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    """GitHub-style quota as reported by ``x-ratelimit-*`` response headers.

    Every field is ``None`` when the header is absent or unparseable, so a
    response without quota headers never triggers a wait on its own.
    """

    remaining: int | None = None
    limit: int | None = None
    reset_epoch: int | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimitSnapshot:
        """Read the three quota headers from a (lower-cased) header mapping."""
        return cls(
            remaining=_parse_int(headers.get("x-ratelimit-remaining")),
            limit=_parse_int(headers.get("x-ratelimit-limit")),
            reset_epoch=_parse_int(headers.get("x-ratelimit-reset")),
        )

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0

    @property
    def remaining_fraction(self) -> float | None:
        if self.remaining is None or not self.limit:
            return None
        return self.remaining / self.limit
