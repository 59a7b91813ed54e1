"""Domain exception hierarchy.

Parse-level and single-page errors are recovered where they happen; the
rest reach the sync orchestrator, which records them on the source's
status.  The interface layer maps each one onto an HTTP status code.
"""

from __future__ import annotations


class PackageCatalogError(Exception):
    """Base exception for the entire application."""


# ── Fetching ────────────────────────────────────────────────────────────────


class TransientFetchError(PackageCatalogError):
    """A single page, shard or request failed; the crawl moves on."""


class NetworkError(TransientFetchError):
    """Transport-level failure (DNS, connect, read timeout, …)."""


class RateLimitExceededError(PackageCatalogError):
    """Upstream quota is still exhausted after the bounded wait-and-retry."""


# ── Parsing ─────────────────────────────────────────────────────────────────


class MalformedRecordError(PackageCatalogError):
    """A line, row or JSON entry could not be turned into a record."""


# ── Storage ─────────────────────────────────────────────────────────────────


class SchemaConstraintViolation(PackageCatalogError):
    """The storage schema does not permit a value the sync needs to write."""


# ── Orchestration ───────────────────────────────────────────────────────────


class OrchestratorFatalError(PackageCatalogError):
    """The sync cannot continue at all."""


class SourceUnavailableError(OrchestratorFatalError):
    """The initial index/listing of a source could not be fetched."""


class PayloadDecodeError(OrchestratorFatalError):
    """A downloaded listing could not be decoded by any strategy."""


class SyncAlreadyRunningError(PackageCatalogError):
    """A sync for this source is already in progress."""


class UnknownSourceError(PackageCatalogError):
    """No source is registered under the requested name."""
