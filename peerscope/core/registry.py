"""npm registry client for peerscope.

:class:`RegistryClient` resolves package names to
:class:`~peerscope.models.metadata.PackageMetadata`, using a
:class:`~peerscope.core.cache.CacheStore` as a read/write side-cache and an
:class:`~peerscope.utils.http.HTTPClient` for the network.

Each fetch walks the same path::

    validate -> cache hit? -> registry reachable? (probed once)
             -> offline? (stale entry or unavailable)
             -> GET {registry}/{name} -> parse -> write-through

An unreachable registry flips the client into offline mode, so an outage
degrades to stale cache hits instead of one exhausted retry per package.

Per-package failures never raise out of :meth:`RegistryClient.fetch` or
:meth:`RegistryClient.get_bulk_package_info`; they come back as a
:class:`FetchResult` carrying the status and the error. Only an invalid
package name (or batch) raises, and it does so before any I/O.

Typical usage::

    async with RegistryClient(config) as client:
        bulk = await client.get_bulk_package_info(["react", "react-dom"])
        for name, metadata in bulk.packages.items():
            print(name, metadata.latest)
        for name, failure in bulk.failures.items():
            print(name, failure.status.value, failure.error)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from urllib.parse import quote
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, List, Optional

from peerscope.config import PeerScopeConfig
from peerscope.core.cache import CacheStats, CacheStore
from peerscope.models.metadata import PackageMetadata
from peerscope.utils.http import HTTPClient, RateLimitGate
from peerscope.utils.logger import PackageLogAdapter, get_logger
from peerscope.utils.retry import RetryPolicy
from peerscope.utils.validation import validate_package_batch, validate_package_name
from peerscope.constants import CONNECTION_PROBE_PACKAGE
from peerscope.exceptions import (
    ExhaustedRetriesError,
    FileOperationError,
    NetworkError,
    PackageNotFoundError,
    ParseError,
    PeerScopeError,
    RateLimitedError,
)

logger = get_logger("registry")

__all__ = [
    "BulkFetchResult",
    "FetchResult",
    "FetchStatus",
    "RegistryClient",
]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class FetchStatus(str, Enum):
    """Terminal state of one package fetch."""

    CACHE_HIT = "cache_hit"
    SUCCESS = "success"
    STALE = "stale"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


_RESOLVED = frozenset({FetchStatus.CACHE_HIT, FetchStatus.SUCCESS, FetchStatus.STALE})


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one package.

    Attributes:
        name: Requested package name.
        status: How the fetch ended.
        metadata: Metadata for resolved statuses, ``None`` otherwise.
        error: The error behind a failed or not-found fetch.
        attempts: Network attempts made (``0`` when served from cache).
    """

    name: str
    status: FetchStatus
    metadata: Optional[PackageMetadata] = None
    error: Optional[PeerScopeError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status in _RESOLVED

    @property
    def is_stale(self) -> bool:
        return self.status is FetchStatus.STALE

    def describe_error(self) -> str:
        """One-line description of why the fetch did not resolve."""
        if self.error is not None:
            return str(self.error)
        if self.status is FetchStatus.UNAVAILABLE:
            return "not cached and offline mode is enabled"
        return self.status.value

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "attempts": self.attempts,
            "error": None if self.ok else self.describe_error(),
        }


@dataclass(frozen=True)
class BulkFetchResult:
    """Per-name results of a batch fetch, in request order."""

    results: Dict[str, FetchResult] = field(default_factory=dict)

    @property
    def packages(self) -> Dict[str, PackageMetadata]:
        """Metadata for every name that resolved (including stale hits)."""
        return {
            name: result.metadata
            for name, result in self.results.items()
            if result.ok and result.metadata is not None
        }

    @property
    def failures(self) -> Dict[str, FetchResult]:
        """Results for names that did not resolve."""
        return {name: r for name, r in self.results.items() if not r.ok}

    @property
    def stale(self) -> List[str]:
        """Names served from an expired cache entry."""
        return [name for name, r in self.results.items() if r.is_stale]

    def __getitem__(self, name: str) -> FetchResult:
        return self.results[name]

    def __contains__(self, name: object) -> bool:
        return name in self.results

    def __iter__(self) -> Iterator[str]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RegistryClient:
    """Cache-backed, concurrency-bounded npm registry client.

    Each unique package name triggers at most one in-flight request: a
    per-name :class:`asyncio.Lock` serialises concurrent fetches of the same
    key and the cache is checked again once the lock is held.

    Args:
        config: Runtime configuration; defaults are used when omitted.
        http_client: Pre-configured transport. When omitted one is built
            from *config* and closed by :meth:`close`.
        cache: Cache store to use. When omitted one is built from
            ``config.cache`` (or no cache at all if it is disabled).
        rate_limit_gate: Gate shared with other clients; only used when
            the transport is built here.
    """

    def __init__(
        self,
        config: Optional[PeerScopeConfig] = None,
        *,
        http_client: Optional[HTTPClient] = None,
        cache: Optional[CacheStore] = None,
        rate_limit_gate: Optional[RateLimitGate] = None,
    ) -> None:
        self.config = config or PeerScopeConfig()
        self.registry = self.config.registry_url
        self.offline = self.config.analysis.offline_mode

        if cache is None and self.config.cache.enabled:
            cache = CacheStore(
                self.registry,
                ttl=self.config.cache.ttl,
                max_size=self.config.cache.max_size,
                disk_path=(
                    self.config.cache.disk_path
                    if self.config.cache.persist_to_disk
                    else None
                ),
            )
        self.cache = cache

        self._owns_http_client = http_client is None
        if http_client is None:
            http_client = HTTPClient(
                timeout=self.config.timeout,
                retry_policy=RetryPolicy.from_retries(
                    self.config.retries,
                    base=self.config.backoff_base,
                    cap=self.config.backoff_cap,
                ),
                rate_limit_gate=rate_limit_gate,
                max_concurrency=self.config.max_concurrent_requests,
                proxy=self.config.proxy.url_for(self.registry),
            )
        self.http_client = http_client

        self._bulk_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._key_users: Dict[str, int] = {}

        self._connection_checked = not self.config.analysis.check_connection
        self._connection_lock = asyncio.Lock()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_http_client:
            await self.http_client.close()

    # ------------------------------------------------------------------
    # Names and URLs
    # ------------------------------------------------------------------

    @staticmethod
    def validate_package_name(name: Any) -> str:
        """See :func:`peerscope.utils.validation.validate_package_name`."""
        return validate_package_name(name)

    def package_url(self, name: str) -> str:
        """Registry document URL; the scope slash is encoded (``@a%2Fb``)."""
        return f"{self.registry}/{quote(name, safe='@')}"

    # ------------------------------------------------------------------
    # Single fetch
    # ------------------------------------------------------------------

    def _cached(self, name: str) -> Optional[PackageMetadata]:
        if self.cache is None:
            return None
        return self.cache.get(name)

    def _offline_result(self, name: str, log: PackageLogAdapter) -> FetchResult:
        """Serve a stale cache entry or report the package as unavailable."""
        entry = self.cache.get_stale(name) if self.cache is not None else None
        if entry is not None:
            log.warning(
                "Offline: using stale cache entry (%.0fs old)",
                self.cache.entry_age(entry),
            )
            return FetchResult(name, FetchStatus.STALE, metadata=entry.metadata)

        log.warning("Offline and not cached")
        return FetchResult(name, FetchStatus.UNAVAILABLE)

    async def fetch(self, name: str) -> FetchResult:
        """Resolve one package to a :class:`FetchResult`.

        Raises:
            ValidationError: *name* is not a legal package name.
        """
        validate_package_name(name)
        log = PackageLogAdapter(logger, name)

        cached = self._cached(name)
        if cached is not None:
            return FetchResult(name, FetchStatus.CACHE_HIT, metadata=cached)

        async with self._key_lock(name):
            # Another coroutine may have fetched it while we waited
            cached = self._cached(name)
            if cached is not None:
                return FetchResult(name, FetchStatus.CACHE_HIT, metadata=cached)

            if not self.offline:
                await self._ensure_connection_checked()
            if self.offline:
                return self._offline_result(name, log)

            return await self._fetch_from_registry(name, log)

    @asynccontextmanager
    async def _key_lock(self, name: str) -> AsyncIterator[None]:
        """Hold the per-name lock; the entry is dropped once nobody uses it."""
        lock = self._key_locks.setdefault(name, asyncio.Lock())
        self._key_users[name] = self._key_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[name] -= 1
            if not self._key_users[name]:
                del self._key_users[name]
                del self._key_locks[name]

    async def _ensure_connection_checked(self) -> None:
        """Check registry reachability once, before the first network fetch."""
        if self._connection_checked:
            return
        async with self._connection_lock:
            if not self._connection_checked:
                await self.check_connection()

    async def _fetch_from_registry(
        self,
        name: str,
        log: PackageLogAdapter,
    ) -> FetchResult:
        url = self.package_url(name)
        log.debug("Fetching %s", url)

        try:
            data = await self.http_client.get_json(url)
            metadata = PackageMetadata.from_registry_json(data, expected_name=name)
        except PackageNotFoundError as exc:
            log.info("Not found in registry")
            return FetchResult(name, FetchStatus.NOT_FOUND, error=exc, attempts=1)
        except ExhaustedRetriesError as exc:
            log.error("Giving up after %s attempts: %s", exc.attempts, exc.last_error)
            return FetchResult(
                name,
                FetchStatus.FAILED,
                error=exc,
                attempts=exc.attempts or 0,
            )
        except (NetworkError, ParseError) as exc:
            log.error("Fetch failed: %s", exc)
            return FetchResult(name, FetchStatus.FAILED, error=exc, attempts=1)

        if self.cache is not None:
            self.cache.set(name, metadata)
        return FetchResult(name, FetchStatus.SUCCESS, metadata=metadata, attempts=1)

    async def get_package_info(self, name: str) -> Optional[PackageMetadata]:
        """Return metadata for *name*, or ``None`` when not found or unavailable.

        Raises:
            ValidationError: *name* is not a legal package name.
            PeerScopeError: The fetch failed for any other reason.
        """
        result = await self.fetch(name)
        if result.ok:
            return result.metadata
        if result.status is FetchStatus.FAILED and result.error is not None:
            raise result.error
        return None

    # ------------------------------------------------------------------
    # Bulk fetch
    # ------------------------------------------------------------------

    async def _bounded_fetch(self, name: str) -> FetchResult:
        async with self._bulk_semaphore:
            return await self.fetch(name)

    async def get_bulk_package_info(self, names: Iterable[str]) -> BulkFetchResult:
        """Fetch every name concurrently, at most ``max_concurrent_requests`` at once.

        The whole batch is validated first; duplicates are fetched once.

        Raises:
            ValidationError: The batch, or any name in it, is invalid.
        """
        batch = validate_package_batch(names)
        if not batch:
            return BulkFetchResult()

        logger.debug("Fetching %d packages", len(batch))
        results = await asyncio.gather(*(self._bounded_fetch(name) for name in batch))
        return BulkFetchResult({result.name: result for result in results})

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    async def check_connection(self, probe: str = CONNECTION_PROBE_PACKAGE) -> bool:
        """Check registry reachability once; switch to offline mode when unreachable.

        A 404 or a 429 for the check package still proves the registry answers.
        """
        validate_package_name(probe)
        reachable = True
        try:
            await self.http_client.get(self.package_url(probe))
        except (PackageNotFoundError, RateLimitedError):
            pass
        except NetworkError as exc:
            logger.warning(
                "Registry %s unreachable, switching to offline mode: %s",
                self.registry,
                exc,
            )
            self.offline = True
            reachable = False

        self._connection_checked = True
        return reachable

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def load_cache(self) -> int:
        """Admit the on-disk snapshot; returns admitted entry count."""
        if self.cache is None:
            return 0
        try:
            return self.cache.load_from_disk()
        except FileOperationError as exc:
            logger.warning("Could not load cache: %s", exc)
            return 0

    def save_cache(self, *, force: bool = False) -> bool:
        if self.cache is None:
            return False
        try:
            return self.cache.persist_to_disk(force=force)
        except FileOperationError as exc:
            logger.warning("Could not save cache: %s", exc)
            return False

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def cache_stats(self) -> Optional[CacheStats]:
        return self.cache.stats() if self.cache is not None else None
