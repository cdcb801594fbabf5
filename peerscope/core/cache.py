"""Registry metadata cache for peerscope.

A :class:`CacheStore` keeps :class:`~peerscope.models.metadata.PackageMetadata`
snapshots keyed by package name. An entry counts as a hit only while it is
younger than the TTL *and* was fetched from the registry the store is
configured for; anything else is logically absent.

Capacity is bounded: once ``max_size`` is exceeded the entry with the oldest
fetch timestamp is dropped. Timestamps only change on :meth:`CacheStore.set`,
so insertion order doubles as timestamp order and eviction is O(1).

The store can be snapshotted to a single JSON document::

    {
      "version": "1.0",
      "lastUpdated": 1718000000.0,
      "entries": {
        "react": {"data": {...}, "timestamp": 1717999000.0,
                  "registry": "https://registry.npmjs.org"}
      }
    }

Disk I/O happens only in :meth:`CacheStore.load_from_disk` and
:meth:`CacheStore.persist_to_disk`.

Typical usage::

    store = CacheStore("https://registry.npmjs.org", ttl=300, max_size=100)
    store.set("react", metadata)
    store.get("react")          # PackageMetadata until 300s have passed
"""

from __future__ import annotations

import json
import time
import threading
from pathlib import Path
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from peerscope.exceptions import FileOperationError, ParseError
from peerscope.models.metadata import PackageMetadata
from peerscope.utils.logger import get_logger
from peerscope.utils.filesystem import remove_file, safe_read_file, safe_write_file
from peerscope.constants import (
    CACHE_SCHEMA_VERSION,
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL,
)

logger = get_logger("cache")

__all__ = ["CacheEntry", "CacheStats", "CacheStore"]

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheEntry:
    """One cached metadata snapshot.

    Attributes:
        metadata: The cached package metadata.
        timestamp: Fetch time in epoch seconds.
        registry: Registry base URL the metadata was fetched from.
    """

    metadata: PackageMetadata
    timestamp: float
    registry: str

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_valid(self, now: float, ttl: float, registry: str) -> bool:
        """True while younger than *ttl* and fetched from *registry*."""
        return self.registry == registry and self.age(now) < ttl

    def to_json(self) -> Dict[str, Any]:
        return {
            "data": self.metadata.to_json(),
            "timestamp": self.timestamp,
            "registry": self.registry,
        }

    @classmethod
    def from_json(cls, name: str, raw: Any) -> "CacheEntry":
        """Rebuild an entry from its snapshot form.

        Raises:
            ParseError: *raw* is not a well-formed entry.
        """
        if not isinstance(raw, Mapping):
            raise ParseError("Cache entry is not an object", package_name=name)

        timestamp = raw.get("timestamp")
        registry = raw.get("registry")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ParseError("Cache entry has no numeric timestamp", package_name=name)
        if not isinstance(registry, str) or not registry:
            raise ParseError("Cache entry has no registry", package_name=name)

        metadata = PackageMetadata.from_registry_json(
            raw.get("data"),
            expected_name=name,
        )
        return cls(metadata=metadata, timestamp=float(timestamp), registry=registry)


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time view of the store.

    Attributes:
        size: Number of entries held in memory (valid or not).
        oldest: Smallest entry timestamp, or ``None`` when empty.
        newest: Largest entry timestamp, or ``None`` when empty.
    """

    size: int
    oldest: Optional[float] = None
    newest: Optional[float] = None


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CacheStore:
    """TTL- and capacity-bounded metadata cache with optional JSON snapshot.

    All mutations take an internal :class:`threading.RLock`, so the store can
    be shared between coroutines and worker threads alike.

    Args:
        registry: Registry base URL this store serves hits for.
        ttl: Entry lifetime in seconds.
        max_size: Maximum number of entries kept in memory.
        disk_path: Snapshot location; ``None`` disables persistence.
        clock: Wall-clock source returning epoch seconds.
    """

    def __init__(
        self,
        registry: str,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        max_size: int = DEFAULT_CACHE_MAX_SIZE,
        disk_path: Optional[Union[str, Path]] = None,
        clock: Clock = time.time,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.registry = registry.rstrip("/")
        self.ttl = float(ttl)
        self.max_size = max_size
        self.disk_path: Optional[Path] = Path(disk_path) if disk_path else None
        self._clock = clock

        # Oldest timestamp first; set() always moves a key to the end
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._dirty = False

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[PackageMetadata]:
        """Return cached metadata for *key*, or ``None`` when absent.

        Expired entries and entries fetched from another registry are
        treated as absent but left in place, so an explicit offline
        fallback can still reach them through :meth:`get_stale`.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Cache miss: %s", key)
                return None

            if entry.registry != self.registry:
                logger.debug("Cache entry for %s belongs to %s", key, entry.registry)
                return None

            if not entry.is_valid(self._clock(), self.ttl, self.registry):
                logger.debug("Cache entry for %s expired", key)
                return None

            logger.debug("Cache hit: %s", key)
            return entry.metadata

    def get_stale(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for *key* from the current registry, whatever its age."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.registry != self.registry:
                return None
            return entry

    def entry_age(self, entry: CacheEntry) -> float:
        """Seconds since *entry* was fetched."""
        return entry.age(self._clock())

    def is_expired(self, entry: CacheEntry) -> bool:
        return self.entry_age(entry) >= self.ttl

    def keys(self) -> List[str]:
        """Cached keys, oldest entry first."""
        with self._lock:
            return list(self._entries)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: str, metadata: PackageMetadata) -> None:
        """Store *metadata* under *key* with a fresh timestamp.

        Overwrites any previous entry, then enforces capacity.
        """
        entry = CacheEntry(
            metadata=metadata,
            timestamp=self._clock(),
            registry=self.registry,
        )
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            self._dirty = True
            self.evict_if_over_capacity()

    def evict_if_over_capacity(self) -> int:
        """Drop oldest entries until the store fits ``max_size``.

        Returns:
            Number of evicted entries.
        """
        evicted = 0
        with self._lock:
            while len(self._entries) > self.max_size:
                key, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from cache", key)
                evicted += 1
            if evicted:
                self._dirty = True
        return evicted

    def clear(self, *, remove_file: bool = True) -> None:
        """Empty the store and, optionally, delete the snapshot file."""
        with self._lock:
            self._entries.clear()
            self._dirty = False
            if remove_file and self.disk_path is not None:
                if _remove(self.disk_path):
                    logger.info("Removed cache file %s", self.disk_path)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_from_disk(self) -> int:
        """Admit valid entries from the snapshot file into memory.

        Missing files, corrupt JSON and snapshots written with another
        schema version are logged and ignored. Each entry passes the same
        TTL and registry check as :meth:`get`; survivors are admitted oldest
        first and capacity is enforced afterwards.

        Returns:
            Number of entries admitted.

        Raises:
            FileOperationError: The snapshot exists but cannot be read.
        """
        if self.disk_path is None or not self.disk_path.exists():
            return 0

        text = safe_read_file(self.disk_path)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt cache file %s: %s", self.disk_path, exc)
            return 0

        if not isinstance(document, Mapping):
            logger.warning("Ignoring cache file %s: not a JSON object", self.disk_path)
            return 0

        version = document.get("version")
        if version != CACHE_SCHEMA_VERSION:
            logger.warning(
                "Ignoring cache file %s: schema version %r, expected %r",
                self.disk_path,
                version,
                CACHE_SCHEMA_VERSION,
            )
            return 0

        raw_entries = document.get("entries")
        if not isinstance(raw_entries, Mapping):
            logger.warning("Ignoring cache file %s: no entries table", self.disk_path)
            return 0

        now = self._clock()
        candidates: List[Tuple[str, CacheEntry]] = []
        for name, raw in raw_entries.items():
            try:
                entry = CacheEntry.from_json(str(name), raw)
            except ParseError as exc:
                logger.debug("Skipping malformed cache entry %s: %s", name, exc)
                continue
            if entry.is_valid(now, self.ttl, self.registry):
                candidates.append((str(name), entry))

        admitted = 0
        with self._lock:
            for name, entry in candidates:
                current = self._entries.get(name)
                if current is not None and current.timestamp >= entry.timestamp:
                    continue
                self._entries[name] = entry
                admitted += 1

            ordered = sorted(self._entries.items(), key=lambda item: item[1].timestamp)
            self._entries = OrderedDict(ordered)
            self.evict_if_over_capacity()

        logger.info("Loaded %d cache entries from %s", admitted, self.disk_path)
        return admitted

    def persist_to_disk(self, *, force: bool = False) -> bool:
        """Write the whole store to the snapshot file atomically.

        Args:
            force: Write even if nothing changed since the last load or save.

        Returns:
            ``True`` when the file was written.
        """
        if self.disk_path is None:
            return False

        with self._lock:
            if not self._dirty and not force:
                logger.debug("Cache unchanged, skipping save")
                return False

            document = {
                "version": CACHE_SCHEMA_VERSION,
                "lastUpdated": self._clock(),
                "entries": {
                    name: entry.to_json() for name, entry in self._entries.items()
                },
            }
            safe_write_file(self.disk_path, json.dumps(document, indent=2))
            self._dirty = False
            count = len(self._entries)

        logger.info("Saved %d cache entries to %s", count, self.disk_path)
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def stats(self) -> CacheStats:
        with self._lock:
            if not self._entries:
                return CacheStats(size=0)
            timestamps = [entry.timestamp for entry in self._entries.values()]
            return CacheStats(
                size=len(timestamps),
                oldest=min(timestamps),
                newest=max(timestamps),
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


def _remove(path: Path) -> bool:
    try:
        return remove_file(path)
    except FileOperationError as exc:
        logger.warning("Could not remove cache file %s: %s", path, exc)
        return False
