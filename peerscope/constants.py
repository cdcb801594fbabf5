"""
Centralized constants for peerscope.

This module defines immutable configuration values used across peerscope,
including registry endpoints, network and retry settings, cache defaults,
package-name rules, and logging formats. All values are intended to be
treated as read-only.
"""

from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "peerscope/{version}"

# ---------------------------------------------------------------------------
# Registry endpoints
# ---------------------------------------------------------------------------

#: Default npm-compatible registry base URL.
DEFAULT_REGISTRY: Final[str] = "https://registry.npmjs.org"

#: Package requested to check registry connectivity.
CONNECTION_PROBE_PACKAGE: Final[str] = "express"

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default per-request network timeout in seconds.
DEFAULT_TIMEOUT: Final[float] = 10.0

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

#: Maximum number of simultaneously in-flight registry requests.
DEFAULT_MAX_CONCURRENT_REQUESTS: Final[int] = 10

#: Backoff for attempt ``n`` is ``min(base * 2 ** (n - 1), cap)`` seconds.
DEFAULT_BACKOFF_BASE: Final[float] = 1.0
DEFAULT_BACKOFF_CAP: Final[float] = 30.0

#: How many consecutive 429 responses a single request tolerates.
DEFAULT_MAX_RATE_LIMIT_RETRIES: Final[int] = 5

#: Wait applied when a 429 response carries no usable ``Retry-After``.
DEFAULT_RETRY_AFTER: Final[float] = 1.0

# ---------------------------------------------------------------------------
# Cache configuration
# ---------------------------------------------------------------------------

#: Cache time-to-live in seconds.
DEFAULT_CACHE_TTL: Final[float] = 300.0

#: Maximum number of cached packages.
DEFAULT_CACHE_MAX_SIZE: Final[int] = 100

#: Default location of the persisted cache snapshot.
DEFAULT_CACHE_FILE: Final[str] = ".peerscope-cache.json"

#: Schema tag written into (and required from) cache snapshots.
CACHE_SCHEMA_VERSION: Final[str] = "1.0"

# ---------------------------------------------------------------------------
# Package name rules
# ---------------------------------------------------------------------------

#: npm refuses names longer than this.
MAX_PACKAGE_NAME_LENGTH: Final[int] = 214

#: npm package name, optionally scoped (``@scope/name``).
PACKAGE_NAME_PATTERN: Final[str] = (
    r"^(?:@[a-z0-9\-~][a-z0-9\-._~]*/)?[a-z0-9\-~][a-z0-9\-._~]*$"
)

#: Substrings that are never legal in a package name.
FORBIDDEN_NAME_SEQUENCES: Final[Sequence[str]] = (
    "..",
    "\0",
    ";",
    "&",
    "|",
    "`",
    "$",
    "<",
    ">",
)

# ---------------------------------------------------------------------------
# Analysis scoring
# ---------------------------------------------------------------------------

#: Health score penalty per error-severity finding.
ERROR_PENALTY: Final[int] = 15

#: Health score penalty per warning-severity finding.
WARNING_PENALTY: Final[int] = 5

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ---------------------------------------------------------------------------
# Security limits
# ---------------------------------------------------------------------------

#: Maximum size (bytes) of a cache snapshot read from disk.
MAX_CACHE_FILE_SIZE: Final[int] = 50 * 1024 * 1024
