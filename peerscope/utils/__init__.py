"""
Utility helpers for peerscope.

This package provides reusable utilities used across peerscope, including:

- Logging configuration and retrieval
- Filesystem safety helpers
- Async HTTP client, rate-limit gate and retry policy
- Package name validation
- npm version and range helpers

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from peerscope.utils.filesystem import remove_file, safe_read_file, safe_write_file

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from peerscope.utils.logger import (
    PackageLogAdapter,
    disable_logging,
    get_logger,
    is_logging_configured,
    setup_logging,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from peerscope.utils.http import HTTPClient, RateLimitGate, parse_retry_after
from peerscope.utils.retry import RetryPolicy, exponential_backoff, is_transient_error

# ---------------------------------------------------------------------------
# Validation and version utilities
# ---------------------------------------------------------------------------

from peerscope.utils.validation import validate_package_batch, validate_package_name
from peerscope.utils.version_utils import max_satisfying, parse_range, satisfies

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "disable_logging",
    "is_logging_configured",
    "PackageLogAdapter",
    # Filesystem
    "safe_read_file",
    "safe_write_file",
    "remove_file",
    # HTTP
    "HTTPClient",
    "RateLimitGate",
    "parse_retry_after",
    "RetryPolicy",
    "exponential_backoff",
    "is_transient_error",
    # Validation
    "validate_package_name",
    "validate_package_batch",
    # Versions
    "parse_range",
    "satisfies",
    "max_satisfying",
]
