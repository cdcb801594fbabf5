"""
Custom exception hierarchy for peerscope.

This module defines structured exception types used across peerscope.
All exceptions inherit from :class:`PeerScopeError` and support optional
structured metadata via the ``details`` attribute to improve diagnostics
and logging.

Registry failures are split by how the client reacts to them:

- :class:`PackageNotFoundError`: terminal, never retried.
- :class:`RateLimitedError`: transient, retried after a mandatory wait.
- :class:`TransientNetworkError`: retried with exponential backoff.
- :class:`ExhaustedRetriesError`: every attempt failed.
"""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping, Optional


class PeerScopeError(Exception):
    """Base exception for all peerscope errors.

    Args:
        message: Human-readable error message.
        details: Optional structured metadata describing the error.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        # Internally normalize to a mutable dict
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        formatted = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({formatted})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Add a key to ``details`` only if ``value`` is not ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Truncate long text for safe logging or error reporting."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class ValidationError(PeerScopeError):
    """Raised when input is rejected before any I/O takes place.

    Args:
        message: Error description.
        value: The offending value (package name, batch, ...).
        field: Name of the input field that failed validation.
    """

    __slots__ = ("value", "field")

    def __init__(
        self,
        message: str,
        *,
        value: Optional[Any] = None,
        field: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "value", repr(value) if value is not None else None)
        _add_if(details, "field", field)

        super().__init__(message, details)

        self.value = value
        self.field = field


class ParseError(PeerScopeError):
    """Raised when registry metadata or a cache snapshot is malformed.

    Args:
        message: Error description.
        package_name: Package whose metadata could not be parsed.
        source: Where the data came from (URL or file path).
    """

    __slots__ = ("package_name", "source")

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "package", package_name)
        _add_if(details, "source", source)

        super().__init__(message, details)

        self.package_name = package_name
        self.source = source


class ConfigError(PeerScopeError):
    """Raised when a configuration file is unreadable or invalid.

    Args:
        message: Error description.
        config_path: Path of the configuration file.
        option: Offending option name, if a single option is at fault.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)

        super().__init__(message, details)

        self.config_path = config_path
        self.option = option


class FileOperationError(PeerScopeError):
    """Raised when file system operations fail.

    Args:
        message: Error description.
        file_path: Path to the file involved.
        operation: Operation being performed (read/write/delete).
        original_error: Original exception that triggered this error.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class NetworkError(PeerScopeError):
    """Raised when HTTP or network operations fail.

    Args:
        message: Error description.
        url: URL being accessed.
        status_code: HTTP status code, if available.
        response_body: Raw response body, truncated for safety.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class RegistryError(NetworkError):
    """Raised for failures related to the package registry.

    Args:
        message: Error description.
        package_name: Name of the package involved.
        **kwargs: Additional arguments forwarded to ``NetworkError``.
    """

    __slots__ = ("package_name",)

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.package_name = package_name
        if package_name is not None:
            self.details["package"] = package_name


class PackageNotFoundError(RegistryError):
    """The registry answered 404 for a package. Never retried."""


class RateLimitedError(RegistryError):
    """The registry kept answering 429 beyond the allowed number of waits.

    Args:
        message: Error description.
        retry_after: Last advertised cool-down in seconds.
        **kwargs: Additional arguments forwarded to ``RegistryError``.
    """

    __slots__ = ("retry_after",)

    def __init__(
        self,
        message: str,
        *,
        retry_after: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.retry_after = retry_after
        _add_if(self.details, "retry_after", retry_after)


class TransientNetworkError(RegistryError):
    """Timeout, connection failure or 5xx response. Eligible for retry."""


class ExhaustedRetriesError(RegistryError):
    """Raised after every retry attempt for a request has failed.

    Args:
        message: Error description.
        attempts: Number of attempts performed.
        last_error: The error raised by the final attempt.
        **kwargs: Additional arguments forwarded to ``RegistryError``.
    """

    __slots__ = ("attempts", "last_error")

    def __init__(
        self,
        message: str,
        *,
        attempts: Optional[int] = None,
        last_error: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.attempts = attempts
        self.last_error = last_error
        _add_if(self.details, "attempts", attempts)
