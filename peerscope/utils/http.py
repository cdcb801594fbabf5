"""
HTTP client utilities for peerscope.

This module provides an asynchronous HTTP client with a pluggable retry
policy, a shared rate-limit gate, a ceiling on in-flight requests, optional
proxy routing and registry-specific error mapping.

Failure mapping:

- ``404`` raises :class:`~peerscope.exceptions.PackageNotFoundError` at once.
- ``429`` arms the :class:`RateLimitGate` for the advertised ``Retry-After``
  and retries; every request sharing the gate waits too.
- Timeouts, connection errors and ``5xx`` are retried according to the
  :class:`~peerscope.utils.retry.RetryPolicy`; when the budget is spent an
  :class:`~peerscope.exceptions.ExhaustedRetriesError` is raised.
- Any other ``4xx`` raises :class:`~peerscope.exceptions.NetworkError`.
"""

from __future__ import annotations

import math
import time
import httpx
import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional, cast

from peerscope.utils.logger import get_logger
from peerscope.__version__ import __version__
from peerscope.utils.retry import RetryPolicy
from peerscope.exceptions import (
    ExhaustedRetriesError,
    NetworkError,
    PackageNotFoundError,
    ParseError,
    RateLimitedError,
    TransientNetworkError,
)
from peerscope.constants import (
    DEFAULT_MAX_CONCURRENT_REQUESTS,
    DEFAULT_MAX_RATE_LIMIT_RETRIES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_AFTER,
    DEFAULT_TIMEOUT,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[Any]]


def parse_retry_after(
    value: Optional[str],
    *,
    default: float = DEFAULT_RETRY_AFTER,
    now: Optional[datetime] = None,
) -> float:
    """Convert a ``Retry-After`` header into seconds.

    Both forms allowed by RFC 9110 are accepted: delay-seconds (``"5"``)
    and an HTTP-date. Missing or garbled values fall back to *default*.

    Examples:
        >>> parse_retry_after("5")
        5.0
        >>> parse_retry_after(None)
        1.0
    """
    if value is None:
        return default

    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        # "inf" would block the gate forever and "nan" would never arm it
        if not math.isfinite(seconds):
            return default
        return max(seconds, 0.0)

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    reference = now or datetime.now(timezone.utc)
    return max((when - reference).total_seconds(), 0.0)


class RateLimitGate:
    """Shared cool-down signal for every request that goes through it.

    Once a 429 is observed, :meth:`arm` pushes the reset time forward and
    every subsequent :meth:`wait` (from any coroutine) blocks until it has
    passed. The reset time never moves backwards.

    Args:
        clock: Monotonic time source.
        sleep: Awaitable sleep used while blocked.
    """

    def __init__(
        self,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._reset_at: float = 0.0

    @property
    def remaining(self) -> float:
        """Seconds left before the gate opens (``0.0`` when open)."""
        return max(self._reset_at - self._clock(), 0.0)

    @property
    def is_blocked(self) -> bool:
        return self.remaining > 0

    def arm(self, seconds: float) -> None:
        """Block all requests for *seconds* from now."""
        reset_at = self._clock() + max(seconds, 0.0)
        if reset_at > self._reset_at:
            self._reset_at = reset_at
            logger.debug("Rate-limit gate armed for %.2fs", seconds)

    async def wait(self) -> None:
        """Suspend until the gate is open."""
        # Re-check after sleeping: another 429 may have extended the reset
        while True:
            remaining = self._reset_at - self._clock()
            if remaining <= 0:
                return
            await self._sleep(remaining)


class HTTPClient:
    """Asynchronous HTTP client with retries, rate limiting, and concurrency control.

    Args:
        timeout: Per-request deadline in seconds, covering connect, send
            and the full response body. On expiry the request is cancelled
            and the attempt counts as a transient failure.
        max_retries: Retries after the first attempt; ignored when
            *retry_policy* is given.
        retry_policy: Explicit retry policy.
        rate_limit_gate: Gate shared with other clients; a private one is
            created when omitted.
        verify_ssl: Whether to verify SSL certificates.
        user_agent: Custom User-Agent header value.
        max_concurrency: Maximum number of concurrent requests.
        proxy: Outbound proxy URL (``http://host:port``). HTTPS targets
            are tunnelled through it with ``CONNECT``.
        max_rate_limit_retries: Consecutive 429 answers tolerated per request.

    Example:
        >>> async with HTTPClient(timeout=5) as client:
        ...     data = await client.get_json("https://registry.npmjs.org/rxjs")
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limit_gate: Optional[RateLimitGate] = None,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        proxy: Optional[str] = None,
        max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES,
    ) -> None:
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy.from_retries(max_retries)
        self.rate_limit_gate = rate_limit_gate or RateLimitGate()
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.max_concurrency = max_concurrency
        self.proxy = proxy
        self.max_rate_limit_retries = max_rate_limit_retries

        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight: int = 0
        self.peak_in_flight: int = 0

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    @property
    def in_flight(self) -> int:
        """Number of requests currently holding a concurrency slot."""
        return self._in_flight

    async def _ensure_client(self) -> None:
        """Initialize the underlying httpx client if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                proxy=self.proxy,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                },
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Take a concurrency slot, wait for the gate and send one request.

        The gate is checked once the slot is held, so a request queued on
        the semaphore still honours a 429 seen while it was waiting.
        """
        assert self._client is not None

        async with self._semaphore:
            await self.rate_limit_gate.wait()

            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                # httpx applies the timeout per phase; this bounds the whole request
                return await asyncio.wait_for(
                    self._client.request(method, url, **kwargs),
                    timeout=self.timeout,
                )
            finally:
                self._in_flight -= 1

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request, applying the retry policy and rate-limit gate."""
        await self._ensure_client()

        clean_url = url.strip().strip("\"'")
        policy = self.retry_policy
        attempt = 0
        rate_limited = 0
        last_exc: Optional[BaseException] = None

        while True:
            attempt += 1
            try:
                response = await self._send(method, clean_url, **kwargs)
            except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
                last_exc = TransientNetworkError(
                    f"Request timed out after {self.timeout}s",
                    url=clean_url,
                )
                last_exc.__cause__ = exc
                logger.warning(
                    "Request timeout (%d/%d): %s",
                    attempt,
                    policy.max_attempts,
                    clean_url,
                )
            except httpx.TransportError as exc:
                last_exc = TransientNetworkError(
                    f"Connection failed: {exc}",
                    url=clean_url,
                )
                last_exc.__cause__ = exc
                logger.warning(
                    "Network error (%d/%d): %s",
                    attempt,
                    policy.max_attempts,
                    exc,
                )
            else:
                status = response.status_code

                if status == 429:
                    rate_limited += 1
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    if rate_limited > self.max_rate_limit_retries:
                        raise RateLimitedError(
                            f"Rate limit exceeded after {self.max_rate_limit_retries} retries",
                            url=clean_url,
                            status_code=429,
                            retry_after=retry_after,
                        )
                    logger.warning(
                        "Rate limited (429), pausing all requests for %.1fs (%d/%d)",
                        retry_after,
                        rate_limited,
                        self.max_rate_limit_retries,
                    )
                    self.rate_limit_gate.arm(retry_after)
                    # Waiting out a 429 does not consume the retry budget
                    attempt -= 1
                    continue

                if status == 404:
                    raise PackageNotFoundError(
                        f"Resource not found: {clean_url}",
                        url=clean_url,
                        status_code=404,
                    )

                if status >= 500:
                    last_exc = TransientNetworkError(
                        f"Server error {status}",
                        url=clean_url,
                        status_code=status,
                    )
                    logger.warning(
                        "HTTP %d error (%d/%d): %s",
                        status,
                        attempt,
                        policy.max_attempts,
                        clean_url,
                    )
                elif status >= 400:
                    raise NetworkError(
                        f"HTTP {status} error for {clean_url}",
                        url=clean_url,
                        status_code=status,
                        response_body=response.text,
                    )
                else:
                    return response

            if not policy.should_retry(last_exc, attempt):
                break

            delay = policy.delay_for(attempt)
            logger.debug("Retrying in %.2fs", delay)
            await asyncio.sleep(delay)

        if not policy.is_retryable(last_exc):
            raise last_exc

        raise ExhaustedRetriesError(
            f"Request failed after {attempt} attempts: {clean_url}",
            url=clean_url,
            attempts=attempt,
            last_error=last_exc,
        ) from last_exc

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Perform a GET request with retry logic."""
        return await self._request_with_retry("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Fetch a URL and parse the response as a JSON object.

        Raises:
            ParseError: The body is not JSON or not a JSON object.
        """
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(
                f"Invalid JSON response from {url}",
                source=url,
            ) from exc

        if not isinstance(data, dict):
            raise ParseError(
                f"Expected JSON object from {url}",
                source=url,
            )

        return cast(Dict[str, Any], data)
