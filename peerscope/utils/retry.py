"""
Retry policy shared by every registry request.

A :class:`RetryPolicy` bundles three decisions: how many attempts a request
gets, how long to wait before attempt ``n + 1``, and which errors are worth
another attempt. :class:`~peerscope.utils.http.HTTPClient` consults it for
each failure instead of hard-coding its own loop rules.

Typical usage::

    policy = RetryPolicy(max_attempts=4, backoff=exponential_backoff(1.0, 30.0))
    if policy.should_retry(exc, attempt):
        await asyncio.sleep(policy.delay_for(attempt))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import httpx

from peerscope.constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_MAX_RETRIES,
)
from peerscope.exceptions import TransientNetworkError

#: Maps a 1-based attempt number to a delay in seconds.
BackoffFunction = Callable[[int], float]

#: Decides whether an error raised by an attempt should be retried.
RetryPredicate = Callable[[BaseException], bool]


def exponential_backoff(
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
) -> BackoffFunction:
    """Return ``attempt -> min(base * 2 ** (attempt - 1), cap)``.

    Example:
        >>> delay = exponential_backoff(1.0, 5.0)
        >>> [delay(n) for n in range(1, 6)]
        [1.0, 2.0, 4.0, 5.0, 5.0]
    """
    if base < 0 or cap < 0:
        raise ValueError("backoff base and cap must be non-negative")

    def _delay(attempt: int) -> float:
        exponent = max(attempt, 1) - 1
        # Cap before exponentiating huge attempt numbers
        if exponent >= 63:
            return float(cap)
        return float(min(base * (2**exponent), cap))

    return _delay


def is_transient_error(exc: BaseException) -> bool:
    """Timeouts, dropped connections and 5xx responses are transient."""
    if isinstance(exc, TransientNetworkError):
        return True
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget, backoff schedule and retryable-error predicate.

    Attributes:
        max_attempts: Total attempts including the first one (``>= 1``).
        backoff: Delay before the next attempt, given the attempt that failed.
        is_retryable: Predicate selecting errors worth another attempt.
    """

    max_attempts: int = DEFAULT_MAX_RETRIES + 1
    backoff: BackoffFunction = field(default_factory=exponential_backoff)
    is_retryable: RetryPredicate = is_transient_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_retries(
        cls,
        retries: int,
        *,
        base: float = DEFAULT_BACKOFF_BASE,
        cap: float = DEFAULT_BACKOFF_CAP,
    ) -> "RetryPolicy":
        """Build a policy from a retry count (attempts = retries + 1)."""
        return cls(
            max_attempts=max(retries, 0) + 1,
            backoff=exponential_backoff(base, cap),
        )

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """Return True if attempt number *attempt* failing with *exc* earns another try."""
        return attempt < self.max_attempts and self.is_retryable(exc)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after attempt number *attempt* failed."""
        return self.backoff(attempt)
