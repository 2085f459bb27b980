"""Retry-with-backoff wrapper for remote I/O, built on tenacity.

Only errors that ``RetryPolicy.retryable`` accepts are retried (timeouts,
connection resets, HTTP 5xx and 429). Everything else propagates on the
first attempt. When attempts run out the last error is re-raised as is, so
callers always see the original cause.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from .errors import NotionAPIError

T = TypeVar("T")
logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset(
    {"rate_limited", "internal_server_error", "service_unavailable"}
)


def is_retryable(error: BaseException) -> bool:
    """Return ``True`` for transient errors worth another attempt."""
    if isinstance(error, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(error, NotionAPIError):
        return (
            error.status >= 500
            or error.status == 429
            or error.code in RETRYABLE_CODES
        )
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for ``with_retry``.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay: Seconds to wait before the second attempt.
        max_delay: Upper bound for any single wait.
        backoff_multiplier: Growth factor between waits.
        jitter_ratio: Each wait is scaled by a random factor in
            ``[1 - jitter_ratio, 1 + jitter_ratio]``.
        retryable: Predicate deciding whether an error is retried.
    """

    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 15.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1
    retryable: Callable[[BaseException], bool] = field(
        default=is_retryable, compare=False
    )

    def next_delay(
        self, delay: float, rng: Callable[[], float] = random.random
    ) -> float:
        """Compute the wait that follows *delay*."""
        jitter = (2 * rng() - 1) * self.jitter_ratio
        return min(
            self.max_delay,
            delay * self.backoff_multiplier * (1 + jitter),
        )


DEFAULT_POLICY = RetryPolicy()


class wait_jittered_backoff(wait_base):
    """tenacity wait strategy following ``RetryPolicy.next_delay``.

    The first wait is ``initial_delay`` (capped at ``max_delay``); each
    later wait grows from the previous one. Stateful, so build one per
    ``Retrying`` run.
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy
        self._delay = policy.initial_delay

    def __call__(self, retry_state) -> float:
        wait = min(self._delay, self.policy.max_delay)
        self._delay = self.policy.next_delay(self._delay)
        return wait


def _sleep(seconds: float) -> None:
    # Resolved per call so tests can patch time.sleep
    time.sleep(seconds)


def build_retrying(
    policy: RetryPolicy = DEFAULT_POLICY,
    sleep: Callable[[float], None] | None = None,
) -> Retrying:
    """Return a fresh ``tenacity.Retrying`` configured from *policy*."""
    return Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_jittered_backoff(policy),
        retry=retry_if_exception(policy.retryable),
        reraise=True,
        sleep=sleep or _sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def with_retry(
    operation: Callable[..., T],
    policy: RetryPolicy = DEFAULT_POLICY,
    *args: Any,
    sleep: Callable[[float], None] | None = None,
    **kwargs: Any,
) -> T:
    """Call ``operation(*args, **kwargs)``, retrying transient failures.

    Args:
        operation: Callable performing one remote request.
        policy: Backoff parameters.
        *args: Positional arguments for *operation*.
        sleep: Sleep function (injectable for tests).
        **kwargs: Keyword arguments for *operation*.

    Returns:
        Whatever *operation* returns.

    Raises:
        Exception: The first non-retryable error, or the last retryable
            error once ``policy.max_attempts`` is exhausted.
    """
    retryer = build_retrying(policy, sleep)
    try:
        return retryer(operation, *args, **kwargs)
    except Exception as exc:
        attempts = retryer.statistics.get("attempt_number", 1)
        if attempts > 1:
            logger.error("Giving up after %d attempts: %s", attempts, exc)
        raise


def retrying(
    policy: RetryPolicy = DEFAULT_POLICY,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of ``with_retry``.

    Example:
        @retrying(RetryPolicy(max_attempts=3))
        def fetch(url): ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return with_retry(func, policy, *args, **kwargs)

        return wrapper

    return decorator
