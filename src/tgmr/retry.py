"""Retry async operations with exponential backoff.

Failures are classified before any retry is attempted: an error is retryable
when it is an instance of one of the policy's `retryable_types`, or when its
message contains one of the `retryable_errors` substrings or matches one of
its compiled patterns. Anything else propagates on the first failure, so
permanent errors (bad URLs, oversized files) do not burn the attempt budget.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TypeVar

import anyio

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ErrorPattern = str | re.Pattern[str]

DEFAULT_RETRYABLE_ERRORS: tuple[ErrorPattern, ...] = (
    "Network request",
    "ETIMEDOUT",
    "ECONNRESET",
    "ECONNREFUSED",
    "socket hang up",
    "getaddrinfo",
)
DEFAULT_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    retryable_errors: tuple[ErrorPattern, ...] = DEFAULT_RETRYABLE_ERRORS
    retryable_types: tuple[type[BaseException], ...] = DEFAULT_RETRYABLE_TYPES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_factor <= 1:
            raise ValueError("backoff_factor must be > 1")

    def with_overrides(self, **changes: object) -> RetryPolicy:
        return replace(self, **changes)

    def delays(self) -> list[float]:
        """Waits between attempts, in order (one fewer than `max_attempts`)."""
        out: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            out.append(delay)
            delay = min(delay * self.backoff_factor, self.max_delay)
        return out


DEFAULT_RETRY_POLICY = RetryPolicy()


def error_message(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


def _matches(pattern: ErrorPattern, message: str) -> bool:
    if isinstance(pattern, str):
        return pattern in message
    return pattern.search(message) is not None


def is_retryable(exc: BaseException, policy: RetryPolicy) -> bool:
    if policy.retryable_types and isinstance(exc, policy.retryable_types):
        return True
    message = error_message(exc)
    return any(_matches(pattern, message) for pattern in policy.retryable_errors)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], Awaitable[object]] = anyio.sleep,
    name: str | None = None,
) -> T:
    label = name or getattr(operation, "__name__", "operation")
    delay = policy.initial_delay
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc, policy):
                raise
            if attempt >= policy.max_attempts:
                logger.warning(
                    "retry.exhausted",
                    operation=label,
                    attempts=attempt,
                    error=error_message(exc),
                )
                raise
            logger.warning(
                "retry.scheduled",
                operation=label,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_s=delay,
                error=error_message(exc),
            )
        await sleep(delay)
        delay = min(delay * policy.backoff_factor, policy.max_delay)
        attempt += 1
