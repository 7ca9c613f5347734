"""
Resilience patterns for source page fetching.

This module provides:
1. Circuit Breaker - Fail fast on a host after consecutive failures
2. Retry - Exponential backoff with jitter for transient errors

Usage:
    from twstocks.services.data_providers.resilience import (
        CircuitBreaker,
        retry_async,
    )

    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="www.twse.com.tw")

    async def fetch_page():
        await breaker.guard()  # Raises CircuitOpenError if open
        try:
            result = await retry_async(do_fetch, max_attempts=3)
            breaker.record_success()
            return result
        except Exception as e:
            breaker.record_failure(e)
            raise
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from twstocks.core.logging import get_logger


logger = get_logger("resilience")

T = TypeVar("T")


# =============================================================================
# Exceptions
# =============================================================================


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open and blocking calls."""

    def __init__(self, name: str, message: str = "Circuit breaker is open"):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"All {attempts} retry attempts exhausted"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Letting a probe through


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for one upstream host.

    States:
    - CLOSED: Normal operation, counting consecutive failures
    - OPEN: After threshold failures, block all calls
    - HALF_OPEN: After recovery timeout, allow a probe request

    Args:
        failure_threshold: Consecutive failures before opening
        recovery_timeout: Seconds to wait before probing
        name: Identifier for logging
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    name: str = "circuit"

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)

    @property
    def state(self) -> CircuitState:
        """Current circuit state (may transition from OPEN to HALF_OPEN)."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    async def guard(self) -> None:
        """Raise CircuitOpenError while the circuit is open."""
        state = self.state

        if state == CircuitState.OPEN:
            remaining = self.recovery_timeout - (time.monotonic() - (self._last_failure_time or 0))
            raise CircuitOpenError(
                self.name,
                f"Circuit open after {self._failure_count} failures, retry in {remaining:.1f}s",
            )

        if state == CircuitState.HALF_OPEN:
            logger.info(f"[{self.name}] Circuit half-open, allowing probe request")

    def record_success(self) -> None:
        """Record a successful call, reset failure count."""
        if self._state != CircuitState.CLOSED:
            logger.info(f"[{self.name}] Circuit closed after successful recovery")

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None

    def record_failure(self, error: Exception | None = None) -> None:
        """Record a failed call. Opens circuit after threshold failures."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    f"[{self.name}] Circuit OPEN after {self._failure_count} failures: {error}"
                )
            self._state = CircuitState.OPEN
        else:
            logger.debug(f"[{self.name}] Failure {self._failure_count}/{self.failure_threshold}")

    def reset(self) -> None:
        """Force reset to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
        }


class CircuitRegistry:
    """Lazily created circuit breakers, one per key (host)."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, key: str) -> CircuitBreaker:
        if key not in self._breakers:
            self._breakers[key] = CircuitBreaker(
                failure_threshold=self._failure_threshold,
                recovery_timeout=self._recovery_timeout,
                name=key,
            )
        return self._breakers[key]

    def get_stats(self) -> list[dict[str, Any]]:
        return [breaker.get_stats() for breaker in self._breakers.values()]


# =============================================================================
# Retry with Exponential Backoff
# =============================================================================

DEFAULT_RETRY_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: float = 0.5,
) -> float:
    """Delay before the retry following ``attempt`` (1-based)."""
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter > 0:
        delay *= 1 + (random.random() - 0.5) * 2 * jitter
    return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: float = 0.5,
    retry_on: tuple[type[Exception], ...] = DEFAULT_RETRY_EXCEPTIONS,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async callable to retry
        max_attempts: Maximum attempts (1 = single attempt)
        base_delay: Initial delay
        max_delay: Max delay cap
        exponential_base: Exponential growth base
        jitter: Jitter factor (0.5 = +/-50% of delay)
        retry_on: Exceptions to retry on

    Returns:
        Result from successful func call

    Raises:
        RetryExhaustedError: If all attempts fail with a retryable error
    """
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            last_error = e

            if attempt >= max_attempts:
                raise RetryExhaustedError(max_attempts, last_error) from e

            delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
            logger.debug(f"Retry {attempt}/{max_attempts} after {delay:.2f}s: {e}")
            await asyncio.sleep(delay)

    raise RetryExhaustedError(max_attempts, last_error)
