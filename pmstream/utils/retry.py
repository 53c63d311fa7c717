"""
Retry with exponential backoff, and a circuit breaker.

Guards the REST calls made around a feed: market discovery, API key
issuance and trade history. The WebSocket redial has its own fixed-delay
policy in ``pmstream.ws.reconnect``.
"""

from enum import Enum
import random
import time
import threading
from typing import Callable, TypeVar, Optional
import logging

from ..exceptions import (
    PolymarketError,
    APIError,
    TimeoutError,
    RateLimitError,
    CircuitBreakerError
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Blocks calls after repeated failures until a cool-down has passed.

    CLOSED counts consecutive failures and opens at ``failure_threshold``.
    OPEN rejects calls with CircuitBreakerError for ``timeout`` seconds,
    then lets one probe through (HALF_OPEN). A successful probe closes the
    breaker; a failed one reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        name: str = "default"
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name

        self._failures = 0
        self._opened_at: Optional[float] = None
        self._state = BreakerState.CLOSED
        self._lock = threading.Lock()

    def _set_state(self, state: BreakerState) -> None:
        if state != self._state:
            log = logger.warning if state == BreakerState.OPEN else logger.info
            log(f"Circuit breaker {self.name}: {self._state.value} -> {state.value}")
            self._state = state

    def _before_call(self) -> None:
        with self._lock:
            if self._state != BreakerState.OPEN:
                return
            remaining = self.timeout - (time.monotonic() - self._opened_at)
            if remaining > 0:
                raise CircuitBreakerError(
                    f"Circuit breaker {self.name} is OPEN ({remaining:.0f}s to retry)"
                )
            self._set_state(BreakerState.HALF_OPEN)

    def _record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._opened_at = time.monotonic()
                self._set_state(BreakerState.OPEN)

    def _record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._set_state(BreakerState.CLOSED)

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Run ``func`` unless the breaker is open.

        Raises:
            CircuitBreakerError: Breaker is open
        """
        self._before_call()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker closed."""
        with self._lock:
            self._failures = 0
            self._opened_at = None
            self._set_state(BreakerState.CLOSED)

    @property
    def state(self) -> str:
        return self._state.value

    @property
    def failures(self) -> int:
        return self._failures


class RetryStrategy:
    """
    Retries transient REST failures with capped exponential backoff.

    Retried: 5xx and bodiless API errors, timeouts, rate limits (waiting at
    least the server's Retry-After) and socket errors. Other 4xx responses,
    validation and auth failures, and an open circuit are raised at once.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize retry strategy.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry (seconds)
            max_delay: Upper bound on any single delay (seconds)
            exponential_base: Backoff multiplier
            jitter: Spread delays by up to 25% either way
            circuit_breaker: Optional breaker wrapped around every attempt
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.circuit_breaker = circuit_breaker

    def _calculate_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.75, 1.25)

        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.max_delay))
        return max(0.0, delay)

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(error, CircuitBreakerError):
            return False
        if isinstance(error, APIError) and error.status_code is not None:
            return error.status_code >= 500
        return isinstance(error, (APIError, TimeoutError, RateLimitError, OSError))

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call ``func`` until it succeeds or retries run out.

        Raises:
            The last error once it is not retryable or retries are exhausted
        """
        name = getattr(func, "__name__", repr(func))
        attempt = 0

        while True:
            try:
                if self.circuit_breaker:
                    return self.circuit_breaker.call(func, *args, **kwargs)
                return func(*args, **kwargs)
            except PolymarketError as e:
                error: Exception = e
            except OSError as e:
                error = e

            if not self._should_retry(error, attempt):
                if attempt and attempt >= self.max_retries:
                    logger.error(f"All {self.max_retries} retries exhausted for {name}")
                raise error

            delay = self._calculate_delay(attempt, error)
            attempt += 1
            logger.warning(
                f"Retry {attempt}/{self.max_retries} for {name} "
                f"after {type(error).__name__}: {error}. Waiting {delay:.2f}s"
            )
            time.sleep(delay)
