"""Error handling and retry logic for source API requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

from rank_sampler.collector.rate_limiter import RateLimiter
from rank_sampler.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]


class ConsecutiveErrorTracker:
    """Tracker for consecutive failed rounds with threshold checking."""

    def __init__(self, threshold: int, prometheus_exporter=None):
        """
        Track consecutive rounds abandoned by a category fetch failure.

        Args:
            threshold: Number of consecutive failures that triggers a critical log
            prometheus_exporter: Optional exporter for the failed-rounds gauge
        """
        self.threshold = threshold
        self.consecutive_errors = 0
        self.prometheus_exporter = prometheus_exporter

    def record_error(self) -> None:
        """Record a failure and increment the counter."""
        self.consecutive_errors += 1
        logger.warning(f"Consecutive failed rounds: {self.consecutive_errors}/{self.threshold}")

        if self.threshold_reached():
            logger.critical(
                f"{self.consecutive_errors} consecutive rounds failed, "
                f"source API may be down; still retrying every tick"
            )

        if self.prometheus_exporter:
            self.prometheus_exporter.set_consecutive_failed_rounds(self.consecutive_errors)

    def record_success(self) -> None:
        """Record a successful round, resetting the consecutive error count."""
        if self.consecutive_errors > 0:
            logger.info(f"Resetting consecutive failure counter (was {self.consecutive_errors})")
            self.consecutive_errors = 0

            if self.prometheus_exporter:
                self.prometheus_exporter.set_consecutive_failed_rounds(0)

    def threshold_reached(self) -> bool:
        """
        Check whether the failure threshold has been reached.

        Returns:
            True if the failure threshold has been reached
        """
        return self.consecutive_errors >= self.threshold


def with_exponential_backoff(
    max_retries: int = 2,
    initial_backoff: float = 0.5,
    max_backoff: float = 8.0,
    backoff_factor: float = 2.0,
    max_rate_limit_waits: int = 3,
    rate_limiter: Optional[RateLimiter] = None,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async requests with exponential backoff.

    Retries server errors (5xx) and network failures (no status, including
    timeouts). A 429 waits on the rate limiter and is retried without using up
    an attempt, up to ``max_rate_limit_waits`` times. Other HTTP errors and
    parse errors are raised immediately.

    Args:
        max_retries: Retries after the first attempt (5xx and network errors)
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries
        max_rate_limit_waits: How many 429 responses to wait out before giving up
        rate_limiter: Shared limiter that waits out 429 responses

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = 0
            rate_limit_waits = 0
            backoff = initial_backoff

            while True:
                try:
                    return await func(*args, **kwargs)

                except TransportError as e:
                    if e.is_rate_limited and rate_limiter and rate_limit_waits < max_rate_limit_waits:
                        await rate_limiter.handle_429(e.retry_after)
                        rate_limit_waits += 1
                        continue

                    if e.status is not None and not e.is_server_error:
                        raise

                    if retries >= max_retries:
                        logger.debug(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    logger.debug(f"{e}. Retrying in {backoff:.2f}s ({retries + 1}/{max_retries})")
                    await asyncio.sleep(backoff)
                    retries += 1
                    backoff = min(backoff * backoff_factor, max_backoff)

        return cast(AsyncFunc[T], wrapper)
    return decorator
