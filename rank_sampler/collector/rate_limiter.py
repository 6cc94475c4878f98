"""Rate limiting functionality for source API requests."""

import asyncio
import logging
import time
from typing import Optional

from rank_sampler.config import RateLimitConfig

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rate limiter for source API requests.

    Optionally spaces requests evenly (``max_requests_per_minute``) and backs off
    globally after a 429 response, so concurrent item fetches do not keep
    hammering an API that already asked us to slow down.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Set up request spacing from the configured per-minute limit.

        Args:
            config: Rate limit section of the sampler configuration
        """
        self.config = config
        self.reset_timestamp: Optional[float] = None
        self.last_request_time = 0.0
        self._lock = asyncio.Lock()

        if self.config.max_requests_per_minute > 0:
            self.min_interval = 60.0 / self.config.max_requests_per_minute
        else:
            self.min_interval = 0.0

    async def pre_request(self) -> None:
        """
        Wait until the next request is allowed.

        This should be called before each source API request.
        """
        # Waiting callers queue on the lock so spacing holds under concurrency
        async with self._lock:
            if self.min_interval > 0:
                elapsed = time.time() - self.last_request_time
                if elapsed < self.min_interval:
                    await asyncio.sleep(self.min_interval - elapsed)

            if self.reset_timestamp is not None:
                wait_time = self.reset_timestamp - time.time()
                if wait_time > 0:
                    logger.info(f"Rate limited by source API, sleeping for {wait_time:.2f}s")
                    await asyncio.sleep(wait_time)
                self.reset_timestamp = None

            self.last_request_time = time.time()

    async def handle_429(self, retry_after: Optional[str] = None) -> None:
        """
        Wait out a 429 from the feed API and hold back every other request meanwhile.

        Args:
            retry_after: Retry-After header value (seconds), if the API sent one
        """
        if retry_after:
            try:
                wait_seconds = float(retry_after)
            except (ValueError, TypeError):
                wait_seconds = 60.0
        else:
            wait_seconds = 60.0

        wait_seconds += self.config.sleep_buffer_sec

        logger.warning(f"Rate limited (429). Waiting for {wait_seconds:.2f}s before retrying.")
        self.reset_timestamp = time.time() + wait_seconds
        await asyncio.sleep(wait_seconds)
