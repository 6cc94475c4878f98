"""Source API client: GET a URL, return parsed JSON or fail."""

import asyncio
import json
import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

import aiohttp

from rank_sampler.collector.error_handler import with_exponential_backoff
from rank_sampler.collector.rate_limiter import RateLimiter
from rank_sampler.config import ApiConfig, RateLimitConfig
from rank_sampler.errors import ParseError, TransportError
from rank_sampler.models.mapping import parse_id_list, parse_item
from rank_sampler.models.sample import ApiItem

logger = logging.getLogger(__name__)


class FeedApiClient:
    """Async client for the read-only ranked feed API."""

    def __init__(
        self,
        api_config: ApiConfig,
        categories: Dict[str, str],
        rate_limiter: Optional[RateLimiter] = None,
        retry_config: Optional[RateLimitConfig] = None,
        prometheus_exporter=None,
    ):
        """
        Initialize the client.

        Args:
            api_config: Base URL, item path, timeout and user agent
            categories: Category name -> list endpoint path relative to the base URL
            rate_limiter: Optional shared rate limiter
            retry_config: Retry settings (defaults apply when omitted)
            prometheus_exporter: Optional Prometheus metrics exporter
        """
        self.config = api_config
        self.categories = dict(categories)
        self.rate_limiter = rate_limiter
        self.prometheus_exporter = prometheus_exporter
        self._session: Optional[aiohttp.ClientSession] = None

        retry_config = retry_config or RateLimitConfig()
        self._get_json = with_exponential_backoff(
            max_retries=retry_config.max_retries,
            initial_backoff=retry_config.initial_backoff_sec,
            rate_limiter=rate_limiter,
        )(self._get_json_once)

    async def __aenter__(self) -> "FeedApiClient":
        await self.initialize()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def initialize(self) -> aiohttp.ClientSession:
        """Open the HTTP session if it is not open yet."""
        if self._session is None or self._session.closed:
            logger.debug(f"Opening HTTP session for {self.config.base_url}")
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session and release resources."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def url_for(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def category_url(self, category: str) -> str:
        if category not in self.categories:
            raise KeyError(f"Unknown category: {category}")
        return self.url_for(self.categories[category])

    def item_url(self, item_id: int) -> str:
        return self.url_for(self.config.item_path.format(id=item_id))

    async def _get_json_once(self, url: str) -> Any:
        """
        Perform one GET request.

        Raises:
            TransportError: On network errors, timeouts and non-2xx statuses
            ParseError: If the body is not valid JSON
        """
        session = await self.initialize()

        if self.rate_limiter:
            await self.rate_limiter.pre_request()

        timer = self.prometheus_exporter.time_request() if self.prometheus_exporter else nullcontext()
        try:
            with timer:
                async with session.get(url) as response:
                    if response.status >= 400:
                        raise TransportError(
                            url,
                            response.reason or "error response",
                            status=response.status,
                            retry_after=response.headers.get("Retry-After"),
                        )
                    body = await response.read()
        except asyncio.TimeoutError as e:
            raise TransportError(url, "request timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(url, str(e) or type(e).__name__) from e

        try:
            return json.loads(body.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ParseError(url, f"body is not valid UTF-8 ({e})") from e
        except ValueError as e:
            raise ParseError(url, f"invalid JSON ({e})") from e

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body, retrying transient failures."""
        return await self._get_json(url)

    async def get_list(self, category: str) -> List[int]:
        """
        Fetch the ordered ID list of one category.

        Args:
            category: Configured category name

        Returns:
            Item IDs in ranked order
        """
        url = self.category_url(category)
        if self.prometheus_exporter:
            self.prometheus_exporter.record_fetch_operation("list")
        payload = await self.get_json(url)
        return parse_id_list(payload, url)

    async def get_item(self, item_id: int) -> ApiItem:
        """
        Fetch one item's detail record.

        Args:
            item_id: Item ID

        Returns:
            The validated item payload
        """
        url = self.item_url(item_id)
        if self.prometheus_exporter:
            self.prometheus_exporter.record_fetch_operation("item")
        payload = await self.get_json(url)
        return parse_item(payload, url)
