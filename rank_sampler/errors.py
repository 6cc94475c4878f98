"""Exception types raised while sampling the feed."""

from typing import Optional


class SamplerError(Exception):
    """Base class for sampler errors."""


class TransportError(SamplerError):
    """A request failed at the network or HTTP layer."""

    def __init__(self, url: str, message: str, status: Optional[int] = None, retry_after: Optional[str] = None):
        self.url = url
        self.status = status
        self.retry_after = retry_after
        detail = f"HTTP {status}: {message}" if status is not None else message
        super().__init__(f"GET {url} failed ({detail})")

    @property
    def is_server_error(self) -> bool:
        return self.status is not None and 500 <= self.status < 600

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429


class ParseError(SamplerError):
    """A response body was not valid JSON or had an unexpected shape."""

    def __init__(self, url: str, message: str, submission_time: Optional[int] = None):
        self.url = url
        # Item payloads that fail validation may still carry a usable "time"
        self.submission_time = submission_time
        super().__init__(f"Unexpected response from {url}: {message}")


class AggregationError(SamplerError):
    """A category list could not be fetched, so the whole round is abandoned."""

    def __init__(self, category: str, cause: BaseException):
        self.category = category
        self.cause = cause
        super().__init__(f"Failed to fetch category '{category}': {cause}")


class ItemSampleError(SamplerError):
    """A single item's detail fetch failed. Isolated to that item."""

    def __init__(self, item_id: int, cause: BaseException):
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"Failed to sample item {item_id}: {cause}")

    @property
    def submission_time(self) -> Optional[int]:
        """Submission time reported by the failed payload, if it had one."""
        return getattr(self.cause, "submission_time", None)

    @property
    def error_type(self) -> str:
        """Short label for metrics."""
        if isinstance(self.cause, TransportError):
            if self.cause.status is None:
                return "transport"
            return "5xx" if self.cause.is_server_error else str(self.cause.status)
        if isinstance(self.cause, ParseError):
            return "parse"
        return type(self.cause).__name__


class DataQualityAnomaly(SamplerError):
    """
    A sample whose values contradict each other.

    Only ever logged; the sample itself is emitted unchanged.
    """

    def __init__(self, item_id: int, message: str):
        self.item_id = item_id
        super().__init__(f"Data quality anomaly for item {item_id}: {message}")
