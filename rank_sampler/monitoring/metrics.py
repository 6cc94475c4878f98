"""Prometheus metrics for monitoring the sampler."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

SAMPLES_EMITTED = Counter(
    "rank_sampler_samples_emitted_total",
    "Total number of samples written to the output",
)

FETCH_OPERATIONS = Counter(
    "rank_sampler_fetch_operations_total",
    "Number of fetch operations performed",
    ["operation_type"],
)

ITEM_ERRORS = Counter(
    "rank_sampler_item_errors_total",
    "Number of item fetches that failed",
    ["error_type"],
)

ROUNDS = Counter(
    "rank_sampler_rounds_total",
    "Number of sampling rounds by outcome",
    ["status"],
)

EVICTIONS = Counter(
    "rank_sampler_evictions_total",
    "Number of items evicted from the watchlist for exceeding the max age",
)

DATA_QUALITY_ANOMALIES = Counter(
    "rank_sampler_data_quality_anomalies_total",
    "Number of samples with inconsistent values",
)

WATCHLIST_SIZE = Gauge(
    "rank_sampler_watchlist_size",
    "Number of items sampled in the latest round",
)

CONSECUTIVE_FAILED_ROUNDS = Gauge(
    "rank_sampler_consecutive_failed_rounds",
    "Number of consecutive rounds abandoned because a category fetch failed",
)

REQUEST_DURATION = Histogram(
    "rank_sampler_request_duration_seconds",
    "Duration of API requests in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ROUND_DURATION = Histogram(
    "rank_sampler_round_duration_seconds",
    "Duration of sampling rounds in seconds",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the sampler."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_samples_emitted(self, count: int = 1) -> None:
        SAMPLES_EMITTED.inc(count)

    def record_fetch_operation(self, operation_type: str) -> None:
        """
        Record a fetch operation.

        Args:
            operation_type: Type of fetch operation ('list' or 'item')
        """
        FETCH_OPERATIONS.labels(operation_type=operation_type).inc()

    def record_item_error(self, error_type: str) -> None:
        """
        Record a failed item fetch.

        Args:
            error_type: Type of failure (e.g., '5xx', '404', 'transport', 'parse')
        """
        ITEM_ERRORS.labels(error_type=error_type).inc()

    def record_round(self, status: str, duration_seconds: Optional[float] = None) -> None:
        """
        Record a finished round.

        Args:
            status: 'completed' or 'aborted'
            duration_seconds: Round duration, if it ran to completion
        """
        ROUNDS.labels(status=status).inc()
        if duration_seconds is not None:
            ROUND_DURATION.observe(duration_seconds)

    def record_evictions(self, count: int) -> None:
        if count > 0:
            EVICTIONS.inc(count)

    def record_data_quality_anomaly(self) -> None:
        DATA_QUALITY_ANOMALIES.inc()

    def set_watchlist_size(self, count: int) -> None:
        WATCHLIST_SIZE.set(count)

    def set_consecutive_failed_rounds(self, count: int) -> None:
        CONSECUTIVE_FAILED_ROUNDS.set(count)

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing API requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing API requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            REQUEST_DURATION.observe(time.perf_counter() - self.start_time)
