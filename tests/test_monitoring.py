"""Tests for the monitoring module."""

import unittest
from unittest.mock import patch

from rank_sampler.monitoring.metrics import PrometheusExporter, RequestTimer


class TestPrometheusExporter(unittest.TestCase):
    """Test cases for the PrometheusExporter class."""

    def setUp(self):
        """Set up test environment."""
        self.exporter = PrometheusExporter()

    def test_init(self):
        """Test initialization of the exporter."""
        self.assertEqual(self.exporter.port, 8000)
        self.assertFalse(self.exporter.server_started)

    def test_record_samples_emitted(self):
        """Test recording emitted samples."""
        with patch("rank_sampler.monitoring.metrics.SAMPLES_EMITTED") as mock_counter:
            self.exporter.record_samples_emitted(3)

            mock_counter.inc.assert_called_once_with(3)

    def test_record_fetch_operation(self):
        """Test recording fetch operations."""
        with patch("rank_sampler.monitoring.metrics.FETCH_OPERATIONS") as mock_counter:
            self.exporter.record_fetch_operation("item")

            mock_counter.labels.assert_called_once_with(operation_type="item")
            mock_counter.labels.return_value.inc.assert_called_once()

    def test_record_item_error(self):
        """Test recording failed item fetches."""
        with patch("rank_sampler.monitoring.metrics.ITEM_ERRORS") as mock_counter:
            self.exporter.record_item_error("5xx")

            mock_counter.labels.assert_called_once_with(error_type="5xx")
            mock_counter.labels.return_value.inc.assert_called_once()

    def test_record_round(self):
        """Test a completed round records its duration and an aborted one does not."""
        with patch("rank_sampler.monitoring.metrics.ROUNDS") as mock_rounds, \
                patch("rank_sampler.monitoring.metrics.ROUND_DURATION") as mock_duration:
            self.exporter.record_round("completed", 1.5)
            self.exporter.record_round("aborted")

            mock_rounds.labels.assert_any_call(status="completed")
            mock_rounds.labels.assert_any_call(status="aborted")
            mock_duration.observe.assert_called_once_with(1.5)

    def test_record_evictions_ignores_zero(self):
        """Test a round without evictions leaves the counter alone."""
        with patch("rank_sampler.monitoring.metrics.EVICTIONS") as mock_counter:
            self.exporter.record_evictions(0)
            mock_counter.inc.assert_not_called()

            self.exporter.record_evictions(2)
            mock_counter.inc.assert_called_once_with(2)

    def test_gauges(self):
        """Test the gauges are set to the given values."""
        with patch("rank_sampler.monitoring.metrics.WATCHLIST_SIZE") as mock_size, \
                patch("rank_sampler.monitoring.metrics.CONSECUTIVE_FAILED_ROUNDS") as mock_failed:
            self.exporter.set_watchlist_size(120)
            self.exporter.set_consecutive_failed_rounds(2)

            mock_size.set.assert_called_once_with(120)
            mock_failed.set.assert_called_once_with(2)

    def test_start_server(self):
        """Test starting the Prometheus server."""
        with patch("rank_sampler.monitoring.metrics.start_http_server") as mock_start_server:
            self.exporter.start_server()
            self.exporter.start_server()

            mock_start_server.assert_called_once_with(8000)
            self.assertTrue(self.exporter.server_started)

    def test_start_server_port_in_use(self):
        """Test a failed server start is logged, not raised."""
        with patch("rank_sampler.monitoring.metrics.start_http_server", side_effect=OSError("in use")):
            with self.assertLogs("rank_sampler.monitoring.metrics", level="ERROR"):
                self.exporter.start_server()

        self.assertFalse(self.exporter.server_started)

    def test_time_request(self):
        """Test the request timer observes the elapsed time."""
        with patch("rank_sampler.monitoring.metrics.REQUEST_DURATION") as mock_histogram:
            timer = self.exporter.time_request()
            self.assertIsInstance(timer, RequestTimer)

            with timer:
                pass

            mock_histogram.observe.assert_called_once()
            self.assertGreaterEqual(mock_histogram.observe.call_args[0][0], 0)


if __name__ == "__main__":
    unittest.main()
