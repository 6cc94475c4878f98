"""Tests for the CLI module."""

import asyncio
import os
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import yaml
from typer.testing import CliRunner

from rank_sampler.cli import app, load_config, log_startup, run_sampler
from rank_sampler.config import Config


class TestCli(unittest.TestCase):
    """Test cases for the CLI interface."""

    def setUp(self):
        """Set up test environment."""
        self.runner = CliRunner()
        logging_patcher = patch("rank_sampler.cli.setup_logging")
        logging_patcher.start()
        self.addCleanup(logging_patcher.stop)

        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.temp_dir.name, "config.yaml")

        with open(self.config_path, "w", encoding="utf-8") as f:
            f.write("""
mode: discovery
sample_distance_sec: 60
max_age_hours: 48
max_rank: 500
discovery_category: new
rank_categories:
  - new
failure_threshold: 5
            """)

    def tearDown(self):
        """Clean up test environment."""
        self.temp_dir.cleanup()

    @patch("rank_sampler.cli.run_sampler", new_callable=MagicMock)
    def test_run_command(self, mock_run_sampler):
        """Test the run command starts the sampler."""
        with patch("rank_sampler.cli.asyncio.run") as mock_run:
            result = self.runner.invoke(app, ["run", "--config", self.config_path])

            self.assertEqual(result.exit_code, 0)
            mock_run.assert_called_once()
            config_arg = mock_run_sampler.call_args[0][0]
            self.assertEqual(config_arg.mode, "discovery")
            self.assertFalse(mock_run_sampler.call_args[1]["once"])

    @patch("rank_sampler.cli.run_sampler", new_callable=MagicMock)
    def test_run_command_overrides(self, mock_run_sampler):
        """Test --mode, --output and --once reach the sampler."""
        with patch("rank_sampler.cli.asyncio.run"):
            result = self.runner.invoke(app, [
                "run",
                "--config", self.config_path,
                "--mode", "snapshot",
                "--output", "out.tsv",
                "--once",
            ])

            self.assertEqual(result.exit_code, 0)
            config_arg = mock_run_sampler.call_args[0][0]
            self.assertEqual(config_arg.mode, "snapshot")
            self.assertEqual(config_arg.output_path, "out.tsv")
            self.assertTrue(mock_run_sampler.call_args[1]["once"])

    def test_run_command_invalid_config(self):
        """Test an invalid configuration exits with status 1."""
        with patch("rank_sampler.cli.asyncio.run") as mock_run:
            result = self.runner.invoke(app, ["run", "--config", self.config_path, "--mode", "sometimes"])

            self.assertEqual(result.exit_code, 1)
            mock_run.assert_not_called()

    @patch("rank_sampler.cli.run_sampler", new_callable=MagicMock)
    def test_run_command_header_mismatch(self, mock_run_sampler):
        """Test a sink error at startup exits with status 1."""
        with patch("rank_sampler.cli.asyncio.run", side_effect=ValueError("header mismatch")):
            result = self.runner.invoke(app, ["run", "--config", self.config_path])

            self.assertEqual(result.exit_code, 1)

    def test_show_config(self):
        """Test show-config prints the effective configuration."""
        result = self.runner.invoke(app, ["show-config", "--config", self.config_path])

        self.assertEqual(result.exit_code, 0)
        data = yaml.safe_load(result.stdout)
        self.assertEqual(data["mode"], "discovery")
        self.assertEqual(data["rank_categories"], ["new"])
        self.assertEqual(data["api"]["max_concurrency"], 20)

    def test_show_config_invalid(self):
        """Test show-config fails on an invalid configuration."""
        with open(self.config_path, "w", encoding="utf-8") as f:
            f.write("max_rank: 0\n")

        result = self.runner.invoke(app, ["show-config", "--config", self.config_path])

        self.assertEqual(result.exit_code, 1)

    def test_load_config_overrides(self):
        """Test command-line overrides win over the file."""
        config = load_config(self.config_path, mode="snapshot", output="-")

        self.assertEqual(config.mode, "snapshot")
        self.assertEqual(config.output_path, "-")

    def test_log_startup(self):
        """Test the startup lines describe the sampling profile."""
        with self.assertLogs("rank_sampler.cli", level="INFO") as logs:
            log_startup(Config())

        output = "\n".join(logs.output)
        self.assertIn("SampleDistance: 60s", output)
        self.assertIn("Follow stories: 48h", output)


class TestRunSampler(unittest.TestCase):
    """Test cases for wiring a single round."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output_path = os.path.join(self.temp_dir.name, "samples.tsv")

    def tearDown(self):
        self.temp_dir.cleanup()

    @patch("rank_sampler.cli.build_runner")
    @patch("rank_sampler.cli.FeedApiClient")
    def test_run_once_writes_header_and_closes(self, mock_client_cls, mock_build_runner):
        """Test --once runs one round against a fresh client and leaves a header."""
        mock_client = MagicMock()
        mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
        mock_runner = MagicMock()
        mock_runner.run_once = AsyncMock()
        mock_build_runner.return_value = mock_runner

        config = Config(rank_categories=["new"], output_path=self.output_path)
        asyncio.run(run_sampler(config, once=True))

        mock_runner.run_once.assert_awaited_once()
        mock_runner.run_daemon.assert_not_called()
        with open(self.output_path, "r", encoding="utf-8") as f:
            self.assertEqual(f.read(), "id\tscore\trank\tdescendants\tsubmission_time\tsample_time\n")


if __name__ == "__main__":
    unittest.main()
