"""Command-line interface for the ranked-feed sampler."""

import asyncio
import logging
import logging.config
import signal
from typing import Optional

import typer
import yaml
from typing_extensions import Annotated

from rank_sampler.api_client import FeedApiClient
from rank_sampler.collector.error_handler import ConsecutiveErrorTracker
from rank_sampler.collector.item_sampler import ItemSampler
from rank_sampler.collector.rank_aggregator import RankAggregator
from rank_sampler.collector.rate_limiter import RateLimiter
from rank_sampler.collector.scheduler import SamplingRunner
from rank_sampler.collector.watchlist import build_watchlist
from rank_sampler.config import MODE_DISCOVERY, Config
from rank_sampler.monitoring.metrics import PrometheusExporter
from rank_sampler.storage.tsv_sink import TsvSink

app = typer.Typer(help="Ranked-feed sampler - record score and rank of feed items over time")

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Set up logging configuration.

    Diagnostics go to stderr so stdout stays free for sample rows.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
    """
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "standard",
            "stream": "ext://sys.stderr",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 10485760,  # 10 MB
            "backupCount": 5,
            "encoding": "utf8",
        }

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers),
                "level": log_level,
                "propagate": True,
            },
            "asyncio": {
                "level": "WARNING",
            },
            "aiohttp": {
                "level": "WARNING",
            },
        },
    }

    logging.config.dictConfig(log_config)


def load_config(config_path: str, mode: Optional[str] = None, output: Optional[str] = None) -> Config:
    """Load configuration and apply command-line overrides."""
    config = Config.from_files(config_path)
    if mode:
        config.mode = mode
    if output:
        config.output_path = output
    return config


def log_startup(config: Config) -> None:
    """Echo the effective configuration to the diagnostic stream."""
    logger.info(f"SampleDistance: {config.sample_distance_sec}s")
    if config.mode == MODE_DISCOVERY:
        logger.info(f"Follow stories: {config.max_age_hours:g}h")
        logger.info(f"Discovery category: {config.discovery_category}")
    logger.info(f"Max rank: {config.max_rank}")
    logger.info(f"Rank categories: {', '.join(config.rank_categories) or '-'}")
    logger.info(f"Mode: {config.mode}, max concurrency: {config.api.max_concurrency}")
    logger.info("Starting sampler...")


def build_runner(
    config: Config,
    client: FeedApiClient,
    sink: TsvSink,
    prometheus_exporter: Optional[PrometheusExporter] = None,
) -> SamplingRunner:
    """Wire the sampling components for one run."""
    return SamplingRunner(
        config=config,
        aggregator=RankAggregator(client, config.max_rank),
        watchlist=build_watchlist(config),
        sampler=ItemSampler(client, config.rank_categories, config.api.max_concurrency),
        sink=sink,
        error_tracker=ConsecutiveErrorTracker(config.failure_threshold, prometheus_exporter),
        prometheus_exporter=prometheus_exporter,
    )


async def run_sampler(config: Config, once: bool = False) -> None:
    """
    Run the sampler with the given configuration.

    Args:
        config: Validated configuration
        once: Run a single round instead of the daemon loop
    """
    prometheus_exporter = None
    if config.monitoring.enable_prometheus:
        prometheus_exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
        prometheus_exporter.start_server()

    sink = TsvSink(config.rank_categories, config.tracks_ticks, path=config.output_path)
    try:
        sink.write_header()

        rate_limiter = RateLimiter(config.rate_limit)
        async with FeedApiClient(
            config.api,
            config.categories,
            rate_limiter=rate_limiter,
            retry_config=config.rate_limit,
            prometheus_exporter=prometheus_exporter,
        ) as client:
            runner = build_runner(config, client, sink, prometheus_exporter)

            if once:
                await runner.run_once()
                return

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, runner.stop)
                except NotImplementedError:
                    # Windows event loops lack signal handlers; Ctrl+C still raises KeyboardInterrupt
                    pass

            await runner.run_daemon()
    finally:
        sink.close()


@app.command()
def run(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    mode: Annotated[Optional[str], typer.Option("--mode", "-m", help="Sampling mode: discovery or snapshot")] = None,
    output: Annotated[Optional[str], typer.Option("--output", "-o", help="Output TSV file (default: stdout)")] = None,
    once: Annotated[bool, typer.Option("--once", help="Run a single round and exit")] = False,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """
    Sample the feed at a fixed interval and write one TSV row per item observation.
    """
    config_obj = load_config(config, mode, output)

    log_level = "DEBUG" if verbose else loglevel.upper()
    setup_logging(log_level, config_obj.log_file)

    validation_errors = config_obj.validate()
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        raise typer.Exit(code=1)

    log_startup(config_obj)

    try:
        asyncio.run(run_sampler(config_obj, once=once))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except ValueError as e:
        logger.critical(str(e))
        raise typer.Exit(code=1)


@app.command("show-config")
def show_config(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    mode: Annotated[Optional[str], typer.Option("--mode", "-m", help="Sampling mode: discovery or snapshot")] = None,
) -> None:
    """Print the effective configuration as YAML."""
    config_obj = load_config(config, mode)
    typer.echo(yaml.safe_dump(config_obj.to_dict(), sort_keys=False), nl=False)

    validation_errors = config_obj.validate()
    for error in validation_errors:
        typer.echo(f"Configuration error: {error}", err=True)
    if validation_errors:
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
