"""Tick-driven sampling loop."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from rank_sampler.collector.error_handler import ConsecutiveErrorTracker
from rank_sampler.collector.item_sampler import ItemSampler, current_timestamp
from rank_sampler.collector.rank_aggregator import RankAggregator
from rank_sampler.collector.watchlist import Watchlist
from rank_sampler.config import Config
from rank_sampler.errors import AggregationError, DataQualityAnomaly
from rank_sampler.models.sample import Sample
from rank_sampler.storage.data_sink import SampleSink

logger = logging.getLogger(__name__)


@dataclass
class RoundResult:
    """Summary of one sampling round."""

    tick: int
    emitted: int = 0
    failed: int = 0
    discarded: int = 0
    watched: int = 0
    duration_ms: int = 0
    aborted: bool = False
    error: Optional[AggregationError] = None


class SamplingRunner:
    """
    Runs sampling rounds at a fixed interval.

    One round: fetch every needed category list concurrently, build rank maps,
    merge with the watchlist, sample the working set concurrently and write
    each accepted sample as soon as it arrives. Rounds never overlap.
    """

    def __init__(
        self,
        config: Config,
        aggregator: RankAggregator,
        watchlist: Watchlist,
        sampler: ItemSampler,
        sink: SampleSink,
        error_tracker: Optional[ConsecutiveErrorTracker] = None,
        prometheus_exporter=None,
        clock: Callable[[], int] = current_timestamp,
    ):
        """
        Initialize the runner.

        Args:
            config: Application configuration
            aggregator: Category list fetcher
            watchlist: Membership policy, owned by this runner
            sampler: Per-item sampler
            sink: Output sink
            error_tracker: Optional tracker for consecutive aborted rounds
            prometheus_exporter: Optional Prometheus metrics exporter
            clock: Wall-clock source used for membership decisions
        """
        self.config = config
        self.aggregator = aggregator
        self.watchlist = watchlist
        self.sampler = sampler
        self.sink = sink
        self.error_tracker = error_tracker or ConsecutiveErrorTracker(config.failure_threshold)
        self.prometheus_exporter = prometheus_exporter
        self.clock = clock
        self.tick = 0
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None
        self.stats: Dict[str, int] = {
            "rounds_completed": 0,
            "rounds_aborted": 0,
            "rounds_skipped": 0,
            "samples_emitted": 0,
            "item_failures": 0,
        }

    def round_categories(self) -> List[str]:
        """Every category fetched in a round: membership lists plus rank lists."""
        categories = self.watchlist.required_categories() + list(self.config.rank_categories)
        return list(dict.fromkeys(categories))

    def _check_quality(self, sample: Sample) -> None:
        if sample.sample_time < sample.submission_time:
            anomaly = DataQualityAnomaly(
                sample.id,
                f"sample_time {sample.sample_time} is before submission_time {sample.submission_time}",
            )
            logger.warning(str(anomaly))
            if self.prometheus_exporter:
                self.prometheus_exporter.record_data_quality_anomaly()

    async def run_once(self) -> RoundResult:
        """
        Run a single sampling round.

        A failed category fetch abandons the round before the watchlist is
        touched; a failed item fetch only drops that item's sample.

        Returns:
            Summary of the round
        """
        tick = self.tick
        self.tick += 1
        started = time.perf_counter()
        result = RoundResult(tick=tick)

        try:
            lists = await self.aggregator.fetch_lists(self.round_categories())
        except AggregationError as e:
            result.aborted = True
            result.error = e
            result.duration_ms = round((time.perf_counter() - started) * 1000)
            self.stats["rounds_aborted"] += 1
            logger.error(f"{tick}: round abandoned, {e}")
            self.error_tracker.record_error()
            if self.prometheus_exporter:
                self.prometheus_exporter.record_round("aborted")
            return result

        self.error_tracker.record_success()
        rank_maps = self.aggregator.aggregate(lists, self.config.rank_categories)

        evicted_before = self.watchlist.evicted_total
        item_ids = self.watchlist.working_set(lists, rank_maps, tick, self.clock())
        result.watched = len(item_ids)
        sample_tick = tick if self.config.tracks_ticks else None

        async for outcome in self.sampler.sample_items(item_ids, rank_maps, sample_tick):
            if outcome.error is not None:
                result.failed += 1
                failures = self.watchlist.record_failure(
                    outcome.item_id, self.clock(), outcome.error.submission_time
                )
                if failures > 1:
                    logger.warning(f"{tick}: {outcome.error} (failed {failures} rounds in a row)")
                else:
                    logger.warning(f"{tick}: {outcome.error}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_item_error(outcome.error.error_type)
                continue

            sample = outcome.sample
            if not self.watchlist.accept(sample):
                result.discarded += 1
                continue

            self._check_quality(sample)
            self.sink.write(sample)
            result.emitted += 1

        evicted = self.watchlist.evicted_total - evicted_before
        result.duration_ms = round((time.perf_counter() - started) * 1000)

        self.stats["rounds_completed"] += 1
        self.stats["samples_emitted"] += result.emitted
        self.stats["item_failures"] += result.failed

        logger.info(f"{tick}: updated {result.emitted} stories in {result.duration_ms}ms")
        if result.failed or evicted:
            logger.info(
                f"{tick}: {result.failed} failed, {evicted} evicted, "
                f"{len(self.watchlist)} items watched"
            )

        if self.prometheus_exporter:
            self.prometheus_exporter.record_round("completed", result.duration_ms / 1000)
            self.prometheus_exporter.record_samples_emitted(result.emitted)
            self.prometheus_exporter.record_evictions(evicted)
            self.prometheus_exporter.set_watchlist_size(result.watched)

        return result

    async def _sleep(self, delay: float) -> None:
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def run_daemon(self) -> None:
        """
        Run rounds until stopped.

        The first round starts immediately. Later rounds start on multiples of
        ``sample_distance_sec`` after the start; fires that pass while a round
        is still running are skipped.
        """
        self.running = True
        self._stop_event = asyncio.Event()
        interval = self.config.sample_distance_sec
        start = time.monotonic()
        fires = 0

        logger.info(f"Starting sampling loop, interval: {interval}s")

        try:
            while self.running:
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Unexpected error in sampling round")

                if not self.running:
                    break

                fires += 1
                now = time.monotonic()
                next_fire = start + fires * interval
                if now > next_fire:
                    skipped = int((now - next_fire) // interval) + 1
                    fires += skipped
                    next_fire = start + fires * interval
                    self.stats["rounds_skipped"] += skipped
                    logger.warning(f"Round overran the {interval}s interval, skipping {skipped} tick(s)")

                await self._sleep(next_fire - now)

        except asyncio.CancelledError:
            logger.info("Sampling loop cancelled")
            raise
        finally:
            self.running = False
            logger.info(
                f"Sampling loop stopped after {self.stats['rounds_completed']} rounds, "
                f"{self.stats['samples_emitted']} samples emitted"
            )

    def stop(self) -> None:
        """Stop the loop after the current round."""
        logger.info("Stopping sampling loop")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()
