"""Concurrent per-item sampling with failure isolation."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, List, Mapping, Optional, Sequence

from rank_sampler.api_client import FeedApiClient
from rank_sampler.errors import ItemSampleError, ParseError, TransportError
from rank_sampler.models.mapping import item_to_sample
from rank_sampler.models.sample import RankMap, Sample

logger = logging.getLogger(__name__)


def current_timestamp() -> int:
    """Current wall-clock time in whole Unix epoch seconds."""
    return round(time.time())


@dataclass(frozen=True)
class ItemOutcome:
    """Result of sampling one item: exactly one of ``sample`` and ``error`` is set."""

    item_id: int
    sample: Optional[Sample] = None
    error: Optional[ItemSampleError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ItemSampler:
    """Fetches item details concurrently under a fixed concurrency ceiling."""

    def __init__(
        self,
        client: FeedApiClient,
        rank_categories: Sequence[str],
        max_concurrency: int,
        clock: Callable[[], int] = current_timestamp,
    ):
        """
        Initialize the sampler.

        Args:
            client: Source API client
            rank_categories: Categories that get a rank slot in each sample
            max_concurrency: Maximum number of item fetches in flight
            clock: Source of ``sample_time`` values
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.client = client
        self.rank_categories = list(rank_categories)
        self.max_concurrency = max_concurrency
        self.clock = clock

    async def sample_item(
        self,
        item_id: int,
        rank_maps: Mapping[str, RankMap],
        tick: Optional[int] = None,
    ) -> Sample:
        """
        Fetch one item and build its sample.

        Raises:
            ItemSampleError: If the fetch or the payload validation failed
        """
        try:
            item = await self.client.get_item(item_id)
        except (TransportError, ParseError) as e:
            raise ItemSampleError(item_id, e) from e

        return item_to_sample(item, rank_maps, self.rank_categories, self.clock(), tick)

    async def _sample_guarded(
        self,
        semaphore: asyncio.Semaphore,
        item_id: int,
        rank_maps: Mapping[str, RankMap],
        tick: Optional[int],
    ) -> ItemOutcome:
        async with semaphore:
            try:
                sample = await self.sample_item(item_id, rank_maps, tick)
            except ItemSampleError as e:
                return ItemOutcome(item_id=item_id, error=e)
            except Exception as e:
                # Anything unexpected still stays with this item
                logger.exception(f"Unexpected error while sampling item {item_id}")
                return ItemOutcome(item_id=item_id, error=ItemSampleError(item_id, e))
        return ItemOutcome(item_id=item_id, sample=sample)

    async def sample_items(
        self,
        item_ids: Iterable[int],
        rank_maps: Mapping[str, RankMap],
        tick: Optional[int] = None,
    ) -> AsyncIterator[ItemOutcome]:
        """
        Sample every item concurrently, yielding outcomes as they complete.

        Every item yields exactly one outcome. If the consumer stops early (or
        is cancelled), the fetches still in flight are cancelled.

        Args:
            item_ids: Items to sample
            rank_maps: Rank map per category for this tick
            tick: Tick number recorded in the samples, or None

        Yields:
            One ItemOutcome per item, in completion order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks: List[asyncio.Task] = [
            asyncio.ensure_future(self._sample_guarded(semaphore, item_id, rank_maps, tick))
            for item_id in dict.fromkeys(item_ids)
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def sample_all(
        self,
        item_ids: Iterable[int],
        rank_maps: Mapping[str, RankMap],
        tick: Optional[int] = None,
    ) -> List[ItemOutcome]:
        """Collect every outcome of :meth:`sample_items` into a list."""
        return [outcome async for outcome in self.sample_items(item_ids, rank_maps, tick)]
