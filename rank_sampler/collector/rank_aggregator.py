"""Concurrent category list fetching and rank map construction."""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from rank_sampler.api_client import FeedApiClient
from rank_sampler.errors import AggregationError
from rank_sampler.models.sample import RankMap

logger = logging.getLogger(__name__)


def build_rank_map(ids: Iterable[int], max_rank: Optional[int]) -> RankMap:
    """
    Turn an ordered ID list into an item -> 1-based rank mapping.

    Only the first ``max_rank`` positions are considered. If an ID shows up
    twice within them, its first position wins.

    Args:
        ids: Ordered item IDs as returned by a category endpoint
        max_rank: Depth to keep, or None to keep the whole list

    Returns:
        Rank map for the list
    """
    rank_map: RankMap = {}
    for position, item_id in enumerate(ids, start=1):
        if max_rank is not None and position > max_rank:
            break
        rank_map.setdefault(item_id, position)
    return rank_map


class RankAggregator:
    """Fetches every category of a round concurrently, all or nothing."""

    def __init__(self, client: FeedApiClient, max_rank: int):
        """
        Args:
            client: Source API client
            max_rank: Maximum rank depth kept in rank maps
        """
        self.client = client
        self.max_rank = max_rank

    async def fetch_lists(self, categories: Sequence[str]) -> Dict[str, List[int]]:
        """
        Fetch the ID list of every category concurrently.

        Waits for all fetches to settle before returning or raising, so no
        request of this round is left running.

        Args:
            categories: Category names to fetch

        Returns:
            Category name -> ordered ID list

        Raises:
            AggregationError: If any category fetch failed
        """
        unique = list(dict.fromkeys(categories))
        results = await asyncio.gather(
            *(self.client.get_list(category) for category in unique),
            return_exceptions=True,
        )

        lists: Dict[str, List[int]] = {}
        first_error: Optional[AggregationError] = None
        for category, result in zip(unique, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    # CancelledError and friends are not fetch failures
                    raise result
                logger.error(f"Category '{category}' fetch failed: {result}")
                if first_error is None:
                    first_error = AggregationError(category, result)
            else:
                lists[category] = result

        if first_error is not None:
            raise first_error
        return lists

    def aggregate(self, lists: Dict[str, List[int]], categories: Sequence[str]) -> Dict[str, RankMap]:
        """Build one truncated rank map per requested category."""
        return {category: build_rank_map(lists[category], self.max_rank) for category in categories}

    async def fetch_rank_maps(self, categories: Sequence[str]) -> Dict[str, RankMap]:
        """Fetch and rank ``categories`` in one step."""
        lists = await self.fetch_lists(categories)
        return self.aggregate(lists, categories)
