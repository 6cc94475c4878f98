"""Watchlist membership policies: which items a round samples."""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set

from rank_sampler.config import MODE_SNAPSHOT, Config
from rank_sampler.models.sample import RankMap, Sample, WatchEntry

logger = logging.getLogger(__name__)


class Watchlist:
    """
    Membership policy interface.

    The runner calls :meth:`working_set` only after every category list of the
    round was fetched, so a failed round never touches the membership.
    """

    evicted_total = 0

    def required_categories(self) -> List[str]:
        """Categories whose lists decide membership."""
        raise NotImplementedError

    def working_set(
        self,
        lists: Mapping[str, List[int]],
        rank_maps: Mapping[str, RankMap],
        tick: int,
        now: int,
    ) -> List[int]:
        """Return the item IDs to sample this round."""
        raise NotImplementedError

    def accept(self, sample: Sample) -> bool:
        """Decide whether a fetched sample is emitted."""
        return True

    def record_failure(self, item_id: int, now: int, submission_time: Optional[int] = None) -> int:
        """
        Note that an item could not be sampled this round.

        Args:
            item_id: Item whose fetch failed
            now: Current wall-clock time
            submission_time: Submission time from the failed payload, if known

        Returns:
            How many rounds in a row the item has failed, 0 if it is no longer watched
        """
        return 0

    def __len__(self) -> int:
        return 0

    def __contains__(self, item_id: object) -> bool:
        return False


class AgeBoundedWatchlist(Watchlist):
    """
    Discovery+age policy.

    Every ID of the discovery category joins the watchlist and is re-sampled
    each round until it is older than ``max_age_hours``, at which point it is
    evicted and its over-age sample discarded. An item whose submission time
    was never learned (every fetch failed) is aged from when it was first seen.
    """

    def __init__(self, discovery_category: str, max_age_hours: float):
        self.discovery_category = discovery_category
        self.max_age_seconds = max_age_hours * 3600
        self.entries: Dict[int, WatchEntry] = {}
        self.evicted_total = 0

    def required_categories(self) -> List[str]:
        return [self.discovery_category]

    def is_over_age(self, submission_time: int, at_time: int) -> bool:
        return at_time - submission_time > self.max_age_seconds

    def is_expired(self, entry: WatchEntry, now: int) -> bool:
        if entry.submission_time is not None:
            return self.is_over_age(entry.submission_time, now)
        return self.is_over_age(entry.first_seen_time, now)

    def working_set(
        self,
        lists: Mapping[str, List[int]],
        rank_maps: Mapping[str, RankMap],
        tick: int,
        now: int,
    ) -> List[int]:
        added = 0
        for item_id in lists[self.discovery_category]:
            if item_id not in self.entries:
                self.entries[item_id] = WatchEntry(item_id=item_id, first_seen_time=now)
                added += 1

        # Items already known to be over age are dropped without another fetch
        expired = [entry.item_id for entry in self.entries.values() if self.is_expired(entry, now)]
        for item_id in expired:
            self.evict(item_id)

        if added or expired:
            logger.debug(f"Watchlist: +{added} new, -{len(expired)} expired, {len(self.entries)} watched")
        return list(self.entries)

    def accept(self, sample: Sample) -> bool:
        entry = self.entries.get(sample.id)
        if entry is None:
            # Evicted while the fetch was in flight
            return False

        entry.submission_time = sample.submission_time
        entry.consecutive_failures = 0
        if self.is_over_age(sample.submission_time, sample.sample_time):
            self.evict(sample.id)
            return False
        return True

    def record_failure(self, item_id: int, now: int, submission_time: Optional[int] = None) -> int:
        entry = self.entries.get(item_id)
        if entry is None:
            return 0
        if submission_time is not None:
            entry.submission_time = submission_time
        if self.is_expired(entry, now):
            self.evict(item_id)
            return 0
        entry.consecutive_failures += 1
        return entry.consecutive_failures

    def evict(self, item_id: int) -> None:
        if self.entries.pop(item_id, None) is not None:
            self.evicted_total += 1

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.entries


class SnapshotWatchlist(Watchlist):
    """
    Snapshot policy.

    Each round samples exactly the union of the items ranked in any rank
    category that round. Nothing carries over between rounds.
    """

    def __init__(self, rank_categories: Sequence[str]):
        self.rank_categories = list(rank_categories)
        self._current: Set[int] = set()

    def required_categories(self) -> List[str]:
        return list(self.rank_categories)

    def working_set(
        self,
        lists: Mapping[str, List[int]],
        rank_maps: Mapping[str, RankMap],
        tick: int,
        now: int,
    ) -> List[int]:
        # dict keeps first-seen order across categories
        union: Dict[int, None] = {}
        for category in self.rank_categories:
            for item_id in rank_maps.get(category, {}):
                union.setdefault(item_id, None)
        self._current = set(union)
        return list(union)

    def __len__(self) -> int:
        return len(self._current)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._current


def build_watchlist(config: Config) -> Watchlist:
    """Create the membership policy for the configured mode."""
    if config.mode == MODE_SNAPSHOT:
        return SnapshotWatchlist(config.rank_categories)
    return AgeBoundedWatchlist(config.discovery_category, config.max_age_hours)
