"""Data models for feed items and emitted samples."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, TypedDict

# Item ID -> 1-based position within one category list.
RankMap = Dict[int, int]


class _ApiItemRequired(TypedDict):
    id: int
    score: int
    time: int  # Submission time (Unix epoch seconds)


class ApiItem(_ApiItemRequired, total=False):
    """
    Item detail payload as returned by the source API.

    Only ``id``, ``score`` and ``time`` are needed to build a sample; the rest
    is carried for completeness.
    """

    descendants: int  # Total comment count (absent for job posts)
    by: str
    title: str
    type: str
    url: str
    kids: List[int]


@dataclass(frozen=True)
class Sample:
    """
    One observation of an item's state at ``sample_time``.

    ``ranks`` holds one slot per configured rank category, in configured order;
    ``None`` means the item is not within the top ``max_rank`` of that category.
    """

    id: int
    score: int
    descendants: int
    submission_time: int
    sample_time: int
    ranks: Tuple[Optional[int], ...] = ()
    tick: Optional[int] = None

    @property
    def age_seconds(self) -> int:
        return self.sample_time - self.submission_time


@dataclass
class WatchEntry:
    """Bookkeeping for one tracked item."""

    item_id: int
    first_seen_time: int  # Wall-clock time the item joined the watchlist
    submission_time: Optional[int] = None
    consecutive_failures: int = 0
