"""Mapping functions to convert API payloads to our data models."""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from rank_sampler.errors import ParseError
from rank_sampler.models.sample import ApiItem, RankMap, Sample


REQUIRED_ITEM_FIELDS = ("id", "score", "time")


def _as_int(value: Any) -> Optional[int]:
    # bool is an int subclass but never a valid count or timestamp
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_id_list(payload: Any, url: str) -> List[int]:
    """
    Validate a category list payload.

    Args:
        payload: Decoded JSON body
        url: Source URL, for error messages

    Returns:
        The ordered list of item IDs

    Raises:
        ParseError: If the payload is not a JSON array of integers
    """
    if not isinstance(payload, list):
        raise ParseError(url, f"expected a JSON array, got {type(payload).__name__}")

    ids = []
    for position, value in enumerate(payload):
        item_id = _as_int(value)
        if item_id is None:
            raise ParseError(url, f"non-integer ID {value!r} at position {position}")
        ids.append(item_id)
    return ids


def parse_item(payload: Any, url: str) -> ApiItem:
    """
    Validate an item detail payload.

    Raises:
        ParseError: If the item is missing (JSON ``null``) or lacks a required
            integer field
    """
    if payload is None:
        raise ParseError(url, "item does not exist")
    if not isinstance(payload, dict):
        raise ParseError(url, f"expected a JSON object, got {type(payload).__name__}")

    # Deleted items keep their "time" but drop "score"; pass it on so the
    # watchlist can still age the item out
    submission_time = _as_int(payload.get("time"))
    for name in REQUIRED_ITEM_FIELDS:
        if _as_int(payload.get(name)) is None:
            raise ParseError(url, f"missing or non-integer field '{name}'", submission_time)

    item: ApiItem = dict(payload)  # type: ignore[assignment]
    for name in REQUIRED_ITEM_FIELDS:
        item[name] = _as_int(payload[name])  # type: ignore[literal-required]

    if "descendants" in payload:
        descendants = _as_int(payload["descendants"])
        if descendants is None:
            raise ParseError(url, "non-integer field 'descendants'", submission_time)
        item["descendants"] = descendants
    return item


def item_to_sample(
    item: ApiItem,
    rank_maps: Mapping[str, RankMap],
    rank_categories: Sequence[str],
    sample_time: int,
    tick: Optional[int] = None,
) -> Sample:
    """
    Convert an item payload plus this tick's rank maps to a Sample.

    Args:
        item: Validated item payload
        rank_maps: Rank map per category for the current tick
        rank_categories: Categories that get a rank slot, in column order
        sample_time: Observation time (Unix epoch seconds)
        tick: Tick number, or None when ticks are not recorded

    Returns:
        A frozen Sample
    """
    item_id = item["id"]
    ranks = tuple(rank_maps.get(category, {}).get(item_id) for category in rank_categories)

    return Sample(
        id=item_id,
        score=item["score"],
        descendants=item.get("descendants", 0),
        submission_time=item["time"],
        sample_time=sample_time,
        ranks=ranks,
        tick=tick,
    )


def sample_to_record(sample: Sample, rank_categories: Sequence[str]) -> Dict[str, Optional[int]]:
    """Flatten a Sample into a column-name keyed record."""
    record: Dict[str, Optional[int]] = {
        "id": sample.id,
        "score": sample.score,
    }
    for name, rank in zip(rank_column_names(rank_categories), sample.ranks):
        record[name] = rank
    record["descendants"] = sample.descendants
    record["submission_time"] = sample.submission_time
    record["sample_time"] = sample.sample_time
    record["tick"] = sample.tick
    return record


def rank_column_names(rank_categories: Sequence[str]) -> List[str]:
    """Column name per rank category: ``rank`` alone, or ``<category>_rank`` each."""
    if len(rank_categories) == 1:
        return ["rank"]
    return [f"{category}_rank" for category in rank_categories]


def output_columns(rank_categories: Sequence[str], with_tick: bool) -> List[str]:
    """Full output column order for one run."""
    columns = ["id", "score"]
    columns.extend(rank_column_names(rank_categories))
    columns.extend(["descendants", "submission_time", "sample_time"])
    if with_tick:
        columns.append("tick")
    return columns
