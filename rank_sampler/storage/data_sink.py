"""Defines the SampleSink protocol for output backends."""

from typing import List, Protocol

from rank_sampler.models.sample import Sample


class SampleSink(Protocol):
    """
    A protocol that defines the interface for sample output sinks.

    Sinks are append-only: a sample is written exactly once, as one complete
    row, and never rewritten.
    """

    columns: List[str]

    def write_header(self) -> None:
        """Declare the column order for this run."""
        ...

    def write(self, sample: Sample) -> None:
        """Append one sample as a single row."""
        ...

    def close(self) -> None:
        """Flush and release the underlying stream."""
        ...
