"""Tab-separated output for samples."""

import csv
import io
import logging
import os
import sys
from typing import List, Optional, Sequence, TextIO

from rank_sampler.models.mapping import output_columns, sample_to_record
from rank_sampler.models.sample import Sample
from rank_sampler.storage.data_sink import SampleSink

logger = logging.getLogger(__name__)

NULL_TOKEN = "\\N"


def format_row(values: Sequence[object]) -> str:
    """
    Serialize one row as a tab-separated line (with trailing newline).

    ``None`` becomes the null token, so a missing rank never reads as 0.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter="\t", lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow([NULL_TOKEN if value is None else value for value in values])
    return buffer.getvalue()


class TsvSink(SampleSink):
    """Append-only TSV implementation of the SampleSink interface."""

    def __init__(
        self,
        rank_categories: Sequence[str],
        with_tick: bool,
        path: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize the sink.

        Writes go to ``stream`` when given, else to ``path`` opened in append
        mode, else to stdout.

        Args:
            rank_categories: Categories with a rank column, in column order
            with_tick: Whether rows carry a tick column
            path: Output file path ("-" means stdout)
            stream: Already open text stream
        """
        self.rank_categories = list(rank_categories)
        self.columns: List[str] = output_columns(self.rank_categories, with_tick)
        self.path = None if path in (None, "-") else path
        self.rows_written = 0
        self._owns_stream = False

        if stream is not None:
            self.stream = stream
        elif self.path is not None:
            self._ensure_directory()
            self.stream = open(self.path, "a", encoding="utf-8", newline="")
            self._owns_stream = True
        else:
            self.stream = sys.stdout

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def _existing_header(self) -> Optional[str]:
        if self.path is None or not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return f.readline().rstrip("\n")

    def format_sample(self, sample: Sample) -> str:
        """Serialize a sample in this sink's column order."""
        record = sample_to_record(sample, self.rank_categories)
        return format_row([record[column] for column in self.columns])

    def write_header(self) -> None:
        """
        Write the header line, unless the output file already has one.

        Raises:
            ValueError: If an existing output file has a different header
        """
        header = format_row(self.columns).rstrip("\n")
        existing = self._existing_header()
        if existing is not None:
            if existing != header:
                raise ValueError(
                    f"{self.path} already has header {existing!r}, expected {header!r}; "
                    f"use a different output file for this configuration"
                )
            logger.info(f"Appending to existing output {self.path}")
            return

        self.stream.write(header + "\n")
        self.stream.flush()

    def write(self, sample: Sample) -> None:
        """Append one sample as a single line and flush it."""
        self.stream.write(self.format_sample(sample))
        self.stream.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._owns_stream and not self.stream.closed:
            self.stream.close()
        else:
            self.stream.flush()
