"""Data models for sra-fetch."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from natsort import natsorted


class MateRole(Enum):
    """Position of a read within its spot."""

    LEFT = "left"
    RIGHT = "right"
    SINGLETON = "singleton"


class Layout(Enum):
    """Library layout of a sample.

    Each layout carries its header-parsing rule and the file suffixes of
    its output streams.  ``SINGLE`` has no singleton file: every record
    goes to the one stream.
    """

    PAIRED = "paired"
    SINGLE = "single"

    @property
    def header_pattern(self) -> re.Pattern[str]:
        return _HEADER_PATTERNS[self]

    @property
    def stream_suffixes(self) -> tuple[str, ...]:
        return _STREAM_SUFFIXES[self]

    @property
    def singleton_suffix(self) -> str | None:
        return _SINGLETON_SUFFIXES[self]

    @classmethod
    def from_paired_flag(cls, paired: bool) -> Layout:
        return cls.PAIRED if paired else cls.SINGLE


_HEADER_PATTERNS = {
    Layout.PAIRED: re.compile(r"@(\S+)\.([12])\s+.+"),
    Layout.SINGLE: re.compile(r"@(\S+).*"),
}

_STREAM_SUFFIXES = {
    Layout.PAIRED: ("_1", "_2"),
    Layout.SINGLE: ("",),
}

_SINGLETON_SUFFIXES = {
    Layout.PAIRED: "_s",
    Layout.SINGLE: None,
}


@dataclass(frozen=True)
class RunMetadata:
    """One run listed in an experiment package."""

    accession: str
    spots: int = 0


@dataclass
class SampleMetadata:
    """One experiment package returned by the metadata resolver."""

    sample_id: str
    run_id: str
    title: str
    paired: bool
    runs: list[RunMetadata] = field(default_factory=list)


@dataclass
class SampleDescriptor:
    """A logical sample: one or more runs sharing one output file set."""

    id: str
    title: str
    layout: Layout
    runs: list[str] = field(default_factory=list)
    estimated_spots: int = 0

    @classmethod
    def from_metadata(cls, sample_id: str, meta: SampleMetadata) -> SampleDescriptor:
        """Create a descriptor from the first metadata record seen for it."""
        if not meta.runs:
            raise ValueError(f"Sample {sample_id} has no runs")
        sample = cls(
            id=sample_id,
            title=meta.title,
            layout=Layout.from_paired_flag(meta.paired),
        )
        sample.add_runs(meta)
        return sample

    def add_runs(self, meta: SampleMetadata) -> int:
        """Merge the runs of *meta* into this sample.

        Spot counts are only added for runs not already present.  Returns
        the number of runs added.
        """
        known = set(self.runs)
        added = 0
        for run in meta.runs:
            if run.accession in known:
                continue
            known.add(run.accession)
            self.runs.append(run.accession)
            self.estimated_spots += run.spots
            added += 1
        if added:
            self.runs = natsorted(self.runs)
        return added

    def __str__(self) -> str:
        return f"{self.id}({len(self.runs)} runs, {self.layout.value})"


@dataclass
class DownloadStatistics:
    """Counters for one sample download."""

    pairs_written: int = 0
    singles_written: int = 0
    error_count: int = 0
    reads_processed: int = 0
    runs_processed: int = 0

    def progress(self) -> str:
        return (
            f"{self.reads_processed} reads processed. {self.pairs_written} pairs, "
            f"{self.singles_written} singles, {self.error_count} errors."
        )

    def summary(self, sample: SampleDescriptor) -> str:
        text = (
            f"Sample {sample.id} downloaded from {self.runs_processed} runs, "
            f"{self.pairs_written} pairs, {self.singles_written} singletons, "
            f"and {self.error_count} errors."
        )
        if sample.title:
            text += f" {sample.title}"
        return text
