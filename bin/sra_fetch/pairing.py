"""Route LEFT/RIGHT/SINGLETON records into paired and singleton outputs.

fastq-dump with ``--split-spot`` emits the two mates of a spot next to each
other, left first.  The engine holds at most one buffered left read and
never reorders the stream.
"""
from __future__ import annotations

from enum import Enum
from typing import Protocol

from sra_fetch.models import DownloadStatistics, MateRole
from sra_fetch.records import SequenceRecord


class PairSink(Protocol):
    def write_pair(self, left: SequenceRecord, right: SequenceRecord) -> None: ...

    def write_single(self, record: SequenceRecord) -> None: ...


class PairingState(Enum):
    EMPTY = "empty"
    LEFT_BUFFERED = "left_buffered"


class PairingEngine:
    """One-slot lookahead matcher for a single run's record stream."""

    def __init__(self, sink: PairSink, stats: DownloadStatistics) -> None:
        self.sink = sink
        self.stats = stats
        self.pending_left: SequenceRecord | None = None

    @property
    def state(self) -> PairingState:
        if self.pending_left is None:
            return PairingState.EMPTY
        return PairingState.LEFT_BUFFERED

    def feed(self, record: SequenceRecord) -> None:
        self.stats.reads_processed += 1
        if record.role is MateRole.SINGLETON:
            self._single(record)
        elif record.role is MateRole.LEFT:
            if self.pending_left is not None:
                # Displaced by a newer left read.
                self._single(self.pending_left)
                self.stats.error_count += 1
            self.pending_left = record
        elif self.pending_left is None:
            self._single(record)
        else:
            left, self.pending_left = self.pending_left, None
            if left.matches(record):
                self.sink.write_pair(left, record)
                self.stats.pairs_written += 1
            else:
                self._single(left)
                self._single(record)
                self.stats.error_count += 1

    def finish(self) -> None:
        """Flush a left read still buffered at end of stream as a singleton."""
        if self.pending_left is not None:
            left, self.pending_left = self.pending_left, None
            self._single(left)
            self.stats.error_count += 1

    def _single(self, record: SequenceRecord) -> None:
        self.sink.write_single(record)
        self.stats.singles_written += 1
