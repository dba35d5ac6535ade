"""Parse four-line FASTQ records from a fastq-dump line stream.

The raw lines (terminators included) are kept exactly as read so that a
record can be written back out byte-for-byte.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import IO, Iterable, Iterator

from sra_fetch.models import Layout, MateRole


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RecordParseError(Exception):
    """Raised when the dump output is not a valid FASTQ stream."""


class HeaderFormatError(RecordParseError):
    """The header line does not fit the sample's layout."""


class QualityHeaderError(RecordParseError):
    """The third line of a record does not start with ``+``."""


class TruncatedRecordError(RecordParseError):
    """The stream ended part way through a record."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class SequenceRecord:
    """One FASTQ record plus the read ID and mate role taken from its header."""

    read_id: str
    role: MateRole
    lines: tuple[str, str, str, str]

    @property
    def header(self) -> str:
        return self.lines[0]

    def matches(self, other: SequenceRecord) -> bool:
        return self.read_id == other.read_id

    def write(self, stream: IO[str]) -> None:
        for line in self.lines:
            stream.write(line)
            if not line.endswith("\n"):
                stream.write("\n")


def _abbreviate(text: str, width: int = 30) -> str:
    text = text.rstrip("\r\n")
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


def parse_header(header: str, layout: Layout) -> tuple[str, MateRole]:
    """Return ``(read_id, role)`` for a header line under *layout*."""
    m = layout.header_pattern.fullmatch(header.rstrip("\r\n"))
    if m is None:
        raise HeaderFormatError(
            f"Invalid header for {layout.value} sample: {_abbreviate(header)}"
        )
    if layout is Layout.SINGLE:
        return m.group(1), MateRole.SINGLETON
    role = MateRole.LEFT if m.group(2) == "1" else MateRole.RIGHT
    return m.group(1), role


def next_record(lines: Iterator[str], layout: Layout) -> SequenceRecord | None:
    """Assemble the next record from *lines*.

    Returns ``None`` when the stream is exhausted before a header line.
    """
    header = next(lines, None)
    if header is None:
        return None
    read_id, role = parse_header(header, layout)
    try:
        sequence = next(lines)
        qual_header = next(lines)
        if not qual_header.startswith("+"):
            raise QualityHeaderError(
                f"{role.name} FASTQ record for {read_id} has invalid quality header."
            )
        quality = next(lines)
    except StopIteration:
        raise TruncatedRecordError(
            f"End-of-file before FASTQ record for {read_id} completed."
        ) from None
    return SequenceRecord(read_id, role, (header, sequence, qual_header, quality))


def iter_records(lines: Iterable[str], layout: Layout) -> Iterator[SequenceRecord]:
    """Yield every record in *lines* until a clean end of stream."""
    it = iter(lines)
    while True:
        record = next_record(it, layout)
        if record is None:
            return
        yield record
