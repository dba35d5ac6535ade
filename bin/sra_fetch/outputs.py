"""FASTQ output streams for one sample."""
from __future__ import annotations

import gzip
import threading
from contextlib import ExitStack
from pathlib import Path
from typing import IO

from sra_fetch.models import Layout
from sra_fetch.records import SequenceRecord


def fastq_path(out_dir: Path, sample_id: str, suffix: str, zipped: bool) -> Path:
    ext = ".fastq.gz" if zipped else ".fastq"
    return out_dir / f"{sample_id}{suffix}{ext}"


def open_fastq(path: Path, zipped: bool) -> IO[str]:
    if zipped:
        return gzip.open(path, "wt", newline="")
    return open(path, "w", newline="")


class SampleOutputs:
    """The output files of one sample, shared by all of its runs.

    A paired sample writes mates to ``<id>_1`` / ``<id>_2`` and opens
    ``<id>_s`` only when the first singleton arrives.  A single-layout
    sample writes everything to ``<id>``.

    Use as a context manager; streams are closed exactly once on exit.
    """

    def __init__(self, sample_id: str, out_dir: Path, layout: Layout, zipped: bool = False) -> None:
        self.sample_id = sample_id
        self.out_dir = Path(out_dir)
        self.layout = layout
        self.zipped = zipped
        self._streams: list[IO[str]] = []
        self._paths: list[Path] = []
        self._single: IO[str] | None = None
        self._single_lock = threading.Lock()
        self._opened = False
        self._closed = False

    @property
    def paths(self) -> list[Path]:
        """Paths of every stream opened so far."""
        return list(self._paths)

    def _open(self, suffix: str) -> IO[str]:
        path = fastq_path(self.out_dir, self.sample_id, suffix, self.zipped)
        stream = open_fastq(path, self.zipped)
        self._paths.append(path)
        return stream

    def open(self) -> SampleOutputs:
        if self._opened:
            raise RuntimeError(f"Output streams for {self.sample_id} already opened")
        self._opened = True
        self.out_dir.mkdir(parents=True, exist_ok=True)
        try:
            for suffix in self.layout.stream_suffixes:
                self._streams.append(self._open(suffix))
        except OSError:
            self.close()
            raise
        if self.layout.singleton_suffix is None:
            self._single = self._streams[0]
        return self

    def __enter__(self) -> SampleOutputs:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _singleton_stream(self) -> IO[str]:
        if self._single is None:
            with self._single_lock:
                if self._single is None:
                    self._single = self._open(self.layout.singleton_suffix)
        return self._single

    def write_pair(self, left: SequenceRecord, right: SequenceRecord) -> None:
        if len(self._streams) == 1:
            left.write(self._streams[0])
            right.write(self._streams[0])
        else:
            left.write(self._streams[0])
            right.write(self._streams[1])

    def write_single(self, record: SequenceRecord) -> None:
        record.write(self._singleton_stream())

    def _all_streams(self) -> list[IO[str]]:
        streams = list(self._streams)
        if self._single is not None and self._single not in streams:
            streams.append(self._single)
        return streams

    def flush(self) -> None:
        for stream in self._all_streams():
            stream.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Every stream is closed even if an earlier close fails.
        with ExitStack() as stack:
            for stream in self._all_streams():
                stack.callback(stream.close)
