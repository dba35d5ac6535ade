"""Download a set of samples with bounded parallelism.

Each sample gets its own subdirectory of the output directory.  A
``summary.txt`` marker is written there once the sample has downloaded
successfully; with ``skip_completed`` set, marked samples are not
downloaded again.
"""
from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from sra_fetch.models import SampleDescriptor
from sra_fetch.sample import SampleDownloader

logger = logging.getLogger(__name__)

MARKER_NAME = "summary.txt"


@dataclass
class SampleOutcome:
    """Result of one sample's download attempt."""

    sample_id: str
    ok: bool
    summary: str = ""
    error: str = ""


@dataclass
class FleetResult:
    downloaded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.downloaded + self.failed + self.skipped

    def record(self, outcome: SampleOutcome) -> None:
        if outcome.ok:
            self.downloaded += 1
        else:
            self.failed += 1
            self.failures[outcome.sample_id] = outcome.error

    def __str__(self) -> str:
        return f"{self.downloaded} samples downloaded, {self.failed} failed, {self.skipped} skipped."


def prepare_output_dir(out_dir: Path, clear: bool = False) -> None:
    """Create *out_dir*, or empty it first when *clear* is set."""
    if out_dir.is_file():
        raise FileExistsError(f"Output directory {out_dir} is a file and cannot be used.")
    if not out_dir.is_dir():
        logger.info("Creating output directory %s.", out_dir)
        out_dir.mkdir(parents=True)
    elif clear:
        logger.info("Erasing output directory %s.", out_dir)
        for child in out_dir.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
    else:
        logger.info("Output samples will be put in %s.", out_dir)


class FleetScheduler:
    """Run ``SampleDownloader`` for many samples on a worker pool."""

    def __init__(
        self,
        out_dir: Path,
        zipped: bool = False,
        parallel: int = 1,
        skip_completed: bool = False,
        tool: str | None = None,
    ) -> None:
        if parallel < 1:
            raise ValueError("Parallelism must be at least 1.")
        self.out_dir = Path(out_dir)
        self.zipped = zipped
        self.parallel = parallel
        self.skip_completed = skip_completed
        self.tool = tool

    def sample_dir(self, sample: SampleDescriptor) -> Path:
        return self.out_dir / sample.id

    def marker_file(self, sample: SampleDescriptor) -> Path:
        return self.sample_dir(sample) / MARKER_NAME

    def is_complete(self, sample: SampleDescriptor) -> bool:
        return self.marker_file(sample).exists()

    def download_one(self, sample: SampleDescriptor) -> SampleOutcome:
        """Download one sample; failures are logged and returned, not raised."""
        try:
            sample_dir = self.sample_dir(sample)
            sample_dir.mkdir(parents=True, exist_ok=True)
            downloader = SampleDownloader(sample, sample_dir, self.zipped, self.tool)
            summary = downloader.execute()
            self.marker_file(sample).write_text(summary + "\n")
        except Exception as e:
            logger.error("Sample %s failed during download: %s", sample.id, e)
            return SampleOutcome(sample.id, ok=False, error=str(e))
        return SampleOutcome(sample.id, ok=True, summary=summary)

    def download(self, samples: Iterable[SampleDescriptor]) -> FleetResult:
        result = FleetResult()
        pending: list[SampleDescriptor] = []
        for sample in samples:
            if self.skip_completed and self.is_complete(sample):
                logger.info("Skipping downloaded sample %s.", sample.id)
                result.skipped += 1
            else:
                pending.append(sample)

        if self.parallel == 1:
            for i, sample in enumerate(pending, start=1):
                logger.info("Downloading sample #%d: %s.", i, sample.id)
                result.record(self.download_one(sample))
        else:
            with ThreadPoolExecutor(max_workers=self.parallel, thread_name_prefix="sample") as pool:
                futures = [pool.submit(self.download_one, s) for s in pending]
                for future in as_completed(futures):
                    result.record(future.result())

        logger.info("%s", result)
        return result
