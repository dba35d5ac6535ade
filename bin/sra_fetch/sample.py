"""Download every run of one sample into a single set of FASTQ files."""
from __future__ import annotations

import logging
from pathlib import Path

from natsort import natsorted

from sra_fetch.dump import run_one
from sra_fetch.models import DownloadStatistics, SampleDescriptor
from sra_fetch.outputs import SampleOutputs

logger = logging.getLogger(__name__)


class SampleDownloader:
    """Concatenate the runs of *sample* into ``out_dir``.

    Runs are processed one at a time in natural accession order.  The
    output files are opened once for the whole sample and always closed,
    whether or not a run fails.
    """

    def __init__(
        self,
        sample: SampleDescriptor,
        out_dir: Path,
        zipped: bool = False,
        tool: str | None = None,
    ) -> None:
        self.sample = sample
        self.out_dir = Path(out_dir)
        self.zipped = zipped
        self.tool = tool
        self.stats = DownloadStatistics()
        self.summary = f"Sample {sample.id} being initialized."
        logger.info(
            "Sample %s with %d runs will be written to %s.",
            sample.id, len(sample.runs), self.out_dir,
        )

    def execute(self) -> str:
        """Download all runs and return the summary string."""
        sample = self.sample
        self.summary = f"Download of sample {sample.id} in progress."
        logger.info("Downloading sample %s.", sample.id)
        runs = natsorted(sample.runs)
        total = len(runs)
        with SampleOutputs(sample.id, self.out_dir, sample.layout, self.zipped) as outputs:
            for run in runs:
                self.stats.runs_processed += 1
                logger.info("Processing run %d of %d: %s.", self.stats.runs_processed, total, run)
                try:
                    run_one(run, outputs, self.stats, self.tool)
                except Exception:
                    logger.error(
                        "Run %s of sample %s failed after %s",
                        run, sample.id, self.stats.progress(),
                    )
                    raise
        self.summary = self.stats.summary(sample)
        logger.info(self.summary)
        return self.summary
