"""fastq-dump wrapper: stream one run into a sample's output files."""
from __future__ import annotations

import io
import logging
import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import IO

from sra_fetch.models import DownloadStatistics
from sra_fetch.outputs import SampleOutputs
from sra_fetch.pairing import PairingEngine
from sra_fetch.records import RecordParseError, iter_records

logger = logging.getLogger(__name__)

SRALIB_ENV = "SRALIB"
DUMP_TOOL_NAME = "fastq-dump"
DUMP_FLAGS = [
    "--readids", "--stdout", "--split-spot",
    "--skip-technical", "--clip", "--read-filter", "pass",
]
PROGRESS_INTERVAL = 10.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DumpToolConfigError(Exception):
    """Raised when the SRA toolkit directory is missing or invalid."""


class DumpProcessError(Exception):
    """Raised when fastq-dump exits with a non-zero status."""

    def __init__(self, run: str, returncode: int, messages: list[str]) -> None:
        self.run = run
        self.returncode = returncode
        self.messages = messages
        detail = "\n".join(messages) if messages else "(no diagnostic output)"
        super().__init__(
            f"{DUMP_TOOL_NAME} failed for run {run} with exit code {returncode}:\n{detail}"
        )


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------


def find_dump_tool(sra_lib: str | Path | None = None) -> str:
    """Return the path of fastq-dump inside the SRA toolkit directory.

    *sra_lib* defaults to the ``SRALIB`` environment variable.
    """
    location = sra_lib if sra_lib else os.environ.get(SRALIB_ENV, "")
    if not str(location).strip():
        raise DumpToolConfigError(f"{SRALIB_ENV} environment variable is missing or invalid.")
    lib_dir = Path(location)
    if not lib_dir.is_dir():
        raise DumpToolConfigError(f"SRA toolkit directory {lib_dir} is not a directory.")
    return str(lib_dir / DUMP_TOOL_NAME)


def build_dump_command(run: str, tool: str) -> list[str]:
    """Build the fastq-dump command line for one run accession."""
    return [tool, *DUMP_FLAGS, run]


# ---------------------------------------------------------------------------
# Stream consumers
# ---------------------------------------------------------------------------


def _drain_records(
    stream: IO[str],
    outputs: SampleOutputs,
    stats: DownloadStatistics,
    label: str,
) -> None:
    engine = PairingEngine(outputs, stats)
    last_message = time.monotonic()
    try:
        for record in iter_records(stream, outputs.layout):
            engine.feed(record)
            now = time.monotonic()
            if now - last_message >= PROGRESS_INTERVAL:
                logger.info("%s: %s", label, stats.progress())
                last_message = now
    except Exception as e:
        # Keep reading so fastq-dump is never left blocked on a full pipe.
        raw = getattr(stream, "buffer", stream)
        while raw.read(65536):
            pass
        if isinstance(e, UnicodeDecodeError):
            raise RecordParseError(f"Output of {label} is not valid UTF-8: {e}") from e
        raise
    engine.finish()


def _drain_messages(stream: IO[str], messages: list[str]) -> None:
    for line in stream:
        messages.append(line.rstrip("\r\n"))


# ---------------------------------------------------------------------------
# Run download
# ---------------------------------------------------------------------------


def run_one(
    run: str,
    outputs: SampleOutputs,
    stats: DownloadStatistics,
    tool: str | None = None,
) -> None:
    """Download *run* into the already-open *outputs*.

    Standard output is parsed and paired while standard error is collected,
    each in its own thread; both are read to the end before the exit status
    is checked.  Raises ``DumpProcessError`` on a non-zero exit and
    ``RecordParseError`` on malformed output (including bytes that are not
    UTF-8), even if the tool exited 0.
    """
    cmd = build_dump_command(run, tool or find_dump_tool())
    logger.debug("Download command is: %s", " ".join(cmd))
    label = f"{outputs.sample_id}/{run}"
    messages: list[str] = []

    with subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE) as proc:
        seq_stream = io.TextIOWrapper(proc.stdout, encoding="utf-8", newline="")
        log_stream = io.TextIOWrapper(proc.stderr, encoding="utf-8", errors="replace")
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dump") as pool:
            seq_task = pool.submit(_drain_records, seq_stream, outputs, stats, label)
            log_task = pool.submit(_drain_messages, log_stream, messages)
        returncode = proc.wait()

    parse_error = seq_task.exception()
    log_task.result()
    if returncode != 0:
        raise DumpProcessError(run, returncode, messages) from parse_error
    if parse_error is not None:
        raise parse_error
    for message in messages:
        logger.debug("%s: %s", label, message)
    outputs.flush()
    logger.info("Run %s downloaded.", run)
