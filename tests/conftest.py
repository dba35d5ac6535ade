"""Shared fixtures: a fake SRA toolkit directory with a scripted fastq-dump."""
from __future__ import annotations

import stat
from pathlib import Path

import pytest

_FAKE_DUMP = """#!/bin/sh
for run; do :; done
dir=$(dirname "$0")
echo "$@" > "$dir/$run.args"
if [ -f "$dir/$run.fastq" ]; then cat "$dir/$run.fastq"; fi
if [ -f "$dir/$run.err" ]; then cat "$dir/$run.err" >&2; fi
if [ -f "$dir/$run.exit" ]; then exit "$(cat "$dir/$run.exit")"; fi
exit 0
"""


def fq(read_id: str, seq: str = "ACGT", mate: str | None = None) -> str:
    """Build one fastq-dump style record; *mate* is ``"1"`` or ``"2"``."""
    name = f"{read_id}.{mate}" if mate else read_id
    return f"@{name} {read_id} length={len(seq)}\n{seq}\n+{name}\n{'I' * len(seq)}\n"


def pair(read_id: str, seq: str = "ACGT") -> str:
    return fq(read_id, seq, "1") + fq(read_id, seq[::-1], "2")


class FakeSraLib:
    """SRA toolkit directory whose fastq-dump replays canned output per run."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.tool = path / "fastq-dump"
        self.tool.write_text(_FAKE_DUMP)
        self.tool.chmod(self.tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def add_run(self, run: str, fastq: str = "", stderr: str = "", exit_code: int = 0) -> None:
        (self.path / f"{run}.fastq").write_text(fastq)
        if stderr:
            (self.path / f"{run}.err").write_text(stderr)
        if exit_code:
            (self.path / f"{run}.exit").write_text(str(exit_code))

    def was_called(self, run: str) -> bool:
        return (self.path / f"{run}.args").exists()

    def args_of(self, run: str) -> list[str]:
        return (self.path / f"{run}.args").read_text().split()


@pytest.fixture
def sra_lib(tmp_path_factory) -> FakeSraLib:
    lib = tmp_path_factory.mktemp("sratoolkit")
    return FakeSraLib(lib)
