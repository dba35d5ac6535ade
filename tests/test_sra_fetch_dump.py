"""Tests for the fastq-dump run pipeline."""
from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import fq, pair
from sra_fetch.models import DownloadStatistics, Layout
from sra_fetch.outputs import SampleOutputs


class TestFindDumpTool:

    def test_from_argument(self, tmp_path):
        from sra_fetch.dump import find_dump_tool
        assert find_dump_tool(tmp_path) == str(tmp_path / "fastq-dump")

    def test_from_environment(self, tmp_path, monkeypatch):
        from sra_fetch.dump import find_dump_tool
        monkeypatch.setenv("SRALIB", str(tmp_path))
        assert find_dump_tool() == str(tmp_path / "fastq-dump")

    def test_missing_environment(self, monkeypatch):
        from sra_fetch.dump import DumpToolConfigError, find_dump_tool
        monkeypatch.delenv("SRALIB", raising=False)
        with pytest.raises(DumpToolConfigError, match="SRALIB"):
            find_dump_tool()

    def test_not_a_directory(self, tmp_path):
        from sra_fetch.dump import DumpToolConfigError, find_dump_tool
        f = tmp_path / "file"
        f.touch()
        with pytest.raises(DumpToolConfigError, match="not a directory"):
            find_dump_tool(f)


class TestBuildDumpCommand:

    def test_flags(self):
        from sra_fetch.dump import build_dump_command
        cmd = build_dump_command("SRR123", "/opt/sra/fastq-dump")
        assert cmd == [
            "/opt/sra/fastq-dump", "--readids", "--stdout", "--split-spot",
            "--skip-technical", "--clip", "--read-filter", "pass", "SRR123",
        ]


class TestRunOne:

    def test_pairs_and_singletons(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        sra_lib.add_run("SRR1", pair("S1") + fq("S2", mate="2") + pair("S3", "GGGAAA"))
        stats = DownloadStatistics()
        with SampleOutputs("SRS1", tmp_path / "out", Layout.PAIRED) as out:
            run_one("SRR1", out, stats, str(sra_lib.tool))
        assert stats.pairs_written == 2
        assert stats.singles_written == 1
        assert stats.error_count == 0
        assert stats.reads_processed == 5
        left = (tmp_path / "out" / "SRS1_1.fastq").read_text()
        assert left == fq("S1", mate="1") + fq("S3", "GGGAAA", mate="1")
        assert (tmp_path / "out" / "SRS1_s.fastq").read_text() == fq("S2", mate="2")
        assert sra_lib.args_of("SRR1")[-1] == "SRR1"

    def test_crlf_lines_kept(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        text = "@S1 a\r\nACGT\r\n+\r\nIIII\r\n"
        sra_lib.add_run("SRR2", text)
        with SampleOutputs("SRR2", tmp_path, Layout.SINGLE) as out:
            run_one("SRR2", out, DownloadStatistics(), str(sra_lib.tool))
        assert (tmp_path / "SRR2.fastq").read_bytes() == text.encode()

    def test_trailing_left_flushed(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        sra_lib.add_run("SRR3", pair("S1") + fq("S2", mate="1"))
        stats = DownloadStatistics()
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            run_one("SRR3", out, stats, str(sra_lib.tool))
        assert stats.error_count == 1
        assert (tmp_path / "SRS1_s.fastq").read_text() == fq("S2", mate="1")

    def test_missing_mate_suffix_is_parse_error(self, tmp_path, sra_lib):
        """An unsuffixed header in a paired run aborts the run."""
        from sra_fetch.dump import run_one
        from sra_fetch.records import HeaderFormatError
        sra_lib.add_run("SRR4", pair("S1") + fq("S2"))
        stats = DownloadStatistics()
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            with pytest.raises(HeaderFormatError):
                run_one("SRR4", out, stats, str(sra_lib.tool))
        assert stats.pairs_written == 1

    def test_parse_error_drains_large_output(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        from sra_fetch.records import RecordParseError
        sra_lib.add_run("SRR5", "garbage\n" + pair("S1", "A" * 200) * 2000)
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            with pytest.raises(RecordParseError):
                run_one("SRR5", out, DownloadStatistics(), str(sra_lib.tool))

    def test_invalid_utf8_is_parse_error(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        from sra_fetch.records import RecordParseError
        sra_lib.add_run("SRR9")
        body = b"@SRR9 S1.1 x\n\xff\xfe\n+\nII\n" + pair("S2", "A" * 200).encode() * 2000
        (sra_lib.path / "SRR9.fastq").write_bytes(body)
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            with pytest.raises(RecordParseError, match="UTF-8") as exc:
                run_one("SRR9", out, DownloadStatistics(), str(sra_lib.tool))
        assert isinstance(exc.value.__cause__, UnicodeDecodeError)

    def test_truncated_stream_is_parse_error(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        from sra_fetch.records import TruncatedRecordError
        sra_lib.add_run("SRR6", pair("S1") + "@S2.1 x\nACGT\n")
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            with pytest.raises(TruncatedRecordError):
                run_one("SRR6", out, DownloadStatistics(), str(sra_lib.tool))

    def test_nonzero_exit_is_process_error(self, tmp_path, sra_lib):
        from sra_fetch.dump import DumpProcessError, run_one
        sra_lib.add_run("SRR7", pair("S1"), stderr="err: item not found\n", exit_code=3)
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            with pytest.raises(DumpProcessError) as exc:
                run_one("SRR7", out, DownloadStatistics(), str(sra_lib.tool))
        assert exc.value.returncode == 3
        assert exc.value.messages == ["err: item not found"]
        assert "item not found" in str(exc.value)

    def test_stderr_with_zero_exit_is_success(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        sra_lib.add_run("SRR8", pair("S1"), stderr="Read 1 spots for SRR8\n")
        stats = DownloadStatistics()
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out:
            run_one("SRR8", out, stats, str(sra_lib.tool))
        assert stats.pairs_written == 1

    def test_config_error_before_spawn(self, tmp_path, monkeypatch):
        from sra_fetch.dump import DumpToolConfigError, run_one
        monkeypatch.delenv("SRALIB", raising=False)
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out, \
             patch("sra_fetch.dump.subprocess.Popen") as mock_popen:
            with pytest.raises(DumpToolConfigError):
                run_one("SRR9", out, DownloadStatistics())
        mock_popen.assert_not_called()

    def test_outputs_flushed_after_run(self, tmp_path, sra_lib):
        from sra_fetch.dump import run_one
        sra_lib.add_run("SRR10", pair("S1"))
        out = SampleOutputs("SRS1", tmp_path, Layout.PAIRED).open()
        try:
            run_one("SRR10", out, DownloadStatistics(), str(sra_lib.tool))
            assert (tmp_path / "SRS1_2.fastq").read_text() == fq("S1", "TGCA", mate="2")
        finally:
            out.close()

    def test_stdin_not_captured(self, tmp_path):
        from sra_fetch.dump import run_one
        with SampleOutputs("SRS1", tmp_path, Layout.PAIRED) as out, \
             patch("sra_fetch.dump.subprocess.Popen", wraps=subprocess.Popen) as mock_popen:
            run_one("SRR11", out, DownloadStatistics(), "/bin/true")
        kwargs = mock_popen.call_args.kwargs
        assert "stdin" not in kwargs
        assert kwargs["stdout"] == subprocess.PIPE
        assert kwargs["stderr"] == subprocess.PIPE
