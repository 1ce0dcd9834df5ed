#!/usr/bin/env python3
"""
Tests for the command line and the terminal collaborators.
"""

import io
import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spancopy import PromptAborted, TransferStats, main
from spancopy.main import parse_arguments
from spancopy.models import ProgressSnapshot
from spancopy.terminal import (
    ProgressLine,
    complete_directory,
    format_bytes,
    format_duration,
    prompt_for_destination,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_test_env():
    """Source tree, destination and a working directory for records."""
    test_dir = tempfile.mkdtemp()
    test_path = Path(test_dir)

    source = test_path / "source"
    (source / "subdir").mkdir(parents=True)
    (source / "file1.txt").write_text("content1")
    (source / "file2.txt").write_text("content2")
    (source / "subdir" / "file3.txt").write_text("content3")

    dest = test_path / "dest"

    cwd = os.getcwd()
    os.chdir(test_path)
    yield test_path, source, dest
    os.chdir(cwd)
    shutil.rmtree(test_dir)


# ============================================================================
# Main Entry Point Tests
# ============================================================================


def test_main_copies_tree(cli_test_env) -> None:
    """A plain run copies everything and exits 0."""
    test_path, source, dest = cli_test_env

    exit_code = main([str(source), str(dest), "--no-progress"])

    assert exit_code == 0
    assert (dest / "file1.txt").read_text() == "content1"
    assert (dest / "file2.txt").read_text() == "content2"
    assert (dest / "subdir" / "file3.txt").read_text() == "content3"
    assert not (test_path / "source.remainingfiles").exists()


def test_main_resume_copies_only_listed_files(cli_test_env) -> None:
    """--resume copies exactly the listed paths."""
    test_path, source, dest = cli_test_env
    listing = test_path / "source.remainingfiles"
    listing.write_text(os.path.join("subdir", "file3.txt") + "\n", encoding="utf-8")

    exit_code = main([str(source), str(dest), "-q", "--resume", str(listing)])

    assert exit_code == 0
    assert (dest / "subdir" / "file3.txt").read_text() == "content3"
    assert not (dest / "file1.txt").exists()
    assert not (dest / "file2.txt").exists()


def test_main_with_verify(cli_test_env) -> None:
    """--verify runs the same copy with hashing enabled."""
    test_path, source, dest = cli_test_env

    exit_code = main([str(source), str(dest), "-q", "--verify", "-t", "sha1"])

    assert exit_code == 0
    assert (dest / "subdir" / "file3.txt").read_text() == "content3"


def test_main_rejects_missing_source(cli_test_env) -> None:
    """A source that is not a directory exits 1."""
    test_path, source, dest = cli_test_env

    assert main([str(test_path / "nope"), str(dest), "-q"]) == 1
    assert main([str(source / "file1.txt"), str(dest), "-q"]) == 1
    assert not dest.exists()


def test_main_rejects_missing_resume_list(cli_test_env) -> None:
    """A missing resume list exits 1."""
    test_path, source, dest = cli_test_env

    assert main([str(source), str(dest), "-q", "-r", str(test_path / "none")]) == 1


def test_main_rejects_bad_buffer_size(cli_test_env) -> None:
    """Invalid configuration exits 1."""
    test_path, source, dest = cli_test_env

    assert main([str(source), str(dest), "-q", "-b", "0"]) == 1


def test_parse_arguments_defaults() -> None:
    """Defaults: 1 MiB buffer, no resume list, xxh64be."""
    args = parse_arguments(["src", "dst"])

    assert args.source == Path("src")
    assert args.destination == Path("dst")
    assert args.resume is None
    assert args.buffer_size == 1024 * 1024
    assert args.hash_algorithm == "xxh64be"
    assert not args.verify


# ============================================================================
# Terminal Tests
# ============================================================================


def test_format_bytes() -> None:
    assert format_bytes(0) == "0 B"
    assert format_bytes(1023) == "1023 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(5 * 1024**3) == "5.0 GB"


def test_format_duration() -> None:
    assert format_duration(5) == "00:05"
    assert format_duration(125.7) == "02:05"
    assert format_duration(3 * 3600 + 61) == "3:01:01"


def test_progress_line_fits_width() -> None:
    """Rendered lines are exactly one column short of the terminal width."""
    snapshot = ProgressSnapshot(
        global_stats=TransferStats(12, 4096),
        local_stats=TransferStats(3, 1024),
        elapsed=65,
        current_path="very/long/path/" * 20 + "file.bin",
    )

    line = ProgressLine.render(snapshot, 60)

    assert len(line) == 59
    assert line.startswith("12 files, 4.0 KB | this disk: 3 files, 1.0 KB | 01:05")
    assert line.endswith("...")


def test_progress_line_writes_and_finishes() -> None:
    """The line is redrawn with a carriage return and closed by finish()."""
    stream = io.StringIO()
    progress = ProgressLine(stream)
    snapshot = ProgressSnapshot(TransferStats(1, 5), TransferStats(1, 5), elapsed=1)

    progress(snapshot)
    progress.finish()

    assert stream.getvalue().startswith("\r1 files, 5 B")
    assert stream.getvalue().endswith("\n")


def test_progress_line_prints_undecodable_names() -> None:
    """Bytes that are not valid UTF-8 are replaced before reaching the terminal."""
    snapshot = ProgressSnapshot(
        TransferStats(1, 5), TransferStats(1, 5), elapsed=1, current_path="b\udcff.txt"
    )

    line = ProgressLine.render(snapshot, 80)

    assert "b\ufffd.txt" in line
    line.encode("utf-8")


def test_complete_directory(tmp_path) -> None:
    """Only directories matching the typed prefix are offered."""
    (tmp_path / "Disk 1").mkdir()
    (tmp_path / "Disk 2").mkdir()
    (tmp_path / "Documents").mkdir()
    (tmp_path / "Disk 3.txt").write_text("not a dir")

    matches = complete_directory(str(tmp_path / "Dis"))

    assert matches == [
        str(tmp_path / "Disk 1") + os.sep,
        str(tmp_path / "Disk 2") + os.sep,
    ]
    assert complete_directory(str(tmp_path / "missing" / "x")) == []


def test_prompt_returns_trimmed_answer() -> None:
    """Answers are trimmed; empty answers ask again."""
    with patch("spancopy.terminal.has_readline", False), patch(
        "builtins.input", side_effect=["  /media/Disk 2  "]
    ):
        assert prompt_for_destination("/media/Disk 1") == "/media/Disk 2"


def test_prompt_empty_answer_keeps_default_without_readline() -> None:
    """Without line editing, pressing Enter accepts the shown default."""
    with patch("spancopy.terminal.has_readline", False), patch(
        "builtins.input", side_effect=[""]
    ):
        assert prompt_for_destination("/media/Disk 1") == "/media/Disk 1"


def test_prompt_eof_aborts() -> None:
    """Ctrl+D closes the prompt."""
    with patch("spancopy.terminal.has_readline", False), patch(
        "builtins.input", side_effect=EOFError
    ):
        with pytest.raises(PromptAborted):
            prompt_for_destination("/media/Disk 1")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
