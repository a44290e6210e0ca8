import os
import pytest
from unittest.mock import patch
from av1janitor.domain.errors import ReplacementFailure
from av1janitor.pipeline.replacement import (
    cleanup_output, reject_candidate, replace_file_atomic, write_reason_file, write_skip_marker,
)


@pytest.fixture
def pair(tmp_path):
    original = tmp_path / "movie.mkv"
    candidate = tmp_path / "movie.av1-tmp.mkv"
    original.write_bytes(b"original")
    candidate.write_bytes(b"encoded")
    return original, candidate


def _leftover_backups(directory):
    return [p for p in directory.iterdir() if ".bak-" in p.name]


def test_replace_success(pair, tmp_path):
    original, candidate = pair
    replace_file_atomic(original, candidate)

    assert original.read_bytes() == b"encoded"
    assert not candidate.exists()
    assert _leftover_backups(tmp_path) == []


def test_replace_restores_original_when_swap_fails(pair, tmp_path):
    original, candidate = pair
    real_rename = os.rename

    def failing_rename(src, dst):
        if str(src) == str(candidate):
            raise OSError("disk full")
        return real_rename(src, dst)

    with patch("os.rename", side_effect=failing_rename):
        with pytest.raises(ReplacementFailure) as exc_info:
            replace_file_atomic(original, candidate)

    assert exc_info.value.restored
    assert original.read_bytes() == b"original"
    assert candidate.read_bytes() == b"encoded"
    assert _leftover_backups(tmp_path) == []


def test_replace_reports_backup_location_when_restore_fails(pair, tmp_path):
    original, candidate = pair
    real_rename = os.rename
    calls = []

    def failing_rename(src, dst):
        calls.append((src, dst))
        if len(calls) == 1:
            return real_rename(src, dst)
        raise OSError("device gone")

    with patch("os.rename", side_effect=failing_rename):
        with pytest.raises(ReplacementFailure) as exc_info:
            replace_file_atomic(original, candidate)

    failure = exc_info.value
    assert not failure.restored
    assert failure.backup_path.exists()
    assert failure.backup_path.read_bytes() == b"original"
    assert not original.exists()


def test_replace_fails_cleanly_when_original_missing(tmp_path):
    candidate = tmp_path / "movie.av1-tmp.mkv"
    candidate.write_bytes(b"encoded")

    with pytest.raises(ReplacementFailure):
        replace_file_atomic(tmp_path / "movie.mkv", candidate)
    assert candidate.exists()


def test_backup_removal_failure_is_not_fatal(pair, tmp_path):
    original, candidate = pair
    with patch("os.remove", side_effect=OSError("busy")):
        replace_file_atomic(original, candidate)

    assert original.read_bytes() == b"encoded"
    assert len(_leftover_backups(tmp_path)) == 1


def test_sidecars(tmp_path):
    source = tmp_path / "movie.mkv"

    reason = write_reason_file(source, "Size gate failed")
    marker = write_skip_marker(source)

    assert reason == tmp_path / "movie.why.txt"
    assert reason.read_text() == "Size gate failed"
    assert marker == tmp_path / "movie.av1skip"
    assert marker.read_text().startswith("Created: ")


def test_reject_candidate(pair, tmp_path):
    original, candidate = pair
    reject_candidate(original, candidate, "Size gate failed: 93.3% of original (max: 90.0%)")

    assert original.read_bytes() == b"original"
    assert not candidate.exists()
    assert (tmp_path / "movie.av1skip").exists()
    assert "93.3%" in (tmp_path / "movie.why.txt").read_text()


def test_cleanup_output_missing_is_fine(tmp_path):
    cleanup_output(tmp_path / "nothing.mkv")
