import pytest
import json
from pathlib import Path
from unittest.mock import patch
from av1janitor.domain.errors import ProbeError
from av1janitor.infrastructure.ffprobe import FFprobeAdapter, ffprobe_path_for, parse_bit_depth


def _mock_run(mock_run, payload, returncode=0):
    mock_run.return_value.stdout = payload if isinstance(payload, str) else json.dumps(payload)
    mock_run.return_value.returncode = returncode
    mock_run.return_value.stderr = ""


def test_probe_keeps_only_video_streams(ffprobe_json):
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)

        info = FFprobeAdapter().probe(Path("movie.mkv"))

        assert len(info.video_streams) == 1
        stream = info.video_streams[0]
        assert stream.codec == "h264"
        assert stream.width == 1920
        assert stream.height == 1080
        assert stream.bit_depth == 8
        assert stream.is_default
        assert not stream.is_vfr
        assert info.format_name == "matroska,webm"
        assert info.size == 3221225472
        assert info.muxing_app.startswith("libebml")


def test_probe_command_line(ffprobe_json):
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)

        FFprobeAdapter(Path("/opt/ff/ffprobe")).probe(Path("movie.mkv"))

        cmd = mock_run.call_args[0][0]
        assert cmd[0] == "/opt/ff/ffprobe"
        assert "-show_streams" in cmd
        assert "-show_format" in cmd
        assert cmd[-1] == "movie.mkv"


def test_probe_lowercase_muxing_app_and_brands(ffprobe_json):
    ffprobe_json["format"]["tags"] = {
        "muxing_app": "mkvmerge",
        "major_brand": "isom",
        "compatible_brands": "isomiso2avc1mp41",
    }
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(Path("movie.mp4"))

    assert info.muxing_app == "mkvmerge"
    assert info.major_brand == "isom"
    assert info.compatible_brands == "isomiso2avc1mp41"


def test_probe_no_video_streams(ffprobe_json):
    ffprobe_json["streams"] = [s for s in ffprobe_json["streams"] if s["codec_type"] != "video"]
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(Path("audio.mkv"))

    assert not info.has_video()
    assert info.default_video_stream_index() is None


def test_probe_size_falls_back_to_filesystem(tmp_path, ffprobe_json):
    media = tmp_path / "movie.mkv"
    media.write_bytes(b"x" * 1234)
    del ffprobe_json["format"]["size"]

    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(media)

    assert info.size == 1234


def test_probe_size_unknown(ffprobe_json):
    ffprobe_json["format"]["size"] = "N/A"
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(Path("/nonexistent/movie.mkv"))

    assert info.size is None


def test_default_stream_falls_back_to_first(ffprobe_json):
    second = dict(ffprobe_json["streams"][0], index=2, width=1280, height=720)
    ffprobe_json["streams"][0]["disposition"] = {"default": 0}
    second["disposition"] = {"default": 0}
    ffprobe_json["streams"].append(second)

    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(Path("movie.mkv"))

    assert len(info.video_streams) == 2
    assert info.default_video_stream_index() == 0
    assert info.default_video_stream().height == 1080


def test_default_stream_flag_wins(ffprobe_json):
    cover = dict(ffprobe_json["streams"][0], codec_name="mjpeg", disposition={"default": 0})
    ffprobe_json["streams"].insert(0, cover)

    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, ffprobe_json)
        info = FFprobeAdapter().probe(Path("movie.mkv"))

    assert info.default_video_stream_index() == 1
    assert info.default_video_stream().codec == "h264"


def test_ffprobe_error_exit():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        mock_run.return_value.stderr = "error"

        with pytest.raises(ProbeError):
            FFprobeAdapter().probe(Path("test.mp4"))


def test_ffprobe_missing_binary():
    with patch("subprocess.run", side_effect=FileNotFoundError("ffprobe")):
        with pytest.raises(ProbeError):
            FFprobeAdapter().probe(Path("test.mp4"))


@pytest.mark.parametrize("payload", ["not json", "[]", json.dumps({"streams": []})])
def test_ffprobe_bad_output(payload):
    with patch("subprocess.run") as mock_run:
        _mock_run(mock_run, payload)

        with pytest.raises(ProbeError):
            FFprobeAdapter().probe(Path("test.mp4"))


@pytest.mark.parametrize("pix_fmt,bits,expected", [
    ("yuv420p", "8", 8),
    ("yuv420p10le", "10", 10),
    ("yuv420p10le", None, 10),
    ("yuv420p10le", "N/A", 10),
    ("p010le", None, 10),
    ("yuv444p12le", None, 12),
    ("yuv444p16be", None, 16),
    ("yuv420p", None, 8),
    (None, None, 8),
    ("yuv420p", 10, 10),
])
def test_parse_bit_depth(pix_fmt, bits, expected):
    assert parse_bit_depth(pix_fmt, bits) == expected


def test_ffprobe_path_for():
    assert ffprobe_path_for(Path("/usr/local/bin/ffmpeg")) == Path("/usr/local/bin/ffprobe")
    assert ffprobe_path_for(Path("ffmpeg")) == Path("ffprobe")
    assert ffprobe_path_for(None) == Path("ffprobe")
