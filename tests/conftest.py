import pytest

from av1janitor.config.models import AppConfig, GeneralConfig, PathsConfig, StabilityConfig
from av1janitor.domain.models import MediaDescriptor, VideoStreamDescriptor


def _make_stream(**overrides) -> VideoStreamDescriptor:
    values = dict(
        codec="h264",
        width=1920,
        height=1080,
        bit_depth=8,
        is_default=True,
        avg_frame_rate="24/1",
        r_frame_rate="24/1",
    )
    values.update(overrides)
    return VideoStreamDescriptor(**values)


def _make_descriptor(streams=None, format_name="matroska", **overrides) -> MediaDescriptor:
    return MediaDescriptor(
        video_streams=[_make_stream()] if streams is None else streams,
        format_name=format_name,
        **overrides
    )


@pytest.fixture
def make_stream():
    return _make_stream


@pytest.fixture
def make_descriptor():
    return _make_descriptor


@pytest.fixture
def media_dir(tmp_path):
    d = tmp_path / "media"
    d.mkdir()
    return d


@pytest.fixture
def app_config(tmp_path, media_dir):
    """Small thresholds so tests can work with a few kilobytes per file."""
    return AppConfig(
        general=GeneralConfig(
            watched_directories=[media_dir],
            min_file_size_bytes=1000,
            size_gate_factor=0.9,
            max_concurrent=2,
        ),
        stability=StabilityConfig(sample_count=1, sample_delay_seconds=0.0),
        paths=PathsConfig(jobs_dir=tmp_path / "jobs", logs_dir=tmp_path / "logs"),
    )


@pytest.fixture
def ffprobe_json():
    return {
        "streams": [
            {
                "index": 0,
                "codec_name": "h264",
                "codec_type": "video",
                "width": 1920,
                "height": 1080,
                "pix_fmt": "yuv420p",
                "bits_per_raw_sample": "8",
                "r_frame_rate": "24000/1001",
                "avg_frame_rate": "24000/1001",
                "disposition": {"default": 1},
            },
            {
                "index": 1,
                "codec_name": "aac",
                "codec_type": "audio",
                "r_frame_rate": "0/0",
                "avg_frame_rate": "0/0",
                "disposition": {"default": 1},
            },
        ],
        "format": {
            "format_name": "matroska,webm",
            "size": "3221225472",
            "tags": {"MUXING_APP": "libebml v1.4.2 + libmatroska v1.6.4"},
        },
    }
