import pytest
from pathlib import Path
from pydantic import ValidationError
from av1janitor.config.loader import load_config, validate_for_run
from av1janitor.config.models import AppConfig, GeneralConfig, QualityConfig
from av1janitor.domain.errors import ConfigError


def test_valid_config(tmp_path):
    data = {
        "general": {
            "watched_directories": [str(tmp_path)],
            "media_extensions": [".MKV", "mp4"],
            "min_file_size_bytes": 1024,
            "size_gate_factor": 0.8,
            "max_concurrent": 3,
        },
        "quality": {"at_1080p": 28},
        "paths": {"jobs_dir": "~/jobs"},
    }
    config = AppConfig(**data)
    assert config.general.watched_directories == [tmp_path]
    assert config.general.media_extensions == ["mkv", "mp4"]
    assert config.general.max_concurrent == 3
    assert config.quality.at_1080p == 28
    assert config.quality.below_1080p == 25
    assert config.paths.jobs_dir == Path("~/jobs").expanduser()


def test_config_defaults():
    config = AppConfig()
    assert config.general.min_file_size_bytes == 2 * 1024 ** 3
    assert config.general.size_gate_factor == 0.9
    assert config.general.max_concurrent == 1
    assert config.general.target_codec == "av1"
    assert not config.general.dry_run
    assert config.ffmpeg.timeout_seconds == 4 * 3600
    assert config.ffmpeg.ffmpeg_path is None


@pytest.mark.parametrize("field,value", [
    ("max_concurrent", 0),
    ("size_gate_factor", 0.0),
    ("size_gate_factor", 1.5),
    ("min_file_size_bytes", 0),
    ("media_extensions", []),
])
def test_invalid_general(field, value):
    with pytest.raises(ValidationError):
        GeneralConfig(**{field: value})


def test_invalid_quality():
    with pytest.raises(ValidationError):
        QualityConfig(at_1080p=64)


def test_load_config(tmp_path):
    f = tmp_path / "config.yaml"
    f.write_text(f"""
general:
  watched_directories:
    - {tmp_path}
  max_concurrent: 2
  dry_run: true
quality:
  at_1440p_and_above: 20
""")
    config = load_config(f)
    assert config.general.watched_directories == [tmp_path]
    assert config.general.max_concurrent == 2
    assert config.general.dry_run
    assert config.quality.at_1440p_and_above == 20


def test_load_config_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "nope.yaml")
    assert config == AppConfig()


def test_load_config_empty_file(tmp_path):
    f = tmp_path / "config.yaml"
    f.write_text("")
    assert load_config(f) == AppConfig()


@pytest.mark.parametrize("content", [
    "general: [unclosed",
    "- just\n- a list\n",
    "general:\n  max_concurrent: zero\n",
])
def test_load_config_invalid(tmp_path, content):
    f = tmp_path / "config.yaml"
    f.write_text(content)
    with pytest.raises(ConfigError):
        load_config(f)


def test_validate_for_run(tmp_path):
    with pytest.raises(ConfigError):
        validate_for_run(AppConfig())

    missing = AppConfig(general=GeneralConfig(watched_directories=[tmp_path / "gone"]))
    with pytest.raises(ConfigError):
        validate_for_run(missing)

    validate_for_run(AppConfig(general=GeneralConfig(watched_directories=[tmp_path])))
