from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from av1janitor.domain.units import GIB

DEFAULT_DATA_DIR = Path("~/.local/share/av1janitor").expanduser()


class GeneralConfig(BaseModel):
    watched_directories: List[Path] = Field(default_factory=list)
    media_extensions: List[str] = Field(default_factory=lambda: ["mkv", "mp4", "avi"])
    min_file_size_bytes: int = Field(default=2 * GIB, gt=0)
    size_gate_factor: float = Field(default=0.9, gt=0.0, le=1.0)
    max_concurrent: int = Field(default=1, gt=0)
    dry_run: bool = False
    target_codec: str = "av1"
    scan_interval_seconds: int = Field(default=60, gt=0)
    debug: bool = False

    @field_validator('media_extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("media_extensions cannot be empty")
        return [ext.lower().lstrip(".") for ext in v]


class QualityConfig(BaseModel):
    """QSV global_quality per resolution bucket (lower is better quality)."""
    below_1080p: int = Field(default=25, ge=1, le=51)
    at_1080p: int = Field(default=24, ge=1, le=51)
    at_1440p_and_above: int = Field(default=23, ge=1, le=51)


class FFmpegConfig(BaseModel):
    ffmpeg_path: Optional[Path] = None
    timeout_seconds: Optional[float] = Field(default=4 * 3600, gt=0)
    max_stderr_lines: int = Field(default=1000, gt=0)


class StabilityConfig(BaseModel):
    sample_count: int = Field(default=3, ge=1)
    sample_delay_seconds: float = Field(default=0.5, ge=0.0)


class PathsConfig(BaseModel):
    jobs_dir: Path = DEFAULT_DATA_DIR / "jobs"
    logs_dir: Path = DEFAULT_DATA_DIR / "logs"

    @field_validator('jobs_dir', 'logs_dir')
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        return Path(v).expanduser()


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    stability: StabilityConfig = Field(default_factory=StabilityConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
