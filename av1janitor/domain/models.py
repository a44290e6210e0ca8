import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union
from pydantic import BaseModel, Field

from av1janitor.domain.units import format_bytes


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.SKIPPED)


def render_status(status: JobStatus) -> str:
    """Display word for a job status."""
    return {
        JobStatus.PENDING: "PENDING",
        JobStatus.RUNNING: "RUNNING",
        JobStatus.SUCCESS: "SUCCESS",
        JobStatus.FAILED: "FAILED",
        JobStatus.SKIPPED: "SKIPPED",
    }[status]


class QualityTier(str, Enum):
    LOW = "LOW"
    MID = "MID"
    HIGH = "HIGH"


class Surface(str, Enum):
    """Pixel format uploaded to the QSV encoder."""
    NV12 = "nv12"
    P010 = "p010"


class VideoStreamDescriptor(BaseModel):
    codec: str
    width: int = 0
    height: int = 0
    bit_depth: int = 8
    is_default: bool = False
    avg_frame_rate: str = "0/0"
    r_frame_rate: str = "0/0"

    @property
    def is_vfr(self) -> bool:
        return self.avg_frame_rate != self.r_frame_rate

    @property
    def has_odd_dimensions(self) -> bool:
        return self.width % 2 != 0 or self.height % 2 != 0

    @property
    def resolution_string(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def resolution_label(self) -> str:
        if self.height >= 2160:
            return "4K"
        if self.height >= 1440:
            return "1440p"
        if self.height >= 1080:
            return "1080p"
        if self.height >= 720:
            return "720p"
        if self.height >= 480:
            return "480p"
        return f"{self.height}p"


class MediaDescriptor(BaseModel):
    video_streams: List[VideoStreamDescriptor] = Field(default_factory=list)
    format_name: str = ""
    muxing_app: Optional[str] = None
    major_brand: Optional[str] = None
    compatible_brands: Optional[str] = None
    size: Optional[int] = None

    def has_video(self) -> bool:
        return len(self.video_streams) > 0

    def default_video_stream_index(self) -> Optional[int]:
        """Index of the first stream flagged default, else 0, else None."""
        for index, stream in enumerate(self.video_streams):
            if stream.is_default:
                return index
        return 0 if self.video_streams else None

    def default_video_stream(self) -> Optional[VideoStreamDescriptor]:
        index = self.default_video_stream_index()
        return None if index is None else self.video_streams[index]


class EncodeDecision(BaseModel):
    tier: QualityTier
    surface: Surface
    needs_special_handling: bool = False


class Job(BaseModel):
    """Lifecycle record of one file's re-encode attempt."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_path: Path
    output_path: Optional[Path] = None
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    reason: Optional[str] = None
    original_bytes: Optional[int] = None
    new_bytes: Optional[int] = None
    is_webrip_like: bool = False

    def mark_running(self):
        self.status = JobStatus.RUNNING
        self.started_at = utc_now()

    def mark_finished(self, status: JobStatus, reason: Optional[str] = None):
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status
        self.reason = reason
        self.finished_at = utc_now()

    def duration(self) -> Optional[float]:
        """Seconds between start and finish (or now, while running)."""
        if self.started_at is None:
            return None
        end = self.finished_at or utc_now()
        return (end - self.started_at).total_seconds()

    def size_savings_ratio(self) -> Optional[float]:
        if self.original_bytes is None or self.new_bytes is None or self.original_bytes == 0:
            return None
        return (self.original_bytes - self.new_bytes) / self.original_bytes

    def size_savings_bytes(self) -> Optional[int]:
        if self.original_bytes is None or self.new_bytes is None:
            return None
        return self.original_bytes - self.new_bytes

    def duration_string(self) -> str:
        seconds = self.duration()
        if seconds is None:
            return "N/A"
        total = int(seconds)
        hours, minutes, secs = total // 3600, (total % 3600) // 60, total % 60
        if hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        if minutes > 0:
            return f"{minutes}m {secs}s"
        return f"{secs}s"

    def size_savings_string(self) -> str:
        saved = self.size_savings_bytes()
        ratio = self.size_savings_ratio()
        if saved is None or ratio is None:
            return "N/A"
        sign = "" if saved >= 0 else "-"
        return f"{sign}{format_bytes(abs(saved))} ({ratio * 100:.0f}%)"


class TranscodeProgress(BaseModel):
    frame: int
    fps: float = 0.0
    size_bytes: int = 0
    time_seconds: float = 0.0
    speed: float = 0.0


class ExecutionOutcome(BaseModel):
    success: bool
    duration_seconds: float
    exit_code: Optional[int] = None
    stderr: str = ""
    timed_out: bool = False


class SizeGatePassed(BaseModel):
    original_bytes: int
    new_bytes: int
    savings_ratio: float

    @property
    def passed(self) -> bool:
        return True


class SizeGateFailed(BaseModel):
    original_bytes: int
    new_bytes: int
    ratio: float
    threshold: float

    @property
    def passed(self) -> bool:
        return False


SizeGateVerdict = Union[SizeGatePassed, SizeGateFailed]
