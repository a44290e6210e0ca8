from pathlib import Path
from typing import List
from pydantic import BaseModel
from .models import Job, TranscodeProgress


class Event(BaseModel):
    """Base class for all domain events."""
    pass


class JobEvent(Event):
    job: Job


class JobStarted(JobEvent):
    pass


class JobProgressUpdated(JobEvent):
    progress: TranscodeProgress


class JobCompleted(JobEvent):
    savings_ratio: float


class JobSkipped(Event):
    path: Path
    reason: str


class JobFailed(Event):
    path: Path
    error_message: str


class DiscoveryStarted(Event):
    directories: List[Path]


class DiscoveryFinished(Event):
    files_found: int


class BatchFinished(Event):
    total: int
    success: int
    skipped: int
    failed: int
