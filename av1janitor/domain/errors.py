from pathlib import Path
from typing import Optional


class JanitorError(Exception):
    """Base class for all errors raised while processing a media file."""
    pass


class ConfigError(JanitorError):
    pass


class ProbeError(JanitorError):
    """ffprobe could not be run or its output could not be understood."""
    pass


class BuildError(JanitorError):
    """No usable video stream to build an encode for."""
    pass


class FFmpegNotFoundError(JanitorError):
    pass


class SupervisionError(JanitorError):
    """The encoder could not be spawned or its diagnostics could not be read."""
    pass


class SupervisionTimeout(SupervisionError):
    def __init__(self, elapsed_seconds: float):
        super().__init__(f"Transcode timed out after {elapsed_seconds:.0f}s")
        self.elapsed_seconds = elapsed_seconds


class EncodeFailed(SupervisionError):
    def __init__(self, exit_code: Optional[int], stderr_tail: str = ""):
        super().__init__(f"FFmpeg failed: {exit_code}")
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class ReplacementFailure(JanitorError):
    """Swapping the encoded output into place failed."""

    def __init__(self, message: str, original_path: Path, backup_path: Path, restored: bool):
        super().__init__(message)
        self.original_path = original_path
        self.backup_path = backup_path
        self.restored = restored


class PersistenceError(JanitorError):
    pass
