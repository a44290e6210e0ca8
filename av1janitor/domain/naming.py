"""Names of every file derived from a source path.

The scanner, the workflow and the job listing all go through here so that
temp outputs and sidecars are recognised the same way everywhere.
"""
import uuid
from pathlib import Path

TEMP_OUTPUT_SUFFIX = ".av1-tmp.mkv"
SKIP_MARKER_EXTENSION = "av1skip"
REASON_EXTENSION = "why.txt"
BACKUP_INFIX = ".bak-"


def temp_output_path(source: Path) -> Path:
    """movie.mkv -> movie.av1-tmp.mkv"""
    return source.with_name(f"{source.stem}{TEMP_OUTPUT_SUFFIX}")


def skip_marker_path(source: Path) -> Path:
    """movie.mkv -> movie.av1skip"""
    return source.with_suffix(f".{SKIP_MARKER_EXTENSION}")


def reason_path(source: Path) -> Path:
    """movie.mkv -> movie.why.txt"""
    return source.with_suffix(f".{REASON_EXTENSION}")


def backup_path(source: Path) -> Path:
    """Collision free backup name beside the source: movie.bak-<uuid>"""
    return source.with_name(f"{source.stem}{BACKUP_INFIX}{uuid.uuid4()}")


def job_record_name(job_id: str) -> str:
    return f"{job_id}.json"


def is_temp_output(path: Path) -> bool:
    return path.name.endswith(TEMP_OUTPUT_SUFFIX)


def has_skip_marker(source: Path) -> bool:
    return skip_marker_path(source).exists()
