import os
import logging
from datetime import datetime, timezone
from pathlib import Path

from av1janitor.domain import naming
from av1janitor.domain.errors import ReplacementFailure

logger = logging.getLogger(__name__)


def replace_file_atomic(original_path: Path, candidate_path: Path):
    """Swaps candidate_path into original_path, keeping a backup until the swap is done.

    1. original -> <stem>.bak-<uuid>
    2. candidate -> original
    3. delete backup

    If step 2 fails the backup is renamed back and ReplacementFailure is raised.
    A backup that cannot be deleted after a good swap is only logged.
    """
    backup = naming.backup_path(original_path)

    try:
        os.rename(original_path, backup)
    except OSError as e:
        raise ReplacementFailure(
            f"Could not move {original_path} aside: {e}",
            original_path=original_path, backup_path=backup, restored=True,
        ) from e

    try:
        os.rename(candidate_path, original_path)
    except OSError as e:
        logger.error(f"Failed to move {candidate_path} into place ({e}), restoring original")
        try:
            os.rename(backup, original_path)
        except OSError as restore_err:
            logger.critical(
                f"Failed to restore original from backup {backup}: {restore_err}. "
                f"Your original file is at: {backup}"
            )
            raise ReplacementFailure(
                f"Replacement of {original_path} failed and the original could not be restored; "
                f"it is at {backup}",
                original_path=original_path, backup_path=backup, restored=False,
            ) from e
        raise ReplacementFailure(
            f"Replacement of {original_path} failed, original restored: {e}",
            original_path=original_path, backup_path=backup, restored=True,
        ) from e

    try:
        os.remove(backup)
    except OSError as e:
        logger.warning(f"Failed to delete backup at {backup}: {e}")


def write_reason_file(source_path: Path, reason: str) -> Path:
    path = naming.reason_path(source_path)
    path.write_text(reason)
    return path


def write_skip_marker(source_path: Path) -> Path:
    """Marks the source so that later scans never try it again."""
    path = naming.skip_marker_path(source_path)
    path.write_text(f"Created: {datetime.now(timezone.utc).isoformat()}")
    return path


def cleanup_output(path: Path):
    if path.exists():
        path.unlink()


def reject_candidate(source_path: Path, candidate_path: Path, reason: str):
    """Leaves the source untouched, records why beside it and drops the candidate."""
    write_reason_file(source_path, reason)
    write_skip_marker(source_path)
    cleanup_output(candidate_path)
