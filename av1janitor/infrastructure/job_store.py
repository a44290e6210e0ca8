import os
import logging
import tempfile
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError

from av1janitor.domain import naming
from av1janitor.domain.errors import PersistenceError
from av1janitor.domain.models import Job

RECORD_SUFFIX = ".json"


class JobStore:
    """One JSON record per job in a directory.

    Every save replaces the whole record through a temp file + rename, so a crash
    leaves the previous complete record rather than a truncated one. Records are
    written only by the workflow that owns the job; readers (the job listing) never
    write.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.logger = logging.getLogger(__name__)

    def path_for(self, job_id: str) -> Path:
        return self.directory / naming.job_record_name(job_id)

    def save(self, job: Job):
        target = self.path_for(job.id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{job.id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(job.model_dump_json(indent=2))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            self.logger.error(f"Failed to save job {job.id} to {target}: {e}")
            raise PersistenceError(f"Failed to save job {job.id}: {e}") from e

    def _load_file(self, path: Path) -> Job:
        return Job.model_validate_json(path.read_text())

    def load(self, job_id: str) -> Optional[Job]:
        path = self.path_for(job_id)
        if not path.exists():
            return None
        try:
            return self._load_file(path)
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Failed to load job from {path}: {e}") from e

    def load_all(self) -> List[Job]:
        """Loads every readable record; corrupt ones are skipped with a warning."""
        if not self.directory.exists():
            return []

        jobs = []
        for path in sorted(self.directory.iterdir()):
            if path.suffix != RECORD_SUFFIX or not path.is_file():
                continue
            try:
                jobs.append(self._load_file(path))
            except (OSError, ValidationError, UnicodeDecodeError) as e:
                self.logger.warning(f"Failed to load job from {path}: {e}")
        return jobs

    def delete(self, job_id: str) -> bool:
        path = self.path_for(job_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete job record {path}: {e}") from e
        return True
