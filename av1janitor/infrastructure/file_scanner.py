import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Iterator, List

from av1janitor.domain import naming

logger = logging.getLogger(__name__)


class FileScanner:
    """Finds media files under the watched directories."""

    def __init__(self, extensions: List[str]):
        self.extensions = {ext.lower().lstrip(".") for ext in extensions}

    def is_media_file(self, path: Path) -> bool:
        if not path.is_file() or naming.is_temp_output(path):
            return False
        return path.suffix.lower().lstrip(".") in self.extensions

    def scan(self, directories: Iterable[Path]) -> Iterator[Path]:
        for root in directories:
            root = Path(root)
            if not root.exists():
                logger.warning(f"Directory does not exist: {root}")
                continue
            for path in sorted(root.rglob("*")):
                if self.is_media_file(path):
                    yield path


def is_file_stable(path: Path, sample_count: int = 3, sample_delay: float = 0.5,
                   sleep: Callable[[float], None] = time.sleep) -> bool:
    """Samples the file size repeatedly; any change means it is still being written."""
    previous = path.stat().st_size
    for _ in range(sample_count):
        sleep(sample_delay)
        current = path.stat().st_size
        if current != previous:
            return False
        previous = current
    return True
