import logging
import threading
import concurrent.futures
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from pydantic import BaseModel

from av1janitor.domain.events import BatchFinished
from av1janitor.infrastructure.event_bus import EventBus
from av1janitor.infrastructure.shutdown import CancellationToken
from av1janitor.pipeline.workflow import FileOutcome, TranscodeWorkflow

OUTCOME_SUCCESS = "success"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"

MIN_POOL_WORKERS = 16


class BatchSummary(BaseModel):
    total: int = 0
    success: int = 0
    skipped: int = 0
    failed: int = 0
    not_started: int = 0

    def record(self, outcome: Optional[str]):
        if outcome == OUTCOME_SUCCESS:
            self.success += 1
        elif outcome == OUTCOME_SKIPPED:
            self.skipped += 1
        elif outcome == OUTCOME_FAILED:
            self.failed += 1
        else:
            self.not_started += 1


class Scheduler:
    """Runs workflows on a thread pool with a bounded number of active encodes.

    A path is processed by at most one workflow at a time. The stability check runs
    before a slot is taken. Cancellation is only looked at when admitting work;
    workflows already running are never interrupted by it.
    """

    def __init__(
        self,
        workflow: TranscodeWorkflow,
        max_concurrent: int,
        cancel_token: Optional[CancellationToken] = None,
        stability_check: Optional[Callable[[Path], bool]] = None,
        event_bus: Optional[EventBus] = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.workflow = workflow
        self.max_concurrent = max_concurrent
        self.cancel_token = cancel_token or CancellationToken()
        self.stability_check = stability_check
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

        self._in_flight: Set[Path] = set()
        self._in_flight_lock = threading.Lock()
        # (mtime, size) of every path already handled, shared by run_batch and watch
        self._seen: Dict[Path, Tuple[float, int]] = {}
        self._seen_lock = threading.Lock()
        self._active = 0
        self._slots = threading.Condition()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(MIN_POOL_WORKERS, max_concurrent * 2),
            thread_name_prefix="av1janitor",
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def shutdown(self, wait: bool = True):
        with self._slots:
            self._slots.notify_all()
        self._executor.shutdown(wait=wait)

    @property
    def active_count(self) -> int:
        with self._slots:
            return self._active

    def in_flight(self) -> Set[Path]:
        with self._in_flight_lock:
            return set(self._in_flight)

    def try_claim(self, path: Path) -> bool:
        """Atomically marks path as in flight; False if it already was."""
        with self._in_flight_lock:
            if path in self._in_flight:
                return False
            self._in_flight.add(path)
            return True

    def release(self, path: Path):
        with self._in_flight_lock:
            self._in_flight.discard(path)

    def _acquire_slot(self) -> bool:
        with self._slots:
            while self._active >= self.max_concurrent and not self.cancel_token.is_requested():
                self._slots.wait(timeout=0.5)
            if self.cancel_token.is_requested():
                return False
            self._active += 1
            return True

    def _release_slot(self):
        with self._slots:
            self._active -= 1
            self._slots.notify_all()

    def _run_one(self, path: Path) -> Optional[str]:
        try:
            if self.cancel_token.is_requested():
                return None
            if self.stability_check is not None and not self.stability_check(path):
                self.logger.info(f"File still being copied, skipping for now: {path}")
                return OUTCOME_SKIPPED

            if not self._acquire_slot():
                self.logger.info(f"Shutdown requested, not starting {path}")
                return None
            try:
                result = self.workflow.process(path)
            finally:
                self._release_slot()

            if result.outcome == FileOutcome.SUCCESS:
                self.logger.info(f"Successfully transcoded: {path}")
                return OUTCOME_SUCCESS
            return OUTCOME_SKIPPED
        except Exception as e:
            self.logger.error(f"Failed {path}: {e}")
            return OUTCOME_FAILED
        finally:
            self.release(path)

    def submit(self, path: Path) -> Optional[concurrent.futures.Future]:
        """Discovery event for one path; ignored while that path is in flight."""
        path = Path(path)
        if self.cancel_token.is_requested():
            return None
        if not self.try_claim(path):
            self.logger.debug(f"Already processing {path}, ignoring")
            return None
        try:
            return self._executor.submit(self._run_one, path)
        except RuntimeError:
            # executor already shut down
            self.release(path)
            raise

    def _signature(self, path: Path) -> Optional[Tuple[float, int]]:
        try:
            stat = path.stat()
        except OSError:
            return None
        return (stat.st_mtime, stat.st_size)

    def _remember(self, path: Path):
        """Records the path as handled in its current state."""
        signature = self._signature(path)
        with self._seen_lock:
            if signature is None:
                self._seen.pop(path, None)
            else:
                self._seen[path] = signature

    def _is_unchanged(self, path: Path, signature: Tuple[float, int]) -> bool:
        with self._seen_lock:
            return self._seen.get(path) == signature

    def _forget_missing(self, present: Set[Path]):
        with self._seen_lock:
            for path in [p for p in self._seen if p not in present]:
                del self._seen[path]

    def run_batch(self, paths: Iterable[Path]) -> BatchSummary:
        summary = BatchSummary()
        futures: List[concurrent.futures.Future] = []
        submitted: Set[Path] = set()
        for path in paths:
            path = Path(path)
            summary.total += 1
            if self.cancel_token.is_requested():
                self.logger.warning("Shutdown requested, stopping new jobs")
                summary.not_started += 1
                continue
            if path in submitted:
                self.logger.debug(f"Duplicate in batch, ignoring {path}")
                summary.not_started += 1
                continue
            future = self.submit(path)
            if future is None:
                # already in flight from elsewhere
                summary.not_started += 1
                continue
            submitted.add(path)
            futures.append(future)

        for future in concurrent.futures.as_completed(futures):
            summary.record(future.result())
        for path in submitted:
            self._remember(path)

        self.logger.info(
            f"Processing summary: total={summary.total} success={summary.success} "
            f"skipped={summary.skipped} failed={summary.failed} not_started={summary.not_started}"
        )
        if self.event_bus is not None:
            self.event_bus.publish(BatchFinished(
                total=summary.total, success=summary.success,
                skipped=summary.skipped, failed=summary.failed,
            ))
        return summary

    def watch(self, discover: Callable[[], Iterable[Path]], interval_seconds: float):
        """Rescans until cancelled, submitting new or modified paths.

        Paths handled by an earlier run_batch or watch pass are only submitted
        again once their (mtime, size) changes.
        """
        pending: List[concurrent.futures.Future] = []
        while not self.cancel_token.is_requested():
            present: Set[Path] = set()
            for path in discover():
                path = Path(path)
                present.add(path)
                signature = self._signature(path)
                if signature is None or self._is_unchanged(path, signature):
                    continue
                future = self.submit(path)
                if future is not None:
                    with self._seen_lock:
                        self._seen[path] = signature
                    future.add_done_callback(lambda f, p=path: self._remember(p))
                    pending.append(future)
            self._forget_missing(present)
            pending = [f for f in pending if not f.done()]
            if self.cancel_token.wait(interval_seconds):
                break

        self.logger.info(f"Shutdown requested, waiting for {len(pending)} running job(s)")
        concurrent.futures.wait(pending)
