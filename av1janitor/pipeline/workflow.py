import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from av1janitor.config.models import AppConfig
from av1janitor.domain import naming
from av1janitor.domain.decisions import is_already_target_codec, needs_special_handling, should_skip_for_size
from av1janitor.domain.errors import EncodeFailed, JanitorError, SupervisionTimeout
from av1janitor.domain.events import JobCompleted, JobFailed, JobProgressUpdated, JobSkipped, JobStarted
from av1janitor.domain.models import ExecutionOutcome, Job, JobStatus, SizeGatePassed, TranscodeProgress
from av1janitor.domain.units import GIB
from av1janitor.infrastructure.event_bus import EventBus
from av1janitor.infrastructure.ffmpeg import EncodeParams, build_command
from av1janitor.infrastructure.ffprobe import FFprobeAdapter
from av1janitor.infrastructure.job_store import JobStore
from av1janitor.infrastructure.supervisor import ProcessSupervisor
from av1janitor.pipeline.replacement import cleanup_output, reject_candidate, replace_file_atomic
from av1janitor.pipeline.size_gate import check_size_gate, format_rejection_reason

PROGRESS_EVERY_N_FRAMES = 100


class FileOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"


class FileResult:
    def __init__(self, outcome: FileOutcome, reason: Optional[str] = None, job: Optional[Job] = None):
        self.outcome = outcome
        self.reason = reason
        self.job = job

    @classmethod
    def skipped(cls, reason: str, job: Optional[Job] = None) -> "FileResult":
        return cls(FileOutcome.SKIPPED, reason, job)

    def __repr__(self):
        return f"FileResult({self.outcome.value}, {self.reason!r})"


def raise_for_outcome(outcome: ExecutionOutcome):
    if outcome.timed_out:
        raise SupervisionTimeout(outcome.duration_seconds)
    if not outcome.success:
        tail = "\n".join(outcome.stderr.splitlines()[-20:])
        raise EncodeFailed(outcome.exit_code, tail)


class TranscodeWorkflow:
    """Takes one source file from decision to a terminal job record."""

    def __init__(
        self,
        config: AppConfig,
        ffprobe_adapter: FFprobeAdapter,
        supervisor: ProcessSupervisor,
        job_store: JobStore,
        ffmpeg_path: Path = Path("ffmpeg"),
        event_bus: Optional[EventBus] = None,
        hw_device: Optional[str] = None,
        command_builder: Callable[..., list] = build_command,
    ):
        self.config = config
        self.ffprobe_adapter = ffprobe_adapter
        self.supervisor = supervisor
        self.job_store = job_store
        self.ffmpeg_path = ffmpeg_path
        self.event_bus = event_bus
        self.hw_device = hw_device
        self.command_builder = command_builder
        self.logger = logging.getLogger(__name__)

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _skip(self, path: Path, reason: str, job: Optional[Job] = None) -> FileResult:
        self.logger.debug(f"Skipped {path}: {reason}")
        self._publish(JobSkipped(path=path, reason=reason))
        return FileResult.skipped(reason, job)

    def preflight(self, path: Path) -> Optional[FileResult]:
        """Checks that need no probe and create no job record."""
        if naming.has_skip_marker(path):
            return self._skip(path, f"Has .{naming.SKIP_MARKER_EXTENSION} marker")
        size = path.stat().st_size
        if should_skip_for_size(size, self.config.general.min_file_size_bytes):
            return self._skip(path, f"Too small ({size / GIB:.1f} GiB)")
        return None

    def process(self, path: Path) -> FileResult:
        path = Path(path)
        self.logger.debug(f"Processing: {path}")

        early = self.preflight(path)
        if early is not None:
            return early
        original_bytes = path.stat().st_size

        descriptor = self.ffprobe_adapter.probe(path)
        if not descriptor.has_video():
            return self._skip(path, "No video streams")
        if is_already_target_codec(descriptor, self.config.general.target_codec):
            return self._skip(path, f"Already {self.config.general.target_codec.upper()}")
        if self.config.general.dry_run:
            self.logger.info(f"DRY RUN: Would transcode {path}")
            return self._skip(path, "Dry run mode")

        job = Job(source_path=path, original_bytes=original_bytes,
                  is_webrip_like=needs_special_handling(descriptor))
        self.job_store.save(job)

        try:
            return self._run_job(job, descriptor)
        except JanitorError as e:
            self._fail(job, str(e))
            raise
        except Exception as e:
            self._fail(job, f"Exception: {e}")
            raise

    def _fail(self, job: Job, reason: str):
        self.logger.error(f"Failed {job.source_path}: {reason}")
        if job.output_path is not None:
            try:
                cleanup_output(job.output_path)
            except OSError as e:
                self.logger.warning(f"Could not remove partial output {job.output_path}: {e}")
        job.mark_finished(JobStatus.FAILED, reason)
        self.job_store.save(job)
        self._publish(JobFailed(path=job.source_path, error_message=reason))

    def _on_progress(self, job: Job, progress: TranscodeProgress):
        if progress.frame % PROGRESS_EVERY_N_FRAMES == 0:
            self.logger.debug(
                f"{job.source_path.name}: frame {progress.frame} | "
                f"FPS: {progress.fps:.1f} | Speed: {progress.speed:.2f}x"
            )
            self._publish(JobProgressUpdated(job=job, progress=progress))

    def _run_job(self, job: Job, descriptor) -> FileResult:
        path = job.source_path
        params = EncodeParams.from_descriptor(path, descriptor, self.config.quality)
        job.output_path = params.output_path
        args = self.command_builder(params, hw_device=self.hw_device)

        job.mark_running()
        self.job_store.save(job)
        self._publish(JobStarted(job=job))
        self.logger.info(
            f"Starting transcode: {path} (Quality: {params.quality}, "
            f"Surface: {params.surface.value}, WebRip: {params.is_webrip})"
        )

        outcome = self.supervisor.run(self.ffmpeg_path, args,
                                      progress_callback=lambda p: self._on_progress(job, p))
        raise_for_outcome(outcome)
        self.logger.info(f"Transcode completed in {outcome.duration_seconds:.1f}s: {path.name}")

        verdict = check_size_gate(path, params.output_path, self.config.general.size_gate_factor)
        job.new_bytes = verdict.new_bytes

        if isinstance(verdict, SizeGatePassed):
            self.logger.info(f"Size gate passed: {verdict.savings_ratio * 100:.1f}% savings ({path.name})")
            replace_file_atomic(path, params.output_path)
            job.mark_finished(JobStatus.SUCCESS)
            self.job_store.save(job)
            self._publish(JobCompleted(job=job, savings_ratio=verdict.savings_ratio))
            return FileResult(FileOutcome.SUCCESS, job=job)

        reason = format_rejection_reason(verdict)
        self.logger.warning(f"{reason} ({path.name})")
        reject_candidate(path, params.output_path, reason)
        job.mark_finished(JobStatus.SKIPPED, "Size gate failed")
        self.job_store.save(job)
        self._publish(JobSkipped(path=path, reason=reason))
        return FileResult.skipped(reason, job)
