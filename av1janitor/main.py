import typer
from functools import partial
from pathlib import Path
from typing import Optional, List
from rich.console import Console
from rich.table import Table

from av1janitor.config.loader import DEFAULT_CONFIG_PATH, load_config, validate_for_run
from av1janitor.domain.errors import ConfigError, JanitorError
from av1janitor.domain.events import DiscoveryFinished, DiscoveryStarted, JobCompleted, JobFailed
from av1janitor.domain.models import Job, JobStatus, render_status
from av1janitor.infrastructure.logging import setup_logging
from av1janitor.infrastructure.event_bus import EventBus
from av1janitor.infrastructure.file_scanner import FileScanner, is_file_stable
from av1janitor.infrastructure.ffprobe import FFprobeAdapter
from av1janitor.infrastructure.ffmpeg import detect_hw_device, find_ffmpeg
from av1janitor.infrastructure.job_store import JobStore
from av1janitor.infrastructure.shutdown import CancellationToken, install_signal_handlers
from av1janitor.infrastructure.supervisor import ProcessSupervisor
from av1janitor.pipeline.scheduler import BatchSummary, Scheduler
from av1janitor.pipeline.workflow import TranscodeWorkflow

app = typer.Typer(help="av1janitor - re-encode a media library to AV1 with Intel QSV")
console = Console()

STATUS_STYLES = {
    JobStatus.PENDING: "dim",
    JobStatus.RUNNING: "cyan",
    JobStatus.SUCCESS: "green",
    JobStatus.FAILED: "red",
    JobStatus.SKIPPED: "yellow",
}


def render_summary(summary: BatchSummary) -> Table:
    table = Table(title="Processing summary")
    table.add_column("Total", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Not started", justify="right", style="dim")
    table.add_row(str(summary.total), str(summary.success), str(summary.skipped),
                  str(summary.failed), str(summary.not_started))
    return table


def render_jobs(jobs: List[Job]) -> Table:
    table = Table(title=f"Jobs ({len(jobs)})")
    table.add_column("Status")
    table.add_column("File", overflow="fold")
    table.add_column("Duration", justify="right")
    table.add_column("Saved", justify="right")
    table.add_column("Reason", overflow="fold")
    for job in sorted(jobs, key=lambda j: j.created_at, reverse=True):
        table.add_row(
            f"[{STATUS_STYLES[job.status]}]{render_status(job.status)}[/]",
            job.source_path.name,
            job.duration_string(),
            job.size_savings_string(),
            job.reason or "",
        )
    return table


@app.command()
def run(
    directory: Optional[List[Path]] = typer.Option(None, "--directory", "-d", help="Directory to process (repeatable, overrides config)"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    once: bool = typer.Option(False, "--once", help="Process the current files and exit instead of watching"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Probe and decide, but never encode"),
    concurrent: Optional[int] = typer.Option(None, "--concurrent", "-j", help="Override max concurrent encodes"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Scan the watched directories and re-encode what is worth it."""
    try:
        config = load_config(config_path)
        if directory:
            config.general.watched_directories = list(directory)
        if dry_run:
            config.general.dry_run = True
        if concurrent is not None:
            if concurrent < 1:
                raise ConfigError(f"--concurrent must be at least 1, got {concurrent}")
            config.general.max_concurrent = concurrent
        if debug:
            config.general.debug = True
        validate_for_run(config)

        logger = setup_logging(config.paths.logs_dir, debug=config.general.debug)
        logger.info(f"av1janitor started: directories={config.general.watched_directories}")

        ffmpeg = find_ffmpeg(config.ffmpeg.ffmpeg_path)
        logger.info(f"Found FFmpeg {ffmpeg.version} at {ffmpeg.ffmpeg_path}")

        token = CancellationToken()
        install_signal_handlers(token)

        bus = EventBus()
        bus.subscribe(JobCompleted, lambda e: logger.info(
            f"Replaced {e.job.source_path.name}, saved {e.job.size_savings_string()}"))
        bus.subscribe(JobFailed, lambda e: logger.error(f"{e.path.name}: {e.error_message}"))
        bus.subscribe(DiscoveryFinished, lambda e: logger.debug(f"Discovery found {e.files_found} file(s)"))

        workflow = TranscodeWorkflow(
            config=config,
            ffprobe_adapter=FFprobeAdapter(ffmpeg.ffprobe_path),
            supervisor=ProcessSupervisor(
                timeout_seconds=config.ffmpeg.timeout_seconds,
                max_stderr_lines=config.ffmpeg.max_stderr_lines,
            ),
            job_store=JobStore(config.paths.jobs_dir),
            ffmpeg_path=ffmpeg.ffmpeg_path,
            event_bus=bus,
            hw_device=detect_hw_device(),
        )
        scanner = FileScanner(config.general.media_extensions)
        stability = partial(
            is_file_stable,
            sample_count=config.stability.sample_count,
            sample_delay=config.stability.sample_delay_seconds,
        )
        def discover() -> List[Path]:
            directories = config.general.watched_directories
            bus.publish(DiscoveryStarted(directories=directories))
            found = list(scanner.scan(directories))
            bus.publish(DiscoveryFinished(files_found=len(found)))
            return found

        with Scheduler(workflow, config.general.max_concurrent, token, stability, bus) as scheduler:
            summary = scheduler.run_batch(discover())
            console.print(render_summary(summary))
            if not once:
                logger.info("Watching for new files (Ctrl+C to stop)...")
                scheduler.watch(discover, config.general.scan_interval_seconds)

    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)
    except JanitorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def jobs(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    status: Optional[JobStatus] = typer.Option(None, "--status", "-s", help="Only show jobs in this status"),
):
    """List recorded jobs (read-only)."""
    try:
        config = load_config(config_path)
    except JanitorError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    records = JobStore(config.paths.jobs_dir).load_all()
    if status is not None:
        records = [j for j in records if j.status == status]
    console.print(render_jobs(records))


@app.command("check-ffmpeg")
def check_ffmpeg(
    ffmpeg_path: Optional[Path] = typer.Option(None, "--ffmpeg", help="ffmpeg binary to check"),
):
    """Verify that a usable ffmpeg with av1_qsv is installed."""
    try:
        installation = find_ffmpeg(ffmpeg_path, hardware_test=True)
    except JanitorError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"FFmpeg {installation.version}: {installation.ffmpeg_path}", fg=typer.colors.GREEN)
    typer.echo(f"ffprobe: {installation.ffprobe_path}")
    typer.echo(f"QSV device: {detect_hw_device()}")
    if installation.qsv_hardware_works:
        typer.secho("QSV hardware test passed", fg=typer.colors.GREEN)
    else:
        typer.secho("QSV hardware test failed - check GPU drivers and permissions (vainfo)", fg=typer.colors.YELLOW)


if __name__ == "__main__":
    app()
