import subprocess
import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from av1janitor.domain.errors import SupervisionError
from av1janitor.domain.models import ExecutionOutcome, TranscodeProgress
from av1janitor.domain.units import parse_size_with_unit, parse_time_to_seconds

DEFAULT_TIMEOUT_SECONDS = 4 * 3600
MAX_STDERR_LINES = 1000
TRUNCATION_MARKER = "... (output truncated) ..."

ProgressCallback = Callable[[TranscodeProgress], None]


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_progress_line(line: str) -> Optional[TranscodeProgress]:
    """Parses an ffmpeg stats line.

    ``frame= 1234 fps= 45 q=-0.0 size=   12345kB time=00:01:23.45 bitrate=1234.5kbits/s speed=1.5x``

    ffmpeg pads values after '=' with spaces, so ``key=`` tokens are joined with the
    following token before splitting. Returns None unless a positive frame count was
    found; a frame 0 line is dropped like any other unusable line.
    """
    tokens = line.split()
    pairs = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.endswith("=") and i + 1 < len(tokens) and "=" not in tokens[i + 1]:
            token = token + tokens[i + 1]
            i += 1
        if "=" in token:
            key, value = token.split("=", 1)
            pairs.append((key, value))
        i += 1

    frame = 0
    fps = 0.0
    size_bytes = 0
    time_seconds = 0.0
    speed = 0.0
    for key, value in pairs:
        if key == "frame":
            frame = _to_int(value)
        elif key == "fps":
            fps = _to_float(value)
        elif key == "size" or key == "Lsize":
            size_bytes = parse_size_with_unit(value)
        elif key == "time":
            time_seconds = parse_time_to_seconds(value)
        elif key == "speed" and value.endswith("x"):
            speed = _to_float(value[:-1])

    if frame <= 0:
        return None
    return TranscodeProgress(frame=frame, fps=fps, size_bytes=size_bytes,
                             time_seconds=time_seconds, speed=speed)


class ProcessSupervisor:
    """Runs the encoder as a child process and watches it until it exits."""

    def __init__(self, timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
                 max_stderr_lines: int = MAX_STDERR_LINES):
        self.timeout_seconds = timeout_seconds
        self.max_stderr_lines = max_stderr_lines
        self.logger = logging.getLogger(__name__)

    def run(self, ffmpeg_path: Path, args: List[str],
            progress_callback: Optional[ProgressCallback] = None) -> ExecutionOutcome:
        start_time = time.monotonic()
        cmd = [str(ffmpeg_path), *args]
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            raise SupervisionError(f"Failed to start ffmpeg: {e}") from e

        timed_out = threading.Event()

        def on_timeout():
            timed_out.set()
            self.logger.warning(f"FFMPEG_TIMEOUT: terminating pid {process.pid} after {self.timeout_seconds}s")
            try:
                process.terminate()
            except OSError as e:
                self.logger.debug(f"Terminate after timeout failed: {e}")

        watchdog = None
        if self.timeout_seconds is not None:
            watchdog = threading.Timer(self.timeout_seconds, on_timeout)
            watchdog.daemon = True
            watchdog.start()

        stderr_lines: List[str] = []
        try:
            try:
                for raw_line in process.stderr:
                    line = raw_line.rstrip("\r\n")
                    if len(stderr_lines) < self.max_stderr_lines:
                        stderr_lines.append(line)
                    elif len(stderr_lines) == self.max_stderr_lines:
                        stderr_lines.append(TRUNCATION_MARKER)

                    if progress_callback is not None and line.startswith("frame="):
                        progress = parse_progress_line(line)
                        if progress is not None:
                            progress_callback(progress)
            except OSError as e:
                process.kill()
                process.wait()
                raise SupervisionError(f"Failed to read ffmpeg stderr: {e}") from e
            except BaseException:
                # e.g. a failing progress callback; never leave the encoder running
                process.kill()
                process.wait()
                raise

            process.wait()
        finally:
            if watchdog is not None:
                watchdog.cancel()

        elapsed = time.monotonic() - start_time
        did_timeout = timed_out.is_set()
        returncode = process.returncode
        self.logger.debug(f"FFMPEG_END: code={returncode} timed_out={did_timeout} elapsed={elapsed:.2f}s")

        return ExecutionOutcome(
            success=returncode == 0 and not did_timeout,
            duration_seconds=elapsed,
            exit_code=returncode,
            stderr="\n".join(stderr_lines),
            timed_out=did_timeout,
        )
