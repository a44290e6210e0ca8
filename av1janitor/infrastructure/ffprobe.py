import subprocess
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from av1janitor.domain.errors import ProbeError
from av1janitor.domain.models import MediaDescriptor, VideoStreamDescriptor

# Checked in this order; the first hit wins.
_BIT_DEPTH_MARKERS = (
    (10, ("10le", "10be", "p10")),
    (12, ("12le", "12be", "p12")),
    (16, ("16le", "16be", "p16")),
)


def ffprobe_path_for(ffmpeg_path: Optional[Path]) -> Path:
    """ffprobe lives next to ffmpeg when ffmpeg is given with a directory, else on PATH."""
    if ffmpeg_path is not None and Path(ffmpeg_path).parent != Path("."):
        return Path(ffmpeg_path).parent / "ffprobe"
    return Path("ffprobe")


def parse_bit_depth(pix_fmt: Optional[str], bits_per_raw_sample: Optional[Any]) -> int:
    """Bit depth from bits_per_raw_sample, else from the pixel format name, else 8."""
    if bits_per_raw_sample is not None:
        try:
            return int(str(bits_per_raw_sample))
        except ValueError:
            pass

    if pix_fmt:
        fmt = pix_fmt.lower()
        for depth, markers in _BIT_DEPTH_MARKERS:
            if any(marker in fmt for marker in markers):
                return depth

    return 8


def _first_non_empty(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, ffprobe_path: Path = Path("ffprobe")):
        self.ffprobe_path = ffprobe_path
        self.logger = logging.getLogger(__name__)

    def _run(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            str(self.ffprobe_path),
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeError(f"Failed to run ffprobe at {self.ffprobe_path}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {file_path}: {result.stderr}")

        try:
            data = json.loads(result.stdout)
        except (json.JSONDecodeError, TypeError) as e:
            raise ProbeError(f"Failed to parse ffprobe JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("format"), dict):
            raise ProbeError(f"Failed to parse ffprobe JSON: missing format section for {file_path}")
        return data

    def probe(self, file_path: Path) -> MediaDescriptor:
        data = self._run(file_path)
        fmt = data["format"]

        try:
            streams = [
                VideoStreamDescriptor(
                    codec=s.get("codec_name", "unknown"),
                    width=int(s.get("width") or 0),
                    height=int(s.get("height") or 0),
                    bit_depth=parse_bit_depth(s.get("pix_fmt"), s.get("bits_per_raw_sample")),
                    is_default=(s.get("disposition") or {}).get("default") == 1,
                    avg_frame_rate=s.get("avg_frame_rate", "0/0"),
                    r_frame_rate=s.get("r_frame_rate", "0/0"),
                )
                for s in data.get("streams", [])
                if s.get("codec_type") == "video"
            ]
        except (TypeError, ValueError, AttributeError) as e:
            raise ProbeError(f"Failed to parse ffprobe streams for {file_path}: {e}") from e

        size: Optional[int] = None
        try:
            size = int(fmt.get("size"))
        except (TypeError, ValueError):
            try:
                size = Path(file_path).stat().st_size
            except OSError:
                size = None

        tags = fmt.get("tags") or {}
        descriptor = MediaDescriptor(
            video_streams=streams,
            format_name=fmt.get("format_name", ""),
            muxing_app=_first_non_empty(tags.get("MUXING_APP"), tags.get("muxing_app")),
            major_brand=tags.get("major_brand"),
            compatible_brands=tags.get("compatible_brands"),
            size=size,
        )
        self.logger.debug(
            f"PROBE: {Path(file_path).name} format={descriptor.format_name} "
            f"video_streams={len(streams)} size={size}"
        )
        return descriptor
