import subprocess
import logging
import shutil
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel

from av1janitor.config.models import QualityConfig
from av1janitor.domain import naming
from av1janitor.domain.decisions import decide, quality_value
from av1janitor.domain.errors import BuildError, FFmpegNotFoundError
from av1janitor.domain.models import MediaDescriptor, Surface
from av1janitor.infrastructure.ffprobe import ffprobe_path_for

DRI_DIR = Path("/dev/dri")
QSV_DEVICE_VAAPI = "qsv=hw,child_device_type=vaapi"
QSV_DEVICE_GENERIC = "qsv=hw"
EXCLUDED_LANGUAGES = ("rus", "ru")
COMMON_FFMPEG_LOCATIONS = (
    "/usr/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/opt/ffmpeg/bin/ffmpeg",
    "/snap/bin/ffmpeg",
)
MIN_FFMPEG_MAJOR = 8

logger = logging.getLogger(__name__)


class EncodeParams(BaseModel):
    input_path: Path
    output_path: Path
    video_stream_index: int
    quality: int
    surface: Surface
    is_webrip: bool = False

    @classmethod
    def from_descriptor(cls, input_path: Path, descriptor: MediaDescriptor,
                        quality: QualityConfig) -> "EncodeParams":
        index = descriptor.default_video_stream_index()
        if index is None:
            raise BuildError(f"No usable video stream in {input_path}")
        decision = decide(descriptor)
        return cls(
            input_path=input_path,
            output_path=naming.temp_output_path(input_path),
            video_stream_index=index,
            quality=quality_value(decision.tier, quality),
            surface=decision.surface,
            is_webrip=decision.needs_special_handling,
        )


def detect_hw_device(dri_dir: Path = DRI_DIR) -> str:
    """Uses VAAPI as the QSV child device when a render node is present."""
    try:
        has_render = any(p.name.startswith("renderD") for p in Path(dri_dir).iterdir())
    except OSError:
        has_render = False
    return QSV_DEVICE_VAAPI if has_render else QSV_DEVICE_GENERIC


def build_video_filter(surface: Surface) -> str:
    return (
        "pad=ceil(iw/2)*2:ceil(ih/2)*2,setsar=1,"
        f"format={surface.value},hwupload=extra_hw_frames=64"
    )


def _stream_mapping(video_stream_index: int) -> List[str]:
    args = [
        "-map", "0",
        "-map", "-0:v",
        "-map", "-0:t",
        "-map", f"0:v:{video_stream_index}",
    ]
    for kind in ("a", "s"):
        args.extend(["-map", f"0:{kind}?"])
        for lang in EXCLUDED_LANGUAGES:
            args.extend(["-map", f"-0:{kind}:m:language:{lang}"])
    args.extend(["-map_chapters", "0"])
    return args


def build_command(params: EncodeParams, hw_device: Optional[str] = None) -> List[str]:
    """Constructs the ffmpeg arguments (without the binary) for an AV1 QSV encode."""
    device = hw_device if hw_device is not None else detect_hw_device()

    cmd = [
        "-y",
        "-v", "verbose",
        "-stats",
        "-benchmark",
        "-benchmark_all",
        "-hwaccel", "none",
        "-init_hw_device", device,
        "-filter_hw_device", "hw",
        "-analyzeduration", "50M",
        "-probesize", "50M",
    ]

    if params.is_webrip:
        cmd.extend(["-fflags", "+genpts", "-copyts", "-start_at_zero"])

    cmd.extend(["-i", str(params.input_path)])
    cmd.extend(_stream_mapping(params.video_stream_index))

    if params.is_webrip:
        cmd.extend(["-vsync", "0", "-avoid_negative_ts", "make_zero"])

    cmd.extend([
        "-vf:v:0", build_video_filter(params.surface),
        "-c:v:0", "av1_qsv",
        "-global_quality:v:0", str(params.quality),
        "-preset:v:0", "medium",
        "-look_ahead", "1",
    ])

    cmd.extend([
        "-c:a", "copy",
        "-c:s", "copy",
        "-max_muxing_queue_size", "2048",
        "-map_metadata", "0",
        "-f", "matroska",
        "-movflags", "+faststart",
        str(params.output_path),
    ])
    return cmd


class FFmpegInstallation(BaseModel):
    ffmpeg_path: Path
    ffprobe_path: Path
    version: str
    has_av1_qsv: bool
    qsv_hardware_works: bool = False


def extract_version(output: str) -> str:
    """'ffmpeg version n8.0 Copyright ...' -> 'n8.0'"""
    first_line = output.splitlines()[0] if output else ""
    marker = "version "
    start = first_line.find(marker)
    if start < 0:
        raise FFmpegNotFoundError("Version not found in ffmpeg output")
    rest = first_line[start + len(marker):].split()
    if not rest:
        raise FFmpegNotFoundError("Could not parse ffmpeg version")
    return rest[0]


def is_version_supported(version: str) -> bool:
    digits = version[1:] if version.startswith("n") else version
    major = ""
    for ch in digits:
        if not ch.isdigit():
            break
        major += ch
    return bool(major) and int(major) >= MIN_FFMPEG_MAJOR


def _run_quiet(cmd: List[str]) -> Optional[subprocess.CompletedProcess]:
    try:
        return subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        logger.debug(f"Failed to run {cmd[0]}: {e}")
        return None


def probe_qsv_hardware(ffmpeg_path: Path) -> bool:
    """Encodes a single synthetic frame through QSV."""
    result = _run_quiet([
        str(ffmpeg_path), "-hide_banner",
        "-init_hw_device", QSV_DEVICE_GENERIC, "-filter_hw_device", "hw",
        "-f", "lavfi", "-i", "testsrc2=s=64x64:d=0.1",
        "-vf", f"format={Surface.NV12.value},hwupload=extra_hw_frames=64",
        "-c:v", "av1_qsv", "-frames:v", "1",
        "-f", "null", "-",
    ])
    return result is not None and result.returncode == 0


def check_ffmpeg_at(ffmpeg_path: Path, hardware_test: bool = False) -> FFmpegInstallation:
    version_result = _run_quiet([str(ffmpeg_path), "-version"])
    if version_result is None or version_result.returncode != 0:
        raise FFmpegNotFoundError(f"FFmpeg not usable at {ffmpeg_path}")

    version = extract_version(version_result.stdout)
    if not is_version_supported(version):
        raise FFmpegNotFoundError(f"FFmpeg version {version} is too old. Need version {MIN_FFMPEG_MAJOR}.0+")

    encoders = _run_quiet([str(ffmpeg_path), "-hide_banner", "-encoders"])
    if encoders is None or "av1_qsv" not in encoders.stdout:
        raise FFmpegNotFoundError("FFmpeg does not have the av1_qsv encoder (Intel QSV build required)")

    ffprobe = ffprobe_path_for(ffmpeg_path)
    probe_check = _run_quiet([str(ffprobe), "-version"])
    if probe_check is None or probe_check.returncode != 0:
        raise FFmpegNotFoundError("ffprobe not found. It should be installed alongside ffmpeg")

    return FFmpegInstallation(
        ffmpeg_path=ffmpeg_path,
        ffprobe_path=ffprobe,
        version=version,
        has_av1_qsv=True,
        qsv_hardware_works=probe_qsv_hardware(ffmpeg_path) if hardware_test else False,
    )


def find_ffmpeg(preferred: Optional[Path] = None, hardware_test: bool = False) -> FFmpegInstallation:
    """Finds a usable ffmpeg: the configured path, PATH, then common install locations."""
    candidates: List[Path] = []
    if preferred is not None:
        candidates.append(Path(preferred))
    on_path = shutil.which("ffmpeg")
    if on_path:
        candidates.append(Path(on_path))
    candidates.extend(Path(p) for p in COMMON_FFMPEG_LOCATIONS if Path(p).exists())

    errors = []
    for candidate in candidates:
        try:
            return check_ffmpeg_at(candidate, hardware_test=hardware_test)
        except FFmpegNotFoundError as e:
            errors.append(f"{candidate}: {e}")

    detail = "; ".join(errors) if errors else "no ffmpeg binary found"
    raise FFmpegNotFoundError(f"FFmpeg {MIN_FFMPEG_MAJOR}.0+ with av1_qsv not found ({detail})")
