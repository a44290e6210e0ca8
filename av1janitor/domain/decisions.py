"""Pure heuristics deciding whether and how a file gets re-encoded."""
from av1janitor.config.models import QualityConfig
from av1janitor.domain.errors import BuildError
from av1janitor.domain.models import EncodeDecision, MediaDescriptor, QualityTier, Surface

HEIGHT_1080P = 1080
HIGH_BIT_DEPTH_THRESHOLD = 10
WEBRIP_FORMAT_MARKERS = ("mp4", "mov", "webm")


def should_skip_for_size(size_bytes: int, min_bytes: int) -> bool:
    return size_bytes < min_bytes


def is_already_target_codec(descriptor: MediaDescriptor, target_codec: str = "av1") -> bool:
    target = target_codec.lower()
    return any(s.codec.lower() == target for s in descriptor.video_streams)


def needs_special_handling(descriptor: MediaDescriptor) -> bool:
    """True for "webrip-like" sources that need timestamp regeneration and sync flags.

    Any one of these is enough: an mp4/mov/webm container, a variable frame rate
    stream, or a stream with an odd width or height.
    """
    format_name = descriptor.format_name.lower()
    if any(marker in format_name for marker in WEBRIP_FORMAT_MARKERS):
        return True
    return any(s.is_vfr or s.has_odd_dimensions for s in descriptor.video_streams)


def choose_quality_tier(height: int) -> QualityTier:
    # Heights between 1081 and 1439 fall into HIGH as well.
    if height < HEIGHT_1080P:
        return QualityTier.LOW
    elif height == HEIGHT_1080P:
        return QualityTier.MID
    else:
        return QualityTier.HIGH


def choose_surface(bit_depth: int) -> Surface:
    if bit_depth >= HIGH_BIT_DEPTH_THRESHOLD:
        return Surface.P010
    return Surface.NV12


def quality_value(tier: QualityTier, quality: QualityConfig) -> int:
    return {
        QualityTier.LOW: quality.below_1080p,
        QualityTier.MID: quality.at_1080p,
        QualityTier.HIGH: quality.at_1440p_and_above,
    }[tier]


def decide(descriptor: MediaDescriptor) -> EncodeDecision:
    stream = descriptor.default_video_stream()
    if stream is None:
        raise BuildError("No video streams")
    return EncodeDecision(
        tier=choose_quality_tier(stream.height),
        surface=choose_surface(stream.bit_depth),
        needs_special_handling=needs_special_handling(descriptor),
    )
